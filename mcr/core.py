"""
Root handle for MCR

`MCR` owns what sessions share: the language model provider, the
translation strategy registry and the process-wide usage counters.
"""

from typing import Dict, Any, Optional, Union
import logging

from .config import MCRConfig, get_config
from .llm_providers import LLMProvider, create_provider
from .logging_config import setup_logging
from .metrics import LLMUsage
from .session import Session
from .translation import StrategyRegistry, TranslationStrategy, CustomTranslator

logger = logging.getLogger(__name__)


class MCR:
    """
    Creates sessions and aggregates their model usage.

    Args:
        config: Defaults to the global configuration
        llm: A provider to use instead of building one from `config.provider`
    """

    def __init__(self, config: Optional[MCRConfig] = None, llm: Optional[LLMProvider] = None):
        self.config = config or get_config()
        setup_logging(self.config.log_level, self.config.log_file)
        if llm is None and self.config.provider.provider:
            llm = create_provider(self.config.provider.provider, **self.config.provider.provider_kwargs())
        self.llm = llm
        self.registry = StrategyRegistry()
        self.usage = LLMUsage()
        self.sessions: Dict[str, Session] = {}

    def create_session(self, **options: Any) -> Session:
        """
        Create a session; keyword options override the configured session defaults.

        Accepted options are those of `Session` except `registry` and `usage_sink`.
        """
        defaults = self.config.session
        settings = {
            "max_translation_attempts": defaults.max_translation_attempts,
            "retry_delay": defaults.retry_delay,
            "max_reasoning_steps": defaults.max_reasoning_steps,
            "sub_symbolic_confidence": defaults.sub_symbolic_confidence,
            "translator": defaults.translator,
            "max_suggestions": defaults.max_suggestions,
            "max_depth": self.config.query.max_depth,
            "llm": self.llm,
        }
        settings.update(options)

        session = Session(registry=self.registry, usage_sink=self.usage.record, **settings)
        self.sessions[session.session_id] = session
        logger.info(f"Created session {session.session_id}")
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        return self.sessions.get(session_id)

    def register_strategy(self, name: str,
                          strategy: Union[TranslationStrategy, CustomTranslator]) -> TranslationStrategy:
        """Make a strategy available to sessions by name"""
        return self.registry.register(name, strategy)

    def get_strategy(self, name: str) -> TranslationStrategy:
        return self.registry.get(name)

    def get_llm_metrics(self) -> Dict[str, Any]:
        """Usage summed over every session created by this handle"""
        return self.usage.to_dict()
