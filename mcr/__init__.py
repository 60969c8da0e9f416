"""
MCR: Model Context Reasoner

Sessions mixing natural language with a Prolog knowledge base. A
language model translates between the two and an ontology constrains
which predicates may be asserted.
"""

from .core import MCR
from .session import Session
from .config import MCRConfig, LLMProviderConfig, SessionConfig, QueryConfig, get_config, set_config, reset_config
from .ontology import OntologyManager, OntologyError, OntologyErrorKind, ClauseShape, parse_clause_shape
from .syntax_checker import is_valid_prolog_syntax
from .translation import (
    TranslationStrategy, DirectToProlog, JsonToProlog, FewShotToProlog, CallableStrategy,
    StrategyRegistry, TranslationContext, TranslationAttempt, TranslationOutcome, TranslationError,
    translate_with_retry, convert_json_to_prolog,
)
from .agent import (
    ReasoningLoop, ReasoningDriver, LLMReasoningDriver, CallableReasoningDriver,
    AgentAction, ActionType, ReasoningContext, ReasoningError,
)
from .results import AssertResult, RetractResult, QueryResult, ReasonResult
from .llm_providers import (
    LLMProvider, BaseLLMProvider, ChatMessage, ChatResponse, TokenUsage, LLMError, create_provider,
)
from .metrics import LLMUsage
from .engine import PrologEngine
from .prolog_parser import PrologSyntaxError
from .logging_config import setup_logging

__version__ = "0.1.0"

__all__ = [
    'MCR', 'Session',
    'MCRConfig', 'LLMProviderConfig', 'SessionConfig', 'QueryConfig',
    'get_config', 'set_config', 'reset_config',
    'OntologyManager', 'OntologyError', 'OntologyErrorKind', 'ClauseShape', 'parse_clause_shape',
    'is_valid_prolog_syntax',
    'TranslationStrategy', 'DirectToProlog', 'JsonToProlog', 'FewShotToProlog', 'CallableStrategy',
    'StrategyRegistry', 'TranslationContext', 'TranslationAttempt', 'TranslationOutcome',
    'TranslationError', 'translate_with_retry', 'convert_json_to_prolog',
    'ReasoningLoop', 'ReasoningDriver', 'LLMReasoningDriver', 'CallableReasoningDriver',
    'AgentAction', 'ActionType', 'ReasoningContext', 'ReasoningError',
    'AssertResult', 'RetractResult', 'QueryResult', 'ReasonResult',
    'LLMProvider', 'BaseLLMProvider', 'ChatMessage', 'ChatResponse', 'TokenUsage', 'LLMError',
    'create_provider', 'LLMUsage', 'PrologEngine', 'PrologSyntaxError', 'setup_logging',
]
