"""
Tests for the MCR root handle, usage accounting and configuration
"""
import json
import logging

import pytest
import yaml
from unittest.mock import patch, AsyncMock
from mcr.config import MCRConfig, LLMProviderConfig, SessionConfig, get_config, set_config, reset_config
from mcr.core import MCR
from mcr.llm_providers import LLMError, TokenUsage, ChatResponse, OllamaProvider
from mcr.logging_config import StructuredFormatter, setup_logging
from mcr.metrics import LLMUsage, MeteredChat
from tests.mock_provider import MockChatProvider


@pytest.fixture(autouse=True)
def default_config():
    reset_config()
    yield
    reset_config()


class TestLLMUsage:

    def test_record(self):
        usage = LLMUsage()
        usage.record(TokenUsage(10, 2, 12), 5.0)
        usage.record(TokenUsage(), 1.5, success=False)
        assert usage.to_dict() == {
            "prompt_tokens": 10,
            "completion_tokens": 2,
            "total_tokens": 12,
            "calls": 2,
            "failed_calls": 1,
            "total_latency_ms": 6.5,
        }


class TestMeteredChat:

    @pytest.mark.asyncio
    async def test_reports_success_to_every_sink(self):
        provider = AsyncMock()
        provider.chat.return_value = ChatResponse("ok", TokenUsage(3, 1, 4))
        first, second = LLMUsage(), LLMUsage()
        chat = MeteredChat(provider, [first.record, second.record])

        response = await chat([{"role": "user", "content": "hi"}], json_mode=True)

        assert response.text == "ok"
        provider.chat.assert_awaited_once_with([{"role": "user", "content": "hi"}],
                                               temperature=None, json_mode=True)
        assert first.total_tokens == second.total_tokens == 4

    @pytest.mark.asyncio
    async def test_reports_failure_and_reraises(self):
        provider = AsyncMock()
        provider.chat.side_effect = LLMError("down")
        usage = LLMUsage()
        with pytest.raises(LLMError):
            await MeteredChat(provider, [usage.record])([])
        assert usage.calls == 1
        assert usage.failed_calls == 1


class TestMCR:
    """Root handle shared by sessions"""

    def test_no_provider_configured(self):
        mcr = MCR()
        assert mcr.llm is None
        assert mcr.create_session().chat is None

    def test_session_defaults_from_config(self):
        config = MCRConfig(session=SessionConfig(max_translation_attempts=4, retry_delay=0.1,
                                                 sub_symbolic_confidence=0.6))
        config.query.max_depth = 42
        session = MCR(config).create_session()
        assert session.max_translation_attempts == 4
        assert session.retry_delay == 0.1
        assert session.sub_symbolic_confidence == 0.6
        assert session.engine.max_depth == 42

    def test_options_override_defaults(self):
        session = MCR().create_session(max_reasoning_steps=9, ontology={"types": ["bird"]})
        assert session.max_reasoning_steps == 9
        assert session.get_ontology()["types"] == ["bird"]

    def test_sessions_tracked(self):
        mcr = MCR()
        session = mcr.create_session(session_id="abc")
        assert mcr.get_session("abc") is session
        assert mcr.get_session("missing") is None

    def test_provider_built_from_config(self):
        config = MCRConfig(provider=LLMProviderConfig(provider="ollama", model="mistral"))
        mcr = MCR(config)
        assert isinstance(mcr.llm, OllamaProvider)
        assert mcr.llm.model == "mistral"

    @pytest.mark.asyncio
    async def test_usage_summed_across_sessions(self):
        provider = MockChatProvider(default_response="bird(tweety).")
        mcr = MCR(llm=provider)
        first = mcr.create_session(ontology={"types": ["bird"]})
        second = mcr.create_session(ontology={"types": ["bird"]})

        await first.assert_statement("Tweety is a bird.")
        await second.assert_statement("Tweety is a bird.")

        assert first.get_llm_metrics()["calls"] == 1
        assert second.get_llm_metrics()["calls"] == 1
        assert mcr.get_llm_metrics()["calls"] == 2
        assert mcr.get_llm_metrics()["total_tokens"] == (
            first.get_llm_metrics()["total_tokens"] + second.get_llm_metrics()["total_tokens"])

    @pytest.mark.asyncio
    async def test_registered_strategy_visible_to_sessions(self):
        mcr = MCR()
        mcr.register_strategy("canned", lambda text, terms, feedback: "bird(tweety).")
        session = mcr.create_session(ontology={"types": ["bird"]}, translator="canned")
        result = await session.assert_statement("Tweety is a bird.")
        assert result.success
        assert result.strategy == "canned"
        assert mcr.get_strategy("canned").name == "canned"

    @pytest.mark.asyncio
    async def test_override_visible_to_existing_session(self):
        mcr = MCR()
        session = mcr.create_session(ontology={"types": ["bird"]})
        mcr.register_strategy("direct", lambda text, terms, feedback: "bird(tweety).")
        result = await session.assert_statement("Tweety is a bird.")
        assert result.success
        assert result.strategy == "direct"
        assert session.program == ["bird(tweety)."]

    def test_logging_configured_from_config(self, tmp_path):
        log_file = tmp_path / "mcr.log"
        MCR(MCRConfig(log_level="DEBUG", log_file=str(log_file)))
        logger = logging.getLogger("mcr")
        try:
            assert logger.level == logging.DEBUG
            assert len(logger.handlers) == 2
            assert log_file.exists()
        finally:
            setup_logging("WARNING")

    def test_register_strategy_rejects_non_callable(self):
        with pytest.raises(TypeError):
            MCR().register_strategy("broken", "not a function")


class TestConfig:

    def test_defaults(self):
        config = MCRConfig()
        assert config.provider.provider is None
        assert config.session.max_translation_attempts == 2
        assert config.session.sub_symbolic_confidence == 0.7
        assert config.query.max_depth == 100

    def test_yaml_round_trip(self, tmp_path):
        config = MCRConfig(provider=LLMProviderConfig(provider="ollama", model="llama3"))
        config.session.max_reasoning_steps = 8
        path = tmp_path / "mcr_config.yaml"
        config.save(path)

        assert yaml.safe_load(path.read_text())["session"]["max_reasoning_steps"] == 8
        loaded = MCRConfig.load(path)
        assert loaded.to_dict() == config.to_dict()

    def test_json_round_trip(self, tmp_path):
        config = MCRConfig(log_level="DEBUG")
        config.session.translator = ["json", "direct"]
        path = tmp_path / "nested" / "config.json"
        config.save(path)

        assert json.loads(path.read_text())["log_level"] == "DEBUG"
        assert MCRConfig.load(path).session.translator == ["json", "direct"]

    def test_partial_dict(self):
        config = MCRConfig.from_dict({"query": {"max_depth": 7}})
        assert config.query.max_depth == 7
        assert config.session.max_translation_attempts == 2

    def test_api_key_from_env(self):
        provider = LLMProviderConfig(provider="anthropic")
        with patch.dict('os.environ', {"ANTHROPIC_API_KEY": "ant-env"}):
            assert provider.get_api_key() == "ant-env"

    def test_api_key_env_name(self):
        provider = LLMProviderConfig(provider="openai", api_key_env="MY_KEY")
        with patch.dict('os.environ', {"MY_KEY": "custom"}):
            assert provider.get_api_key() == "custom"

    def test_ollama_kwargs_have_no_api_key(self):
        assert "api_key" not in LLMProviderConfig(provider="ollama").provider_kwargs()

    def test_global_config(self):
        config = MCRConfig(log_level="WARNING")
        set_config(config)
        assert get_config() is config
        reset_config()
        assert get_config().log_level == "INFO"


class TestLogging:

    def test_structured_formatter_merges_extra_fields(self):
        record = logging.LogRecord("mcr.test", logging.INFO, __file__, 1, "LLM call completed", None, None)
        record.extra_fields = {"event_type": "llm_call", "latency_ms": 12.5}
        entry = json.loads(StructuredFormatter().format(record))
        assert entry["message"] == "LLM call completed"
        assert entry["event_type"] == "llm_call"
        assert entry["latency_ms"] == 12.5
        assert entry["level"] == "INFO"

    def test_setup_logging_does_not_duplicate_handlers(self, tmp_path):
        log_file = tmp_path / "logs" / "mcr.log"
        setup_logging("DEBUG", log_file=log_file)
        logger = setup_logging("DEBUG", log_file=log_file, structured=True)
        assert logger.name == "mcr"
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 2
        assert isinstance(logger.handlers[0].formatter, StructuredFormatter)

        logger.getChild("session").info("hello")
        for handler in logger.handlers:
            handler.flush()
        assert json.loads(log_file.read_text().strip().splitlines()[-1])["message"] == "hello"

        setup_logging("WARNING")
        assert len(logger.handlers) == 1
