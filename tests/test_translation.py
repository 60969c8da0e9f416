"""
Tests for translation strategies and the retry chain
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from mcr.llm_providers import LLMError
from mcr.translation import (
    TranslationContext, TranslationError, TranslationStrategy, StrategyRegistry,
    CallableStrategy, DirectToProlog, JsonToProlog, FewShotToProlog,
    clean_output, convert_json_to_prolog, translate_with_retry,
)
from tests.mock_provider import MockChatProvider


def make_factory(provider=None, terms=None):
    chat = provider.chat if provider is not None else None

    def factory(feedback):
        return TranslationContext(ontology_terms=terms or ["bird"], feedback=feedback, chat=chat)
    return factory


class FailingStrategy(TranslationStrategy):

    def __init__(self, name, message):
        self.name = name
        self.message = message
        self.calls = 0

    async def translate(self, text, context):
        self.calls += 1
        raise LLMError(self.message)


class TestCleanOutput:

    def test_code_fence(self):
        assert clean_output("```prolog\nbird(tweety).\n```") == "bird(tweety)."

    def test_wrapping_backticks_and_quotes(self):
        assert clean_output("`bird(X)`") == "bird(X)"
        assert clean_output('"bird(tweety)."') == "bird(tweety)."

    def test_plain_text_untouched(self):
        assert clean_output("  bird(X)  ") == "bird(X)"


class TestConvertJsonToProlog:

    def test_fact(self):
        data = {"type": "fact", "head": {"predicate": "bird", "args": ["tweety"]}}
        assert convert_json_to_prolog(data) == "bird(tweety)."

    def test_query_is_not_terminated(self):
        data = {"type": "query", "head": {"predicate": "bird", "args": ["X"]}}
        assert convert_json_to_prolog(data) == "bird(X)"

    def test_rule(self):
        data = {
            "type": "rule",
            "head": {"predicate": "flies", "args": ["X"]},
            "body": [{"predicate": "bird", "args": ["X"]}, {"predicate": "healthy", "args": ["X"]}],
        }
        assert convert_json_to_prolog(data) == "flies(X) :- bird(X), healthy(X)."

    def test_zero_arity(self):
        data = {"type": "fact", "head": {"predicate": "raining", "args": []}}
        assert convert_json_to_prolog(data) == "raining."

    def test_unknown_type_gives_empty_string(self):
        assert convert_json_to_prolog({"type": "opinion"}) == ""

    def test_rule_without_body(self):
        data = {"type": "rule", "head": {"predicate": "flies", "args": ["X"]}, "body": []}
        with pytest.raises(TranslationError):
            convert_json_to_prolog(data)

    def test_missing_head(self):
        with pytest.raises(TranslationError):
            convert_json_to_prolog({"type": "fact"})

    def test_not_an_object(self):
        with pytest.raises(TranslationError):
            convert_json_to_prolog(["bird"])


class TestBuiltinStrategies:

    @pytest.mark.asyncio
    async def test_direct(self):
        provider = MockChatProvider(["```prolog\nbird(tweety).\n```"])
        context = make_factory(provider)(None)
        result = await DirectToProlog().translate("Tweety is a bird.", context)
        assert result == "bird(tweety)."
        assert "Tweety is a bird." in provider.last_prompt
        assert "Available ontology terms: bird" in provider.last_prompt
        assert context.prompt_tokens > 0
        assert context.completion_tokens > 0

    @pytest.mark.asyncio
    async def test_direct_includes_feedback(self):
        provider = MockChatProvider(["bird(tweety)."])
        context = make_factory(provider)("Your previous output was wrong")
        await DirectToProlog().translate("Tweety is a bird.", context)
        assert "Your previous output was wrong" in provider.last_prompt

    @pytest.mark.asyncio
    async def test_json(self):
        provider = MockChatProvider([{"type": "fact", "head": {"predicate": "bird", "args": ["tweety"]}}])
        result = await JsonToProlog().translate("Tweety is a bird.", make_factory(provider)(None))
        assert result == "bird(tweety)."
        assert provider.calls[0]["json_mode"] is True

    @pytest.mark.asyncio
    async def test_json_invalid(self):
        provider = MockChatProvider(["not json"])
        with pytest.raises(LLMError) as exc_info:
            await JsonToProlog().translate("Tweety is a bird.", make_factory(provider)(None))
        assert exc_info.value.raw_output == "not json"

    @pytest.mark.asyncio
    async def test_few_shot_uses_retrieved_examples(self):
        retriever = MagicMock()
        retriever.retrieve.return_value = [{"text": "Opus is a penguin.", "prolog": "penguin(opus)."}]
        provider = MockChatProvider(["bird(tweety)."])
        strategy = FewShotToProlog(retriever=retriever, num_examples=1)
        result = await strategy.translate("Tweety is a bird.", make_factory(provider)(None))
        assert result == "bird(tweety)."
        assert "penguin(opus)." in provider.last_prompt
        retriever.retrieve.assert_called_once_with("Tweety is a bird.", num_examples=1)

    @pytest.mark.asyncio
    async def test_no_llm_configured(self):
        with pytest.raises(LLMError, match="LLM client not configured"):
            await DirectToProlog().translate("Tweety is a bird.", make_factory()(None))


class TestCallableStrategy:

    @pytest.mark.asyncio
    async def test_sync_callable(self):
        strategy = CallableStrategy(lambda text, terms, feedback: "bird(tweety).", name="fixed")
        assert await strategy.translate("x", make_factory()(None)) == "bird(tweety)."
        assert strategy.name == "fixed"

    @pytest.mark.asyncio
    async def test_async_callable(self):
        async def translator(text, terms, feedback):
            return f"{terms[0]}(tweety)."
        strategy = CallableStrategy(translator)
        assert await strategy.translate("x", make_factory()(None)) == "bird(tweety)."
        assert strategy.name == "translator"

    def test_not_callable(self):
        with pytest.raises(TypeError):
            CallableStrategy("direct")


class TestStrategyRegistry:

    def test_builtins(self):
        registry = StrategyRegistry()
        assert registry.names() == ["direct", "json", "few_shot"]
        assert "json" in registry

    def test_default_order(self):
        names = [s.name for s in StrategyRegistry().resolve(None)]
        assert names == ["direct", "json"]

    def test_register_callable(self):
        registry = StrategyRegistry()
        strategy = registry.register("mine", lambda text, terms, feedback: "bird(x).")
        assert isinstance(strategy, CallableStrategy)
        assert registry.resolve("mine") == [strategy]

    def test_register_rejects_non_callable(self):
        with pytest.raises(TypeError):
            StrategyRegistry().register("broken", 42)

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown translation strategy"):
            StrategyRegistry().resolve("telepathy")

    def test_resolve_list(self):
        registry = StrategyRegistry()
        custom = FailingStrategy("custom", "boom")
        resolved = registry.resolve(["json", custom])
        assert [s.name for s in resolved] == ["json", "custom"]

    def test_resolve_empty_list(self):
        with pytest.raises(ValueError):
            StrategyRegistry().resolve([])

    def test_resolve_bad_list_entry(self):
        with pytest.raises(TypeError):
            StrategyRegistry().resolve(["direct", 3])

    def test_resolve_callable(self):
        resolved = StrategyRegistry(include_builtins=False).resolve(lambda t, o, f: "bird(x).")
        assert isinstance(resolved[0], CallableStrategy)


class TestTranslateWithRetry:
    """Bounded retry loop with per-strategy feedback"""

    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self):
        provider = MockChatProvider(["bird(tweety)."])
        outcome = await translate_with_retry("Tweety is a bird.", [DirectToProlog()],
                                             make_factory(provider), retry_delay=0)
        assert outcome.prolog == "bird(tweety)."
        assert outcome.strategy == "direct"
        assert len(outcome.attempts) == 1
        assert outcome.attempts[0].prompt_tokens > 0

    @pytest.mark.asyncio
    async def test_invalid_syntax_retried_with_feedback(self):
        provider = MockChatProvider(["Tweety is a bird", "bird(tweety)."])
        outcome = await translate_with_retry("Tweety is a bird.", [DirectToProlog()],
                                             make_factory(provider), max_attempts=2, retry_delay=0)
        assert outcome.prolog == "bird(tweety)."
        assert outcome.attempts[0].error is not None
        assert "not valid Prolog syntax" in outcome.attempts[1].feedback
        assert "not valid Prolog syntax" in provider.last_prompt

    @pytest.mark.asyncio
    async def test_non_ascii_output_becomes_feedback(self):
        provider = MockChatProvider(["likes(josé, café).", "likes(jose, cafe)."])
        outcome = await translate_with_retry("José likes café.", [DirectToProlog()],
                                             make_factory(provider), max_attempts=2, retry_delay=0)
        assert outcome.prolog == "likes(jose, cafe)."
        assert outcome.attempts[0].error is not None
        assert "not valid Prolog syntax" in outcome.attempts[1].feedback

    @pytest.mark.asyncio
    async def test_empty_output_is_rejected(self):
        strategy = CallableStrategy(lambda t, o, f: "", name="blank")
        with pytest.raises(TranslationError):
            await translate_with_retry("x", [strategy], make_factory(), max_attempts=1, retry_delay=0)

    @pytest.mark.asyncio
    async def test_falls_through_to_next_strategy(self):
        failing = FailingStrategy("direct", "model down")
        provider = MockChatProvider([{"type": "fact", "head": {"predicate": "bird", "args": ["tweety"]}}])
        outcome = await translate_with_retry("Tweety is a bird.", [failing, JsonToProlog()],
                                             make_factory(provider), max_attempts=2, retry_delay=0)
        assert failing.calls == 2
        assert outcome.strategy == "json"
        assert [a.strategy for a in outcome.attempts] == ["direct", "direct", "json"]

    @pytest.mark.asyncio
    async def test_feedback_does_not_cross_strategies(self):
        seen = []

        def recorder(text, terms, feedback):
            seen.append(feedback)
            return "bird(tweety)."

        failing = FailingStrategy("direct", "model down")
        await translate_with_retry("x", [failing, CallableStrategy(recorder)],
                                   make_factory(), max_attempts=1, retry_delay=0)
        assert seen == [None]

    @pytest.mark.asyncio
    async def test_all_strategies_fail_raises_last_error(self):
        first = FailingStrategy("direct", "direct failed")
        second = FailingStrategy("json", "json failed")
        with pytest.raises(LLMError, match="json failed"):
            await translate_with_retry("x", [first, second], make_factory(),
                                       max_attempts=1, retry_delay=0)

    @pytest.mark.asyncio
    async def test_sleeps_only_between_attempts(self):
        failing = FailingStrategy("direct", "down")
        with patch("mcr.translation.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(LLMError):
                await translate_with_retry("x", [failing], make_factory(), max_attempts=3, retry_delay=0.25)
        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.25)

    @pytest.mark.asyncio
    async def test_requires_strategies(self):
        with pytest.raises(ValueError):
            await translate_with_retry("x", [], make_factory())

    @pytest.mark.asyncio
    async def test_requires_positive_attempts(self):
        with pytest.raises(ValueError):
            await translate_with_retry("x", [DirectToProlog()], make_factory(), max_attempts=0)
