"""
Translation strategies for MCR

Turns natural language into Prolog text. A strategy makes one attempt;
`translate_with_retry` owns retries, feeding each strategy a description
of why its previous output was rejected and falling through to the next
strategy when attempts run out.
"""

from typing import List, Dict, Any, Optional, Callable, Awaitable, Union, Sequence
from dataclasses import dataclass, field
from abc import ABC, abstractmethod
import asyncio
import inspect
import json
import logging
import re
import time

from .engine import PrologEngine
from .llm_providers import ChatMessage, ChatResponse, LLMError
from .example_retriever import ExampleRetriever
from .prompts import (
    SYSTEM_PROMPT, SYNTAX_RULE,
    build_direct_prompt, build_json_prompt, build_few_shot_prompt,
)
from .syntax_checker import is_valid_prolog_syntax

logger = logging.getLogger(__name__)

ChatFunction = Callable[..., Awaitable[ChatResponse]]
CustomTranslator = Callable[[str, List[str], Optional[str]], Union[str, Awaitable[str]]]

DEFAULT_STRATEGY_ORDER = ("direct", "json")

_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)


class TranslationError(RuntimeError):
    """Raised when a strategy's output is not usable Prolog"""

    def __init__(self, message: str, output: Optional[str] = None):
        super().__init__(message)
        self.output = output


@dataclass
class TranslationContext:
    """What a strategy sees on one attempt"""
    ontology_terms: List[str]
    feedback: Optional[str] = None
    chat: Optional[ChatFunction] = None
    prompt_tokens: int = 0
    completion_tokens: int = 0


@dataclass
class TranslationAttempt:
    """Audit record of one strategy invocation"""
    strategy: str
    attempt: int
    feedback: Optional[str] = None
    output: Optional[str] = None
    error: Optional[str] = None
    latency_ms: float = 0.0
    prompt_tokens: int = 0
    completion_tokens: int = 0


@dataclass
class TranslationOutcome:
    prolog: str
    strategy: str
    attempts: List[TranslationAttempt] = field(default_factory=list)


def clean_output(text: str) -> str:
    """Strip code fences and wrapping quotes models like to add"""
    text = text.strip()
    match = _CODE_FENCE.match(text)
    if match:
        text = match.group(1).strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "`\"":
        text = text[1:-1].strip()
    return text


def convert_json_to_prolog(data: Dict[str, Any]) -> str:
    """
    Convert the structured translation format to Prolog text.

    Facts and rules come back terminated, queries do not. An unknown
    `type` gives the empty string.

    Examples:
        >>> convert_json_to_prolog({"type": "fact", "head": {"predicate": "bird", "args": ["tweety"]}})
        'bird(tweety).'

    Raises:
        TranslationError: if required fields are missing or mistyped
    """
    if not isinstance(data, dict):
        raise TranslationError(f"Expected a JSON object, got {type(data).__name__}")

    def literal(part: Any, role: str) -> str:
        if not isinstance(part, dict) or "predicate" not in part:
            raise TranslationError(f"JSON {role} must be an object with a 'predicate'")
        args = part.get("args") or []
        if not isinstance(args, list):
            raise TranslationError(f"JSON {role} 'args' must be a list")
        if not args:
            return str(part["predicate"])
        return f"{part['predicate']}({', '.join(str(a) for a in args)})"

    kind = data.get("type")
    if kind not in ("fact", "rule", "query"):
        return ""

    head = literal(data.get("head"), "head")
    if kind == "fact":
        return f"{head}."
    if kind == "query":
        return head

    body = data.get("body")
    if not isinstance(body, list) or not body:
        raise TranslationError("JSON rule must have a non-empty 'body' list")
    return f"{head} :- {', '.join(literal(cond, 'body literal') for cond in body)}."


class TranslationStrategy(ABC):
    """One way of turning natural language into Prolog"""

    name: str = "custom"

    @abstractmethod
    async def translate(self, text: str, context: TranslationContext) -> str:
        """Make a single attempt; raise on failure"""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


class LLMTranslationStrategy(TranslationStrategy):
    """Base for strategies that ask the language model once per attempt"""

    json_mode: bool = False

    async def _complete(self, prompt: str, context: TranslationContext) -> str:
        if context.chat is None:
            raise LLMError("LLM client not configured for translation.")
        messages = [ChatMessage("system", SYSTEM_PROMPT), ChatMessage("user", prompt)]
        response = await context.chat(messages, json_mode=self.json_mode)
        context.prompt_tokens += response.usage.prompt_tokens
        context.completion_tokens += response.usage.completion_tokens
        return response.text


class DirectToProlog(LLMTranslationStrategy):
    """Ask for Prolog text directly"""

    name = "direct"

    async def translate(self, text: str, context: TranslationContext) -> str:
        prompt = build_direct_prompt(text, context.ontology_terms, context.feedback)
        return clean_output(await self._complete(prompt, context))


class JsonToProlog(LLMTranslationStrategy):
    """Ask for a JSON description of the clause and build the Prolog ourselves"""

    name = "json"
    json_mode = True

    async def translate(self, text: str, context: TranslationContext) -> str:
        prompt = build_json_prompt(text, context.ontology_terms, context.feedback)
        raw = clean_output(await self._complete(prompt, context))
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise LLMError(f"Model returned invalid JSON: {e}", raw_output=raw)
        return convert_json_to_prolog(data)


class FewShotToProlog(LLMTranslationStrategy):
    """Ask for Prolog text with worked examples similar to the input"""

    name = "few_shot"

    def __init__(self, retriever: Optional[ExampleRetriever] = None, num_examples: int = 5):
        self._retriever = retriever
        self.num_examples = num_examples

    @property
    def retriever(self) -> ExampleRetriever:
        # Built on first use so registries that never use few-shot skip the fit
        if self._retriever is None:
            self._retriever = ExampleRetriever()
        return self._retriever

    async def translate(self, text: str, context: TranslationContext) -> str:
        examples = self.retriever.retrieve(text, num_examples=self.num_examples)
        prompt = build_few_shot_prompt(text, context.ontology_terms, examples, context.feedback)
        return clean_output(await self._complete(prompt, context))


class CallableStrategy(TranslationStrategy):
    """
    Adapts a user function `(text, ontology_terms, feedback)` returning a
    string, or an awaitable string.
    """

    def __init__(self, func: CustomTranslator, name: Optional[str] = None):
        if not callable(func):
            raise TypeError(f"Custom translation strategy must be callable, got {type(func).__name__}")
        self.func = func
        self.name = name or getattr(func, "__name__", "custom")

    async def translate(self, text: str, context: TranslationContext) -> str:
        result = self.func(text, context.ontology_terms, context.feedback)
        if inspect.isawaitable(result):
            result = await result
        return result


StrategySpec = Union[None, str, TranslationStrategy, Callable, Sequence[Union[str, TranslationStrategy]]]


class StrategyRegistry:
    """Explicit name -> strategy map"""

    def __init__(self, include_builtins: bool = True):
        self._strategies: Dict[str, TranslationStrategy] = {}
        if include_builtins:
            self.register("direct", DirectToProlog())
            self.register("json", JsonToProlog())
            self.register("few_shot", FewShotToProlog())

    def register(self, name: str, strategy: Union[TranslationStrategy, CustomTranslator]) -> TranslationStrategy:
        """
        Register a strategy object or a plain callable under `name`.

        Raises:
            TypeError: if `strategy` is neither a TranslationStrategy nor callable
        """
        if not isinstance(strategy, TranslationStrategy):
            if not callable(strategy):
                raise TypeError(f"Strategy '{name}' must be a TranslationStrategy or callable, "
                                f"got {type(strategy).__name__}")
            strategy = CallableStrategy(strategy, name)
        self._strategies[name] = strategy
        logger.debug(f"Registered translation strategy '{name}'")
        return strategy

    def get(self, name: str) -> TranslationStrategy:
        if name not in self._strategies:
            raise ValueError(f"Unknown translation strategy: {name}. Choose from: {self.names()}")
        return self._strategies[name]

    def names(self) -> List[str]:
        return list(self._strategies)

    def __contains__(self, name: str) -> bool:
        return name in self._strategies

    def resolve(self, setting: StrategySpec = None) -> List[TranslationStrategy]:
        """
        Turn a translator setting into the ordered list of strategies to try.

        Accepts None (the default order), a name, a strategy, a callable,
        or a list of names and strategies.
        """
        if setting is None:
            return [self.get(name) for name in DEFAULT_STRATEGY_ORDER]
        if isinstance(setting, str):
            return [self.get(setting)]
        if isinstance(setting, TranslationStrategy):
            return [setting]
        if isinstance(setting, (list, tuple)):
            if not setting:
                raise ValueError("Translator list cannot be empty")
            resolved = []
            for item in setting:
                if isinstance(item, str):
                    resolved.append(self.get(item))
                elif isinstance(item, TranslationStrategy):
                    resolved.append(item)
                else:
                    raise TypeError(f"Translator list entries must be names or strategies, got {type(item).__name__}")
            return resolved
        if callable(setting):
            return [CallableStrategy(setting)]
        raise TypeError(f"Unsupported translator setting: {type(setting).__name__}")


def error_feedback(error: Exception) -> str:
    message = f"Previous attempt failed with error: {error}."
    raw = getattr(error, "raw_output", None)
    if raw:
        message += f" The raw output was: {raw!r}."
    return f"{message} Please try again and output only valid Prolog. {SYNTAX_RULE}"


def syntax_feedback(output: Any) -> str:
    return (f"Your previous output was not valid Prolog syntax: \"{output}\". "
            f"{SYNTAX_RULE} Output only the Prolog.")


async def translate_with_retry(
    text: str,
    strategies: List[TranslationStrategy],
    context_factory: Callable[[Optional[str]], TranslationContext],
    max_attempts: int = 2,
    retry_delay: float = 0.5,
    engine: Optional[PrologEngine] = None,
) -> TranslationOutcome:
    """
    Try each strategy in order, up to `max_attempts` times each.

    Returns on the first syntactically valid output. Feedback from a
    failed attempt goes only to the next attempt of the same strategy.

    Raises:
        The last error recorded once every strategy is exhausted
    """
    if not strategies:
        raise ValueError("At least one translation strategy is required")
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    attempts: List[TranslationAttempt] = []
    last_error: Optional[Exception] = None

    for strategy in strategies:
        feedback = None
        for attempt in range(1, max_attempts + 1):
            context = context_factory(feedback)
            record = TranslationAttempt(strategy=strategy.name, attempt=attempt, feedback=feedback)
            attempts.append(record)

            start = time.perf_counter()
            try:
                output = await strategy.translate(text, context)
            except Exception as e:
                record.error = str(e)
                last_error = e
                feedback = error_feedback(e)
                logger.warning(f"Strategy '{strategy.name}' attempt {attempt} failed: {e}")
            else:
                record.output = output
                if is_valid_prolog_syntax(output, engine):
                    record.latency_ms = (time.perf_counter() - start) * 1000
                    record.prompt_tokens = context.prompt_tokens
                    record.completion_tokens = context.completion_tokens
                    logger.info(f"Translated with '{strategy.name}' on attempt {attempt}: {output}")
                    return TranslationOutcome(prolog=output.strip(), strategy=strategy.name, attempts=attempts)
                last_error = TranslationError(
                    f"Strategy '{strategy.name}' produced invalid Prolog: {output!r}", output=output)
                record.error = str(last_error)
                feedback = syntax_feedback(output)
                logger.warning(f"Strategy '{strategy.name}' attempt {attempt} produced invalid Prolog: {output!r}")

            record.latency_ms = (time.perf_counter() - start) * 1000
            record.prompt_tokens = context.prompt_tokens
            record.completion_tokens = context.completion_tokens

            if attempt < max_attempts:
                await asyncio.sleep(retry_delay)

    raise last_error
