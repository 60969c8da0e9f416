"""
Agentic reasoning loop for MCR

A driver picks the next action (query, assert or conclude) from the task
and what has been learned so far; the loop executes it against the
session and stops on a conclusion, a decisive query, or when the step
budget runs out.
"""

from typing import List, Dict, Any, Optional, Callable, Union, Awaitable, TYPE_CHECKING
from dataclasses import dataclass, field
from abc import ABC, abstractmethod
from enum import Enum
import inspect
import json
import logging

from .llm_providers import ChatMessage, LLMError
from .prompts import SYSTEM_PROMPT, build_agent_prompt
from .results import ReasonResult
from .translation import ChatFunction, clean_output

if TYPE_CHECKING:
    from .session import Session

logger = logging.getLogger(__name__)

TRUTH_TOKENS = {"true": "Yes", "yes": "Yes", "false": "No", "no": "No"}

INCONCLUSIVE = "Inconclusive"
REASONING_ERROR = "Reasoning error"
BUDGET_CONFIDENCE = 0.3


class ReasoningError(RuntimeError):
    """Raised when the driver cannot produce a usable next action"""
    pass


class ActionType(Enum):
    QUERY = "query"
    ASSERT = "assert"
    CONCLUDE = "conclude"


@dataclass
class AgentAction:
    """One decision of the driver"""
    type: ActionType
    content: str = ""
    answer: Optional[str] = None
    explanation: Optional[str] = None
    final: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentAction":
        """
        Build an action from the driver's JSON object.

        Raises:
            ReasoningError: unknown action type
            ValueError: a known type with missing or mistyped fields
        """
        try:
            action_type = ActionType(data.get("type"))
        except ValueError:
            raise ReasoningError(
                f"Agentic reasoning strategy returned invalid action type: {data.get('type')}. "
                f"Content: {data.get('content')}")

        if action_type is ActionType.CONCLUDE:
            answer = data.get("answer", data.get("content"))
            if not isinstance(answer, str) or not answer.strip():
                raise ValueError("A conclude action needs a non-empty 'answer'")
            return cls(action_type, answer=answer.strip(), explanation=data.get("explanation"))

        content = data.get("content")
        if not isinstance(content, str) or not content.strip():
            raise ValueError(f"A {action_type.value} action needs a non-empty 'content'")
        return cls(action_type, content=content.strip(), explanation=data.get("explanation"),
                   final=bool(data.get("final", False)))


@dataclass
class ReasoningContext:
    """Everything a driver may look at when choosing the next action"""
    program: List[str]
    ontology_terms: List[str]
    previous_steps: List[str] = field(default_factory=list)
    accumulated_bindings: str = ""
    chat: Optional[ChatFunction] = None
    max_output_attempts: int = 2


@dataclass
class ReasoningStep:
    action: ActionType
    content: str
    outcome: str
    accepted: bool = True

    def trace_lines(self) -> List[str]:
        if self.action is ActionType.QUERY:
            return [f"Agent queries: {self.content}", f"Query result: {self.outcome}"]
        if self.action is ActionType.ASSERT:
            if self.accepted:
                return [f"Agent asserts: {self.content} (accepted)"]
            return [f"Agent assertion failed: {self.content} ({self.outcome})"]
        return []


def render_trace(steps: List[ReasoningStep]) -> List[str]:
    return [line for step in steps for line in step.trace_lines()]


class ReasoningDriver(ABC):
    """Chooses the next action of a reasoning loop"""

    @abstractmethod
    async def next_action(self, task: str, context: ReasoningContext) -> AgentAction:
        pass


class LLMReasoningDriver(ReasoningDriver):
    """
    Asks the language model for the next action in JSON mode.

    Malformed JSON is retried within the step, with feedback, up to
    `context.max_output_attempts` times. An unknown action type is not
    retried.
    """

    async def next_action(self, task: str, context: ReasoningContext) -> AgentAction:
        if context.chat is None:
            raise ReasoningError("LLM client not configured for agentic reasoning.")

        feedback = None
        last_error: Optional[Exception] = None
        for attempt in range(1, max(1, context.max_output_attempts) + 1):
            prompt = build_agent_prompt(task, context.program, context.ontology_terms,
                                        context.previous_steps, context.accumulated_bindings, feedback)
            response = await context.chat(
                [ChatMessage("system", SYSTEM_PROMPT), ChatMessage("user", prompt)], json_mode=True)
            raw = clean_output(response.text)
            try:
                data = json.loads(raw)
                if not isinstance(data, dict):
                    raise ValueError(f"expected a JSON object, got {type(data).__name__}")
                return AgentAction.from_dict(data)
            except ValueError as e:
                last_error = LLMError(f"Agent returned malformed action: {e}", raw_output=raw)
                feedback = (f"Previous attempt failed with error: {e}. Raw output was: {raw!r}. "
                            "Output a single JSON object with a valid \"type\".")
                logger.warning(f"Reasoning step output attempt {attempt} malformed: {e}")

        raise last_error


ActionFunction = Callable[[str, ReasoningContext], Union[AgentAction, Dict[str, Any],
                                                       Awaitable[Union[AgentAction, Dict[str, Any]]]]]


class CallableReasoningDriver(ReasoningDriver):
    """Wraps a function returning an AgentAction or an action dict (or an awaitable of either)"""

    def __init__(self, func: ActionFunction):
        if not callable(func):
            raise TypeError(f"Reasoning driver must be callable, got {type(func).__name__}")
        self.func = func

    async def next_action(self, task: str, context: ReasoningContext) -> AgentAction:
        result = self.func(task, context)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, AgentAction):
            return result
        if isinstance(result, dict):
            return AgentAction.from_dict(result)
        raise ReasoningError(f"Reasoning driver returned {type(result).__name__}, expected an action")


def truth_verdict(bindings: List[str]) -> Optional[str]:
    """
    "Yes"/"No" when a binding is a truth token, bare or as a value.

    Examples:
        >>> truth_verdict(["Answer = yes"])
        'Yes'
        >>> truth_verdict(["X = tweety"]) is None
        True
    """
    for binding in bindings:
        candidates = [binding]
        if "=" in binding:
            candidates.append(binding.split("=", 1)[1])
        for candidate in candidates:
            token = candidate.strip().lower()
            if token in TRUTH_TOKENS:
                return TRUTH_TOKENS[token]
    return None


class ReasoningLoop:
    """Bounded query/assert/conclude loop over one session"""

    def __init__(self, session: "Session", driver: Optional[ReasoningDriver] = None):
        self.session = session
        self.driver = driver or LLMReasoningDriver()

    def _context(self, steps: List[ReasoningStep], bindings: List[str]) -> ReasoningContext:
        return ReasoningContext(
            program=self.session.program,
            ontology_terms=self.session.ontology.ontology_terms(),
            previous_steps=render_trace(steps),
            accumulated_bindings=", ".join(bindings),
            chat=self.session.chat,
            max_output_attempts=self.session.max_translation_attempts,
        )

    async def run(self, task: str, max_steps: int = 5,
                  allow_sub_symbolic_fallback: bool = False) -> ReasonResult:
        steps: List[ReasoningStep] = []
        bindings: List[str] = []

        try:
            for _ in range(max_steps):
                action = await self.driver.next_action(task, self._context(steps, bindings))

                if action.type is ActionType.CONCLUDE:
                    steps.append(ReasoningStep(action.type, action.answer, "concluded"))
                    logger.info(f"Reasoning concluded after {len(steps)} step(s): {action.answer}")
                    return ReasonResult(answer=action.answer, explanation=action.explanation or "",
                                        steps=render_trace(steps), confidence=1.0)

                if action.type is ActionType.QUERY:
                    result = await self.session.query(
                        action.content, allow_sub_symbolic_fallback=allow_sub_symbolic_fallback)
                    steps.append(ReasoningStep(
                        action.type, action.content,
                        f"success={result.success}, bindings={result.bindings}, confidence={result.confidence}",
                        accepted=result.success))
                    if result.bindings:
                        bindings.extend(result.bindings)

                    verdict = truth_verdict(result.bindings or [])
                    if verdict is not None or action.final:
                        explanation = action.explanation or f"Derived from query {action.content}"
                        return ReasonResult(answer=verdict or INCONCLUSIVE, explanation=explanation,
                                            steps=render_trace(steps), confidence=result.confidence)
                    continue

                outcome = self.session.assert_prolog(action.content)
                steps.append(ReasoningStep(action.type, action.content,
                                           "accepted" if outcome.success else str(outcome.error),
                                           accepted=outcome.success))

            logger.info(f"Reasoning stopped after {len(steps)} step(s) without a conclusion")
            return ReasonResult(answer=INCONCLUSIVE,
                                explanation="The step budget ran out before a conclusion was reached.",
                                steps=render_trace(steps) + [f"Maximum reasoning steps reached ({max_steps})."],
                                confidence=BUDGET_CONFIDENCE)

        except Exception as e:
            logger.error(f"Reasoning failed for task {task!r}: {e}")
            return ReasonResult(answer=REASONING_ERROR, explanation=f"Reasoning failed: {e}",
                                steps=render_trace(steps), confidence=0.0)
