"""
Usage accounting for model calls.

`LLMUsage` is a monotonically growing accumulator. A session keeps one
and also forwards every record to the sinks it was given, which is how
the root handle sums usage over all of its sessions.
"""

from typing import Callable, Dict, Any, List, Optional, Sequence
from dataclasses import dataclass, asdict
import time

from .llm_providers import LLMProvider, ChatResponse, TokenUsage, MessageLike

UsageSink = Callable[[TokenUsage, float, bool], None]


@dataclass
class LLMUsage:
    """Token, call and latency counters"""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    calls: int = 0
    failed_calls: int = 0
    total_latency_ms: float = 0.0

    def record(self, usage: TokenUsage, latency_ms: float, success: bool = True) -> None:
        """Add one call's usage; this is also the `UsageSink` signature"""
        self.prompt_tokens += usage.prompt_tokens
        self.completion_tokens += usage.completion_tokens
        self.total_tokens += usage.total_tokens
        self.calls += 1
        if not success:
            self.failed_calls += 1
        self.total_latency_ms += latency_ms

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class MeteredChat:
    """
    Callable wrapper around a provider's `chat` that reports every call,
    successful or not, to a list of usage sinks.
    """

    def __init__(self, provider: LLMProvider, sinks: Sequence[UsageSink]):
        self.provider = provider
        self.sinks: List[UsageSink] = list(sinks)

    async def __call__(self, messages: List[MessageLike],
                       temperature: Optional[float] = None,
                       json_mode: bool = False) -> ChatResponse:
        start = time.perf_counter()
        try:
            response = await self.provider.chat(messages, temperature=temperature, json_mode=json_mode)
        except Exception:
            self._report(TokenUsage(), start, success=False)
            raise
        self._report(response.usage, start, success=True)
        return response

    def _report(self, usage: TokenUsage, start: float, success: bool) -> None:
        latency_ms = (time.perf_counter() - start) * 1000
        for sink in self.sinks:
            sink(usage, latency_ms, success)
