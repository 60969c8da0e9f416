"""
LLM Provider System for MCR

Uniform chat interface over the hosted and local model APIs MCR can
translate with. Providers are synchronous HTTP clients underneath; the
public `chat` coroutine runs the request in a worker thread so callers
can await it without blocking the event loop.
"""

from typing import Protocol, List, Dict, Any, Optional, Union
from dataclasses import dataclass, field
from abc import ABC, abstractmethod
import asyncio
import json
import logging
import os
import time

import requests

logger = logging.getLogger(__name__)

JSON_ONLY_INSTRUCTION = "Respond with a single valid JSON object and nothing else."


class LLMError(RuntimeError):
    """Raised when a model call fails or returns unusable output"""

    def __init__(self, message: str, raw_output: Optional[str] = None):
        super().__init__(message)
        self.raw_output = raw_output


@dataclass
class ChatMessage:
    """One role-tagged message in a chat exchange"""
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class TokenUsage:
    """Token counts reported for one call"""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_dict(cls, usage: Optional[Dict[str, Any]]) -> "TokenUsage":
        """
        Normalize the usage blocks of the supported APIs.

        Accepts OpenAI (prompt_tokens/completion_tokens), Anthropic
        (input_tokens/output_tokens) and Ollama (prompt_eval_count/eval_count).
        """
        if not usage:
            return cls()
        prompt = usage.get("prompt_tokens", usage.get("input_tokens", usage.get("prompt_eval_count", 0))) or 0
        completion = usage.get("completion_tokens", usage.get("output_tokens", usage.get("eval_count", 0))) or 0
        total = usage.get("total_tokens") or prompt + completion
        return cls(int(prompt), int(completion), int(total))


@dataclass
class ChatResponse:
    """Generated text plus usage, and the decoded API payload for debugging"""
    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    raw: Optional[Dict[str, Any]] = None


MessageLike = Union[ChatMessage, Dict[str, str]]


def normalize_messages(messages: List[MessageLike]) -> List[Dict[str, str]]:
    normalized = []
    for message in messages:
        if isinstance(message, ChatMessage):
            normalized.append(message.to_dict())
        else:
            normalized.append({"role": message["role"], "content": message["content"]})
    return normalized


class LLMProvider(Protocol):
    """
    Protocol for LLM providers

    All providers must implement this interface for uniform behavior.
    """

    async def chat(self,
                   messages: List[MessageLike],
                   temperature: Optional[float] = None,
                   json_mode: bool = False) -> ChatResponse:
        """
        Run one chat completion

        Args:
            messages: Role-tagged messages, oldest first
            temperature: Overrides the provider's temperature when given
            json_mode: Ask the model for a single JSON object

        Returns:
            ChatResponse with the generated text and token usage

        Raises:
            LLMError: transport failure or unreadable response
        """
        ...

    def get_parameter(self, key: str, default: Any = None) -> Any:
        ...

    def set_parameter(self, key: str, value: Any) -> None:
        ...

    def get_metadata(self) -> Dict[str, Any]:
        ...

    def clone_with_parameters(self, **params) -> 'LLMProvider':
        ...


class BaseLLMProvider(ABC):
    """
    Base class for LLM providers with common functionality

    Implements the LLMProvider protocol with parameter management.
    """

    def __init__(self, model: str = "default", temperature: float = 0.0, **kwargs):
        self._parameters = {
            "model": model,
            "temperature": temperature,
            **kwargs
        }

    @property
    def model(self) -> str:
        return self._parameters.get("model", "default")

    @model.setter
    def model(self, value: str):
        self._parameters["model"] = value

    @property
    def temperature(self) -> float:
        return self._parameters.get("temperature", 0.0)

    @temperature.setter
    def temperature(self, value: float):
        self._parameters["temperature"] = value

    def get_parameter(self, key: str, default: Any = None) -> Any:
        """Get configuration parameter"""
        return self._parameters.get(key, default)

    def set_parameter(self, key: str, value: Any) -> None:
        """Update configuration parameter"""
        self._parameters[key] = value

    def get_metadata(self) -> Dict[str, Any]:
        """Provider metadata and capabilities"""
        return {
            "provider_class": self.__class__.__name__,
            "model": self.get_parameter("model"),
            "parameters": self._parameters.copy(),
            "capabilities": ["chat", "json_mode"]
        }

    def clone_with_parameters(self, **params) -> 'BaseLLMProvider':
        """Create copy with modified parameters"""
        new_params = self._parameters.copy()
        new_params.update(params)
        return self.__class__(**new_params)

    @abstractmethod
    def _call_api(self, messages: List[Dict[str, str]], temperature: float,
                  json_mode: bool) -> ChatResponse:
        """Make the actual (blocking) API call"""
        pass

    async def chat(self,
                   messages: List[MessageLike],
                   temperature: Optional[float] = None,
                   json_mode: bool = False) -> ChatResponse:
        payload = normalize_messages(messages)
        temperature = self.temperature if temperature is None else temperature

        start = time.perf_counter()
        response = await asyncio.to_thread(self._call_api, payload, temperature, json_mode)
        latency_ms = (time.perf_counter() - start) * 1000

        logger.debug(
            "LLM call completed",
            extra={
                'extra_fields': {
                    'event_type': 'llm_call',
                    'provider': self.__class__.__name__,
                    'model': self.model,
                    'json_mode': json_mode,
                    'prompt_tokens': response.usage.prompt_tokens,
                    'completion_tokens': response.usage.completion_tokens,
                    'latency_ms': latency_ms
                }
            }
        )
        return response


class URLBasedProvider(BaseLLMProvider):
    """
    Generic HTTP provider for OpenAI-compatible or custom chat endpoints
    """

    def __init__(self, base_url: str = "http://localhost:11434", endpoint: str = "/chat",
                 api_key: Optional[str] = None, timeout: int = 30, **kwargs):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip('/') if base_url else "http://localhost:11434"
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout

    def clone_with_parameters(self, **params) -> 'URLBasedProvider':
        new_params = {
            "base_url": self.base_url,
            "endpoint": self.endpoint,
            "api_key": self.api_key,
            "timeout": self.timeout,
            **self._parameters,
        }
        new_params.update(params)
        return self.__class__(**new_params)

    def _headers(self) -> Dict[str, str]:
        headers = {
            'Content-Type': 'application/json',
            'Accept': 'application/json'
        }
        if self.api_key:
            headers['Authorization'] = f'Bearer {self.api_key}'
        return headers

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{self.endpoint}"
        try:
            response = requests.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout:
            raise LLMError(f"LLM request to {url} timed out after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            raise LLMError(f"LLM request to {url} failed: {e}")

        try:
            return response.json()
        except ValueError:
            raise LLMError(f"LLM endpoint {url} returned non-JSON body", raw_output=response.text)

    def _build_payload(self, messages: List[Dict[str, str]], temperature: float,
                       json_mode: bool) -> Dict[str, Any]:
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if json_mode:
            payload["json_mode"] = True
        return payload

    def _extract_text(self, result: Dict[str, Any]) -> str:
        # Try common response formats
        if 'choices' in result and result['choices']:
            return result['choices'][0].get('message', {}).get('content', '')
        if 'content' in result:
            if isinstance(result['content'], list):
                return result['content'][0].get('text', '')
            return result['content']
        if 'message' in result and isinstance(result['message'], dict):
            return result['message'].get('content', '')
        if 'response' in result:
            return result['response']
        raise LLMError("Unrecognized LLM response format", raw_output=json.dumps(result))

    def _extract_usage(self, result: Dict[str, Any]) -> TokenUsage:
        if isinstance(result.get('usage'), dict):
            return TokenUsage.from_dict(result['usage'])
        return TokenUsage.from_dict(result)

    def _call_api(self, messages: List[Dict[str, str]], temperature: float,
                  json_mode: bool) -> ChatResponse:
        result = self._post(self._build_payload(messages, temperature, json_mode))
        try:
            text = self._extract_text(result)
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise LLMError(f"Malformed LLM response: {e}", raw_output=json.dumps(result))
        return ChatResponse(text=(text or "").strip(), usage=self._extract_usage(result), raw=result)


class OpenAIProvider(URLBasedProvider):
    """OpenAI chat completions API"""

    def __init__(self, api_key: Optional[str] = None, model: str = "gpt-4o-mini",
                 base_url: str = "https://api.openai.com/v1", **kwargs):
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OpenAI API key required")
        kwargs.pop("endpoint", None)
        super().__init__(
            base_url=base_url,
            endpoint="/chat/completions",
            api_key=api_key,
            model=model,
            **kwargs
        )

    def _build_payload(self, messages: List[Dict[str, str]], temperature: float,
                       json_mode: bool) -> Dict[str, Any]:
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": self.get_parameter("max_tokens", 500)
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload


class AnthropicProvider(URLBasedProvider):
    """Anthropic messages API"""

    def __init__(self, api_key: Optional[str] = None, model: str = "claude-3-haiku-20240307",
                 base_url: str = "https://api.anthropic.com/v1", **kwargs):
        api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise ValueError("Anthropic API key required")
        kwargs.pop("endpoint", None)
        super().__init__(
            base_url=base_url,
            endpoint="/messages",
            api_key=api_key,
            model=model,
            **kwargs
        )

    def _headers(self) -> Dict[str, str]:
        return {
            'Content-Type': 'application/json',
            'x-api-key': self.api_key,
            'anthropic-version': '2023-06-01'
        }

    def _build_payload(self, messages: List[Dict[str, str]], temperature: float,
                       json_mode: bool) -> Dict[str, Any]:
        # System prompts travel outside the message list
        system = [m["content"] for m in messages if m["role"] == "system"]
        if json_mode:
            system.append(JSON_ONLY_INSTRUCTION)
        payload = {
            "model": self.model,
            "messages": [m for m in messages if m["role"] != "system"],
            "max_tokens": self.get_parameter("max_tokens", 500),
            "temperature": temperature,
        }
        if system:
            payload["system"] = "\n\n".join(system)
        return payload


class OllamaProvider(URLBasedProvider):
    """Ollama local chat API"""

    def __init__(self, base_url: str = "http://localhost:11434", model: str = "llama3", **kwargs):
        kwargs.pop("endpoint", None)
        kwargs.pop("api_key", None)
        super().__init__(
            base_url=base_url,
            endpoint="/api/chat",
            api_key=None,
            model=model,
            **kwargs
        )

    def _build_payload(self, messages: List[Dict[str, str]], temperature: float,
                       json_mode: bool) -> Dict[str, Any]:
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": self.get_parameter("max_tokens", 500)
            }
        }
        if json_mode:
            payload["format"] = "json"
        return payload


def create_provider(provider_type: str, **config) -> LLMProvider:
    """
    Create an LLM provider by type

    Args:
        provider_type: One of "openai", "anthropic", "ollama", "url"
        **config: Provider-specific configuration

    Returns:
        LLMProvider instance
    """
    providers = {
        "openai": OpenAIProvider,
        "anthropic": AnthropicProvider,
        "ollama": OllamaProvider,
        "url": URLBasedProvider
    }

    if provider_type not in providers:
        available = list(providers.keys())
        raise ValueError(f"Unknown provider type: {provider_type}. Choose from: {available}")

    # Unset optional settings fall back to each provider's defaults
    config = {key: value for key, value in config.items() if value is not None}
    return providers[provider_type](**config)
