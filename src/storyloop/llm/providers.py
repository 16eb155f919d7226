"""LangChain chat provider gateway for the storyloop pipeline.

Every stage talks to a model through :class:`GatewayContext.invoke`, passing a
:class:`ModelCall` whose ``model`` field is a ``provider/model-name``
identifier. The provider tag selects a registered :class:`ChatBackend`; the
remainder (which may itself contain ``/``) is handed to that backend verbatim.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Protocol, Tuple

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from .usage import UsageTracker, extract_usage_metadata

try:  # pragma: no cover - import guard for optional dependency
    from langchain_openai import ChatOpenAI
except ImportError:  # pragma: no cover - gracefully degrade when dependency missing
    ChatOpenAI = None  # type: ignore[assignment]

try:  # pragma: no cover - import guard for optional dependency
    from langchain_anthropic import ChatAnthropic
except ImportError:  # pragma: no cover - gracefully degrade when dependency missing
    ChatAnthropic = None  # type: ignore[assignment]

__all__ = [
    "KNOWN_PROVIDERS",
    "ProviderError",
    "ProviderDependencyError",
    "UnknownProviderError",
    "ModelCall",
    "ModelInvoker",
    "ProviderSettings",
    "ChatBackend",
    "OpenAIBackend",
    "AnthropicBackend",
    "OpenRouterBackend",
    "GatewayContext",
    "default_backends",
    "split_model_identifier",
]

logger = logging.getLogger(__name__)

KNOWN_PROVIDERS: Tuple[str, ...] = ("openai", "anthropic", "openrouter")
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
FIXED_TEMPERATURE_PREFIX = "gpt-5"
JUDGE_MAX_TOKENS = 4096


class ProviderError(RuntimeError):
    """Base error raised when interacting with a chat provider."""


class ProviderDependencyError(ProviderError):
    """Raised when required dependencies are unavailable."""


class UnknownProviderError(ProviderError):
    """Raised when a model identifier names a provider with no registered backend."""

    def __init__(self, provider: str, accepted: Tuple[str, ...] = KNOWN_PROVIDERS) -> None:
        self.provider = provider
        self.accepted = accepted
        choices = ", ".join(f"{name}/" for name in accepted)
        super().__init__(
            f"Unknown provider: {provider}. Use format: provider/model-name ({choices})"
        )


@dataclass(frozen=True, slots=True)
class ModelCall:
    """A single request routed through the gateway."""

    model: str
    user_prompt: str
    system_prompt: str | None = None
    temperature: float = 0.7
    response_format: str = "text"

    def __post_init__(self) -> None:
        if self.response_format not in {"text", "json"}:
            raise ValueError(f"Unsupported response format '{self.response_format}'")

    def with_reminder(self, reminder: str | None) -> "ModelCall":
        if not reminder:
            return self
        return replace(self, user_prompt=f"{self.user_prompt}\n\n{reminder}")

    def messages(self) -> list[BaseMessage]:
        messages: list[BaseMessage] = []
        if self.system_prompt:
            messages.append(SystemMessage(content=self.system_prompt))
        messages.append(HumanMessage(content=self.user_prompt))
        return messages


class ModelInvoker(Protocol):
    """Anything stages can send a :class:`ModelCall` to."""

    def invoke(self, call: ModelCall) -> str:  # pragma: no cover - interface
        ...


@dataclass(frozen=True, slots=True)
class ProviderSettings:
    """Resolved client settings; also the cache key for chat model handles."""

    provider: str
    model: str
    base_url: str | None = None
    api_key: str | None = None
    temperature: float = 0.0
    max_tokens: int | None = None
    timeout: float | None = None

    def as_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "temperature": self.temperature,
        }
        if self.base_url:
            kwargs["base_url"] = self.base_url
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.max_tokens is not None:
            kwargs["max_tokens"] = self.max_tokens
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        return kwargs


class ChatBackend:
    """Provider-specific settings resolution plus chat model construction."""

    name = "base"
    api_key_env: str | None = None
    base_url: str | None = None

    def resolve_settings(
        self,
        call: ModelCall,
        model_name: str,
        *,
        timeout: float | None = None,
        max_tokens: int | None = None,
    ) -> ProviderSettings:
        return ProviderSettings(
            provider=self.name,
            model=model_name,
            base_url=self.base_url,
            api_key=os.getenv(self.api_key_env) if self.api_key_env else None,
            temperature=self.effective_temperature(call, model_name),
            max_tokens=max_tokens,
            timeout=timeout,
        )

    def effective_temperature(self, call: ModelCall, model_name: str) -> float:
        return call.temperature

    def build_client(self, settings: ProviderSettings) -> Any:  # pragma: no cover - interface
        raise NotImplementedError


class OpenAIBackend(ChatBackend):
    """``langchain_openai.ChatOpenAI`` against the OpenAI API."""

    name = "openai"
    api_key_env = "OPENAI_API_KEY"

    def effective_temperature(self, call: ModelCall, model_name: str) -> float:
        # gpt-5 models only accept the default temperature
        if model_name.startswith(FIXED_TEMPERATURE_PREFIX):
            return 1.0
        return call.temperature

    def build_client(self, settings: ProviderSettings) -> Any:
        if ChatOpenAI is None:
            raise ProviderDependencyError(
                f"langchain-openai is required for the '{self.name}' provider"
            )
        return ChatOpenAI(**settings.as_kwargs())  # type: ignore[arg-type]


class OpenRouterBackend(OpenAIBackend):
    """OpenAI-compatible client pointed at OpenRouter."""

    name = "openrouter"
    api_key_env = "OPENROUTER_API_KEY"
    base_url = OPENROUTER_BASE_URL

    def resolve_settings(self, call, model_name, *, timeout=None, max_tokens=None):
        return super().resolve_settings(
            call,
            model_name,
            timeout=timeout,
            max_tokens=max_tokens or JUDGE_MAX_TOKENS,
        )

    def effective_temperature(self, call: ModelCall, model_name: str) -> float:
        return 0.0 if call.response_format == "json" else call.temperature


class AnthropicBackend(ChatBackend):
    """``langchain_anthropic.ChatAnthropic`` against the Anthropic API."""

    name = "anthropic"
    api_key_env = "ANTHROPIC_API_KEY"

    def resolve_settings(self, call, model_name, *, timeout=None, max_tokens=None):
        return super().resolve_settings(
            call,
            model_name,
            timeout=timeout,
            max_tokens=max_tokens or JUDGE_MAX_TOKENS,
        )

    def effective_temperature(self, call: ModelCall, model_name: str) -> float:
        return 0.0 if call.response_format == "json" else call.temperature

    def build_client(self, settings: ProviderSettings) -> Any:
        if ChatAnthropic is None:
            raise ProviderDependencyError(
                f"langchain-anthropic is required for the '{self.name}' provider"
            )
        return ChatAnthropic(**settings.as_kwargs())  # type: ignore[arg-type]


def default_backends() -> Dict[str, ChatBackend]:
    return {
        "openai": OpenAIBackend(),
        "anthropic": AnthropicBackend(),
        "openrouter": OpenRouterBackend(),
    }


def split_model_identifier(identifier: str) -> tuple[str, str]:
    """Split ``provider/model-name`` at the first slash."""

    provider, sep, model_name = identifier.strip().partition("/")
    if not sep or not provider or not model_name:
        raise ValueError(
            f"Invalid model identifier '{identifier}'. Use format: provider/model-name"
        )
    return provider, model_name


class GatewayContext:
    """Process-wide routing table and chat model cache.

    Construct one per process and hand it to every stage. Handles are built on
    first use and kept for the lifetime of the context.
    """

    def __init__(
        self,
        backends: Mapping[str, ChatBackend] | None = None,
        *,
        timeout: float | None = None,
        max_tokens: int | None = None,
        usage: UsageTracker | None = None,
    ) -> None:
        self._backends: Dict[str, ChatBackend] = dict(
            backends if backends is not None else default_backends()
        )
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.usage = usage or UsageTracker()
        self._clients: Dict[ProviderSettings, Any] = {}

    @property
    def providers(self) -> Tuple[str, ...]:
        return tuple(self._backends)

    def register(self, name: str, backend: ChatBackend) -> None:
        self._backends[name] = backend

    def resolve(self, call: ModelCall) -> ProviderSettings:
        provider, model_name = split_model_identifier(call.model)
        backend = self._backends.get(provider)
        if backend is None:
            raise UnknownProviderError(provider, self.providers or KNOWN_PROVIDERS)
        return backend.resolve_settings(
            call,
            model_name,
            timeout=self.timeout,
            max_tokens=self.max_tokens,
        )

    def client_for(self, settings: ProviderSettings) -> Any:
        client = self._clients.get(settings)
        if client is None:
            backend = self._backends[settings.provider]
            try:
                client = backend.build_client(settings)
            except ProviderError:
                raise
            except Exception as exc:  # pragma: no cover - passthrough
                raise ProviderError(
                    f"Failed to initialise chat model '{settings.model}': {exc}"
                ) from exc
            self._clients[settings] = client
        return client

    def invoke(self, call: ModelCall) -> str:
        settings = self.resolve(call)
        if settings.temperature != call.temperature:
            logger.debug(
                "Temperature for %s overridden: %s -> %s",
                call.model,
                call.temperature,
                settings.temperature,
            )
        client = self.client_for(settings)
        try:
            response = client.invoke(call.messages())
        except Exception as exc:
            raise ProviderError(f"Invocation failed for model '{call.model}': {exc}") from exc

        usage = extract_usage_metadata(response)
        self.usage.add_record(
            model=call.model,
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            total_tokens=usage.get("total_tokens"),
        )
        return _extract_content(response)


def _extract_content(response: Any) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        pieces: list[str] = []
        for segment in content:
            if isinstance(segment, dict):
                pieces.append(str(segment.get("text", "")))
            else:
                pieces.append(str(segment))
        return "".join(pieces)
    return str(content or "")


