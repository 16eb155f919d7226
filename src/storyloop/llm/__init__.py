"""LLM tooling for the storyloop pipeline."""

from .providers import (
    KNOWN_PROVIDERS,
    AnthropicBackend,
    ChatBackend,
    GatewayContext,
    ModelCall,
    ModelInvoker,
    OpenAIBackend,
    OpenRouterBackend,
    ProviderDependencyError,
    ProviderError,
    ProviderSettings,
    UnknownProviderError,
    default_backends,
    split_model_identifier,
)
from .usage import UsageRecord, UsageTracker, extract_usage_metadata

__all__ = [
    "KNOWN_PROVIDERS",
    "ChatBackend",
    "OpenAIBackend",
    "AnthropicBackend",
    "OpenRouterBackend",
    "GatewayContext",
    "ModelCall",
    "ModelInvoker",
    "ProviderError",
    "ProviderDependencyError",
    "ProviderSettings",
    "UnknownProviderError",
    "default_backends",
    "split_model_identifier",
    "UsageRecord",
    "UsageTracker",
    "extract_usage_metadata",
]
