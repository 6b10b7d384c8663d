"""Text-generation provider adapters, health tracking and routing."""

from pagewright.providers.base import (
    GenerateOptions,
    GenerateResult,
    Message,
    ProviderKind,
    StreamChunk,
    TextGenerationProvider,
    TokenUsage,
    canonical_provider_id,
)
from pagewright.providers.factory import create_provider
from pagewright.providers.health import (
    HealthState,
    HealthTracker,
    ProviderHealthMetrics,
    ProviderHealthStatus,
)
from pagewright.providers.manager import ProviderManager

__all__ = [
    "GenerateOptions",
    "GenerateResult",
    "HealthState",
    "HealthTracker",
    "Message",
    "ProviderHealthMetrics",
    "ProviderHealthStatus",
    "ProviderKind",
    "ProviderManager",
    "StreamChunk",
    "TextGenerationProvider",
    "TokenUsage",
    "canonical_provider_id",
    "create_provider",
]
