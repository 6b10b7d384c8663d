"""Provider adapter interface and data classes.

All provider adapters implement the ``TextGenerationProvider`` protocol.
Data classes are immutable where possible (frozen dataclasses with slots).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    import asyncio
    from collections.abc import AsyncIterator, Callable


class ProviderKind(enum.StrEnum):
    """The closed set of upstream providers.

    ``ProviderKind("gemini")`` resolves to :attr:`GOOGLE`.
    """

    GOOGLE = "google"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    COHERE = "cohere"
    PROXY = "proxy"

    @classmethod
    def _missing_(cls, value: object) -> ProviderKind | None:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered == "gemini":
                return cls.GOOGLE
            for member in cls:
                if member.value == lowered:
                    return member
        return None


def canonical_provider_id(provider_id: str) -> str:
    """Normalise aliases (``gemini`` -> ``google``); other ids pass through."""
    try:
        return ProviderKind(provider_id).value
    except ValueError:
        return provider_id


@dataclass(frozen=True, slots=True)
class Message:
    """A single message in a conversation."""

    role: str  # "system", "user", "assistant"
    content: str


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """Token counts from a single model call."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Total tokens consumed (prompt + completion)."""
        return self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TokenUsage | None:
        if not data:
            return None
        return cls(
            prompt_tokens=int(data.get("promptTokens", data.get("prompt_tokens", 0)) or 0),
            completion_tokens=int(
                data.get("completionTokens", data.get("completion_tokens", 0)) or 0
            ),
        )


@dataclass(slots=True)
class GenerateResult:
    """Complete response from a non-streaming call."""

    text: str
    finish_reason: str = "stop"
    usage: TokenUsage = field(default_factory=TokenUsage)
    provider_id: str = ""
    latency_ms: float = 0.0


@dataclass(frozen=True, slots=True)
class StreamChunk:
    """A single chunk from a streaming response."""

    text: str
    done: bool = False
    usage: TokenUsage | None = None  # Only populated on the terminal chunk


@dataclass(frozen=True, slots=True)
class GenerateOptions:
    """Per-request generation options."""

    provider: str | None = None
    model: str | None = None
    system_instruction: str | None = None
    temperature: float = 0.7
    thinking_budget_tokens: int | None = None
    max_tokens: int = 4096
    signal: asyncio.Event | None = field(default=None, compare=False)
    on_retry: Callable[[int, float, Exception], None] | None = field(
        default=None, compare=False
    )


DEFAULT_OPTIONS = GenerateOptions()


@runtime_checkable
class TextGenerationProvider(Protocol):
    """Protocol that all provider adapters must satisfy.

    Implementations are stateless: they hold connection config but no
    conversation state.
    """

    @property
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'google', 'openai')."""
        ...

    def is_available(self) -> bool:
        """True iff the credential or configuration this provider needs is present."""
        ...

    async def generate(
        self,
        messages: list[Message],
        options: GenerateOptions | None = None,
    ) -> GenerateResult:
        """Send the conversation and wait for the complete response.

        Raises ProviderError on failure.
        """
        ...

    def generate_stream(
        self,
        messages: list[Message],
        options: GenerateOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Send the conversation and yield response chunks as they arrive.

        Final chunk has ``done=True`` and includes usage.
        Raises ProviderError on failure.
        """
        ...


def split_system(
    messages: list[Message], options: GenerateOptions
) -> tuple[str | None, list[Message]]:
    """Separate the system instruction from conversational turns.

    ``options.system_instruction`` wins over system messages in the list.
    """
    system = options.system_instruction
    turns: list[Message] = []
    for msg in messages:
        if msg.role == "system":
            if system is None:
                system = msg.content
        else:
            turns.append(msg)
    return system, turns
