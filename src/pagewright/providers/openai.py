"""OpenAI provider adapter."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

import openai

from pagewright.core.abort import close_stream, iterate_abortable
from pagewright.core.errors import (
    ContentPolicyError,
    InvalidRequestError,
    ModelNotFoundError,
    ProviderAuthError,
    ProviderNetworkError,
    ProviderOverloadedError,
    ProviderQuotaError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    error_from_status,
    parse_retry_after,
)
from pagewright.core.retry import RetryConfig, retry_with_backoff
from pagewright.providers.base import (
    DEFAULT_OPTIONS,
    GenerateOptions,
    GenerateResult,
    StreamChunk,
    TokenUsage,
    split_system,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    import httpx

    from pagewright.providers.base import Message

PROVIDER_ID = "openai"
LABEL = "OpenAI"
DEFAULT_MODEL = "gpt-4o"

logger = logging.getLogger(__name__)


def _retry_after(e: openai.APIStatusError) -> float | None:
    response = getattr(e, "response", None)
    if response is None:
        return None
    return parse_retry_after(response.headers.get("retry-after"))


def _map_error(
    e: openai.APIError, provider_id: str = PROVIDER_ID, label: str = LABEL
) -> Exception:
    """Map OpenAI SDK errors to the pagewright hierarchy."""
    msg = str(e)
    lower = msg.lower()
    code = str(getattr(e, "code", "") or "")
    if isinstance(e, openai.APITimeoutError):
        return ProviderTimeoutError(provider_id, msg, label=label)
    if isinstance(e, openai.APIConnectionError):
        return ProviderNetworkError(provider_id, msg, label=label)
    if isinstance(e, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ProviderAuthError(provider_id, msg, status=e.status_code, label=label)
    if isinstance(e, openai.RateLimitError):
        if code == "insufficient_quota" or "quota" in lower:
            return ProviderQuotaError(provider_id, msg, status=429, label=label)
        return ProviderRateLimitError(
            provider_id, retry_after=_retry_after(e), message=msg, label=label
        )
    if isinstance(e, openai.BadRequestError):
        if code == "content_policy_violation" or "content_policy" in lower:
            return ContentPolicyError(provider_id, msg, status=400, label=label)
        return InvalidRequestError(provider_id, msg, status=400, label=label)
    if isinstance(e, openai.NotFoundError):
        return ModelNotFoundError(provider_id, msg, status=404, label=label)
    if isinstance(e, openai.InternalServerError):
        return ProviderOverloadedError(provider_id, msg, status=e.status_code, label=label)
    if isinstance(e, openai.APIStatusError):
        return error_from_status(
            provider_id, e.status_code, msg, retry_after=_retry_after(e), label=label
        )
    return error_from_status(provider_id, None, msg, label=label)


def _build_messages(
    messages: list[Message], options: GenerateOptions
) -> list[dict[str, str]]:
    """Chat-completions message list; the system instruction leads."""
    system, turns = split_system(messages, options)
    api_messages: list[dict[str, str]] = []
    if system:
        api_messages.append({"role": "system", "content": system})
    api_messages.extend({"role": m.role, "content": m.content} for m in turns)
    return api_messages


def _usage_from(usage: Any) -> TokenUsage:
    if usage is None:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=usage.prompt_tokens or 0,
        completion_tokens=usage.completion_tokens or 0,
    )


class OpenAIProvider:
    """Provider adapter for OpenAI chat-completions models.

    Also serves OpenAI-compatible endpoints via ``base_url``.
    """

    label = LABEL
    default_model = DEFAULT_MODEL
    stream_usage = True

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        client: openai.AsyncOpenAI | None = None,
        http_client: httpx.AsyncClient | None = None,
        default_model: str | None = None,
        retry: RetryConfig | None = None,
        provider_id: str = PROVIDER_ID,
    ) -> None:
        self._api_key = api_key
        self._client = client or openai.AsyncOpenAI(
            api_key=api_key, base_url=base_url, max_retries=0, http_client=http_client
        )
        self._model = default_model or self.default_model
        self._retry = retry or RetryConfig()
        self._provider_id = provider_id

    @property
    def provider_id(self) -> str:
        return self._provider_id

    def is_available(self) -> bool:
        return bool(self._api_key)

    def _kwargs(self, messages: list[Message], options: GenerateOptions) -> dict[str, Any]:
        return {
            "model": options.model or self._model,
            "messages": _build_messages(messages, options),
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }

    def _raise_mapped(self, e: openai.APIError) -> None:
        raise _map_error(e, self._provider_id, self.label) from e

    async def generate(
        self,
        messages: list[Message],
        options: GenerateOptions | None = None,
    ) -> GenerateResult:
        opts = options or DEFAULT_OPTIONS
        kwargs = self._kwargs(messages, opts)

        async def _call() -> Any:
            try:
                return await self._client.chat.completions.create(**kwargs)
            except openai.APIError as e:
                self._raise_mapped(e)

        start = time.monotonic()
        response = await retry_with_backoff(
            _call, config=self._retry, on_retry=opts.on_retry, signal=opts.signal
        )
        latency_ms = (time.monotonic() - start) * 1000

        choice = response.choices[0]
        return GenerateResult(
            text=choice.message.content or "",
            finish_reason=choice.finish_reason or "stop",
            usage=_usage_from(response.usage),
            provider_id=self._provider_id,
            latency_ms=latency_ms,
        )

    async def generate_stream(
        self,
        messages: list[Message],
        options: GenerateOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        opts = options or DEFAULT_OPTIONS
        kwargs = self._kwargs(messages, opts)
        kwargs["stream"] = True
        if self.stream_usage:
            kwargs["stream_options"] = {"include_usage": True}

        async def _open() -> Any:
            try:
                return await self._client.chat.completions.create(**kwargs)
            except openai.APIError as e:
                self._raise_mapped(e)

        stream = await retry_with_backoff(
            _open, config=self._retry, on_retry=opts.on_retry, signal=opts.signal
        )

        usage: TokenUsage | None = None
        try:
            async for chunk in iterate_abortable(stream, opts.signal):
                if getattr(chunk, "usage", None):
                    usage = _usage_from(chunk.usage)
                if not chunk.choices:
                    continue
                text = chunk.choices[0].delta.content or ""
                if text:
                    yield StreamChunk(text=text)
        except openai.APIError as e:
            self._raise_mapped(e)
        finally:
            await close_stream(stream)

        yield StreamChunk(text="", done=True, usage=usage or TokenUsage())
