"""Anthropic (Claude) provider adapter."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

import anthropic

from pagewright.core.abort import close_stream, iterate_abortable
from pagewright.core.errors import (
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

PROVIDER_ID = "anthropic"
LABEL = "Claude"
DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

# Anthropic's minimum thinking budget
_MIN_THINKING_BUDGET = 1024

logger = logging.getLogger(__name__)


def _map_error(e: anthropic.APIError, provider_id: str = PROVIDER_ID) -> Exception:
    """Map Anthropic SDK errors to the pagewright hierarchy."""
    msg = str(e)
    lower = msg.lower()
    if isinstance(e, anthropic.APITimeoutError):
        return ProviderTimeoutError(provider_id, msg, label=LABEL)
    if isinstance(e, anthropic.APIConnectionError):
        return ProviderNetworkError(provider_id, msg, label=LABEL)
    if isinstance(e, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return ProviderAuthError(provider_id, msg, status=e.status_code, label=LABEL)
    if isinstance(e, anthropic.RateLimitError):
        retry_after = None
        if getattr(e, "response", None) is not None:
            retry_after = parse_retry_after(e.response.headers.get("retry-after"))
        return ProviderRateLimitError(
            provider_id, retry_after=retry_after, message=msg, label=LABEL
        )
    if isinstance(e, anthropic.BadRequestError):
        if "credit balance" in lower or "billing" in lower:
            return ProviderQuotaError(provider_id, msg, status=400, label=LABEL)
        return InvalidRequestError(provider_id, msg, status=400, label=LABEL)
    if isinstance(e, anthropic.NotFoundError):
        return ModelNotFoundError(provider_id, msg, status=404, label=LABEL)
    if isinstance(e, anthropic.InternalServerError):
        return ProviderOverloadedError(provider_id, msg, status=e.status_code, label=LABEL)
    if isinstance(e, anthropic.APIStatusError):
        return error_from_status(provider_id, e.status_code, msg, label=LABEL)
    return error_from_status(provider_id, None, msg, label=LABEL)


def _build_messages(
    messages: list[Message], options: GenerateOptions
) -> tuple[str | anthropic.NotGiven, list[dict[str, str]]]:
    """Split messages into Anthropic's system + messages format."""
    system, turns = split_system(messages, options)
    api_messages = [{"role": m.role, "content": m.content} for m in turns]
    return (system if system else anthropic.NOT_GIVEN), api_messages


class AnthropicProvider:
    """Provider adapter for Anthropic's Claude models."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        client: anthropic.AsyncAnthropic | None = None,
        http_client: httpx.AsyncClient | None = None,
        default_model: str | None = None,
        retry: RetryConfig | None = None,
        provider_id: str = PROVIDER_ID,
    ) -> None:
        self._api_key = api_key
        self._client = client or anthropic.AsyncAnthropic(
            api_key=api_key, max_retries=0, http_client=http_client
        )
        self._default_model = default_model or DEFAULT_MODEL
        self._retry = retry or RetryConfig()
        self._provider_id = provider_id

    @property
    def provider_id(self) -> str:
        return self._provider_id

    def is_available(self) -> bool:
        return bool(self._api_key)

    def _kwargs(self, messages: list[Message], options: GenerateOptions) -> dict[str, Any]:
        system, api_messages = _build_messages(messages, options)
        kwargs: dict[str, Any] = {
            "model": options.model or self._default_model,
            "max_tokens": options.max_tokens,
            "system": system,
            "messages": api_messages,
        }
        budget = options.thinking_budget_tokens
        if budget:
            budget = max(budget, _MIN_THINKING_BUDGET)
            kwargs["thinking"] = {"type": "enabled", "budget_tokens": budget}
            # Extended thinking needs room for the answer and fixed temperature
            kwargs["max_tokens"] = max(options.max_tokens, budget + _MIN_THINKING_BUDGET)
        else:
            kwargs["temperature"] = options.temperature
        return kwargs

    async def generate(
        self,
        messages: list[Message],
        options: GenerateOptions | None = None,
    ) -> GenerateResult:
        opts = options or DEFAULT_OPTIONS
        kwargs = self._kwargs(messages, opts)

        async def _call() -> Any:
            try:
                return await self._client.messages.create(**kwargs)
            except anthropic.APIError as e:
                raise _map_error(e, self._provider_id) from e

        start = time.monotonic()
        response = await retry_with_backoff(
            _call, config=self._retry, on_retry=opts.on_retry, signal=opts.signal
        )
        latency_ms = (time.monotonic() - start) * 1000

        text = "".join(
            block.text
            for block in response.content
            if getattr(block, "type", "text") == "text"
        )
        usage = TokenUsage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
        )
        return GenerateResult(
            text=text,
            finish_reason=response.stop_reason or "stop",
            usage=usage,
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

        async def _open() -> Any:
            try:
                return await self._client.messages.create(**kwargs)
            except anthropic.APIError as e:
                raise _map_error(e, self._provider_id) from e

        stream = await retry_with_backoff(
            _open, config=self._retry, on_retry=opts.on_retry, signal=opts.signal
        )

        prompt_tokens = 0
        completion_tokens = 0
        try:
            async for event in iterate_abortable(stream, opts.signal):
                kind = getattr(event, "type", None)
                if kind == "message_start":
                    prompt_tokens = event.message.usage.input_tokens or 0
                elif kind == "content_block_delta":
                    if getattr(event.delta, "type", None) == "text_delta":
                        text = event.delta.text
                        if text:
                            yield StreamChunk(text=text)
                elif kind == "message_delta":
                    completion_tokens = event.usage.output_tokens or 0
        except anthropic.APIError as e:
            raise _map_error(e, self._provider_id) from e
        finally:
            await close_stream(stream)

        usage = TokenUsage(
            prompt_tokens=prompt_tokens, completion_tokens=completion_tokens
        )
        yield StreamChunk(text="", done=True, usage=usage)
