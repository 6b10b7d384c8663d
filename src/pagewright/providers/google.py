"""Google (Gemini) provider adapter."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

import httpx
from google import genai
from google.genai import errors as genai_errors

from pagewright.core.abort import close_stream, iterate_abortable
from pagewright.core.errors import (
    ContentPolicyError,
    InvalidRequestError,
    ProviderNetworkError,
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

    from pagewright.providers.base import Message

PROVIDER_ID = "google"
LABEL = "Gemini"
DEFAULT_MODEL = "gemini-2.5-flash"

logger = logging.getLogger(__name__)


def _retry_after(e: genai_errors.APIError) -> float | None:
    """Retry hint from the Retry-After header, else from a RetryInfo detail."""
    headers = getattr(getattr(e, "response", None), "headers", None)
    if headers is not None:
        hint = parse_retry_after(headers.get("retry-after"))
        if hint is not None:
            return hint
    details = getattr(e, "details", None)
    body = details.get("error", details) if isinstance(details, dict) else None
    if not isinstance(body, dict):
        return None
    for item in body.get("details") or []:
        if isinstance(item, dict) and "retryDelay" in item:
            return parse_retry_after(str(item["retryDelay"]))
    return None


def _map_error(e: Exception, provider_id: str = PROVIDER_ID) -> Exception:
    """Map Google GenAI and transport errors to the pagewright hierarchy."""
    if isinstance(e, genai_errors.APIError):
        message = getattr(e, "message", None) or str(e)
        return error_from_status(
            provider_id, e.code, message, retry_after=_retry_after(e), label=LABEL
        )
    if isinstance(e, httpx.TimeoutException):
        return ProviderTimeoutError(provider_id, str(e) or "timed out", label=LABEL)
    if isinstance(e, httpx.TransportError):
        return ProviderNetworkError(provider_id, str(e) or "network error", label=LABEL)
    return e


def _build_contents(
    messages: list[Message], options: GenerateOptions
) -> tuple[str | None, list[dict[str, Any]]]:
    """Split messages into system instruction + Gemini contents.

    Gemini requires the history to begin with a user turn, so any leading
    assistant turns are dropped.
    """
    system, turns = split_system(messages, options)

    first_user = next((i for i, m in enumerate(turns) if m.role == "user"), None)
    if first_user is None:
        return system, []

    contents: list[dict[str, Any]] = []
    for msg in turns[first_user:]:
        role = "model" if msg.role == "assistant" else "user"
        contents.append({"role": role, "parts": [{"text": msg.content}]})
    return system, contents


def _usage_from(metadata: Any) -> TokenUsage:
    if metadata is None:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=metadata.prompt_token_count or 0,
        completion_tokens=metadata.candidates_token_count or 0,
    )


def _finish_reason(response: Any) -> str:
    if not response.candidates:
        return "stop"
    reason = response.candidates[0].finish_reason
    if reason is None:
        return "stop"
    name = getattr(reason, "name", None) or str(reason)
    return name.lower()


def _check_blocked(response: Any, provider_id: str) -> None:
    feedback = getattr(response, "prompt_feedback", None)
    block_reason = getattr(feedback, "block_reason", None) if feedback else None
    if block_reason:
        msg = f"Prompt blocked: {getattr(block_reason, 'name', block_reason)}"
        raise ContentPolicyError(provider_id, msg, label=LABEL)


class GoogleProvider:
    """Provider adapter for Google Gemini models."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        client: genai.Client | None = None,
        default_model: str | None = None,
        retry: RetryConfig | None = None,
        provider_id: str = PROVIDER_ID,
    ) -> None:
        self._api_key = api_key
        self._client = client or genai.Client(api_key=api_key)
        self._default_model = default_model or DEFAULT_MODEL
        self._retry = retry or RetryConfig()
        self._provider_id = provider_id

    @property
    def provider_id(self) -> str:
        return self._provider_id

    def is_available(self) -> bool:
        return bool(self._api_key)

    def _request(
        self, messages: list[Message], options: GenerateOptions
    ) -> dict[str, Any]:
        system, contents = _build_contents(messages, options)
        if not contents:
            raise InvalidRequestError(
                self._provider_id, "Conversation has no user message", label=LABEL
            )

        config_kwargs: dict[str, Any] = {
            "max_output_tokens": options.max_tokens,
            "temperature": options.temperature,
            "system_instruction": system,
        }
        if options.thinking_budget_tokens:
            config_kwargs["thinking_config"] = genai.types.ThinkingConfig(
                thinking_budget=options.thinking_budget_tokens
            )

        return {
            "model": options.model or self._default_model,
            "contents": contents,
            "config": genai.types.GenerateContentConfig(**config_kwargs),
        }

    async def generate(
        self,
        messages: list[Message],
        options: GenerateOptions | None = None,
    ) -> GenerateResult:
        opts = options or DEFAULT_OPTIONS
        request = self._request(messages, opts)

        async def _call() -> Any:
            try:
                return await self._client.aio.models.generate_content(**request)
            except (genai_errors.APIError, httpx.HTTPError) as e:
                raise _map_error(e, self._provider_id) from e

        start = time.monotonic()
        response = await retry_with_backoff(
            _call, config=self._retry, on_retry=opts.on_retry, signal=opts.signal
        )
        latency_ms = (time.monotonic() - start) * 1000

        _check_blocked(response, self._provider_id)

        return GenerateResult(
            text=response.text or "",
            finish_reason=_finish_reason(response),
            usage=_usage_from(response.usage_metadata),
            provider_id=self._provider_id,
            latency_ms=latency_ms,
        )

    async def generate_stream(
        self,
        messages: list[Message],
        options: GenerateOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        opts = options or DEFAULT_OPTIONS
        request = self._request(messages, opts)

        async def _open() -> Any:
            try:
                return await self._client.aio.models.generate_content_stream(**request)
            except (genai_errors.APIError, httpx.HTTPError) as e:
                raise _map_error(e, self._provider_id) from e

        stream = await retry_with_backoff(
            _open, config=self._retry, on_retry=opts.on_retry, signal=opts.signal
        )

        usage: TokenUsage | None = None
        try:
            async for chunk in iterate_abortable(stream, opts.signal):
                _check_blocked(chunk, self._provider_id)
                if chunk.usage_metadata:
                    usage = _usage_from(chunk.usage_metadata)
                text = chunk.text or ""
                if text:
                    yield StreamChunk(text=text)
        except (genai_errors.APIError, httpx.HTTPError) as e:
            raise _map_error(e, self._provider_id) from e
        finally:
            await close_stream(stream)

        yield StreamChunk(text="", done=True, usage=usage or TokenUsage())
