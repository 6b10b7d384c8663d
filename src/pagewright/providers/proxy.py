"""Relay provider: talks to a pagewright relay (or compatible) over HTTP.

The relay exposes ``POST {base}/generate`` and ``POST {base}/stream``. The
credential is optional; when present it is forwarded as
``X-GOOGLE-API-KEY`` so the relay can use it in place of its own key.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import TYPE_CHECKING, Any

import httpx

from pagewright.core.abort import iterate_abortable
from pagewright.core.errors import (
    ProviderNetworkError,
    ProviderTimeoutError,
    error_from_status,
    parse_retry_after,
)
from pagewright.core.log import mask_secret
from pagewright.core.retry import RetryConfig, retry_with_backoff
from pagewright.providers.base import (
    DEFAULT_OPTIONS,
    GenerateOptions,
    GenerateResult,
    StreamChunk,
    TokenUsage,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from pagewright.providers.base import Message

PROVIDER_ID = "proxy"
LABEL = "Relay"
KEY_HEADER = "X-GOOGLE-API-KEY"

_KEY_HEADER_RE = re.compile(r"key|authorization", re.IGNORECASE)

logger = logging.getLogger(__name__)


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Copy of *headers* with key-like values masked."""
    return {
        name: mask_secret(value) if _KEY_HEADER_RE.search(name) else value
        for name, value in headers.items()
    }


def _error_detail(body: str) -> str:
    """Error text from a relay response body (JSON ``detail`` or plain text)."""
    text = body.strip()
    try:
        data = json.loads(text)
    except ValueError:
        return text
    if isinstance(data, dict) and isinstance(data.get("detail"), str):
        return data["detail"]
    return text


def _request_body(messages: list[Message], options: GenerateOptions) -> dict[str, Any]:
    wire_options: dict[str, Any] = {
        "provider": options.provider,
        "model": options.model,
        "systemInstruction": options.system_instruction,
        "temperature": options.temperature,
        "thinkingBudgetTokens": options.thinking_budget_tokens,
    }
    return {
        "messages": [{"role": m.role, "content": m.content} for m in messages],
        "options": {k: v for k, v in wire_options.items() if v is not None},
    }


class ProxyProvider:
    """Provider adapter for an HTTP relay."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        retry: RetryConfig | None = None,
        provider_id: str = PROVIDER_ID,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._retry = retry or RetryConfig()
        self._provider_id = provider_id

    @property
    def provider_id(self) -> str:
        return self._provider_id

    @property
    def base_url(self) -> str:
        return self._base_url

    def is_available(self) -> bool:
        return bool(self._base_url)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers[KEY_HEADER] = self._api_key
        return headers

    def _transport_error(self, e: httpx.TransportError) -> Exception:
        if isinstance(e, httpx.TimeoutException):
            return ProviderTimeoutError(self._provider_id, str(e) or "timed out", label=LABEL)
        return ProviderNetworkError(self._provider_id, str(e) or "network error", label=LABEL)

    def _status_error(self, response: httpx.Response, body: str) -> Exception:
        message = _error_detail(body) or f"Relay error {response.status_code}"
        return error_from_status(
            self._provider_id,
            response.status_code,
            message,
            retry_after=parse_retry_after(response.headers.get("retry-after")),
            label=LABEL,
        )

    def _log_request(self, url: str, headers: dict[str, str], body: dict[str, Any]) -> None:
        logger.debug(
            "Relay request %s headers=%s provider=%s model=%s messages=%d",
            url,
            redact_headers(headers),
            body["options"].get("provider", "(relay-default)"),
            body["options"].get("model", "(relay-default)"),
            len(body["messages"]),
        )

    async def generate(
        self,
        messages: list[Message],
        options: GenerateOptions | None = None,
    ) -> GenerateResult:
        opts = options or DEFAULT_OPTIONS
        url = f"{self._base_url}/generate"
        headers = self._headers()
        body = _request_body(messages, opts)
        self._log_request(url, headers, body)

        async def _call() -> dict[str, Any]:
            try:
                response = await self._client.post(url, json=body, headers=headers)
            except httpx.TransportError as e:
                raise self._transport_error(e) from e
            if response.is_error:
                raise self._status_error(response, response.text)
            return response.json()

        start = time.monotonic()
        data = await retry_with_backoff(
            _call, config=self._retry, on_retry=opts.on_retry, signal=opts.signal
        )
        latency_ms = (time.monotonic() - start) * 1000

        return GenerateResult(
            text=str(data.get("text") or ""),
            finish_reason=str(data.get("finishReason") or "stop"),
            usage=TokenUsage.from_dict(data.get("usage")) or TokenUsage(),
            provider_id=self._provider_id,
            latency_ms=latency_ms,
        )

    def _json_chunk(self, data: str) -> StreamChunk | None:
        """Chunk from a JSON line, or None when the line is not a JSON object."""
        try:
            obj = json.loads(data)
        except ValueError:
            return None
        if not isinstance(obj, dict):
            return None
        if obj.get("error"):
            raise error_from_status(
                self._provider_id, obj.get("status"), str(obj["error"]), label=LABEL
            )
        return StreamChunk(
            text=str(obj.get("text") or ""),
            done=bool(obj.get("done")),
            usage=TokenUsage.from_dict(obj.get("usage")),
        )

    def _parse_line(self, line: str, *, complete: bool = True) -> StreamChunk | None:
        """Interpret one body line: a JSON object, an SSE ``data:`` line or raw text."""
        stripped = line.strip()
        if not stripped:
            return None
        if stripped.startswith("data:"):
            data = stripped[5:].strip()
            if data == "[DONE]":
                return StreamChunk(text="", done=True)
            return self._json_chunk(data) or StreamChunk(text=data)
        chunk = self._json_chunk(stripped)
        if chunk is not None:
            return chunk
        # Raw text lines keep the newline the relay split them on
        return StreamChunk(text=line + "\n" if complete else line)

    async def generate_stream(
        self,
        messages: list[Message],
        options: GenerateOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        opts = options or DEFAULT_OPTIONS
        url = f"{self._base_url}/stream"
        headers = self._headers()
        body = _request_body(messages, opts)
        self._log_request(url, headers, body)

        async def _open() -> httpx.Response:
            request = self._client.build_request("POST", url, json=body, headers=headers)
            try:
                response = await self._client.send(request, stream=True)
            except httpx.TransportError as e:
                raise self._transport_error(e) from e
            if response.is_error:
                raw = await response.aread()
                await response.aclose()
                raise self._status_error(response, raw.decode("utf-8", errors="replace"))
            return response

        response = await retry_with_backoff(
            _open, config=self._retry, on_retry=opts.on_retry, signal=opts.signal
        )

        start = time.monotonic()
        emitted = 0
        usage: TokenUsage | None = None
        buffer = ""
        finished = False
        try:
            async for piece in iterate_abortable(response.aiter_text(), opts.signal):
                buffer += piece
                while "\n" in buffer and not finished:
                    line, buffer = buffer.split("\n", 1)
                    chunk = self._parse_line(line)
                    if chunk is None:
                        continue
                    if chunk.usage is not None:
                        usage = chunk.usage
                    if chunk.text:
                        emitted += len(chunk.text)
                        yield StreamChunk(text=chunk.text)
                    finished = chunk.done
                if finished:
                    break
            if buffer and not finished:
                chunk = self._parse_line(buffer, complete=False)
                if chunk is not None:
                    if chunk.usage is not None:
                        usage = chunk.usage
                    if chunk.text:
                        emitted += len(chunk.text)
                        yield StreamChunk(text=chunk.text)
        except httpx.TransportError as e:
            raise self._transport_error(e) from e
        finally:
            await response.aclose()

        logger.debug(
            "Relay stream complete: %d chars in %.0fms",
            emitted,
            (time.monotonic() - start) * 1000,
        )
        yield StreamChunk(text="", done=True, usage=usage or TokenUsage())
