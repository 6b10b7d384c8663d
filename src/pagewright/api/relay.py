"""Relay routes: ``{base}/generate``, ``{base}/stream`` and capabilities.

A browser or another pagewright instance posts ``{messages, options}``
here and the relay answers with the server's own provider credentials.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any, Literal

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from pagewright.core.errors import (
    ConfigError,
    ContentPolicyError,
    InvalidRequestError,
    NoProviderAvailableError,
    PagewrightError,
    ProviderAuthError,
    ProviderError,
    ProviderOverloadedError,
    ProviderQuotaError,
    ProviderRateLimitError,
    user_facing_message,
)
from pagewright.core.log import mask_secret
from pagewright.providers.base import GenerateOptions, Message, ProviderKind, TokenUsage
from pagewright.providers.manager import ProviderManager

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from pagewright.config.schema import PagewrightConfig
    from pagewright.providers.base import StreamChunk

logger = logging.getLogger(__name__)

# The relay is itself the "proxy" provider; routing to it would loop
RELAY_EXCLUDED = ("proxy",)

_KEY_HEADERS = ("x-google-api-key", "x-goog-api-key", "x-gemini-api-key", "x-api-key")
_AUTH_RE = re.compile(r"^(?:Bearer|Api-Key|Key)\s+(.+)$", re.IGNORECASE)


class WireMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class WireOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    provider: str | None = None
    model: str | None = None
    system_instruction: str | None = Field(default=None, alias="systemInstruction")
    temperature: float | None = None
    thinking_budget_tokens: int | None = Field(default=None, alias="thinkingBudgetTokens")


class GenerateRequest(BaseModel):
    messages: list[WireMessage] = Field(default_factory=list)
    options: WireOptions = Field(default_factory=WireOptions)


class GenerateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    finish_reason: str = Field(serialization_alias="finishReason")
    usage: dict[str, int]
    provider: str


def extract_google_key(request: Request) -> str | None:
    """Google key supplied by the caller, if any.

    ``Authorization: Bearer <key>`` wins over the dedicated key headers.
    """
    auth = request.headers.get("authorization", "").strip()
    if auth:
        match = _AUTH_RE.match(auth)
        if match:
            return match.group(1)
    for name in _KEY_HEADERS:
        value = request.headers.get(name)
        if value:
            return value
    return None


def _manager_for(request: Request) -> ProviderManager:
    """The shared manager, or a request-scoped one using the caller's Google key."""
    key = extract_google_key(request)
    state = request.app.state
    if not key:
        return state.provider_manager
    logger.debug("Using caller-supplied Google key %s", mask_secret(key))
    config: PagewrightConfig = state.config.model_copy(deep=True)
    config.providers["google"] = config.provider("google").model_copy(
        update={"api_key": key}
    )
    return ProviderManager(
        config, state.resolver, factory=state.provider_factory, exclude=RELAY_EXCLUDED
    )


def _to_domain(
    body: GenerateRequest, config: PagewrightConfig
) -> tuple[list[Message], GenerateOptions]:
    messages = [Message(role=m.role, content=m.content) for m in body.messages]
    o = body.options
    options = GenerateOptions(
        provider=o.provider,
        model=o.model,
        system_instruction=o.system_instruction,
        temperature=(
            o.temperature if o.temperature is not None else config.general.temperature
        ),
        thinking_budget_tokens=o.thinking_budget_tokens,
    )
    return messages, options


def _status_for(error: Exception) -> int:
    if isinstance(error, ProviderAuthError):
        return 401
    if isinstance(error, (ProviderRateLimitError, ProviderQuotaError)):
        return 429
    if isinstance(error, (InvalidRequestError, ContentPolicyError)):
        return 400
    if isinstance(error, (ProviderOverloadedError, NoProviderAvailableError, ConfigError)):
        return 503
    return 502


def _error_response(error: Exception) -> JSONResponse:
    status = _status_for(error)
    headers: dict[str, str] = {}
    retry_after = getattr(error, "retry_after", None)
    if retry_after is not None:
        headers["Retry-After"] = str(int(retry_after))
    detail = error.detail if isinstance(error, ProviderError) else str(error)
    return JSONResponse(
        status_code=status,
        content={"detail": detail, "message": user_facing_message(error)},
        headers=headers,
    )


def _ndjson(payload: dict[str, Any]) -> str:
    return json.dumps(payload) + "\n"


def _chunk_line(chunk: StreamChunk) -> str | None:
    if chunk.done:
        usage = chunk.usage or TokenUsage()
        return _ndjson({"text": chunk.text, "done": True, "usage": usage.to_dict()})
    if chunk.text:
        return _ndjson({"text": chunk.text, "done": False})
    return None


def _error_line(error: Exception) -> str:
    status = error.status if isinstance(error, ProviderError) else None
    detail = error.detail if isinstance(error, ProviderError) else str(error)
    return _ndjson({"error": detail, "status": status or _status_for(error)})


def create_relay_router(base_path: str) -> APIRouter:
    """Build the relay router mounted under *base_path*."""
    router = APIRouter(prefix=base_path.rstrip("/"), tags=["relay"])

    @router.post("/generate", response_model=None)
    async def generate(body: GenerateRequest, request: Request) -> dict[str, Any] | JSONResponse:
        config = request.app.state.config
        manager = _manager_for(request)
        messages, options = _to_domain(body, config)
        logger.info(
            "generate: provider=%s model=%s messages=%d",
            options.provider or "(default)",
            options.model or "(provider-default)",
            len(messages),
        )
        try:
            result = await manager.generate(messages, options)
        except PagewrightError as e:
            logger.warning("generate failed: %s", e)
            return _error_response(e)
        response = GenerateResponse(
            text=result.text,
            finish_reason=result.finish_reason,
            usage=result.usage.to_dict(),
            provider=result.provider_id,
        )
        return response.model_dump(by_alias=True)

    @router.post("/stream", response_model=None)
    async def stream(body: GenerateRequest, request: Request) -> StreamingResponse | JSONResponse:
        config = request.app.state.config
        manager = _manager_for(request)
        messages, options = _to_domain(body, config)
        logger.info(
            "stream: provider=%s model=%s messages=%d",
            options.provider or "(default)",
            options.model or "(provider-default)",
            len(messages),
        )
        chunks = manager.generate_stream(messages, options)
        # Pull the first chunk here so early failures become HTTP errors
        try:
            first = await anext(chunks)
        except StopAsyncIteration:
            first = None
        except PagewrightError as e:
            logger.warning("stream failed before output: %s", e)
            return _error_response(e)

        async def body_lines() -> AsyncIterator[str]:
            if first is None:
                return
            line = _chunk_line(first)
            if line:
                yield line
            try:
                async for chunk in chunks:
                    line = _chunk_line(chunk)
                    if line:
                        yield line
            except PagewrightError as e:
                logger.warning("stream failed mid-response: %s", e)
                yield _error_line(e)

        return StreamingResponse(
            body_lines(),
            media_type="application/x-ndjson",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @router.get("/health")
    async def relay_health() -> dict[str, bool]:
        return {"ok": True}

    @router.get("/providers")
    async def capabilities(request: Request) -> dict[str, Any]:
        """Which providers this relay can serve, and its defaults."""
        config: PagewrightConfig = request.app.state.config
        manager: ProviderManager = request.app.state.provider_manager
        ordered = manager.get_available_providers()
        available = set(ordered)
        providers = {
            kind.value: kind.value in available
            for kind in ProviderKind
            if kind.value not in RELAY_EXCLUDED
        }
        default = config.general.default_provider or (ordered[0] if ordered else None)
        model = config.provider(default).default_model if default else None
        return {
            "ok": True,
            "providers": providers,
            "defaults": {"provider": default, "model": model},
        }

    return router
