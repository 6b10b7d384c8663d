"""Tests for Google Gemini provider adapter (mocked SDK)."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from google.genai import errors as genai_errors

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
)
from pagewright.core.retry import RetryConfig
from pagewright.providers.base import (
    GenerateOptions,
    Message,
    TextGenerationProvider,
)
from pagewright.providers.google import (
    DEFAULT_MODEL,
    PROVIDER_ID,
    GoogleProvider,
    _build_contents,
    _map_error,
)

_NO_SLEEP = RetryConfig(base_delay=0.0, max_delay=0.0, jitter=False)

# ─── Helpers ──────────────────────────────────────────────────


def _usage(prompt: int = 12, completion: int = 7) -> SimpleNamespace:
    return SimpleNamespace(prompt_token_count=prompt, candidates_token_count=completion)


def _make_response(text: str = "Hello world", finish: str = "STOP") -> SimpleNamespace:
    candidate = SimpleNamespace(finish_reason=SimpleNamespace(name=finish))
    return SimpleNamespace(
        text=text,
        candidates=[candidate],
        usage_metadata=_usage(),
        prompt_feedback=None,
    )


def _make_chunk(text: str, usage: Any = None) -> SimpleNamespace:
    return SimpleNamespace(text=text, usage_metadata=usage, prompt_feedback=None)


class _AsyncChunkIter:
    """Async iterator over mock stream chunks."""

    def __init__(self, chunks: list[Any]) -> None:
        self._chunks = list(chunks)

    def __aiter__(self) -> _AsyncChunkIter:
        return self

    async def __anext__(self) -> Any:
        if not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)


class _ClosableChunkIter(_AsyncChunkIter):
    """Stream double exposing ``aclose`` like an async generator."""

    def __init__(self, chunks: list[Any]) -> None:
        super().__init__(chunks)
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True


def _make_client(response: Any = None, stream_chunks: list[Any] | None = None) -> MagicMock:
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(
        return_value=response or _make_response()
    )
    client.aio.models.generate_content_stream = AsyncMock(
        return_value=_AsyncChunkIter(stream_chunks or [])
    )
    return client


def _api_error(code: int, message: str) -> genai_errors.APIError:
    cls = genai_errors.ClientError if code < 500 else genai_errors.ServerError
    return cls(code, {"error": {"code": code, "message": message, "status": "X"}})


def _provider(client: MagicMock, api_key: str | None = "test-key") -> GoogleProvider:
    return GoogleProvider(api_key, client=client, retry=_NO_SLEEP)


# ─── Protocol ─────────────────────────────────────────────────


class TestProtocol:
    def test_provider_id(self):
        assert _provider(_make_client()).provider_id == PROVIDER_ID

    def test_satisfies_protocol(self):
        assert isinstance(_provider(_make_client()), TextGenerationProvider)

    def test_available_with_key(self):
        assert _provider(_make_client()).is_available() is True

    def test_unavailable_without_key(self):
        assert _provider(_make_client(), api_key=None).is_available() is False


# ─── Message building ─────────────────────────────────────────


class TestBuildContents:
    def test_roles_mapped(self):
        msgs = [
            Message(role="user", content="Hi"),
            Message(role="assistant", content="Hello"),
            Message(role="user", content="More"),
        ]
        system, contents = _build_contents(msgs, GenerateOptions())
        assert system is None
        assert [c["role"] for c in contents] == ["user", "model", "user"]
        assert contents[1]["parts"] == [{"text": "Hello"}]

    def test_leading_assistant_turns_dropped(self):
        msgs = [
            Message(role="assistant", content="Welcome!"),
            Message(role="assistant", content="Ask me anything"),
            Message(role="user", content="Build a site"),
        ]
        _, contents = _build_contents(msgs, GenerateOptions())
        assert len(contents) == 1
        assert contents[0]["role"] == "user"

    def test_system_message_extracted(self):
        msgs = [Message(role="system", content="Be terse"), Message(role="user", content="Hi")]
        system, contents = _build_contents(msgs, GenerateOptions())
        assert system == "Be terse"
        assert len(contents) == 1

    def test_option_system_instruction_wins(self):
        msgs = [Message(role="system", content="list"), Message(role="user", content="Hi")]
        system, _ = _build_contents(msgs, GenerateOptions(system_instruction="option"))
        assert system == "option"

    def test_no_user_turn(self):
        _, contents = _build_contents([Message(role="assistant", content="x")], GenerateOptions())
        assert contents == []


# ─── generate ─────────────────────────────────────────────────


class TestGenerate:
    async def test_returns_result(self):
        provider = _provider(_make_client())
        result = await provider.generate([Message(role="user", content="Hi")])
        assert result.text == "Hello world"
        assert result.finish_reason == "stop"
        assert result.usage.prompt_tokens == 12
        assert result.usage.completion_tokens == 7
        assert result.usage.total_tokens == 19
        assert result.provider_id == PROVIDER_ID

    async def test_request_carries_options(self):
        client = _make_client()
        provider = _provider(client)
        await provider.generate(
            [Message(role="user", content="Hi")],
            GenerateOptions(system_instruction="Sys", temperature=0.3, model="gemini-pro"),
        )
        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-pro"
        assert kwargs["config"].temperature == 0.3
        assert kwargs["config"].system_instruction == "Sys"

    async def test_default_model_and_temperature(self):
        client = _make_client()
        await _provider(client).generate([Message(role="user", content="Hi")])
        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == DEFAULT_MODEL
        assert kwargs["config"].temperature == 0.7

    async def test_thinking_budget(self):
        client = _make_client()
        await _provider(client).generate(
            [Message(role="user", content="Hi")],
            GenerateOptions(thinking_budget_tokens=2048),
        )
        config = client.aio.models.generate_content.call_args.kwargs["config"]
        assert config.thinking_config.thinking_budget == 2048

    async def test_no_user_message_rejected_without_call(self):
        client = _make_client()
        with pytest.raises(InvalidRequestError):
            await _provider(client).generate([Message(role="assistant", content="x")])
        client.aio.models.generate_content.assert_not_called()

    async def test_blocked_prompt(self):
        response = _make_response(text="")
        response.prompt_feedback = SimpleNamespace(block_reason=SimpleNamespace(name="SAFETY"))
        with pytest.raises(ContentPolicyError, match="SAFETY"):
            await _provider(_make_client(response)).generate(
                [Message(role="user", content="Hi")]
            )

    async def test_retries_transient_errors(self):
        client = _make_client()
        client.aio.models.generate_content.side_effect = [
            _api_error(503, "overloaded"),
            _make_response("recovered"),
        ]
        on_retry = MagicMock()
        result = await _provider(client).generate(
            [Message(role="user", content="Hi")], GenerateOptions(on_retry=on_retry)
        )
        assert result.text == "recovered"
        assert on_retry.call_count == 1

    async def test_auth_error_not_retried(self):
        client = _make_client()
        client.aio.models.generate_content.side_effect = _api_error(401, "bad key")
        with pytest.raises(ProviderAuthError):
            await _provider(client).generate([Message(role="user", content="Hi")])
        assert client.aio.models.generate_content.call_count == 1


# ─── generate_stream ──────────────────────────────────────────


class TestGenerateStream:
    async def test_yields_text_then_done(self):
        client = _make_client(
            stream_chunks=[_make_chunk("Hel"), _make_chunk("lo", usage=_usage(5, 2))]
        )
        chunks = [
            c async for c in _provider(client).generate_stream([Message(role="user", content="Hi")])
        ]
        assert [c.text for c in chunks[:-1]] == ["Hel", "lo"]
        assert chunks[-1].done is True
        assert chunks[-1].usage.total_tokens == 7

    async def test_concatenation_matches_generate(self):
        client = _make_client(
            response=_make_response("Hello world"),
            stream_chunks=[_make_chunk("Hello"), _make_chunk(" "), _make_chunk("world")],
        )
        provider = _provider(client)
        messages = [Message(role="user", content="Hi")]
        full = await provider.generate(messages)
        streamed = "".join([c.text async for c in provider.generate_stream(messages)])
        assert streamed == full.text

    async def test_empty_chunks_skipped(self):
        client = _make_client(stream_chunks=[_make_chunk(""), _make_chunk("x")])
        chunks = [
            c async for c in _provider(client).generate_stream([Message(role="user", content="Hi")])
        ]
        assert [c.text for c in chunks if not c.done] == ["x"]

    async def test_open_error_mapped(self):
        client = _make_client()
        client.aio.models.generate_content_stream.side_effect = _api_error(400, "bad")
        with pytest.raises(InvalidRequestError):
            async for _ in _provider(client).generate_stream(
                [Message(role="user", content="Hi")]
            ):
                pass

    async def test_stream_closed_when_consumer_stops(self):
        stream = _ClosableChunkIter([_make_chunk("a"), _make_chunk("b")])
        client = _make_client()
        client.aio.models.generate_content_stream = AsyncMock(return_value=stream)
        gen = _provider(client).generate_stream([Message(role="user", content="Hi")])
        first = await anext(gen)
        await gen.aclose()
        assert first.text == "a"
        assert stream.closed is True

    async def test_stream_closed_after_completion(self):
        stream = _ClosableChunkIter([_make_chunk("a")])
        client = _make_client()
        client.aio.models.generate_content_stream = AsyncMock(return_value=stream)
        async for _ in _provider(client).generate_stream([Message(role="user", content="Hi")]):
            pass
        assert stream.closed is True


# ─── Error mapping ────────────────────────────────────────────


class TestMapError:
    @pytest.mark.parametrize(
        ("code", "message", "expected"),
        [
            (401, "API key not valid", ProviderAuthError),
            (403, "permission denied", ProviderAuthError),
            (429, "Resource has been exhausted", ProviderRateLimitError),
            (429, "You exceeded your current quota", ProviderQuotaError),
            (400, "Invalid argument", InvalidRequestError),
            (404, "models/x is not found", ModelNotFoundError),
            (500, "internal", ProviderOverloadedError),
            (503, "The model is overloaded", ProviderOverloadedError),
        ],
    )
    def test_api_errors(self, code, message, expected):
        err = _map_error(_api_error(code, message))
        assert isinstance(err, expected)
        assert err.label == "Gemini"

    def test_rate_limit_retry_after_header(self):
        response = httpx.Response(
            429,
            headers={"retry-after": "7"},
            request=httpx.Request("POST", "https://generativelanguage.googleapis.com"),
        )
        e = genai_errors.ClientError(
            429, {"error": {"code": 429, "message": "Too many requests"}}, response=response
        )
        err = _map_error(e)
        assert isinstance(err, ProviderRateLimitError)
        assert err.retry_after == 7.0

    def test_rate_limit_retry_delay_detail(self):
        e = genai_errors.ClientError(
            429,
            {
                "error": {
                    "code": 429,
                    "message": "Too many requests",
                    "status": "RESOURCE_EXHAUSTED",
                    "details": [
                        {"@type": "type.googleapis.com/google.rpc.Help"},
                        {
                            "@type": "type.googleapis.com/google.rpc.RetryInfo",
                            "retryDelay": "37s",
                        },
                    ],
                }
            },
        )
        err = _map_error(e)
        assert isinstance(err, ProviderRateLimitError)
        assert err.retry_after == 37.0

    def test_rate_limit_without_hint(self):
        err = _map_error(_api_error(429, "Too many requests"))
        assert isinstance(err, ProviderRateLimitError)
        assert err.retry_after is None

    def test_timeout(self):
        assert isinstance(_map_error(httpx.ReadTimeout("slow")), ProviderTimeoutError)

    def test_connection_error(self):
        err = _map_error(httpx.ConnectError("refused"))
        assert isinstance(err, ProviderNetworkError)
        assert not isinstance(err, ProviderTimeoutError)

    def test_other_errors_pass_through(self):
        original = ValueError("x")
        assert _map_error(original) is original
