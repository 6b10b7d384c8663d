"""Tests for provider data classes and protocol."""

from __future__ import annotations

import asyncio

import pytest

from pagewright.providers.base import (
    DEFAULT_OPTIONS,
    GenerateOptions,
    GenerateResult,
    Message,
    ProviderKind,
    StreamChunk,
    TextGenerationProvider,
    TokenUsage,
    canonical_provider_id,
    split_system,
)
from tests.fixtures.providers import MockProvider

# ─── ProviderKind ─────────────────────────────────────────────


class TestProviderKind:
    def test_values(self):
        assert [k.value for k in ProviderKind] == [
            "google",
            "openai",
            "anthropic",
            "cohere",
            "proxy",
        ]

    def test_gemini_alias(self):
        assert ProviderKind("gemini") is ProviderKind.GOOGLE

    def test_case_insensitive(self):
        assert ProviderKind(" OpenAI ") is ProviderKind.OPENAI

    def test_unknown(self):
        with pytest.raises(ValueError):
            ProviderKind("mistral")

    def test_canonical_provider_id(self):
        assert canonical_provider_id("gemini") == "google"
        assert canonical_provider_id("custom") == "custom"


# ─── TokenUsage ───────────────────────────────────────────────


class TestTokenUsage:
    def test_total(self):
        assert TokenUsage(prompt_tokens=3, completion_tokens=4).total_tokens == 7

    def test_to_dict(self):
        assert TokenUsage(1, 2).to_dict() == {
            "promptTokens": 1,
            "completionTokens": 2,
            "totalTokens": 3,
        }

    def test_from_dict_camel_and_snake(self):
        assert TokenUsage.from_dict({"promptTokens": 5, "completionTokens": 6}) == TokenUsage(5, 6)
        assert TokenUsage.from_dict({"prompt_tokens": 1, "completion_tokens": 2}) == TokenUsage(1, 2)

    def test_from_dict_empty(self):
        assert TokenUsage.from_dict(None) is None
        assert TokenUsage.from_dict({}) is None

    def test_frozen(self):
        usage = TokenUsage()
        with pytest.raises(AttributeError):
            usage.prompt_tokens = 1  # type: ignore[misc]


# ─── Results and options ──────────────────────────────────────


class TestDataClasses:
    def test_generate_result_defaults(self):
        result = GenerateResult(text="hi")
        assert result.finish_reason == "stop"
        assert result.usage == TokenUsage()

    def test_stream_chunk_defaults(self):
        chunk = StreamChunk(text="a")
        assert chunk.done is False
        assert chunk.usage is None

    def test_options_defaults(self):
        assert DEFAULT_OPTIONS.provider is None
        assert DEFAULT_OPTIONS.temperature == 0.7
        assert DEFAULT_OPTIONS.max_tokens == 4096

    def test_signal_ignored_in_equality(self):
        assert GenerateOptions(signal=asyncio.Event()) == GenerateOptions()


# ─── split_system ─────────────────────────────────────────────


class TestSplitSystem:
    def test_system_message_extracted(self):
        messages = [Message("system", "Be terse"), Message("user", "hi")]
        system, turns = split_system(messages, DEFAULT_OPTIONS)
        assert system == "Be terse"
        assert turns == [Message("user", "hi")]

    def test_option_wins(self):
        messages = [Message("system", "from list"), Message("user", "hi")]
        system, _ = split_system(messages, GenerateOptions(system_instruction="from options"))
        assert system == "from options"

    def test_no_system(self):
        system, turns = split_system([Message("user", "hi")], DEFAULT_OPTIONS)
        assert system is None
        assert len(turns) == 1


# ─── Protocol conformance ─────────────────────────────────────


class TestProtocol:
    def test_mock_satisfies_protocol(self):
        assert isinstance(MockProvider(), TextGenerationProvider)
