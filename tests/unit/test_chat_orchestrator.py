"""Tests for ChatOrchestrator: turns, streaming placeholder, offline mode."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from pagewright.chat.orchestrator import ChatOrchestrator
from pagewright.chat.store import STREAMING_ID, SiteStore
from pagewright.chat.templates import OFFLINE_SITE_HTML
from pagewright.config.credentials import CredentialResolver, MappingLookup
from pagewright.core.abort import abortable_sleep
from pagewright.core.errors import ProviderAuthError, ProviderOverloadedError
from pagewright.providers.base import DEFAULT_OPTIONS, GenerateOptions, StreamChunk
from pagewright.providers.manager import ProviderManager
from tests.fixtures.providers import MockProvider, make_factory

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from pagewright.config.schema import PagewrightConfig

SITE = "<!DOCTYPE html><html><body><h1>Bakery</h1></body></html>"


class _SlowProvider(MockProvider):
    """Streams nothing until its abort signal fires."""

    async def generate_stream(self, messages, options=None) -> AsyncIterator[StreamChunk]:
        opts = options or DEFAULT_OPTIONS
        self.call_log.append({"method": "stream"})
        await abortable_sleep(10, opts.signal)
        yield StreamChunk(text="late")


def _orchestrator(
    config: PagewrightConfig, *providers: MockProvider, stream: bool = True
) -> ChatOrchestrator:
    manager = ProviderManager(
        config, CredentialResolver([MappingLookup({})]), factory=make_factory(*providers)
    )
    return ChatOrchestrator(manager, SiteStore(), stream=stream)


# ─── Streaming turns ──────────────────────────────────────────


class TestStreamingTurn:
    async def test_chunks_concatenate_into_one_message(self, config):
        orch = _orchestrator(config, MockProvider("google", "Hello", chunks=["Hel", "lo"]))
        deltas: list[str] = []

        reply = await orch.submit("Say hello", on_text=deltas.append)

        assert reply.ok
        assert reply.text == "Hello"
        assert deltas == ["Hel", "lo"]
        messages = orch.store.messages
        assert [m.role for m in messages] == ["user", "assistant"]
        assert messages[1].content == "Hello"
        assert messages[1].id.startswith("assistant-")

    async def test_placeholder_updated_while_streaming(self, config):
        orch = _orchestrator(config, MockProvider("google", "abc", chunks=["a", "b", "c"]))
        seen: list[str] = []

        def on_text(_: str) -> None:
            last = orch.store.messages[-1]
            assert last.id == STREAMING_ID
            seen.append(last.content)

        await orch.submit("go", on_text=on_text)
        assert seen == ["a", "ab", "abc"]

    async def test_history_sent_with_new_turn(self, config):
        provider = MockProvider("google", "reply")
        orch = _orchestrator(config, provider)
        await orch.submit("first")
        await orch.submit("second")

        sent = provider.call_log[-1]["messages"]
        assert [(m.role, m.content) for m in sent] == [
            ("user", "first"),
            ("assistant", "reply"),
            ("user", "second"),
        ]

    async def test_html_promoted_to_preview(self, config):
        orch = _orchestrator(config, MockProvider("google", SITE, chunks=[SITE[:20], SITE[20:]]))
        reply = await orch.submit("Build a bakery site")
        assert reply.site_updated is True
        assert orch.store.content == SITE

    async def test_plain_text_does_not_touch_preview(self, config):
        orch = _orchestrator(config, MockProvider("google", "What colours?"))
        orch.store.set_content("existing")
        reply = await orch.submit("Build a site")
        assert reply.site_updated is False
        assert orch.store.content == "existing"

    async def test_empty_stream_falls_back_to_batch(self, config):
        provider = MockProvider("google", "batch text", chunks=[])
        orch = _orchestrator(config, provider)
        deltas: list[str] = []
        reply = await orch.submit("hi", on_text=deltas.append)
        assert reply.text == "batch text"
        assert [c["method"] for c in provider.call_log] == ["stream", "generate"]
        assert deltas == ["batch text"]
        assert orch.store.messages[-1].content == "batch text"


class TestBatchTurn:
    async def test_uses_generate(self, config):
        provider = MockProvider("google", "Hello")
        orch = _orchestrator(config, provider, stream=False)
        reply = await orch.submit("hi")
        assert reply.text == "Hello"
        assert reply.provider_id == "google"
        assert [c["method"] for c in provider.call_log] == ["generate"]
        assert orch.store.messages[-1].content == "Hello"

    async def test_default_options_applied(self, config):
        provider = MockProvider("google", "Hello")
        manager = ProviderManager(
            config, CredentialResolver([]), factory=make_factory(provider)
        )
        orch = ChatOrchestrator(
            manager,
            SiteStore(),
            stream=False,
            default_options=GenerateOptions(system_instruction="Make websites"),
        )
        await orch.submit("hi")
        assert provider.call_log[0]["system_instruction"] == "Make websites"


# ─── Offline mode ─────────────────────────────────────────────


class TestOffline:
    async def test_no_provider_returns_offline_template(self, config):
        orch = _orchestrator(config)
        assert orch.is_ready() is False

        reply = await orch.submit("Build me a site")

        assert reply.ok
        assert reply.offline is True
        assert reply.text == OFFLINE_SITE_HTML
        messages = orch.store.messages
        assert [m.role for m in messages] == ["user", "assistant"]
        assert messages[1].content == OFFLINE_SITE_HTML
        assert messages[1].id != STREAMING_ID
        assert orch.store.content == OFFLINE_SITE_HTML

    async def test_no_network_call(self, config):
        provider = MockProvider("google", available=False)
        orch = _orchestrator(config, provider)
        await orch.submit("hi")
        assert provider.call_log == []


# ─── Failures ─────────────────────────────────────────────────


class TestFailures:
    async def test_error_is_user_facing_and_placeholder_dropped(self, config):
        provider = MockProvider(
            "google",
            chunks=["par", "tial"],
            fail_after=(1, ProviderOverloadedError("google", "dropped", label="Gemini")),
        )
        orch = _orchestrator(config, provider)
        reply = await orch.submit("hi")
        assert reply.ok is False
        assert reply.error.startswith("AI Error: Gemini: Service temporarily unavailable.")
        assert [m.role for m in orch.store.messages] == ["user"]
        assert orch.busy is False

    async def test_fallback_used_before_error(self, config):
        a = MockProvider("google", failures=[ProviderAuthError("google", "bad key")])
        b = MockProvider("openai", "from openai")
        orch = _orchestrator(config, a, b)
        reply = await orch.submit("hi")
        assert reply.text == "from openai"

    async def test_empty_input_rejected(self, config):
        orch = _orchestrator(config, MockProvider("google"))
        reply = await orch.submit("   ")
        assert reply.error == "No message text received"
        assert orch.store.messages == []

    async def test_empty_reply(self, config):
        orch = _orchestrator(config, MockProvider("google", "", chunks=[]))
        reply = await orch.submit("hi")
        assert reply.error == "No response from AI service"
        assert [m.role for m in orch.store.messages] == ["user"]


# ─── Cancellation ─────────────────────────────────────────────


class TestCancel:
    async def test_cancel_idle(self, config):
        assert _orchestrator(config, MockProvider("google")).cancel() is False

    async def test_cancel_in_flight(self, config):
        slow = _SlowProvider("google")
        fallback = MockProvider("openai", "should not be used")
        orch = _orchestrator(config, slow, fallback)

        task = asyncio.create_task(orch.submit("hi"))
        while not orch.busy:
            await asyncio.sleep(0)
        assert orch.cancel() is True
        reply = await task

        assert reply.error == "Request cancelled."
        assert fallback.call_log == []
        assert orch.busy is False
        assert [m.role for m in orch.store.messages] == ["user"]

    async def test_one_request_at_a_time(self, config):
        orch = _orchestrator(config, _SlowProvider("google"))
        task = asyncio.create_task(orch.submit("first"))
        while not orch.busy:
            await asyncio.sleep(0)

        second = await orch.submit("second")
        assert second.error == "A request is already in progress"

        orch.cancel()
        await task
        assert [m.content for m in orch.store.messages] == ["first"]
