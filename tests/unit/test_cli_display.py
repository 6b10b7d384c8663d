"""Tests for the Rich chat display module."""

from __future__ import annotations

import io

from rich.console import Console

from pagewright.chat.orchestrator import ChatReply
from pagewright.cli.display import ChatDisplay, _preview
from pagewright.providers.health import HealthState, ProviderHealthStatus


def _make_display() -> tuple[ChatDisplay, io.StringIO]:
    """Create a display with captured output."""
    buf = io.StringIO()
    console = Console(file=buf, width=100, no_color=True)
    return ChatDisplay(console=console), buf


# ── Preview ───────────────────────────────────────────────────


class TestPreview:
    def test_short_text_unchanged(self) -> None:
        assert _preview("hello", 10) == "hello"

    def test_over_limit_truncated(self) -> None:
        result = _preview("a" * 600)
        assert result.endswith(" ...")
        assert len(result) == 404


# ── Chat output ───────────────────────────────────────────────


class TestChatOutput:
    def test_intro_renders_markdown(self) -> None:
        display, buf = _make_display()
        display.intro("**AI Site Generator**")
        assert "AI Site Generator" in buf.getvalue()
        assert "**" not in buf.getvalue()

    def test_stream_text_keeps_markup_literal(self) -> None:
        display, buf = _make_display()
        display.stream_text("[bold]x[/bold]")
        display.stream_text(" y")
        display.end_stream()
        assert buf.getvalue() == "[bold]x[/bold] y\n"

    def test_retry_notice(self) -> None:
        display, buf = _make_display()
        display.retry_notice(2, 1.6, RuntimeError("busy"))
        assert "Retry 2 in 1.6s" in buf.getvalue()
        assert "busy" in buf.getvalue()

    def test_reply_printed_when_not_streamed(self) -> None:
        display, buf = _make_display()
        display.show_reply(ChatReply(text="Hello"), streamed=False)
        assert "Hello" in buf.getvalue()

    def test_streamed_reply_not_repeated(self) -> None:
        display, buf = _make_display()
        display.show_reply(ChatReply(text="Hello"), streamed=True)
        assert buf.getvalue() == ""

    def test_offline_notice(self) -> None:
        display, buf = _make_display()
        display.show_reply(ChatReply(text="<html>", offline=True), streamed=False)
        assert "offline starter site" in buf.getvalue()

    def test_site_updated_notice(self) -> None:
        display, buf = _make_display()
        display.show_reply(ChatReply(text="<html>", site_updated=True), streamed=True)
        assert "preview content updated" in buf.getvalue()

    def test_error(self) -> None:
        display, buf = _make_display()
        display.show_reply(ChatReply(error="AI Error: boom"), streamed=True)
        assert "AI Error: boom" in buf.getvalue()

    def test_saved(self) -> None:
        display, buf = _make_display()
        display.show_saved("site.html")
        assert "Saved site to site.html" in buf.getvalue()


# ── Tables ────────────────────────────────────────────────────


class TestTables:
    def test_providers_table(self) -> None:
        display, buf = _make_display()
        statuses = {
            "google": ProviderHealthStatus(
                state=HealthState.DEGRADED, consecutive_failures=1, is_available=True
            )
        }
        display.providers_table(["google", "openai"], ["google"], statuses)
        out = buf.getvalue()
        assert "Providers" in out
        assert "degraded" in out
        assert "unknown" in out
        assert "yes" in out
        assert "no" in out

    def test_health_table(self) -> None:
        display, buf = _make_display()
        statuses = {
            "google": ProviderHealthStatus(
                state=HealthState.HEALTHY, is_available=True, response_time_ms=42.4
            ),
            "openai": ProviderHealthStatus(
                state=HealthState.UNHEALTHY, error_message="Unauthorized"
            ),
        }
        display.health_table(statuses)
        out = buf.getvalue()
        assert "42 ms" in out
        assert "unhealthy" in out
        assert "Unauthorized" in out

    def test_health_table_empty(self) -> None:
        display, buf = _make_display()
        display.health_table({})
        assert "No providers available to probe." in buf.getvalue()

    def test_keys_table(self) -> None:
        display, buf = _make_display()
        display.keys_table([("OPENAI_API_KEY", "sk-a…xyz")])
        out = buf.getvalue()
        assert "OPENAI_API_KEY" in out
        assert "sk-a…xyz" in out

    def test_keys_table_empty(self) -> None:
        display, buf = _make_display()
        display.keys_table([])
        assert "No stored keys." in buf.getvalue()
