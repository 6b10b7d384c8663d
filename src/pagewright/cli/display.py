"""Rich display for chat output and provider tables.

Accepts an optional :class:`~rich.console.Console` for dependency
injection in tests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from pagewright.providers.health import HealthState

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from pagewright.chat.orchestrator import ChatReply
    from pagewright.providers.health import ProviderHealthStatus

_STATE_STYLE = {
    HealthState.HEALTHY: "green",
    HealthState.DEGRADED: "yellow",
    HealthState.UNHEALTHY: "red",
    HealthState.UNKNOWN: "dim",
}

_PREVIEW_LEN = 400


def _preview(text: str, limit: int = _PREVIEW_LEN) -> str:
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + " ..."


class ChatDisplay:
    """Terminal rendering for the ``chat``, ``providers`` and ``health`` commands."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    @property
    def console(self) -> Console:
        return self._console

    # ── Chat ──────────────────────────────────────────────────

    def intro(self, text: str) -> None:
        self._console.print(Panel(Markdown(text), border_style="cyan"))

    def stream_text(self, delta: str) -> None:
        """Write a streamed delta as-is (no markup, no newline)."""
        self._console.print(delta, end="", markup=False, highlight=False, soft_wrap=True)

    def end_stream(self) -> None:
        self._console.print()

    def retry_notice(self, attempt: int, delay: float, error: Exception) -> None:
        self._console.print(
            f"[yellow]Retry {attempt} in {delay:.1f}s[/yellow] [dim]({error})[/dim]"
        )

    def show_reply(self, reply: ChatReply, *, streamed: bool) -> None:
        """Summarise a finished turn; the text itself is shown unless streamed."""
        if reply.error:
            self.show_error(reply.error)
            return
        if not streamed:
            self._console.print(reply.text, markup=False, highlight=False)
        if reply.offline:
            self._console.print(
                "[dim]No AI provider is configured; showing the offline starter site.[/dim]"
            )
        elif reply.site_updated:
            self._console.print("[green]Website detected; preview content updated.[/green]")

    def show_error(self, message: str) -> None:
        self._console.print(f"[bold red]{message}[/bold red]", highlight=False)

    def show_saved(self, path: str) -> None:
        self._console.print(f"[dim]Saved site to {path}[/dim]")

    # ── Tables ────────────────────────────────────────────────

    def providers_table(
        self,
        provider_ids: Iterable[str],
        available: Iterable[str],
        statuses: Mapping[str, ProviderHealthStatus],
    ) -> None:
        available_set = set(available)
        table = Table(title="Providers")
        table.add_column("Provider", style="bold")
        table.add_column("Available")
        table.add_column("Health")
        table.add_column("Failures", justify="right")
        for pid in provider_ids:
            status = statuses.get(pid)
            state = status.state if status else HealthState.UNKNOWN
            table.add_row(
                pid,
                "[green]yes[/green]" if pid in available_set else "[dim]no[/dim]",
                f"[{_STATE_STYLE[state]}]{state.value}[/]",
                str(status.consecutive_failures) if status else "0",
            )
        self._console.print(table)

    def health_table(self, statuses: Mapping[str, ProviderHealthStatus]) -> None:
        if not statuses:
            self._console.print("No providers available to probe.")
            return
        table = Table(title="Provider health")
        table.add_column("Provider", style="bold")
        table.add_column("State")
        table.add_column("Latency", justify="right")
        table.add_column("Error")
        for pid, status in statuses.items():
            latency = (
                f"{status.response_time_ms:.0f} ms"
                if status.response_time_ms is not None
                else "-"
            )
            table.add_row(
                pid,
                f"[{_STATE_STYLE[status.state]}]{status.state.value}[/]",
                latency,
                _preview(status.error_message or "", 80),
            )
        self._console.print(table)

    def keys_table(self, items: Iterable[tuple[str, str]]) -> None:
        rows = list(items)
        if not rows:
            self._console.print("No stored keys.")
            return
        table = Table(title="Stored keys")
        table.add_column("Name", style="bold")
        table.add_column("Value")
        for name, masked in rows:
            table.add_row(name, masked)
        self._console.print(table)
