"""Main CLI application.

Click commands for pagewright: chat, providers, health, keys, serve.
"""

from __future__ import annotations

import asyncio
import signal
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from pagewright import __version__
from pagewright.config.loader import load_config
from pagewright.core.errors import ConfigError, PagewrightError

if TYPE_CHECKING:
    from pagewright.chat.orchestrator import ChatOrchestrator, ChatReply
    from pagewright.cli.display import ChatDisplay
    from pagewright.config.credentials import LocalSettings
    from pagewright.config.schema import PagewrightConfig
    from pagewright.providers.manager import ProviderManager

_EXIT_WORDS = {"exit", "quit", ":q"}


# ── Helpers ──────────────────────────────────────────────────────


def _error(msg: str) -> None:
    """Print an error message to stderr and exit."""
    click.echo(f"Error: {msg}", err=True)
    sys.exit(1)


def _load_config(config_path: str | None) -> PagewrightConfig:
    """Load config with user-friendly error handling."""
    try:
        return load_config(path=config_path)
    except ConfigError as e:
        _error(str(e))
        raise  # unreachable, keeps mypy happy


def _setup(ctx: click.Context) -> PagewrightConfig:
    """Load config and install logging for a command."""
    from pagewright.core.log import configure_logging

    config = _load_config(ctx.obj["config_path"])
    if ctx.obj.get("verbose"):
        config.logging.level = "DEBUG"
    configure_logging(config.logging)
    return config


def _setup_providers(config: PagewrightConfig) -> ProviderManager:
    """Provider manager over the environment and local settings."""
    from pagewright.config.credentials import default_resolver
    from pagewright.providers.manager import ProviderManager

    return ProviderManager(config, default_resolver(config))


# ── Group ────────────────────────────────────────────────────────


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="pagewright")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True),
    default=None,
    help="Path to config file.",
)
@click.option("-v", "--verbose", is_flag=True, default=False, help="Debug logging.")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """pagewright - Chat with AI to build a website.

    Routes each request across Gemini, OpenAI, Claude, Cohere or a relay,
    with retry, fallback and health tracking.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ── chat ─────────────────────────────────────────────────────────


@cli.command()
@click.argument("prompt", required=False)
@click.option("--provider", default=None, help="Provider to use (e.g. google, openai).")
@click.option("--model", default=None, help="Model name for the chosen provider.")
@click.option(
    "--stream/--no-stream",
    default=None,
    help="Stream the reply as it arrives (overrides config).",
)
@click.option(
    "--save",
    "save_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the generated site HTML to this file.",
)
@click.option(
    "--state",
    "state_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Load and persist the conversation in this JSON file.",
)
@click.pass_context
def chat(
    ctx: click.Context,
    prompt: str | None,
    provider: str | None,
    model: str | None,
    stream: bool | None,
    save_path: str | None,
    state_path: str | None,
) -> None:
    """Chat with the AI site builder.

    With PROMPT, sends one message and exits; otherwise starts an
    interactive session (type 'exit' to leave).
    """
    from pagewright.cli.display import ChatDisplay

    config = _setup(ctx)
    display = ChatDisplay()
    use_stream = config.general.stream_output if stream is None else stream
    try:
        ok = asyncio.run(
            _chat_async(
                config,
                display,
                prompt=prompt,
                provider=provider,
                model=model,
                stream=use_stream,
                save_path=save_path,
                state_path=state_path,
            )
        )
    except PagewrightError as e:
        _error(str(e))
        return  # unreachable
    if not ok:
        sys.exit(1)


async def _submit_turn(
    orchestrator: ChatOrchestrator, display: ChatDisplay, text: str, *, stream: bool
) -> ChatReply:
    """Submit one turn; Ctrl-C while it runs cancels the request."""
    loop = asyncio.get_running_loop()
    installed = False
    try:
        loop.add_signal_handler(signal.SIGINT, orchestrator.cancel)
        installed = True
    except (NotImplementedError, RuntimeError):
        pass
    try:
        reply = await orchestrator.submit(
            text, on_text=display.stream_text if stream else None
        )
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)
    if stream and reply.text and not reply.offline:
        display.end_stream()
    return reply


async def _chat_async(
    config: PagewrightConfig,
    display: ChatDisplay,
    *,
    prompt: str | None,
    provider: str | None,
    model: str | None,
    stream: bool,
    save_path: str | None,
    state_path: str | None,
) -> bool:
    """Async implementation for the chat command. Returns False on error."""
    from pagewright.chat.orchestrator import ChatOrchestrator
    from pagewright.chat.store import SiteStore
    from pagewright.providers.base import GenerateOptions

    store = SiteStore.load(state_path) if state_path else SiteStore()
    manager = _setup_providers(config)
    options = GenerateOptions(
        provider=provider,
        model=model,
        system_instruction=config.general.system_instruction,
        temperature=config.general.temperature,
        on_retry=display.retry_notice,
    )
    orchestrator = ChatOrchestrator(
        manager, store, stream=stream, default_options=options
    )

    interactive = prompt is None
    if interactive:
        display.intro(orchestrator.intro_message)

    ok = True
    while True:
        if interactive:
            try:
                text = await asyncio.to_thread(
                    click.prompt, "You", default="", show_default=False
                )
            except click.Abort:
                break
            if text.strip().lower() in _EXIT_WORDS:
                break
            if not text.strip():
                continue
        else:
            text = prompt or ""

        reply = await _submit_turn(orchestrator, display, text, stream=stream)
        display.show_reply(reply, streamed=stream and not reply.offline)
        ok = reply.ok

        if save_path and reply.site_updated:
            Path(save_path).expanduser().write_text(store.content, encoding="utf-8")
            display.show_saved(save_path)
        if state_path:
            store.save(state_path)

        if not interactive:
            break

    return ok


# ── providers ────────────────────────────────────────────────────


@cli.command()
@click.pass_context
def providers(ctx: click.Context) -> None:
    """List providers, whether each is available, and its health."""
    from pagewright.cli.display import ChatDisplay
    from pagewright.providers.base import ProviderKind

    config = _setup(ctx)
    pm = _setup_providers(config)
    available = pm.get_available_providers()
    ChatDisplay().providers_table(
        [kind.value for kind in ProviderKind], available, pm.health_statuses()
    )
    if not available:
        click.echo(
            "No provider available. Set an API key environment variable "
            "or run 'pagewright keys set <provider> <key>'."
        )


# ── health ───────────────────────────────────────────────────────


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Probe every available provider with a small request."""
    from pagewright.cli.display import ChatDisplay

    config = _setup(ctx)
    pm = _setup_providers(config)
    try:
        statuses = asyncio.run(pm.check_all_health())
    except PagewrightError as e:
        _error(str(e))
        return  # unreachable
    ChatDisplay().health_table(statuses)


# ── keys ─────────────────────────────────────────────────────────


def _settings(config: PagewrightConfig) -> LocalSettings:
    from pagewright.config.credentials import LocalSettings

    return LocalSettings(config.general.settings_path)


def _key_name(config: PagewrightConfig, name: str) -> str:
    """Map a provider id (``google``) to its primary key variable name."""
    from pagewright.providers.base import canonical_provider_id

    pid = canonical_provider_id(name.lower())
    prov = config.providers.get(pid)
    if prov is not None and prov.api_key_env:
        return prov.api_key_env[0]
    return name


@cli.group()
def keys() -> None:
    """Manage API keys stored in the local settings file."""


@keys.command("set")
@click.argument("name")
@click.argument("value", required=False)
@click.pass_context
def keys_set(ctx: click.Context, name: str, value: str | None) -> None:
    """Store VALUE under NAME (a variable name or a provider id)."""
    from pagewright.core.log import mask_secret

    config = _setup(ctx)
    if value is None:
        value = click.prompt(f"Value for {name}", hide_input=True)
    key = _key_name(config, name)
    try:
        _settings(config).set(key, value)
    except (ConfigError, OSError) as e:
        _error(str(e))
    click.echo(f"Stored {key} = {mask_secret(value)}")


@keys.command("remove")
@click.argument("name")
@click.pass_context
def keys_remove(ctx: click.Context, name: str) -> None:
    """Delete the stored value for NAME."""
    config = _setup(ctx)
    key = _key_name(config, name)
    try:
        removed = _settings(config).remove(key)
    except (ConfigError, OSError) as e:
        _error(str(e))
        return  # unreachable
    if not removed:
        _error(f"No stored value for {key}")
    click.echo(f"Removed {key}")


@keys.command("list")
@click.pass_context
def keys_list(ctx: click.Context) -> None:
    """Show stored keys with masked values."""
    from pagewright.cli.display import ChatDisplay
    from pagewright.core.log import mask_secret

    config = _setup(ctx)
    try:
        items = [(k, mask_secret(v)) for k, v in _settings(config).items()]
    except ConfigError as e:
        _error(str(e))
        return  # unreachable
    ChatDisplay().keys_table(items)


# ── serve ────────────────────────────────────────────────────────


@cli.command()
@click.option("--host", default=None, help="Host to bind to (overrides config).")
@click.option(
    "--port", type=int, default=None, help="Port to bind to (overrides config)."
)
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the AI relay server."""
    import uvicorn

    from pagewright.api.app import create_app

    config = _setup(ctx)

    effective_host = host or config.relay.host
    effective_port = port or config.relay.port
    click.echo(
        f"Relay: http://{effective_host}:{effective_port}{config.relay.base_path}"
    )

    app = create_app(config)
    uvicorn.run(app, host=effective_host, port=effective_port)
