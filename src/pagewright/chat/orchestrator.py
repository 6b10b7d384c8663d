"""Turns a user's chat message into a provider request and records the reply."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pagewright.chat.store import ChatMessage
from pagewright.chat.templates import INTRO_MESSAGE, OFFLINE_SITE_HTML, looks_like_html_document
from pagewright.core.errors import RequestAbortedError, user_facing_message
from pagewright.providers.base import DEFAULT_OPTIONS, GenerateOptions, Message

if TYPE_CHECKING:
    from collections.abc import Callable

    from pagewright.chat.store import SiteStore
    from pagewright.providers.manager import ProviderManager

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ChatReply:
    """Outcome of one submitted chat turn."""

    text: str = ""
    error: str | None = None
    provider_id: str | None = None
    offline: bool = False
    site_updated: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class ChatOrchestrator:
    """Chat turn handling on top of a :class:`ProviderManager`.

    One request is in flight at a time; :meth:`cancel` aborts it.
    """

    intro_message = INTRO_MESSAGE

    def __init__(
        self,
        manager: ProviderManager,
        store: SiteStore,
        *,
        stream: bool = True,
        default_options: GenerateOptions | None = None,
    ) -> None:
        self._manager = manager
        self._store = store
        self._stream = stream
        self._options = default_options or DEFAULT_OPTIONS
        self._signal: asyncio.Event | None = None

    @property
    def store(self) -> SiteStore:
        return self._store

    @property
    def busy(self) -> bool:
        return self._signal is not None

    def is_ready(self) -> bool:
        """True when at least one provider can take a request."""
        return bool(self._manager.get_available_providers())

    def cancel(self) -> bool:
        """Abort the in-flight request. False if nothing is running."""
        if self._signal is None:
            return False
        self._signal.set()
        return True

    def _record_offline(self) -> ChatReply:
        self._store.upsert_streaming_assistant(OFFLINE_SITE_HTML)
        self._store.finalize_streaming_assistant()
        self._store.set_content(OFFLINE_SITE_HTML)
        return ChatReply(text=OFFLINE_SITE_HTML, offline=True, site_updated=True)

    async def _stream_reply(
        self,
        messages: list[Message],
        options: GenerateOptions,
        on_text: Callable[[str], None] | None,
    ) -> str:
        combined = ""
        async for chunk in self._manager.generate_stream(messages, options):
            if not chunk.text:
                continue
            combined += chunk.text
            self._store.upsert_streaming_assistant(combined)
            if on_text is not None:
                on_text(chunk.text)
        return combined

    async def submit(
        self,
        text: str,
        options: GenerateOptions | None = None,
        *,
        on_text: Callable[[str], None] | None = None,
    ) -> ChatReply:
        """Send one user turn and record the assistant's reply.

        Args:
            text: The user's message.
            options: Overrides for this turn; defaults to the orchestrator's.
            on_text: Called with each streamed text delta.

        Returns:
            A ChatReply; failures are reported in ``error``, never raised.
        """
        text = text.strip()
        if not text:
            return ChatReply(error="No message text received")
        if self.busy:
            return ChatReply(error="A request is already in progress")

        history = [Message(role=role, content=content) for role, content in self._store.history()]
        outbound = [*history, Message(role="user", content=text)]
        self._store.append_message(
            ChatMessage(id=f"user-{uuid.uuid4().hex}", role="user", content=text)
        )

        if not self.is_ready():
            logger.info("No provider available; answering with the offline site")
            return self._record_offline()

        signal = asyncio.Event()
        self._signal = signal
        opts = dataclasses.replace(options or self._options, signal=signal)
        provider_id: str | None = None
        try:
            combined = ""
            if self._stream:
                combined = await self._stream_reply(outbound, opts, on_text)
            if not combined:
                result = await self._manager.generate(outbound, opts)
                combined = result.text
                provider_id = result.provider_id or None
                if combined:
                    self._store.upsert_streaming_assistant(combined)
                    if on_text is not None:
                        on_text(combined)
        except RequestAbortedError as e:
            self._store.discard_streaming_assistant()
            return ChatReply(error=user_facing_message(e))
        except Exception as e:
            logger.error("AI generation failed: %s", e)
            self._store.discard_streaming_assistant()
            return ChatReply(error=user_facing_message(e))
        finally:
            self._signal = None

        if not combined:
            self._store.discard_streaming_assistant()
            return ChatReply(error="No response from AI service")

        self._store.finalize_streaming_assistant(combined)
        site_updated = looks_like_html_document(combined)
        if site_updated:
            logger.info("Website detected; updating the preview")
            self._store.set_content(combined)
        return ChatReply(text=combined, provider_id=provider_id, site_updated=site_updated)
