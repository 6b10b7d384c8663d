"""Site state: chat transcript plus the live preview content.

The store is plain in-memory state with explicit JSON persistence. Only
the most recent assistant message may be rewritten while a response
streams in; it carries the placeholder id ``streaming`` until finalised.
"""

from __future__ import annotations

import logging
import time
import uuid
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from pagewright.core.errors import ConfigError
from pagewright.core.files import write_text_atomic

STREAMING_ID = "streaming"

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ChatMessage(BaseModel):
    """A single persisted chat turn."""

    id: str
    role: Literal["user", "assistant"]
    content: str
    timestamp: int = Field(default_factory=_now_ms)


class _Snapshot(BaseModel):
    content: str = ""
    messages: list[ChatMessage] = Field(default_factory=list)


class SiteState(_Snapshot):
    """Persisted form of a :class:`SiteStore`."""

    last_updated_at: int | None = None


class SiteStore:
    """Conversation and preview state for one site."""

    def __init__(self) -> None:
        self._content = ""
        self._messages: list[ChatMessage] = []
        self._last_updated_at: int | None = None
        self._past: list[_Snapshot] = []
        self._future: list[_Snapshot] = []

    # ── Accessors ────────────────────────────────────────────────

    @property
    def content(self) -> str:
        return self._content

    @property
    def messages(self) -> list[ChatMessage]:
        return [m.model_copy() for m in self._messages]

    @property
    def last_updated_at(self) -> int | None:
        return self._last_updated_at

    def history(self) -> list[tuple[str, str]]:
        """(role, content) pairs of non-empty turns, oldest first."""
        return [
            (m.role, m.content)
            for m in self._messages
            if m.content.strip() and m.id != STREAMING_ID
        ]

    def _touch(self) -> None:
        self._last_updated_at = _now_ms()

    # ── Mutations ────────────────────────────────────────────────

    def set_content(self, content: str) -> None:
        self._content = content
        self._touch()

    def clear_messages(self) -> None:
        self._messages = []
        self._touch()

    def append_message(self, message: ChatMessage) -> None:
        self._messages.append(message)
        self._touch()

    def _last_assistant_index(self, *, streaming_only: bool = False) -> int | None:
        for i in range(len(self._messages) - 1, -1, -1):
            m = self._messages[i]
            if m.role != "assistant":
                continue
            if streaming_only and m.id != STREAMING_ID:
                continue
            return i
        return None

    def replace_last_assistant_message(self, content: str) -> bool:
        """Rewrite the newest assistant message. False if there is none."""
        i = self._last_assistant_index()
        if i is None:
            return False
        self._messages[i] = self._messages[i].model_copy(update={"content": content})
        self._touch()
        return True

    def upsert_streaming_assistant(self, content: str) -> None:
        """Create or rewrite the streaming placeholder message."""
        i = self._last_assistant_index(streaming_only=True)
        if i is None:
            self._messages.append(
                ChatMessage(id=STREAMING_ID, role="assistant", content=content)
            )
        else:
            self._messages[i] = self._messages[i].model_copy(update={"content": content})
        self._touch()

    def finalize_streaming_assistant(self, content: str | None = None) -> ChatMessage | None:
        """Give the placeholder a stable id, optionally setting final content."""
        i = self._last_assistant_index(streaming_only=True)
        if i is None:
            return None
        update: dict[str, object] = {"id": f"assistant-{uuid.uuid4().hex}"}
        if content is not None:
            update["content"] = content
        self._messages[i] = self._messages[i].model_copy(update=update)
        self._touch()
        return self._messages[i].model_copy()

    def discard_streaming_assistant(self) -> bool:
        i = self._last_assistant_index(streaming_only=True)
        if i is None:
            return False
        del self._messages[i]
        self._touch()
        return True

    # ── Undo / redo ──────────────────────────────────────────────

    def _snapshot(self) -> _Snapshot:
        return _Snapshot(content=self._content, messages=self.messages)

    def _restore(self, snapshot: _Snapshot) -> None:
        self._content = snapshot.content
        self._messages = [m.model_copy() for m in snapshot.messages]
        self._touch()

    def commit(self) -> None:
        """Push the current state onto the undo stack and clear redo."""
        self._past.append(self._snapshot())
        self._future.clear()
        self._touch()

    def undo(self) -> bool:
        if not self._past:
            return False
        self._future.insert(0, self._snapshot())
        self._restore(self._past.pop())
        return True

    def redo(self) -> bool:
        if not self._future:
            return False
        self._past.append(self._snapshot())
        self._restore(self._future.pop(0))
        return True

    def clear(self) -> None:
        self._content = ""
        self._messages = []
        self._past.clear()
        self._future.clear()
        self._touch()

    # ── Persistence ──────────────────────────────────────────────

    def to_state(self) -> SiteState:
        return SiteState(
            content=self._content,
            messages=self.messages,
            last_updated_at=self._last_updated_at,
        )

    def save(self, path: str | Path) -> None:
        """Write content and messages to *path* atomically."""
        target = Path(path).expanduser()
        write_text_atomic(target, self.to_state().model_dump_json(indent=2))
        logger.debug("Saved site state to %s", target)

    @classmethod
    def load(cls, path: str | Path) -> SiteStore:
        """Load a store from *path*; a missing file gives an empty store.

        Raises:
            ConfigError: If the file is unreadable or malformed.
        """
        source = Path(path).expanduser()
        store = cls()
        if not source.is_file():
            return store
        try:
            state = SiteState.model_validate_json(source.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            msg = f"Cannot load site state from {source}: {e}"
            raise ConfigError(msg) from e
        store._content = state.content
        store._messages = list(state.messages)
        store._last_updated_at = state.last_updated_at
        return store
