"""Chat turn orchestration and site state."""

from pagewright.chat.orchestrator import ChatOrchestrator, ChatReply
from pagewright.chat.store import ChatMessage, SiteStore
from pagewright.chat.templates import OFFLINE_SITE_HTML, looks_like_html_document

__all__ = [
    "OFFLINE_SITE_HTML",
    "ChatMessage",
    "ChatOrchestrator",
    "ChatReply",
    "SiteStore",
    "looks_like_html_document",
]
