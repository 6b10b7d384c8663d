"""Cohere provider adapter (OpenAI-compatible API)."""

from __future__ import annotations

from pagewright.providers.openai import OpenAIProvider

PROVIDER_ID = "cohere"
COHERE_BASE_URL = "https://api.cohere.ai/compatibility/v1"


class CohereProvider(OpenAIProvider):
    """Provider adapter for Cohere Command models.

    Uses Cohere's OpenAI-compatible chat endpoint, so request building,
    streaming and error mapping are shared with :class:`OpenAIProvider`.
    """

    label = "Cohere"
    default_model = "command-r-plus"
    stream_usage = False

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        **kwargs: object,
    ) -> None:
        kwargs.setdefault("provider_id", PROVIDER_ID)
        super().__init__(
            api_key,
            base_url=base_url or COHERE_BASE_URL,
            **kwargs,  # type: ignore[arg-type]
        )
