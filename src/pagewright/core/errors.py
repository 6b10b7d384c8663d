"""Exception hierarchy for pagewright.

Every module imports from here. The hierarchy is:

    PagewrightError
    ├── ProviderError(provider_id, status, label)
    │   ├── ProviderAuthError
    │   ├── ProviderRateLimitError(retry_after)
    │   ├── ProviderQuotaError
    │   ├── ContentPolicyError
    │   ├── ProviderOverloadedError
    │   ├── ProviderNetworkError
    │   │   └── ProviderTimeoutError
    │   ├── InvalidRequestError
    │   │   └── ModelNotFoundError
    │   └── UnknownProviderError
    ├── RequestAbortedError
    ├── NoProviderAvailableError
    └── ConfigError
"""

from __future__ import annotations

import re


class PagewrightError(Exception):
    """Base exception for all pagewright errors."""


# ─── Provider Errors ──────────────────────────────────────────


class ProviderError(PagewrightError):
    """Base for provider-related errors.

    Carries the provider id, the HTTP-like status of the failed call (when
    there was one) and a short label used to build a human-readable hint.
    """

    hint_template: str | None = None

    def __init__(
        self,
        provider_id: str,
        message: str,
        *,
        status: int | None = None,
        label: str | None = None,
    ) -> None:
        self.provider_id = provider_id
        self.status = status
        self.label = label or provider_id
        self.detail = message
        super().__init__(f"[{provider_id}] {message}")

    @property
    def hint(self) -> str:
        """Provider-specific hint shown alongside the raw error."""
        if self.hint_template is None:
            return f"{self.label} error: {self.detail}"
        return self.hint_template.format(label=self.label)


class ProviderAuthError(ProviderError):
    """Invalid or missing API key."""

    hint_template = "{label}: Unauthorized. Check your API key."


class ProviderRateLimitError(ProviderError):
    """Rate limit exceeded. Includes retry_after if available."""

    hint_template = "{label}: Rate limit or quota exceeded. Please retry later."

    def __init__(
        self,
        provider_id: str,
        retry_after: float | None = None,
        *,
        message: str = "Rate limited",
        label: str | None = None,
    ) -> None:
        self.retry_after = retry_after
        msg = message
        if retry_after is not None:
            msg += f" (retry after {retry_after}s)"
        super().__init__(provider_id, msg, status=429, label=label)


class ProviderQuotaError(ProviderError):
    """Account quota or billing limit reached. Waiting will not help."""

    hint_template = "{label}: Rate limit or quota exceeded. Please retry later."


class ContentPolicyError(ProviderError):
    """Request or response blocked by the provider's safety filters."""

    hint_template = "{label}: Response blocked by safety filters."


class ProviderOverloadedError(ProviderError):
    """Provider is overloaded or temporarily unavailable (5xx)."""

    hint_template = "{label}: Service temporarily unavailable. Please retry later."


class ProviderNetworkError(ProviderError):
    """Connection to the provider failed."""

    hint_template = "{label}: Network error. Check your connection."


class ProviderTimeoutError(ProviderNetworkError):
    """Model call timed out."""

    hint_template = "{label}: Request timed out. Please retry."


class InvalidRequestError(ProviderError):
    """Malformed request rejected by the provider."""

    hint_template = "{label}: Bad request. Check model name and input format."


class ModelNotFoundError(InvalidRequestError):
    """Requested model not available from this provider."""


class UnknownProviderError(ProviderError):
    """Any provider failure that does not fit a more specific class."""


# ─── Request Errors ───────────────────────────────────────────


class RequestAbortedError(PagewrightError):
    """The caller aborted the request through its abort signal."""

    def __init__(self, message: str = "Request aborted") -> None:
        super().__init__(message)


class NoProviderAvailableError(PagewrightError):
    """No configured provider can serve the request."""

    def __init__(self, message: str = "No AI provider available") -> None:
        super().__init__(message)


# ─── Configuration Errors ─────────────────────────────────────


class ConfigError(PagewrightError):
    """Invalid configuration."""


# ─── Classification ───────────────────────────────────────────

_QUOTA_RE = re.compile(r"quota|billing|insufficient[_ ]quota", re.IGNORECASE)
_SAFETY_RE = re.compile(r"safety|blocked|content[_ ]policy|content[_ ]filter", re.IGNORECASE)


def error_from_status(
    provider_id: str,
    status: int | None,
    message: str,
    *,
    retry_after: float | None = None,
    label: str | None = None,
) -> ProviderError:
    """Map an HTTP status and message to the matching ProviderError."""
    if status in (401, 403):
        return ProviderAuthError(provider_id, message, status=status, label=label)
    if status == 429:
        if _QUOTA_RE.search(message):
            return ProviderQuotaError(provider_id, message, status=status, label=label)
        return ProviderRateLimitError(
            provider_id, retry_after=retry_after, message=message, label=label
        )
    if status in (400, 422):
        if _SAFETY_RE.search(message):
            return ContentPolicyError(provider_id, message, status=status, label=label)
        return InvalidRequestError(provider_id, message, status=status, label=label)
    if status == 404:
        return ModelNotFoundError(provider_id, message, status=status, label=label)
    if status in (408, 504):
        return ProviderTimeoutError(provider_id, message, status=status, label=label)
    if status is not None and status >= 500:
        return ProviderOverloadedError(provider_id, message, status=status, label=label)
    return UnknownProviderError(provider_id, message, status=status, label=label)


def parse_retry_after(raw: str | None) -> float | None:
    """Parse a retry hint in seconds.

    Accepts a Retry-After header value (``"5"``) or a Google ``RetryInfo``
    duration (``"37s"``, ``"1.5s"``). HTTP dates are ignored.
    """
    if raw is None:
        return None
    text = raw.strip().removesuffix("s")
    try:
        return float(text)
    except ValueError:
        return None


# ─── User-facing messages ─────────────────────────────────────

_REMEDIES: list[tuple[type[Exception], str]] = [
    (ProviderAuthError, "Check the API key configured for this provider."),
    (ProviderQuotaError, "Check your plan and billing, or switch to another provider."),
    (ProviderRateLimitError, "Wait a moment and try again."),
    (ContentPolicyError, "Rephrase your request and try again."),
    (ModelNotFoundError, "Pick a model this provider offers."),
    (InvalidRequestError, "Try a shorter message or reduce the content size."),
    (ProviderNetworkError, "Check your network connection and try again."),
    (ProviderOverloadedError, "The service is busy. Wait a moment and try again."),
    (NoProviderAvailableError, "Add an API key for at least one provider."),
    (ConfigError, "Fix the configuration file and try again."),
]


def suggest_remedy(error: Exception) -> str:
    """Return a suggested remedy for a terminal error."""
    for error_type, remedy in _REMEDIES:
        if isinstance(error, error_type):
            return remedy
    return "Please try again."


def user_facing_message(error: Exception) -> str:
    """Build the message shown to the user for a terminal error."""
    if isinstance(error, RequestAbortedError):
        return "Request cancelled."
    if isinstance(error, ProviderError):
        summary = error.hint
    else:
        summary = str(error) or "Request failed"
    return f"AI Error: {summary} {suggest_remedy(error)}"
