"""Core types, errors, and shared utilities."""

from pagewright.core.abort import abortable_sleep, iterate_abortable, run_abortable
from pagewright.core.errors import (
    ConfigError,
    ContentPolicyError,
    InvalidRequestError,
    ModelNotFoundError,
    NoProviderAvailableError,
    PagewrightError,
    ProviderAuthError,
    ProviderError,
    ProviderNetworkError,
    ProviderOverloadedError,
    ProviderQuotaError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    RequestAbortedError,
    UnknownProviderError,
    error_from_status,
    user_facing_message,
)
from pagewright.core.retry import RetryConfig, is_retryable, retry_with_backoff

__all__ = [
    "ConfigError",
    "ContentPolicyError",
    "InvalidRequestError",
    "ModelNotFoundError",
    "NoProviderAvailableError",
    "PagewrightError",
    "ProviderAuthError",
    "ProviderError",
    "ProviderNetworkError",
    "ProviderOverloadedError",
    "ProviderQuotaError",
    "ProviderRateLimitError",
    "ProviderTimeoutError",
    "RequestAbortedError",
    "RetryConfig",
    "UnknownProviderError",
    "abortable_sleep",
    "error_from_status",
    "is_retryable",
    "iterate_abortable",
    "retry_with_backoff",
    "run_abortable",
    "user_facing_message",
]
