"""Per-provider health tracking.

A tracker classifies its provider from consecutive failures: any success
makes it ``healthy``; failures below the threshold make it ``degraded``;
failures at or above the threshold make it ``unhealthy``. The manager
feeds every real call outcome in; probes are explicit via
:meth:`HealthTracker.check_health`.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pagewright.providers.base import GenerateOptions, Message

if TYPE_CHECKING:
    from pagewright.providers.base import TextGenerationProvider

DEFAULT_PROBE_PROMPT = 'Hello, please respond with "OK" if you can read this message.'

logger = logging.getLogger(__name__)


class HealthState(enum.StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass(slots=True)
class ProviderHealthStatus:
    """Snapshot of a provider's current health."""

    state: HealthState = HealthState.UNKNOWN
    last_checked: datetime = field(default_factory=lambda: datetime.now(UTC))
    consecutive_failures: int = 0
    is_available: bool = False
    response_time_ms: float | None = None
    error_message: str | None = None
    last_success_at: datetime | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "state": self.state.value,
            "lastChecked": self.last_checked.isoformat(),
            "consecutiveFailures": self.consecutive_failures,
            "isAvailable": self.is_available,
            "responseTimeMs": self.response_time_ms,
            "errorMessage": self.error_message,
            "lastSuccessAt": self.last_success_at.isoformat()
            if self.last_success_at
            else None,
        }


@dataclass(frozen=True, slots=True)
class ProviderHealthMetrics:
    """Cumulative counters plus the recent status history."""

    total_checks: int
    successful_checks: int
    failed_checks: int
    average_response_time: float
    uptime_percentage: float
    last_failure_time: datetime | None
    history: list[ProviderHealthStatus]

    def to_dict(self) -> dict[str, object]:
        """Totals only; the history is left out."""
        return {
            "totalChecks": self.total_checks,
            "successfulChecks": self.successful_checks,
            "failedChecks": self.failed_checks,
            "averageResponseTimeMs": round(self.average_response_time, 1),
            "uptimePercentage": round(self.uptime_percentage, 1),
            "lastFailureTime": self.last_failure_time.isoformat()
            if self.last_failure_time
            else None,
        }


class HealthTracker:
    """Tracks one provider's health.

    Args:
        provider: The adapter being tracked (used for probes and availability).
        unhealthy_threshold: Consecutive failures at which state is ``unhealthy``.
        max_history: Number of status snapshots kept; oldest are evicted.
        probe_timeout: Seconds a probe may take before it counts as a failure.
        probe_prompt: Prompt sent by :meth:`check_health`.
    """

    def __init__(
        self,
        provider: TextGenerationProvider,
        *,
        unhealthy_threshold: int = 3,
        max_history: int = 100,
        probe_timeout: float = 10.0,
        probe_prompt: str = DEFAULT_PROBE_PROMPT,
    ) -> None:
        self._provider = provider
        self._threshold = max(1, unhealthy_threshold)
        self._probe_timeout = probe_timeout
        self._probe_prompt = probe_prompt
        self._status = ProviderHealthStatus(is_available=provider.is_available())
        self._history: deque[ProviderHealthStatus] = deque(maxlen=max(1, max_history))
        self._total = 0
        self._successes = 0
        self._latency_sum = 0.0
        self._latency_count = 0
        self._last_failure: datetime | None = None

    @property
    def provider_id(self) -> str:
        return self._provider.provider_id

    @property
    def status(self) -> ProviderHealthStatus:
        """A copy of the current status."""
        return dataclasses.replace(self._status)

    def _classify(self, failures: int) -> HealthState:
        if failures == 0:
            return HealthState.HEALTHY
        if failures >= self._threshold:
            return HealthState.UNHEALTHY
        return HealthState.DEGRADED

    def _observe(self, latency_ms: float | None) -> None:
        self._total += 1
        if latency_ms is not None:
            self._latency_sum += latency_ms
            self._latency_count += 1
        self._history.append(dataclasses.replace(self._status))

    def record_success(self, latency_ms: float | None = None) -> ProviderHealthStatus:
        """Record a successful call: failures reset, state ``healthy``."""
        now = datetime.now(UTC)
        self._status = ProviderHealthStatus(
            state=HealthState.HEALTHY,
            last_checked=now,
            consecutive_failures=0,
            is_available=True,
            response_time_ms=latency_ms,
            error_message=None,
            last_success_at=now,
        )
        self._successes += 1
        self._observe(latency_ms)
        return self.status

    def record_failure(
        self,
        error: BaseException | str,
        latency_ms: float | None = None,
        *,
        is_available: bool | None = None,
    ) -> ProviderHealthStatus:
        """Record a failed call and reclassify."""
        now = datetime.now(UTC)
        failures = self._status.consecutive_failures + 1
        self._status = ProviderHealthStatus(
            state=self._classify(failures),
            last_checked=now,
            consecutive_failures=failures,
            is_available=self._provider.is_available()
            if is_available is None
            else is_available,
            response_time_ms=latency_ms,
            error_message=str(error) or type(error).__name__,
            last_success_at=self._status.last_success_at,
        )
        self._last_failure = now
        self._observe(latency_ms)
        if self._status.state is HealthState.UNHEALTHY:
            logger.warning(
                "Provider %s unhealthy after %d consecutive failures: %s",
                self.provider_id,
                failures,
                self._status.error_message,
            )
        return self.status

    async def check_health(self) -> ProviderHealthStatus:
        """Send a small probe request and classify the outcome."""
        if not self._provider.is_available():
            return self.record_failure(
                "Provider not available: API key not configured", is_available=False
            )

        messages = [Message(role="user", content=self._probe_prompt)]
        options = GenerateOptions(temperature=0.1, max_tokens=16)
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(
                self._provider.generate(messages, options), timeout=self._probe_timeout
            )
        except TimeoutError:
            elapsed = (time.monotonic() - start) * 1000
            return self.record_failure("Health check timeout", elapsed)
        except Exception as e:
            elapsed = (time.monotonic() - start) * 1000
            logger.debug("Health probe for %s failed: %s", self.provider_id, e)
            return self.record_failure(e, elapsed)

        elapsed = (time.monotonic() - start) * 1000
        if not result.text.strip():
            return self.record_failure("Empty response from provider", elapsed)
        return self.record_success(elapsed)

    def get_health_metrics(self) -> ProviderHealthMetrics:
        """Cumulative totals since creation plus the capped history."""
        failed = self._total - self._successes
        return ProviderHealthMetrics(
            total_checks=self._total,
            successful_checks=self._successes,
            failed_checks=failed,
            average_response_time=self._latency_sum / self._latency_count
            if self._latency_count
            else 0.0,
            uptime_percentage=self._successes / self._total * 100 if self._total else 100.0,
            last_failure_time=self._last_failure,
            history=[dataclasses.replace(s) for s in self._history],
        )

    def reset_health(self) -> None:
        """Clear failures and return to ``unknown``. Totals and history stay."""
        self._status = dataclasses.replace(
            self._status,
            state=HealthState.UNKNOWN,
            consecutive_failures=0,
            error_message=None,
        )
