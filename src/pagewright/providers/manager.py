"""Provider manager: registry, selection, single-level fallback, health."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import TYPE_CHECKING

from pagewright.core.abort import raise_if_aborted
from pagewright.core.errors import ConfigError, NoProviderAvailableError, RequestAbortedError
from pagewright.providers.base import (
    DEFAULT_OPTIONS,
    ProviderKind,
    canonical_provider_id,
)
from pagewright.providers.factory import create_provider, retry_config_from
from pagewright.providers.health import HealthState, HealthTracker

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Iterable

    from pagewright.config.credentials import CredentialResolver
    from pagewright.config.schema import PagewrightConfig
    from pagewright.core.retry import RetryConfig
    from pagewright.providers.base import (
        GenerateOptions,
        GenerateResult,
        Message,
        StreamChunk,
        TextGenerationProvider,
    )
    from pagewright.providers.health import ProviderHealthStatus

    ProviderFactory = Callable[
        [ProviderKind, PagewrightConfig, CredentialResolver, RetryConfig | None],
        TextGenerationProvider,
    ]

logger = logging.getLogger(__name__)

_STATE_RANK = {
    HealthState.HEALTHY: 0,
    HealthState.DEGRADED: 1,
    HealthState.UNKNOWN: 2,
    HealthState.UNHEALTHY: 3,
}


class ProviderManager:
    """Owns provider adapters and their health trackers.

    Adapters are built lazily on first use and cached for the manager's
    lifetime. A failed construction is not cached, so a key added later is
    picked up on the next lookup.

    Args:
        config: Loaded configuration (priority, defaults, health policy).
        resolver: Credential lookup chain handed to the factory.
        factory: Builds an adapter for a provider kind.
        exclude: Provider ids this manager never routes to.
    """

    def __init__(
        self,
        config: PagewrightConfig,
        resolver: CredentialResolver,
        *,
        factory: ProviderFactory = create_provider,
        exclude: Iterable[str] = (),
    ) -> None:
        self._config = config
        self._resolver = resolver
        self._factory = factory
        self._exclude = {canonical_provider_id(p) for p in exclude}
        self._retry = retry_config_from(config)
        self._providers: dict[str, TextGenerationProvider] = {}
        self._trackers: dict[str, HealthTracker] = {}

    # ── Registry ─────────────────────────────────────────────────

    def _new_tracker(self, provider: TextGenerationProvider) -> HealthTracker:
        h = self._config.health
        return HealthTracker(
            provider,
            unhealthy_threshold=h.unhealthy_threshold,
            max_history=h.max_history,
            probe_timeout=h.probe_timeout,
            probe_prompt=h.probe_prompt,
        )

    def register(self, provider: TextGenerationProvider) -> None:
        """Add a pre-built provider, replacing any cached one with the same id."""
        pid = canonical_provider_id(provider.provider_id)
        self._providers[pid] = provider
        self._trackers[pid] = self._new_tracker(provider)

    def get_provider(self, provider_id: str) -> TextGenerationProvider:
        """Return the adapter for *provider_id*, building it on first use.

        Raises:
            ConfigError: If the id is unknown, excluded or disabled.
            ProviderAuthError: If the provider has no credential.
        """
        pid = canonical_provider_id(provider_id)
        if pid in self._exclude:
            msg = f"Provider {pid} is not routable here"
            raise ConfigError(msg)
        cached = self._providers.get(pid)
        if cached is not None:
            return cached

        try:
            kind = ProviderKind(pid)
        except ValueError:
            msg = f"Unknown provider: {provider_id}"
            raise ConfigError(msg) from None
        if not self._is_enabled(pid):
            msg = f"Provider {pid} is disabled"
            raise ConfigError(msg)

        provider = self._factory(kind, self._config, self._resolver, self._retry)
        self._providers[pid] = provider
        self._trackers[pid] = self._new_tracker(provider)
        logger.debug("Created provider %s", pid)
        return provider

    def get_health_tracker(self, provider_id: str) -> HealthTracker | None:
        return self._trackers.get(canonical_provider_id(provider_id))

    def health_statuses(self) -> dict[str, ProviderHealthStatus]:
        """Current status of every provider built so far."""
        return {pid: tracker.status for pid, tracker in self._trackers.items()}

    # ── Selection ────────────────────────────────────────────────

    def _is_enabled(self, pid: str) -> bool:
        prov = self._config.providers.get(pid)
        return prov is None or prov.enabled

    def _candidate_ids(self) -> list[str]:
        """Known provider ids in priority order."""
        ordered: list[str] = []
        for pid in self._config.general.priority:
            ordered.append(canonical_provider_id(pid))
        ordered.extend(self._providers)
        ordered.extend(kind.value for kind in ProviderKind)
        seen: set[str] = set()
        result: list[str] = []
        for pid in ordered:
            if pid in seen or pid in self._exclude:
                continue
            seen.add(pid)
            result.append(pid)
        return result

    def get_available_providers(self) -> list[str]:
        """Ids of providers that can be built and report available."""
        available: list[str] = []
        for pid in self._candidate_ids():
            if not self._is_enabled(pid):
                continue
            try:
                provider = self.get_provider(pid)
            except Exception as e:
                logger.debug("Provider %s unavailable: %s", pid, e)
                continue
            if provider.is_available():
                available.append(pid)
        return available

    def get_healthiest_provider(self) -> str | None:
        """Best available provider by health, or None if none is available.

        Ranked by state (healthy, degraded, unknown, unhealthy), then fewest
        consecutive failures, then most recent success, then lowest
        latency, then priority order.
        """
        available = self.get_available_providers()
        if not available:
            return None

        def rank(item: tuple[int, str]) -> tuple[int, int, float, float, int]:
            index, pid = item
            status = self._trackers[pid].status
            last_success = (
                status.last_success_at.timestamp()
                if status.last_success_at
                else float("-inf")
            )
            latency = (
                status.response_time_ms
                if status.response_time_ms is not None
                else float("inf")
            )
            return (
                _STATE_RANK[status.state],
                status.consecutive_failures,
                -last_success,
                latency,
                index,
            )

        return min(enumerate(available), key=rank)[1]

    def _primary_id(self, options: GenerateOptions) -> str:
        if options.provider:
            return canonical_provider_id(options.provider)
        default = self._config.general.default_provider
        if default and canonical_provider_id(default) not in self._exclude:
            return canonical_provider_id(default)
        available = self.get_available_providers()
        if not available:
            raise NoProviderAvailableError()
        return available[0]

    def _fallback_id(self, failed: str) -> str | None:
        """First other available provider, preferring ones not unhealthy."""
        others = [pid for pid in self.get_available_providers() if pid != failed]
        if not others:
            return None
        for pid in others:
            if self._trackers[pid].status.state is not HealthState.UNHEALTHY:
                return pid
        return others[0]

    # ── Calls ────────────────────────────────────────────────────

    async def _generate_with(
        self, pid: str, messages: list[Message], options: GenerateOptions
    ) -> GenerateResult:
        provider = self.get_provider(pid)
        tracker = self._trackers[pid]
        start = time.monotonic()
        try:
            result = await provider.generate(messages, options)
        except RequestAbortedError:
            raise
        except Exception as e:
            tracker.record_failure(e, (time.monotonic() - start) * 1000)
            raise
        tracker.record_success((time.monotonic() - start) * 1000)
        return result

    async def _stream_with(
        self, pid: str, messages: list[Message], options: GenerateOptions
    ) -> AsyncIterator[StreamChunk]:
        provider = self.get_provider(pid)
        tracker = self._trackers[pid]
        start = time.monotonic()
        try:
            async for chunk in provider.generate_stream(messages, options):
                yield chunk
        except RequestAbortedError:
            raise
        except Exception as e:
            tracker.record_failure(e, (time.monotonic() - start) * 1000)
            raise
        tracker.record_success((time.monotonic() - start) * 1000)

    def _fallback_options(self, options: GenerateOptions, pid: str) -> GenerateOptions:
        # A model name only makes sense for the provider it was chosen for
        return dataclasses.replace(options, provider=pid, model=None)

    async def generate(
        self,
        messages: list[Message],
        options: GenerateOptions | None = None,
    ) -> GenerateResult:
        """Generate with the selected provider, falling back once on failure.

        Raises:
            NoProviderAvailableError: If nothing can serve the request.
            RequestAbortedError: If ``options.signal`` fires.
            ProviderError: The fallback's error, or the primary's when no
                fallback exists.
        """
        opts = options or DEFAULT_OPTIONS
        primary = self._primary_id(opts)
        try:
            return await self._generate_with(primary, messages, opts)
        except RequestAbortedError:
            raise
        except Exception as e:
            raise_if_aborted(opts.signal)
            fallback = self._fallback_id(primary)
            if fallback is None:
                raise
            logger.warning(
                "Provider %s failed (%s); falling back to %s", primary, e, fallback
            )
        return await self._generate_with(
            fallback, messages, self._fallback_options(opts, fallback)
        )

    async def generate_stream(
        self,
        messages: list[Message],
        options: GenerateOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream from the selected provider.

        Falls back once, and only if the primary failed before yielding
        anything; after partial output the error propagates in place.
        """
        opts = options or DEFAULT_OPTIONS
        primary = self._primary_id(opts)
        emitted = False
        try:
            async for chunk in self._stream_with(primary, messages, opts):
                emitted = True
                yield chunk
            return
        except RequestAbortedError:
            raise
        except Exception as e:
            if emitted:
                raise
            raise_if_aborted(opts.signal)
            fallback = self._fallback_id(primary)
            if fallback is None:
                raise
            logger.warning(
                "Provider %s stream failed (%s); falling back to %s",
                primary,
                e,
                fallback,
            )
        async for chunk in self._stream_with(
            fallback, messages, self._fallback_options(opts, fallback)
        ):
            yield chunk

    async def generate_with_failover(
        self,
        messages: list[Message],
        options: GenerateOptions | None = None,
    ) -> GenerateResult:
        """Generate against the provider that is healthiest right now."""
        opts = options or DEFAULT_OPTIONS
        pid = self.get_healthiest_provider()
        if pid is None:
            raise NoProviderAvailableError()
        return await self.generate(messages, dataclasses.replace(opts, provider=pid))

    async def check_all_health(self) -> dict[str, ProviderHealthStatus]:
        """Probe every available provider concurrently."""
        pids = self.get_available_providers()
        statuses = await asyncio.gather(
            *(self._trackers[pid].check_health() for pid in pids)
        )
        return dict(zip(pids, statuses, strict=True))
