"""Provider construction: one builder per ProviderKind."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pagewright.core.errors import ConfigError, ProviderAuthError
from pagewright.core.retry import RetryConfig
from pagewright.providers.base import ProviderKind

if TYPE_CHECKING:
    from collections.abc import Callable

    from pagewright.config.credentials import CredentialResolver
    from pagewright.config.schema import PagewrightConfig, ProviderConfig
    from pagewright.providers.base import TextGenerationProvider

    Builder = Callable[[ProviderConfig, str | None, RetryConfig], TextGenerationProvider]


def _require_key(kind: ProviderKind, api_key: str | None, prov: ProviderConfig) -> str:
    if not api_key:
        names = ", ".join(prov.api_key_env) or "api_key"
        msg = f"No API key configured (set {names} or run 'pagewright keys set')"
        raise ProviderAuthError(kind.value, msg)
    return api_key


def _build_google(
    prov: ProviderConfig, api_key: str | None, retry: RetryConfig
) -> TextGenerationProvider:
    from pagewright.providers.google import GoogleProvider

    return GoogleProvider(
        _require_key(ProviderKind.GOOGLE, api_key, prov),
        default_model=prov.default_model,
        retry=retry,
    )


def _build_openai(
    prov: ProviderConfig, api_key: str | None, retry: RetryConfig
) -> TextGenerationProvider:
    from pagewright.providers.openai import OpenAIProvider

    return OpenAIProvider(
        _require_key(ProviderKind.OPENAI, api_key, prov),
        base_url=prov.base_url,
        default_model=prov.default_model,
        retry=retry,
    )


def _build_anthropic(
    prov: ProviderConfig, api_key: str | None, retry: RetryConfig
) -> TextGenerationProvider:
    from pagewright.providers.anthropic import AnthropicProvider

    return AnthropicProvider(
        _require_key(ProviderKind.ANTHROPIC, api_key, prov),
        default_model=prov.default_model,
        retry=retry,
    )


def _build_cohere(
    prov: ProviderConfig, api_key: str | None, retry: RetryConfig
) -> TextGenerationProvider:
    from pagewright.providers.cohere import CohereProvider

    return CohereProvider(
        _require_key(ProviderKind.COHERE, api_key, prov),
        base_url=prov.base_url,
        default_model=prov.default_model,
        retry=retry,
    )


def _build_proxy(
    prov: ProviderConfig, api_key: str | None, retry: RetryConfig
) -> TextGenerationProvider:
    from pagewright.providers.proxy import ProxyProvider

    # The relay holds its own credentials; a local key is only forwarded
    if not prov.base_url:
        msg = "Relay provider needs providers.proxy.base_url"
        raise ConfigError(msg)
    return ProxyProvider(prov.base_url, api_key, timeout=prov.timeout, retry=retry)


_BUILDERS: dict[ProviderKind, Builder] = {
    ProviderKind.GOOGLE: _build_google,
    ProviderKind.OPENAI: _build_openai,
    ProviderKind.ANTHROPIC: _build_anthropic,
    ProviderKind.COHERE: _build_cohere,
    ProviderKind.PROXY: _build_proxy,
}


def retry_config_from(config: PagewrightConfig) -> RetryConfig:
    """RetryConfig built from the ``[retry]`` section."""
    r = config.retry
    return RetryConfig(
        max_attempts=r.max_attempts,
        base_delay=r.base_delay,
        max_delay=r.max_delay,
        jitter=r.jitter,
    )


def create_provider(
    kind: ProviderKind | str,
    config: PagewrightConfig,
    resolver: CredentialResolver,
    retry: RetryConfig | None = None,
) -> TextGenerationProvider:
    """Build the adapter for *kind* from config and resolved credentials.

    The credential is the explicit ``api_key`` from config, else the first
    name in ``api_key_env`` that the resolver finds.

    Raises:
        ValueError: If *kind* is not a known provider.
        ProviderAuthError: If a provider that needs a key has none.
        ConfigError: If the relay has no base URL.
    """
    kind = ProviderKind(kind)
    prov = config.provider(kind.value)
    api_key = prov.api_key or resolver.resolve(prov.api_key_env)
    return _BUILDERS[kind](prov, api_key, retry or retry_config_from(config))
