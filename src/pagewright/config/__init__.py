"""Configuration loading, validation and credential lookup."""

from pagewright.config.credentials import (
    CredentialResolver,
    EnvironmentLookup,
    LocalSettings,
    LocalSettingsLookup,
    MappingLookup,
    default_resolver,
)
from pagewright.config.loader import load_config
from pagewright.config.schema import (
    GeneralConfig,
    HealthSettings,
    LoggingConfig,
    PagewrightConfig,
    ProviderConfig,
    RelayConfig,
    RetrySettings,
)

__all__ = [
    "CredentialResolver",
    "EnvironmentLookup",
    "GeneralConfig",
    "HealthSettings",
    "LocalSettings",
    "LocalSettingsLookup",
    "LoggingConfig",
    "MappingLookup",
    "PagewrightConfig",
    "ProviderConfig",
    "RelayConfig",
    "RetrySettings",
    "default_resolver",
    "load_config",
]
