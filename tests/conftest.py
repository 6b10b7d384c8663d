"""Shared test fixtures for pagewright."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from pagewright.config.credentials import CredentialResolver, MappingLookup
from pagewright.config.schema import PagewrightConfig
from pagewright.core.retry import RetryConfig

if TYPE_CHECKING:
    from tests.fixtures.providers import MockProvider as MockProviderType


@pytest.fixture
def config() -> PagewrightConfig:
    """Default configuration with retries that never sleep."""
    cfg = PagewrightConfig()
    cfg.retry.base_delay = 0.0
    cfg.retry.jitter = False
    return cfg


@pytest.fixture
def empty_resolver() -> CredentialResolver:
    """Resolver that finds no credentials at all."""
    return CredentialResolver([MappingLookup({})])


@pytest.fixture
def fast_retry() -> RetryConfig:
    return RetryConfig(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=False)


@pytest.fixture
def make_messages() -> Any:
    """Factory fixture for a short conversation."""
    from pagewright.providers.base import Message

    def _make(*turns: tuple[str, str]) -> list[Message]:
        if not turns:
            turns = (("user", "Build me a site"),)
        return [Message(role=role, content=content) for role, content in turns]

    return _make


@pytest.fixture
def mock_provider() -> MockProviderType:
    """Google-shaped provider with a canned two-chunk reply."""
    from tests.fixtures.providers import MockProvider

    return MockProvider("google", "Hello", chunks=["Hel", "lo"])
