"""Credential lookup: ordered strategies, first present value wins.

Providers look for their key in explicit configuration first, then in the
process environment, then in the locally persisted settings file written by
``pagewright keys set``.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pagewright.core.errors import ConfigError
from pagewright.core.files import write_text_atomic

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

    from pagewright.config.schema import PagewrightConfig

logger = logging.getLogger(__name__)


class LocalSettings:
    """JSON file of persisted key/value settings.

    Plays the part a browser's local storage plays for a web client: values
    survive restarts and are scoped to the current user.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()
        self._data: dict[str, str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if self._data is None:
            if not self._path.is_file():
                self._data = {}
            else:
                try:
                    raw = json.loads(self._path.read_text(encoding="utf-8"))
                except (OSError, json.JSONDecodeError) as e:
                    msg = f"Cannot read settings file {self._path}: {e}"
                    raise ConfigError(msg) from e
                if not isinstance(raw, dict):
                    msg = f"Settings file {self._path} must contain a JSON object"
                    raise ConfigError(msg)
                self._data = {str(k): str(v) for k, v in raw.items()}
        return self._data

    def _save(self) -> None:
        write_text_atomic(self._path, json.dumps(self._load(), indent=2, sort_keys=True))

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        self._load()[key] = value
        self._save()

    def remove(self, key: str) -> bool:
        """Delete *key*. Returns False if it was not stored."""
        data = self._load()
        if key not in data:
            return False
        del data[key]
        self._save()
        return True

    def items(self) -> Iterator[tuple[str, str]]:
        return iter(sorted(self._load().items()))


@runtime_checkable
class CredentialLookup(Protocol):
    """A single credential source."""

    def lookup(self, name: str) -> str | None: ...


class EnvironmentLookup:
    """Reads from the process environment (or an injected mapping)."""

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ

    def lookup(self, name: str) -> str | None:
        return self._environ.get(name)


class LocalSettingsLookup:
    """Reads from the persisted local settings file."""

    def __init__(self, settings: LocalSettings) -> None:
        self._settings = settings

    def lookup(self, name: str) -> str | None:
        return self._settings.get(name)


class MappingLookup:
    """Reads from a fixed mapping. Used for per-request overrides and tests."""

    def __init__(self, values: Mapping[str, str]) -> None:
        self._values = dict(values)

    def lookup(self, name: str) -> str | None:
        return self._values.get(name)


class CredentialResolver:
    """Evaluates lookup strategies in order; the first non-empty value wins."""

    def __init__(self, lookups: Sequence[CredentialLookup]) -> None:
        self._lookups = list(lookups)

    def resolve(self, names: Sequence[str]) -> str | None:
        for source in self._lookups:
            for name in names:
                value = source.lookup(name)
                if value:
                    logger.debug(
                        "Credential %s found via %s", name, type(source).__name__
                    )
                    return value
        return None


def default_resolver(
    config: PagewrightConfig, environ: Mapping[str, str] | None = None
) -> CredentialResolver:
    """Environment first, then the local settings file named in config."""
    settings = LocalSettings(config.general.settings_path)
    return CredentialResolver(
        [EnvironmentLookup(environ), LocalSettingsLookup(settings)]
    )
