"""Configuration loading: TOML files, env var overrides, merge logic.

Files are merged in this order (later wins):
    1. Built-in defaults (Pydantic model defaults, every provider present)
    2. ``$XDG_CONFIG_HOME/pagewright/config.toml``
    3. ``./pagewright.toml``
    4. The file named by ``$PAGEWRIGHT_CONFIG``
    5. The ``path`` argument
    6. Programmatic ``overrides``

``PAGEWRIGHT_PROXY_BASE_URL`` fills the relay base URL when the files leave
it unset. API keys are not resolved here; see
:mod:`pagewright.config.credentials`.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from pagewright.core.errors import ConfigError

from .schema import PagewrightConfig, _default_providers

CONFIG_ENV = "PAGEWRIGHT_CONFIG"
PROXY_BASE_URL_ENV = "PAGEWRIGHT_PROXY_BASE_URL"


def _user_config_path() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    root = Path(xdg) if xdg else Path.home() / ".config"
    return root / "pagewright" / "config.toml"


def _config_files(explicit: str | Path | None) -> list[Path]:
    """Files to merge, lowest priority first.

    The implicit locations are skipped when absent; a missing file named
    by the environment or the caller is an error.
    """
    files = [p for p in (_user_config_path(), Path.cwd() / "pagewright.toml") if p.is_file()]

    named: list[tuple[str, str | Path]] = []
    if env_path := os.environ.get(CONFIG_ENV):
        named.append((f"{CONFIG_ENV} points to non-existent file", env_path))
    if explicit is not None:
        named.append(("Config file not found", explicit))

    for label, raw in named:
        candidate = Path(raw).expanduser()
        if not candidate.is_file():
            raise ConfigError(f"{label}: {raw}")
        files.append(candidate)
    return files


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e


def _merge_into(target: dict[str, Any], layer: dict[str, Any]) -> None:
    """Merge ``layer`` into ``target`` in place; tables merge, values replace."""
    for key, value in layer.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _merge_into(current, value)
        else:
            target[key] = value


def load_config(
    path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> PagewrightConfig:
    """Load and validate configuration.

    Args:
        path: Explicit config file path (highest file priority).
        overrides: Dict of overrides merged last (highest overall priority).

    Returns:
        Validated PagewrightConfig instance.

    Raises:
        ConfigError: On invalid TOML, missing files, or validation failure.
    """
    # Seed every provider so a file that configures one keeps the others
    data: dict[str, Any] = {
        "providers": {name: cfg.model_dump() for name, cfg in _default_providers().items()}
    }
    for config_file in _config_files(path):
        _merge_into(data, _read_toml(config_file))
    if overrides:
        _merge_into(data, overrides)

    try:
        config = PagewrightConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e

    base_url = os.environ.get(PROXY_BASE_URL_ENV)
    relay = config.providers.get("proxy")
    if base_url and relay is not None and not relay.base_url:
        relay.base_url = base_url
    return config
