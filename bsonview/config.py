"""
CLI configuration — TOML file with defaults.

Lookup order for the file:
    1. explicit path (``--config``)
    2. $BSONVIEW_CONFIG
    3. ~/.bsonview/config.toml

Example:
    max_size = 1048576
    validate = true
    log_level = "DEBUG"
    indent = 4
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

try:
    import tomllib
except ImportError:  # Python < 3.11
    import tomli as tomllib

from bsonview import CLI_CONFIG_ENV, CLI_DEFAULT_INDENT, CLI_DEFAULT_MAX_SIZE

log = logging.getLogger(__name__)

DEFAULT_CONFIG: dict[str, Any] = {
    "max_size": CLI_DEFAULT_MAX_SIZE,
    "validate": True,
    "log_level": "INFO",
    "indent": CLI_DEFAULT_INDENT,
}

_DEFAULT_PATH = Path.home() / ".bsonview" / "config.toml"

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def config_path(path: str | Path | None = None) -> Path:
    if path:
        return Path(path)
    env = os.environ.get(CLI_CONFIG_ENV)
    if env:
        return Path(env)
    return _DEFAULT_PATH


def _check(key: str, value: Any) -> Any:
    """Validate one config value. Raises ValueError on a bad value."""
    if key in ("max_size", "indent"):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValueError(f"{key} must be a non-negative integer, got {value!r}")
    elif key == "validate":
        if not isinstance(value, bool):
            raise ValueError(f"validate must be true or false, got {value!r}")
    elif key == "log_level":
        if not isinstance(value, str) or value.upper() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(sorted(_LOG_LEVELS))}")
        value = value.upper()
    return value


def load_config(path: str | Path | None = None) -> dict[str, Any]:
    """Load CLI config from TOML, falling back to defaults.

    A missing file yields the defaults. An unreadable or invalid file is
    logged and ignored, as are unknown keys and bad values.
    """
    config = dict(DEFAULT_CONFIG)

    path = config_path(path)
    if not path.is_file():
        return config

    try:
        with open(path, "rb") as f:
            file_config = tomllib.load(f)
    except (OSError, ValueError) as e:  # TOMLDecodeError, bad UTF-8
        log.warning("Failed to load config from %s: %s", path, e)
        return config

    for key, value in file_config.items():
        if key not in DEFAULT_CONFIG:
            log.warning("Ignoring unknown config key %r in %s", key, path)
            continue
        try:
            config[key] = _check(key, value)
        except ValueError as e:
            log.warning("Ignoring config key %r in %s: %s", key, path, e)

    return config
