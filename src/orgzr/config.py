"""Engine configuration.

Configuration is a small YAML mapping::

    data_dir: ~/Documents/orgzr
    fsync: true
    lock: true
    log_level: INFO

It is looked up, first match wins, at:

1. the path passed to :func:`load_config`;
2. ``$ORGZR_CONFIG``;
3. ``$XDG_CONFIG_HOME/orgzr/config.yaml`` (``~/.config/orgzr/config.yaml``).

A missing default file is not an error: built-in defaults apply.
``$ORGZR_DATA_DIR`` overrides ``data_dir`` wherever it came from.
"""
from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from orgzr.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV = "ORGZR_CONFIG"
DATA_DIR_ENV = "ORGZR_DATA_DIR"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def default_data_dir(env: Mapping[str, str] | None = None) -> Path:
    """Return ``$XDG_DATA_HOME/orgzr`` or ``~/.local/share/orgzr``."""
    env = os.environ if env is None else env
    base = env.get("XDG_DATA_HOME")
    return (Path(base) if base else Path.home() / ".local" / "share") / "orgzr"


def default_config_path(env: Mapping[str, str] | None = None) -> Path:
    """Return ``$XDG_CONFIG_HOME/orgzr/config.yaml`` or its ``~/.config`` fallback."""
    env = os.environ if env is None else env
    base = env.get("XDG_CONFIG_HOME")
    return (Path(base) if base else Path.home() / ".config") / "orgzr" / "config.yaml"


@dataclass(frozen=True)
class EngineConfig:
    """Settings for one engine instance.

    Parameters
    ----------
    data_dir:
        Directory holding the plug namespaces.
    fsync:
        Sync every write to disk.  Shutdown flushes still sync each
        written namespace when this is off.  Tests turn this off.
    lock:
        Take an exclusive lock on ``data_dir`` while the engine runs.
    log_level:
        Level name applied by clients that configure logging.
    """

    data_dir: Path = field(default_factory=default_data_dir)
    fsync: bool = True
    lock: bool = True
    log_level: str = "WARNING"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, source: str = "<mapping>") -> "EngineConfig":
        """Build a config from a parsed YAML mapping.

        Raises
        ------
        ConfigError
            For unknown keys or wrongly typed values.
        """
        known = {"data_dir", "fsync", "lock", "log_level"}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"{source}: unknown config key(s): {', '.join(map(str, unknown))}")

        kwargs: dict[str, Any] = {}
        if "data_dir" in data:
            if not isinstance(data["data_dir"], str) or not data["data_dir"].strip():
                raise ConfigError(f"{source}: data_dir must be a non-empty string")
            kwargs["data_dir"] = Path(data["data_dir"]).expanduser()
        for key in ("fsync", "lock"):
            if key in data:
                if not isinstance(data[key], bool):
                    raise ConfigError(f"{source}: {key} must be true or false")
                kwargs[key] = data[key]
        if "log_level" in data:
            level = str(data["log_level"]).upper()
            if level not in _LOG_LEVELS:
                raise ConfigError(
                    f"{source}: log_level must be one of {', '.join(_LOG_LEVELS)}, "
                    f"not {data['log_level']!r}"
                )
            kwargs["log_level"] = level
        return cls(**kwargs)


def _read_yaml(path: Path) -> Mapping[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {str(path)!r}: {exc}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file {str(path)!r} is not valid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {str(path)!r} must contain a mapping")
    return data


def load_config(path: str | Path | None = None, *, env: Mapping[str, str] | None = None) -> EngineConfig:
    """Load the engine configuration.

    Parameters
    ----------
    path:
        Explicit config file.  Must exist when given.
    env:
        Environment mapping; defaults to ``os.environ``.

    Raises
    ------
    ConfigError
        If an explicitly named file is missing, or any file is malformed.
    """
    env = os.environ if env is None else env
    explicit = path if path is not None else env.get(CONFIG_ENV)

    if explicit:
        config_path = Path(explicit).expanduser()
        if not config_path.is_file():
            raise ConfigError(f"Config file {str(config_path)!r} does not exist")
    else:
        config_path = default_config_path(env)

    if config_path.is_file():
        logger.debug("Loading config from %s", config_path)
        data = _read_yaml(config_path)
        config = EngineConfig.from_mapping(data, source=str(config_path))
        if "data_dir" not in data:
            config = replace(config, data_dir=default_data_dir(env))
    else:
        config = EngineConfig(data_dir=default_data_dir(env))

    override = env.get(DATA_DIR_ENV)
    if override:
        config = replace(config, data_dir=Path(override).expanduser())
    return config
