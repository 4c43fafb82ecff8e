"""
Configuration loader — reads the provisioning tables into domain models.

Built-in defaults live in ``deployerra/core/data/platforms.yml``. An
operator file is merged on top, then the result is validated against
the Pydantic schema and frozen.

The operator file supplies commands that run as root, so it is only
read from ``--config`` or the system path ``/etc/deployerra.yml``, and
only if no other user could have written it. The working directory is
never searched.
"""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path
from typing import Any

import yaml

from deployerra.core.errors import ConfigError
from deployerra.core.models.config import ProvisionerConfig

logger = logging.getLogger(__name__)

# Operator config read when --config is not given
SYSTEM_CONFIG = Path("/etc/deployerra.yml")

DEFAULTS_FILE = Path(__file__).resolve().parent.parent / "data" / "platforms.yml"

# Sections merged key-wise rather than replaced
_MERGED_SECTIONS = ("runtime", "compose")


def check_trusted(path: Path) -> None:
    """Refuse an operator file that someone else could have tampered with.

    The file must be owned by root or the invoking user and must not be
    writable by group or others.

    Raises:
        ConfigError: The file is untrusted or cannot be inspected.
    """
    try:
        st = path.stat()
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    if st.st_uid not in (0, os.geteuid()):
        raise ConfigError(
            f"Refusing {path}: owned by uid {st.st_uid}, not root or the current user"
        )
    if st.st_mode & (stat.S_IWGRP | stat.S_IWOTH):
        raise ConfigError(
            f"Refusing {path}: writable by group or others "
            f"(mode {stat.filemode(st.st_mode)})"
        )


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data


def merge_config(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge an operator mapping over the defaults.

    Top-level scalars replace, ``runtime``/``compose`` merge key-wise,
    and ``platforms`` merge per platform (each platform entry is merged
    key-wise too, so overriding a single command keeps the rest).
    """
    merged = dict(base)
    for key, value in override.items():
        if key in _MERGED_SECTIONS and isinstance(value, dict):
            merged[key] = {**base.get(key, {}), **value}
        elif key == "platforms" and isinstance(value, dict):
            platforms = dict(base.get("platforms", {}))
            for name, entry in value.items():
                if isinstance(entry, dict):
                    platforms[name] = {**platforms.get(name, {}), **entry}
                else:
                    platforms[name] = entry
            merged["platforms"] = platforms
        else:
            merged[key] = value
    return merged


def load_config(path: Path | None = None, use_system: bool = True) -> ProvisionerConfig:
    """Load and validate the provisioning configuration.

    Args:
        path: Explicit operator config file. Must exist if given.
        use_system: When no path is given, read ``SYSTEM_CONFIG`` if it
            exists.

    Returns:
        Frozen ProvisionerConfig.

    Raises:
        ConfigError: If a file is unreadable, untrusted, or the result
            is invalid.
    """
    data = _read_yaml(DEFAULTS_FILE)

    if path is None and use_system and SYSTEM_CONFIG.is_file():
        path = SYSTEM_CONFIG

    if path is not None:
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")
        check_trusted(path)
        logger.debug("Loading operator config from %s", path)
        data = merge_config(data, _read_yaml(path))

    try:
        config = ProvisionerConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    logger.info(
        "Loaded configuration: %d platforms, timeout=%s",
        len(config.platforms), config.command_timeout,
    )
    return config
