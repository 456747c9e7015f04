"""
Configuration loader — reads plugboot.yml into a BootConfig.

The file is optional: a process without one runs on defaults. When
present it is YAML, validated against the BootConfig schema, and
then overlaid with ``PLUGBOOT_*`` environment variables.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from plugboot.core.models.config import BootConfig

logger = logging.getLogger(__name__)

# Default config filename
BOOT_CONFIG_FILE = "plugboot.yml"

# Environment overrides: variable → BootConfig field
_ENV_OVERRIDES: dict[str, str] = {
    "PLUGBOOT_ENTRY_MODULE": "entry_module",
    "PLUGBOOT_BASE_DIR": "base_dir",
    "PLUGBOOT_PLUGIN_DIR": "plugin_dir",
    "PLUGBOOT_CACHE_DIR": "cache_dir",
}


class ConfigError(Exception):
    """Raised when the boot configuration is invalid."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for plugboot.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to plugboot.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / BOOT_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None, *, environ: dict[str, str] | None = None) -> BootConfig:
    """Load and validate the boot configuration.

    Args:
        path: Explicit path to plugboot.yml. If None, searches upward
            and falls back to defaults when nothing is found.
        environ: Environment mapping for overrides (default: os.environ).

    Returns:
        Validated BootConfig.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    explicit = path is not None
    if path is None:
        path = find_config_file()

    data: dict = {}
    if path is None:
        logger.debug("No %s found — using defaults", BOOT_CONFIG_FILE)
    elif not path.is_file():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
    else:
        data = _read_yaml(path)
        # Relative paths in the file are relative to the file itself
        for key in ("base_dir", "plugin_dir", "cache_dir", "plugins_file"):
            value = data.get(key)
            if isinstance(value, str) and value and not Path(value).is_absolute():
                data[key] = str((path.parent / value).resolve())

    env = os.environ if environ is None else environ
    for var, field in _ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            data[field] = value

    try:
        config = BootConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid boot configuration: {e}") from e

    logger.debug("Loaded boot config from %s", path or "<defaults>")
    return config


def _read_yaml(path: Path) -> dict:
    logger.debug("Loading boot config from %s", path)

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

    # The YAML may wrap everything under a "plugboot" key or be flat
    if "plugboot" in data:
        inner = data["plugboot"] or {}
        if not isinstance(inner, dict):
            raise ConfigError(f"Expected a mapping under 'plugboot' in {path}")
        return dict(inner)
    return data
