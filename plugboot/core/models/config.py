"""
Boot configuration model — the validated contents of plugboot.yml.

Every field is optional. Paths left unset are resolved at runtime
(see ``BootConfig.resolved_*``) so a process without any config file
still gets sensible defaults.
"""

from __future__ import annotations

import importlib.machinery
import logging
from pathlib import Path

import platformdirs
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

APP_NAME = "plugboot"
DEFAULT_NATIVE_ARCHIVE = "native.zip"


def _default_extensions() -> list[str]:
    return [".py", *importlib.machinery.EXTENSION_SUFFIXES]


class BootConfig(BaseModel):
    """Bootstrap settings."""

    entry_module: str | None = None       # custom entry module (dotted name)
    base_dir: Path | None = None          # where native payloads are unpacked
    plugin_dir: Path | None = None        # where plugin candidates are probed
    cache_dir: Path | None = None         # query + candidate caches
    plugins_file: Path | None = None      # optional explicit plugin list

    plugin_extensions: list[str] = Field(default_factory=_default_extensions)
    native_archive: str = DEFAULT_NATIVE_ARCHIVE
    discover_plugins: bool = True

    def resolved_cache_dir(self) -> Path:
        """Cache directory, created on first use.

        Defaults to ``<user data dir>/cache``; falls back to ``./cache``
        when the platform directory cannot be created.
        """
        if self.cache_dir is not None:
            path = Path(self.cache_dir)
            path.mkdir(parents=True, exist_ok=True)
            return path

        try:
            path = Path(platformdirs.user_data_dir(APP_NAME, appauthor=False)) / "cache"
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Application data directory unavailable (%s) — using ./cache", e)
            path = Path("cache").resolve()
            path.mkdir(parents=True, exist_ok=True)
        logger.debug("using cache dir: %s", path)
        return path

    def resolved_base_dir(self, entry_dir: Path | None) -> Path:
        """Base directory: configured, else the entry module's directory, else cwd."""
        if self.base_dir is not None:
            return Path(self.base_dir).resolve()
        if entry_dir is not None:
            return entry_dir
        return Path.cwd().resolve()

    def resolved_plugin_dir(self, entry_dir: Path | None) -> Path:
        if self.plugin_dir is not None:
            return Path(self.plugin_dir).resolve()
        return self.resolved_base_dir(entry_dir)
