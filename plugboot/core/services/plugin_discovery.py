"""
Plugin discovery — find the files in a directory that are plugins.

A file is a plugin when it loads as a module and at least one of its
functions carries the ``OnInit`` activation marker. Probing means
importing, which is expensive and runs untrusted code, so verdicts
are cached per file and trusted until the file changes:

    cached and file not newer than the record → reuse the verdict
    unreadable timestamp                      → probe, record nothing
    otherwise                                 → probe, record fresh verdict

After a pass the persisted cache is replaced with the fresh snapshot,
which drops entries for files that no longer exist.
"""

from __future__ import annotations

import logging
from pathlib import Path

from plugboot.core.models.cache import CandidateCache
from plugboot.core.models.markers import OnInit
from plugboot.core.observability.metrics import MetricsRegistry
from plugboot.core.persistence.candidate_cache import (
    load_candidate_cache,
    save_candidate_cache,
)
from plugboot.core.persistence.query_cache_file import mtime_ticks
from plugboot.core.services.module_loader import ModuleLoader
from plugboot.core.services.query_engine import QueryEngine

logger = logging.getLogger(__name__)


class PluginDiscovery:
    """Probes candidate files and keeps the candidate cache up to date."""

    def __init__(
        self,
        cache_path: Path,
        loader: ModuleLoader,
        engine: QueryEngine,
        extensions: list[str],
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._cache_path = Path(cache_path)
        self._loader = loader
        self._engine = engine
        self._extensions = tuple(extensions)
        self._metrics = metrics or MetricsRegistry()

    @property
    def cache_path(self) -> Path:
        return self._cache_path

    def candidates(self, directory: Path) -> list[Path]:
        """Files in ``directory`` with a loadable extension (absolute, sorted)."""
        try:
            entries = list(Path(directory).iterdir())
        except OSError as e:
            logger.warning("Cannot list plugin directory %s: %s", directory, e)
            return []
        return sorted(
            p.resolve() for p in entries
            if p.is_file() and p.name.endswith(self._extensions)
        )

    def discover(self, directory: Path) -> list[Path]:
        """Return the plugin files in ``directory``."""
        cache = load_candidate_cache(self._cache_path)
        fresh = CandidateCache()
        plugins: list[Path] = []

        for path in self.candidates(directory):
            key = str(path)
            last_write = self._last_write(path)

            record = cache.lookup(key, last_write) if last_write is not None else None
            if record is not None:
                logger.debug("cache found for: %s", path)
                is_plugin = record.is_plugin
            else:
                previous = cache.entries.get(key)
                if previous is not None:
                    logger.debug("retrying to load because cache outdated %s", path)
                else:
                    logger.debug("retrying to load because not in cache %s", path)
                is_plugin = self.is_plugin(path)

            # Without a timestamp the verdict could never be invalidated
            if last_write is not None:
                fresh.record(key, last_write, is_plugin)
            if is_plugin:
                logger.debug("plugin found %s", path)
                plugins.append(path)

        save_candidate_cache(fresh, self._cache_path)
        return plugins

    def is_plugin(self, path: Path) -> bool:
        """Load ``path`` and check for activation methods.

        Candidate files are untrusted: any failure to load means
        "not a plugin", never an error.
        """
        self._metrics.counter("plugins.probes").inc()
        try:
            module = self._loader.load_file(path)
        except (Exception, SystemExit) as e:
            logger.debug("IsPlugin(%s) failed.", path)
            logger.debug(
                "Could not load potential plugin module (not necessarily an error, proceeding): "
                "%s: %s", type(e).__name__, e,
            )
            return False

        try:
            found = self._engine.methods_with_marker(OnInit, module)
        except Exception as e:
            logger.debug("Could not inspect %s: %s", path, e)
            return False

        if found:
            logger.debug("found plugins in: %s", path)
        return bool(found)

    def _last_write(self, path: Path) -> int | None:
        try:
            return mtime_ticks(path)
        except OSError:
            logger.debug("could not get write time for: %s", path)
            return None
