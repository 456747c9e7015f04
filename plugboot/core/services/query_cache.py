"""
Query cache — persist expensive reflective queries per module.

``QueryCache.query()`` is the one primitive every query shape is
built on:

    1. read the module file's current timestamp
    2. cache file present, header timestamp equal, same discriminator,
       every token decodes → return the decoded result (the module's
       types are not enumerated at all)
    3. otherwise enumerate the module's types, keeping the subset that
       loaded if some names fail
    4. compute the result over that subset
    5. overwrite the cache file with header + encoded tokens
    6. return the result

Modules without a file on disk are always computed live.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable, TypeVar

from plugboot.core.models.module import Module
from plugboot.core.observability.metrics import MetricsRegistry
from plugboot.core.persistence.query_cache_file import (
    cache_file_path,
    mtime_ticks,
    read_cache_file,
    write_cache_file,
)
from plugboot.core.services.type_metadata import TypeScan, scan_types

logger = logging.getLogger(__name__)

R = TypeVar("R")

TypeScanner = Callable[[Module], TypeScan]


class QueryCache:
    """Timestamp-validated, per-module cache of query results."""

    def __init__(
        self,
        cache_dir: Path,
        metrics: MetricsRegistry | None = None,
        scanner: TypeScanner = scan_types,
    ) -> None:
        self._cache_dir = Path(cache_dir)
        self._metrics = metrics or MetricsRegistry()
        self._scanner = scanner

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    def path_for(self, module: Module, discriminator: str) -> Path:
        return cache_file_path(self._cache_dir, module.file_name, discriminator)

    def query(
        self,
        module: Module,
        discriminator: str,
        live_compute: Callable[[list[type]], list[R]],
        encode: Callable[[list[R]], Iterable[str]],
        decode: Callable[[list[str]], list[R]],
    ) -> list[R]:
        """Answer one query for one module, from cache when still valid.

        Args:
            module: The module to query.
            discriminator: Stable text identifying the query.
            live_compute: Computes the result from the module's types.
            encode: Result → tokens (one per cache line).
            decode: Tokens → result. Raising means "miss".
        """
        timestamp = self._timestamp(module)
        path = self.path_for(module, discriminator) if timestamp is not None else None

        if path is not None:
            cached = self._read(path, discriminator, timestamp, decode)
            if cached is not None:
                self._metrics.counter("query.cache_hits").inc()
                logger.debug("[cache hit ] %s %s", module.name, discriminator)
                return cached

        self._metrics.counter("query.cache_misses").inc()
        logger.debug("[cache miss] %s %s", module.name, discriminator)

        self._metrics.counter("query.type_scans").inc()
        scan = self._scanner(module)
        result = list(live_compute(scan.types))

        if path is not None:
            try:
                write_cache_file(path, timestamp, discriminator, list(encode(result)))
            except Exception as e:
                logger.warning("Could not write cache file %s: %s", path, e)
        return result

    def _timestamp(self, module: Module) -> int | None:
        if module.location is None:
            return None
        try:
            return mtime_ticks(module.location)
        except OSError as e:
            logger.debug("No timestamp for %s: %s", module.location, e)
            return None

    def _read(
        self,
        path: Path,
        discriminator: str,
        timestamp: int,
        decode: Callable[[list[str]], list[R]],
    ) -> list[R] | None:
        cached = read_cache_file(path)
        if cached is None:
            return None
        if cached.header.timestamp != timestamp:
            return None
        if cached.discriminator != discriminator:
            logger.debug("Discriminator mismatch in %s: %r", path, cached.discriminator)
            return None
        try:
            return list(decode(cached.tokens))
        except Exception as e:
            logger.debug("Undecodable cache file %s: %s", path, e)
            return None
