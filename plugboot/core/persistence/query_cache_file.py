"""
Query cache files — one text file per (module, query).

Layout:

    version 1 timestamp 17290000000000000    ← header, module mtime in ticks
    discriminator implements:pkg.api:Plugin  ← the query this file answers
    pkg.impl:FirstPlugin                     ← one result token per line
    pkg.impl:SecondPlugin

File name: ``<module file name>.<uuid of md5(discriminator)>.txt``.
The discriminator line guards against two queries whose hashes
collide: a file answering a different query is a miss.

Files are overwritten on every miss and never deleted; stale files
are ignored.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path

from plugboot.core.models.cache import QUERY_CACHE_VERSION, CacheHeader

logger = logging.getLogger(__name__)

_DISCRIMINATOR_PREFIX = "discriminator "


@dataclass
class CachedResult:
    """Parsed content of a cache file."""

    header: CacheHeader
    discriminator: str
    tokens: list[str]


def discriminator_id(discriminator: str) -> uuid.UUID:
    """Fixed-width identifier for a discriminator string."""
    return uuid.UUID(bytes=hashlib.md5(discriminator.encode("utf-8")).digest())


def cache_file_path(cache_dir: Path, module_file_name: str, discriminator: str) -> Path:
    return cache_dir / f"{module_file_name}.{discriminator_id(discriminator)}.txt"


def mtime_ticks(path: Path) -> int:
    """Last-write time of ``path`` in 100 ns ticks since the Unix epoch."""
    return os.stat(path).st_mtime_ns // 100


def read_cache_file(path: Path) -> CachedResult | None:
    """Read a cache file.

    Returns None when the file is missing, headerless (legacy) or
    malformed in any way. Each of these is a miss.
    """
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Unreadable cache file %s: %s", path, e)
        return None

    if len(lines) < 2:
        return None

    try:
        header = CacheHeader.parse(lines[0])
    except ValueError as e:
        logger.debug("Corrupt cache header in %s: %s", path, e)
        return None
    if header is None or header.version != QUERY_CACHE_VERSION:
        return None

    if not lines[1].startswith(_DISCRIMINATOR_PREFIX):
        return None
    discriminator = lines[1][len(_DISCRIMINATOR_PREFIX):]

    tokens = [line for line in lines[2:] if line]
    return CachedResult(header=header, discriminator=discriminator, tokens=tokens)


def write_cache_file(path: Path, timestamp: int, discriminator: str, tokens: list[str]) -> None:
    """Write (overwrite) a cache file atomically.

    Uses write-to-temp-then-rename so a concurrent reader never sees a
    half-written file. Concurrent writers race; the last one wins.
    """
    header = CacheHeader(version=QUERY_CACHE_VERSION, timestamp=timestamp)
    lines = [header.to_line(), f"{_DISCRIMINATOR_PREFIX}{discriminator}", *tokens]
    content = "\n".join(lines) + "\n"

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".query_", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise
