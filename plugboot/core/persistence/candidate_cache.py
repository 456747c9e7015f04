"""
Candidate cache persistence — atomic read/write of the plugin verdicts.

The cache is a JSON document at ``<cache dir>/<entry>_plugins.json``.
Its format is internal: a file this version cannot read is simply
treated as an empty cache. Writes are atomic (temp file, then
replace) so a crash never leaves a truncated file behind.
"""

from __future__ import annotations

import json
import logging
import re
import tempfile
from pathlib import Path

from plugboot.core.models.cache import CandidateCache

logger = logging.getLogger(__name__)

CANDIDATE_CACHE_SUFFIX = "_plugins.json"


def candidate_cache_path(cache_dir: Path, entry_name: str) -> Path:
    """Per-entry-module cache file path."""
    safe = re.sub(r"[^A-Za-z0-9_.-]", "_", entry_name) or "plugboot"
    return cache_dir / f"{safe}{CANDIDATE_CACHE_SUFFIX}"


def load_candidate_cache(path: Path) -> CandidateCache:
    """Load the candidate cache.

    Returns:
        The cached verdicts. Missing or unreadable file → empty cache.
    """
    if not path.is_file():
        logger.debug("no plugins cache file found at %s", path)
        return CandidateCache()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        cache = CandidateCache.model_validate(data)
        logger.debug("loaded cache file: %s (%d entries)", path, len(cache.entries))
        return cache
    except Exception as e:
        logger.debug("could not load cache file: %s with %s", path, e)
        return CandidateCache()


def save_candidate_cache(cache: CandidateCache, path: Path) -> None:
    """Replace the persisted candidate cache (atomic write).

    Failures are logged and swallowed: losing the cache only costs a
    re-probe on the next launch.
    """
    content = json.dumps(cache.model_dump(mode="json"), indent=2, sort_keys=True) + "\n"

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        _fd, tmp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=".plugins_",
            suffix=".tmp",
        )
        tmp = Path(tmp_path)
        try:
            with open(_fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            tmp.replace(path)
            logger.debug("Candidate cache saved to %s", path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
    except Exception as e:
        logger.warning("Could not write cache file %s: %s", path, e)
