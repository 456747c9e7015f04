"""
Cache models — persisted state that survives between process launches.

Two caches live on disk:

    - Query cache files (one per module and query): plain text, see
      ``plugboot.core.persistence.query_cache_file``.
    - The plugin candidate cache (one per entry module): the JSON
      document modeled here.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

QUERY_CACHE_VERSION = 1


class CacheHeader(BaseModel):
    """First line of a query cache file: ``version <int> timestamp <ticks>``."""

    version: int = QUERY_CACHE_VERSION
    timestamp: int = 0  # 100 ns ticks since the Unix epoch

    def to_line(self) -> str:
        if self.version <= 0:
            raise ValueError(f"Invalid cache header version: {self.version}")
        return f"version {self.version} timestamp {self.timestamp}"

    @classmethod
    def parse(cls, line: str) -> CacheHeader | None:
        """Parse a header line.

        Returns None for legacy files that carry no header at all.

        Raises:
            ValueError: If the line looks like a header but is malformed.
        """
        if not line.startswith("version"):
            return None
        tokens = line.split(" ")
        if len(tokens) != 4 or tokens[2] != "timestamp":
            raise ValueError(f"Malformed cache header: {line!r}")
        return cls(version=int(tokens[1]), timestamp=int(tokens[3]))


class CandidateRecord(BaseModel):
    """Verdict for one plugin candidate file."""

    last_write: int           # ticks of the file when the verdict was taken
    is_plugin: bool = False


class CandidateCache(BaseModel):
    """Persisted mapping: absolute candidate path → verdict."""

    schema_version: int = 1
    entries: dict[str, CandidateRecord] = Field(default_factory=dict)

    def lookup(self, path: str, last_write: int) -> CandidateRecord | None:
        """Return the cached record if it is still trustworthy.

        A record is trusted only while the file's current last-write
        time is not newer than the recorded one.
        """
        record = self.entries.get(path)
        if record is None or last_write > record.last_write:
            return None
        return record

    def record(self, path: str, last_write: int, is_plugin: bool) -> None:
        self.entries[path] = CandidateRecord(last_write=last_write, is_plugin=is_plugin)
