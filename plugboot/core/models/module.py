"""
Module model — an identifiable, loadable unit of code.

A Module wraps a live Python module object together with the
metadata the bootstrap layer needs: where it came from on disk and
which other modules it declares as dependencies. Records are created
once per successful load and never change afterwards.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict


class Module(BaseModel):
    """A loaded module as seen by the walker, the query engine and plugins."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    location: Path | None = None               # resolved file path (None for built-ins)
    dependencies: tuple[str, ...] = ()         # dotted names declared by the source
    handle: Any = None                         # the live module object

    @property
    def key(self) -> str:
        """Identity key: the file path when known, else the module name."""
        if self.location is not None:
            return str(self.location)
        return self.name

    @property
    def stem(self) -> str:
        """Name the module's caches are keyed by.

        Every script runs as ``__main__``, so a script is known by its
        file's stem instead.
        """
        if self.name == "__main__" and self.location is not None:
            return self.location.stem
        return self.name

    @property
    def file_name(self) -> str:
        """Name used for per-module cache files (``<stem><suffix>``)."""
        suffix = self.location.suffix if self.location is not None else ""
        return f"{self.stem}{suffix}"

    def __repr__(self) -> str:
        return f"<Module {self.name!r} at {self.location}>"
