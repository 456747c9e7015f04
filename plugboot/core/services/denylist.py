"""
Denylist — module names that are never handed to the loader.

Three sources:

    - Name prefixes of packages that never host plugins: GUI toolkits,
      interop shims, test runners, packaging tools, interactive
      shells. Matched with a plain ``startswith`` so ``PyQt`` covers
      PyQt5 and PyQt6.
    - The standard library, built-in modules, plugboot's own stack and
      large numeric packages, matched on the top-level package name.
    - Names that failed to load during this process. Failures are
      permanent for the process lifetime.

The static part is fixed in source. Only the failed set grows.
"""

from __future__ import annotations

import sys
import threading

DENIED_PREFIXES: tuple[str, ...] = (
    # GUI toolkits
    "PyQt",
    "PySide",
    "tkinter",
    "wx",
    "kivy",
    "gi.",
    # unmanaged interop shims
    "_cffi_backend",
    "cffi",
    "clr",
    "pythoncom",
    "pywintypes",
    "win32",
    "jnius",
    "jpype",
    # test runners
    "_pytest",
    "pytest",
    "pluggy",
    "nose",
    "hypothesis",
    # packaging / interactive hosts
    "_distutils_hack",
    "setuptools",
    "pkg_resources",
    "pip.",
    "IPython",
    "ipykernel",
    "jupyter",
)

# Top-level packages of plugboot itself and of large numeric stacks
DENIED_PACKAGES: frozenset[str] = frozenset({
    "plugboot",
    "pydantic",
    "pydantic_core",
    "annotated_types",
    "typing_extensions",
    "typing_inspection",
    "click",
    "yaml",
    "_yaml",
    "platformdirs",
    "numpy",
    "scipy",
    "pandas",
    "matplotlib",
    "PIL",
    "pip",
})

# The entry script runs as __main__ and is always walked
DENIED_NAMES: frozenset[str] = frozenset(
    (set(sys.stdlib_module_names) | set(sys.builtin_module_names) | DENIED_PACKAGES) - {"__main__"}
)


class Denylist:
    """Static deny rules plus the runtime set of names that failed to load."""

    def __init__(
        self,
        prefixes: tuple[str, ...] = DENIED_PREFIXES,
        names: frozenset[str] = DENIED_NAMES,
    ) -> None:
        self._prefixes = prefixes
        self._names = names
        self._failed: set[str] = set()
        self._lock = threading.Lock()

    def matches(self, name: str) -> bool:
        """Whether the static rules exclude ``name``."""
        top_level = name.split(".", 1)[0]
        if top_level in self._names:
            return True
        return name.startswith(self._prefixes)

    def is_failed(self, name: str) -> bool:
        with self._lock:
            return name in self._failed

    def record_failure(self, name: str) -> None:
        """Permanently skip ``name`` for the rest of the process."""
        with self._lock:
            self._failed.add(name)

    def is_denied(self, name: str) -> bool:
        """Static match or a recorded failure."""
        return self.is_failed(name) or self.matches(name)

    @property
    def failed(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._failed)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.is_denied(name)
