"""
Import hook — get told about every module imported anywhere in the process.

``ImportWatcher.install()`` puts a finder at the front of
``sys.meta_path``. The finder asks the remaining finders for a spec
and wraps the spec's loader; once the module body has executed, the
watcher's callback receives the new module object.

Imports can happen on any thread, so the callback must be thread-safe.
Exceptions raised by the callback are logged and never break the
import that triggered them.
"""

from __future__ import annotations

import importlib.abc
import logging
import sys
import threading
from types import ModuleType
from typing import Any, Callable

logger = logging.getLogger(__name__)

LoadCallback = Callable[[ModuleType], None]


class _NotifyingLoader(importlib.abc.Loader):
    """Delegating loader that reports the module after it executed."""

    def __init__(self, wrapped: Any, callback: LoadCallback) -> None:
        self._wrapped = wrapped
        self._callback = callback

    def create_module(self, spec):
        return self._wrapped.create_module(spec)

    def exec_module(self, module: ModuleType) -> None:
        # Restore the real loader so resource readers and introspection see it
        module.__loader__ = self._wrapped
        spec = getattr(module, "__spec__", None)
        if spec is not None:
            spec.loader = self._wrapped

        self._wrapped.exec_module(module)

        try:
            self._callback(module)
        except Exception as e:
            logger.warning("Load hook failed for %s: %s", module.__name__, e)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._wrapped, name)


class _WatchingFinder(importlib.abc.MetaPathFinder):
    def __init__(self, callback: LoadCallback) -> None:
        self._callback = callback
        self._local = threading.local()

    def find_spec(self, fullname, path, target=None):
        busy: set[str] = self._local.__dict__.setdefault("busy", set())
        if fullname in busy:
            return None

        busy.add(fullname)
        try:
            spec = None
            for finder in list(sys.meta_path):
                if finder is self:
                    continue
                find_spec = getattr(finder, "find_spec", None)
                if find_spec is None:
                    continue
                spec = find_spec(fullname, path, target)
                if spec is not None:
                    break
        finally:
            busy.discard(fullname)

        if spec is None or spec.loader is None or not hasattr(spec.loader, "exec_module"):
            return spec
        spec.loader = _NotifyingLoader(spec.loader, self._callback)
        return spec


class ImportWatcher:
    """Installs (once) and removes the load-notification finder."""

    def __init__(self, callback: LoadCallback) -> None:
        self._finder = _WatchingFinder(callback)
        self._lock = threading.Lock()

    @property
    def installed(self) -> bool:
        return self._finder in sys.meta_path

    def install(self) -> bool:
        """Install the hook. Returns False if it was already installed."""
        with self._lock:
            if self.installed:
                return False
            sys.meta_path.insert(0, self._finder)
            logger.debug("import watcher installed")
            return True

    def uninstall(self) -> None:
        with self._lock:
            while self._finder in sys.meta_path:
                sys.meta_path.remove(self._finder)
