"""
Module graph — the registry of known modules and the walker that fills it.

The walker starts from one module name, loads it, registers it, and
follows every declared dependency. Three things end a branch early:

    - the name was already resolved (loaded or failed); this check
      runs before a name is pushed or loaded, so cycles end here
    - the name matches the denylist
    - the load attempt fails, which makes the name a permanent failure

Failures are never raised to the caller: a missing optional
dependency must not abort the walk.

The registry is shared with the load hook, which may register modules
from any thread, so both classes guard their state with locks.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from types import ModuleType
from typing import Callable

from plugboot.core.models.module import Module
from plugboot.core.observability.metrics import MetricsRegistry
from plugboot.core.services.denylist import Denylist
from plugboot.core.services.module_loader import ModuleLoader

logger = logging.getLogger(__name__)

RegistrationListener = Callable[[Module], None]


class ModuleRegistry:
    """Concurrency-safe set of known modules (insert-if-absent, no removal)."""

    def __init__(self) -> None:
        self._modules: dict[str, Module] = {}
        self._listeners: list[RegistrationListener] = []
        self._lock = threading.Lock()

    def add_listener(self, listener: RegistrationListener) -> None:
        """Call ``listener`` for every module registered from now on."""
        with self._lock:
            self._listeners.append(listener)

    def register(self, module: Module) -> bool:
        """Add a module. Returns False if it was already known."""
        with self._lock:
            if module.key in self._modules:
                return False
            self._modules[module.key] = module
            listeners = list(self._listeners)

        logger.debug("registered module %s", module.name)
        for listener in listeners:
            try:
                listener(module)
            except Exception as e:
                logger.warning("Registration listener failed for %s: %s", module.name, e)
        return True

    def get(self, key: str) -> Module | None:
        with self._lock:
            return self._modules.get(key)

    def modules(self) -> list[Module]:
        """Known modules, sorted by name for reproducible iteration."""
        with self._lock:
            return sorted(self._modules.values(), key=lambda m: (m.name, m.key))

    def names(self) -> list[str]:
        return [m.name for m in self.modules()]

    def __contains__(self, module: object) -> bool:
        if not isinstance(module, Module):
            return False
        with self._lock:
            return module.key in self._modules

    def __len__(self) -> int:
        with self._lock:
            return len(self._modules)


class ModuleGraphWalker:
    """Loads a module and everything it depends on, exactly once per name."""

    def __init__(
        self,
        registry: ModuleRegistry,
        loader: ModuleLoader,
        denylist: Denylist | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._registry = registry
        self._loader = loader
        self._denylist = denylist or Denylist()
        self._metrics = metrics or MetricsRegistry()
        self._resolved: dict[str, Module] = {}
        self._lock = threading.Lock()

    @property
    def denylist(self) -> Denylist:
        return self._denylist

    @property
    def resolved(self) -> dict[str, Module]:
        """Name → module for every successful load."""
        with self._lock:
            return dict(self._resolved)

    @property
    def failed(self) -> frozenset[str]:
        """Names that were denied or failed to load."""
        return self._denylist.failed

    @property
    def load_attempts(self) -> int:
        return self._metrics.value("loader.attempts")

    def is_settled(self, name: str) -> bool:
        """Whether ``name`` was already resolved (success or permanent failure)."""
        with self._lock:
            if name in self._resolved:
                return True
        return self._denylist.is_failed(name)

    def enumerate_from(self, name: str, explicit: Module | None = None) -> None:
        """Load ``name`` (or register ``explicit`` under it) and walk its dependencies.

        Args:
            name: Dotted module name to start from. Empty names are ignored.
            explicit: Already loaded module to use instead of loading by
                name (the injected entry module).
        """
        if not name:
            return

        pending: list[tuple[str, Module | None]] = [(name, explicit)]
        while pending:
            current, module = pending.pop()
            if self.is_settled(current):
                continue

            if self._denylist.matches(current):
                logger.debug("denylisted: %s", current)
                self._denylist.record_failure(current)
                continue

            if module is None:
                module = self._load(current)
                if module is None:
                    continue

            with self._lock:
                self._resolved[current] = module
            self._registry.register(module)

            # Reversed so the first declared dependency is walked first
            for dependency in reversed(module.dependencies):
                if not self.is_settled(dependency):
                    pending.append((dependency, None))

    def observe(self, handle: ModuleType) -> Module | None:
        """Record a module loaded elsewhere in the process (load hook)."""
        name = getattr(handle, "__name__", "")
        if not name or self.is_settled(name) or self._denylist.matches(name):
            return None
        try:
            module = self._loader.describe(handle)
        except Exception as e:
            logger.debug("Cannot describe loaded module %s: %s", name, e)
            return None
        with self._lock:
            if name in self._resolved:
                return None
            self._resolved[name] = module
        self._registry.register(module)
        return module

    def scan_directory(self, directory: Path, suffixes: list[str]) -> int:
        """Enumerate every loadable file in ``directory`` by its module name.

        Used when the process has no identifiable entry module. Individual
        failures are swallowed. Returns the number of names tried.
        """
        logger.info("trying all loadable files in %s", directory)
        tried = 0
        try:
            files = sorted(p for p in directory.iterdir() if p.is_file())
        except OSError as e:
            logger.warning("Cannot scan %s: %s", directory, e)
            return 0

        for path in files:
            if not path.name.endswith(tuple(suffixes)):
                continue
            name = path.name.split(".", 1)[0]
            if not name.isidentifier():
                continue
            tried += 1
            self.enumerate_from(name)
            logger.debug("tried %s", path)
        return tried

    def _load(self, name: str) -> Module | None:
        self._metrics.counter("loader.attempts").inc()
        try:
            return self._loader.load(name)
        except Exception as e:
            # Expected for optional dependencies; never surfaced
            logger.debug("could not load %s: %s", name, e)
            self._denylist.record_failure(name)
            return None
