"""
Bootstrap — the init sequence that brings a plugin host up.

    native deps → module graph → plugin discovery → activation

Each phase tolerates the partial failure of the previous one; nothing
in here raises to the caller. All state (registry, failed names,
caches, invoked methods) belongs to one Bootstrapper, so tests can run
the whole sequence against a fresh instance.

Flow of ``init()``:

    1. log system info
    2. unpack native payloads of every module already imported; from
       now on every newly registered module is unpacked too, and an
       import hook registers modules imported anywhere in the process
    3. walk the module graph from the entry module
    4. discover plugin files, load them, register them
    5. query every known module for ``@on_init`` methods and invoke
       each one exactly once
"""

from __future__ import annotations

import importlib.util
import logging
import platform
import struct
import sys
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from types import ModuleType

from plugboot.adapters.shell.ldconfig import LdconfigIndex
from plugboot.core import context
from plugboot.core.models.activation import ActivationReceipt
from plugboot.core.models.config import BootConfig
from plugboot.core.models.markers import OnInit
from plugboot.core.models.module import Module
from plugboot.core.observability.metrics import MetricsRegistry
from plugboot.core.persistence.candidate_cache import candidate_cache_path
from plugboot.core.services.activation import invoke
from plugboot.core.services.denylist import Denylist
from plugboot.core.services.import_hook import ImportWatcher
from plugboot.core.services.module_graph import ModuleGraphWalker, ModuleRegistry
from plugboot.core.services.module_loader import ImportlibLoader, ModuleLoader, module_location
from plugboot.core.services.native_deps import NativeDependencyResolver
from plugboot.core.services.plugin_discovery import PluginDiscovery
from plugboot.core.services.query_cache import QueryCache
from plugboot.core.services.query_engine import QueryEngine

logger = logging.getLogger(__name__)


@dataclass
class BootReport:
    """Result of one ``init()`` run."""

    entry: str | None = None
    started_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    duration_ms: int = 0
    modules: list[str] = field(default_factory=list)
    plugins: list[str] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)
    receipts: list[ActivationReceipt] = field(default_factory=list)
    metrics: dict = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.receipts)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.receipts if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.receipts if r.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.receipts if r.status == "skipped")

    @property
    def status(self) -> str:
        if self.failed == 0 and self.skipped == 0:
            return "ok"
        if self.succeeded > 0:
            return "partial"
        return "failed"

    def to_dict(self) -> dict:
        return {
            "entry": self.entry,
            "status": self.status,
            "started_at": self.started_at,
            "duration_ms": self.duration_ms,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "modules": self.modules,
            "plugins": self.plugins,
            "unresolved": self.unresolved,
            "receipts": [r.model_dump(mode="json") for r in self.receipts],
            "metrics": self.metrics,
        }


def log_system_info() -> None:
    logger.info(
        "os: %s, %d-bit process, python %s (%s)",
        platform.platform(),
        struct.calcsize("P") * 8,
        platform.python_version(),
        platform.python_implementation(),
    )


class Bootstrapper:
    """Owns the process-lifetime state of module discovery and activation."""

    def __init__(
        self,
        config: BootConfig | None = None,
        *,
        loader: ModuleLoader | None = None,
        registry: ModuleRegistry | None = None,
        denylist: Denylist | None = None,
        metrics: MetricsRegistry | None = None,
        library_index: LdconfigIndex | None = None,
        entry_module: ModuleType | str | None = None,
        use_main: bool = True,
    ) -> None:
        self.config = config or BootConfig()
        self.metrics = metrics or MetricsRegistry()
        self.loader = loader or ImportlibLoader()
        self.registry = registry or ModuleRegistry()
        self.walker = ModuleGraphWalker(self.registry, self.loader, denylist, self.metrics)

        self._entry_override = entry_module
        self._use_main = use_main
        self._library_index = library_index or LdconfigIndex()
        self._cache_dir: Path | None = None
        self._engine: QueryEngine | None = None
        self._native: NativeDependencyResolver | None = None
        self._watcher = ImportWatcher(self._on_import)
        self._plugins: dict[str, Module] = {}
        self._invoked: set[str] = set()
        self._lock = threading.RLock()

    # ── Lazily built collaborators ──────────────────────────────

    @property
    def cache_dir(self) -> Path:
        if self._cache_dir is None:
            self._cache_dir = self.config.resolved_cache_dir()
        return self._cache_dir

    @property
    def engine(self) -> QueryEngine:
        if self._engine is None:
            self._engine = QueryEngine(QueryCache(self.cache_dir, self.metrics), self.registry)
        return self._engine

    @property
    def native(self) -> NativeDependencyResolver:
        if self._native is None:
            self._native = NativeDependencyResolver(
                self.base_dir,
                self._library_index,
                self.config.native_archive,
                self.metrics,
            )
            self.registry.add_listener(self._native.resolve)
        return self._native

    @property
    def base_dir(self) -> Path:
        return self.config.resolved_base_dir(self.entry_dir())

    @property
    def plugin_dir(self) -> Path:
        return self.config.resolved_plugin_dir(self.entry_dir())

    @property
    def watcher(self) -> ImportWatcher:
        return self._watcher

    # ── Entry module ────────────────────────────────────────────

    def entry_handle(self) -> ModuleType | str | None:
        """The entry module: override, configured name, or ``__main__``."""
        for candidate in (self._entry_override, context.get_entry_module(), self.config.entry_module):
            if candidate:
                return candidate
        if not self._use_main:
            return None
        main = sys.modules.get("__main__")
        if main is not None and isinstance(getattr(main, "__file__", None), str):
            return main
        return None

    def entry_name(self) -> str | None:
        entry = self.entry_handle()
        if entry is None:
            return None
        return entry if isinstance(entry, str) else entry.__name__

    def entry_cache_name(self) -> str:
        """Name the candidate cache is keyed by (the script's stem for ``__main__``)."""
        entry = self.entry_handle()
        if entry is None:
            return "plugboot"
        if isinstance(entry, str):
            entry = sys.modules.get(entry) or entry
        if isinstance(entry, str):
            return entry
        return Module(name=entry.__name__, location=module_location(entry)).stem

    def entry_dir(self) -> Path | None:
        """Directory of the entry module's file, if it has one."""
        entry = self.entry_handle()
        if entry is None:
            return None
        if isinstance(entry, str):
            entry = sys.modules.get(entry) or entry
        if isinstance(entry, ModuleType):
            location = module_location(entry)
            return location.parent if location is not None else None
        try:
            spec = importlib.util.find_spec(entry)
        except (ImportError, ValueError) as e:
            logger.debug("cannot locate entry module %s: %s", entry, e)
            return None
        if spec is None or not spec.origin or not spec.has_location:
            return None
        return Path(spec.origin).resolve().parent

    def enumerate_entry(self) -> Module | None:
        """Walk the module graph from the entry module.

        Without an identifiable entry every loadable file in the base
        directory is tried by name instead.
        """
        entry = self.entry_handle()
        if entry is None:
            logger.info("no entry module, scanning %s", self.base_dir)
            self.walker.scan_directory(self.base_dir, self.config.plugin_extensions)
            return None

        if isinstance(entry, str):
            self.walker.enumerate_from(entry)
            return self.walker.resolved.get(entry)

        module = self.loader.describe(entry)
        self.walker.enumerate_from(module.name, explicit=module)
        return module

    # ── Registration ────────────────────────────────────────────

    def register_module(self, module: Module) -> bool:
        """Make a module known at runtime and walk its dependencies.

        Returns False if the module was already known.
        """
        added = self.registry.register(module)
        for dependency in module.dependencies:
            self.walker.enumerate_from(dependency)
        return added

    def _on_import(self, handle: ModuleType) -> None:
        self.walker.observe(handle)

    # ── Phases ──────────────────────────────────────────────────

    def resolve_native_dependencies(self) -> None:
        """Unpack payloads of loaded modules and hook future loads."""
        native = self.native
        self._watcher.install()
        native.resolve_all(
            Module(name=name, location=module_location(handle), handle=handle)
            for name, handle in list(sys.modules.items())
            if isinstance(handle, ModuleType) and not self.walker.denylist.matches(name)
        )

    def discover_plugins(self, directory: Path | None = None) -> list[Path]:
        """Plugin files in ``directory`` (default: the plugin directory)."""
        directory = Path(directory) if directory is not None else self.plugin_dir
        discovery = PluginDiscovery(
            candidate_cache_path(self.cache_dir, self.entry_cache_name()),
            self.loader,
            self.engine,
            self.config.plugin_extensions,
            self.metrics,
        )
        return discovery.discover(directory)

    def listed_plugins(self) -> list[Path]:
        """Plugin files named in ``plugins_file`` (one base name per line)."""
        path = self.config.plugins_file
        if path is None:
            return []
        try:
            lines = Path(path).read_text(encoding="utf-8").splitlines()
        except OSError as e:
            logger.warning("Cannot read plugins file %s: %s", path, e)
            return []

        directory = self.plugin_dir
        suffixes = tuple(self.config.plugin_extensions)
        found: list[Path] = []
        for line in lines:
            name = line.split("#", 1)[0].strip()
            if not name:
                continue
            matches = sorted(
                p for p in directory.glob(f"{name}.*")
                if p.is_file() and p.name.endswith(suffixes) and p.name.split(".", 1)[0] == name
            )
            if not matches:
                logger.warning("listed plugin %s not found in %s", name, directory)
                continue
            found.append(matches[0].resolve())
        return found

    def load_plugins(self) -> list[Module]:
        """Discover, load and register plugin modules."""
        paths: list[Path] = []
        if self.config.discover_plugins:
            paths.extend(self.discover_plugins())
        paths.extend(p for p in self.listed_plugins() if p not in paths)

        loaded: list[Module] = []
        for path in paths:
            try:
                module = self.loader.load_file(path)
            except (Exception, SystemExit) as e:
                logger.warning("Could not load plugin %s: %s", path, e)
                continue
            logger.info("loaded plugin %s from %s", module.name, path)
            self.register_module(module)
            self._plugins[module.key] = module
            loaded.append(module)
        return loaded

    def known_modules(self) -> list[Module]:
        """Registry plus loaded plugins, de-duplicated by identity."""
        union: dict[str, Module] = {m.key: m for m in self.registry.modules()}
        for key, module in self._plugins.items():
            union.setdefault(key, module)
        return sorted(union.values(), key=lambda m: (m.name, m.key))

    def activate(self) -> list[ActivationReceipt]:
        """Invoke every not yet invoked ``@on_init`` method once."""
        modules = self.known_modules()
        receipts: list[ActivationReceipt] = []
        for module in modules:
            try:
                found = self.engine.methods_with_marker(OnInit, module)
            except Exception as e:
                logger.warning("Could not query %s for activation methods: %s", module.name, e)
                continue
            for method in found:
                with self._lock:
                    if method.token in self._invoked:
                        continue
                    self._invoked.add(method.token)
                receipts.append(invoke(method, modules, self.metrics))
        return receipts

    # ── Entry point ─────────────────────────────────────────────

    def init(self) -> BootReport:
        """Run the whole init sequence. Never raises for plugin problems."""
        with self._lock:
            start = time.monotonic()
            report = BootReport(entry=self.entry_name())
            log_system_info()

            with self.metrics.timer("boot.native"):
                self.resolve_native_dependencies()

            self.enumerate_entry()

            with self.metrics.timer("boot.plugins"):
                plugins = self.load_plugins()

            with self.metrics.timer("boot.activation"):
                report.receipts = self.activate()

            report.modules = [m.name for m in self.known_modules()]
            report.plugins = [m.name for m in plugins]
            report.unresolved = sorted(self.walker.failed)
            report.duration_ms = int((time.monotonic() - start) * 1000)
            report.metrics = self.metrics.to_dict()

            logger.info(
                "init done: %d modules, %d plugins, %d activation methods (%s)",
                len(report.modules), len(report.plugins), report.total, report.status,
            )
            return report

    def shutdown(self) -> None:
        """Remove the import hook."""
        self._watcher.uninstall()
