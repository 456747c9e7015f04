"""
Module loader — turns names and files into Module records.

The walker, the plugin prober and the load hook never import anything
themselves; they go through a ModuleLoader. ImportlibLoader is the
real implementation. Tests supply their own loader to describe
arbitrary module graphs without touching the import system.

Declared dependencies are read statically from the module's source:
every ``import x`` / ``from x import y`` run by the module body, with
relative imports resolved against the module's package. Modules without
Python source (extension modules, built-ins) declare none.
"""

from __future__ import annotations

import ast
import hashlib
import importlib
import importlib.machinery
import importlib.util
import logging
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from types import ModuleType

from plugboot.core.models.module import Module

logger = logging.getLogger(__name__)


class ModuleLoader(ABC):
    """Abstract loader used by every component that needs a module."""

    @abstractmethod
    def load(self, name: str) -> Module:
        """Load a module by dotted name.

        Raises:
            Exception: Any error means "cannot load"; callers record the
                name as failed.
        """

    @abstractmethod
    def load_file(self, path: Path) -> Module:
        """Load a file as a module (reusing it if already loaded)."""

    @abstractmethod
    def describe(self, handle: ModuleType) -> Module:
        """Wrap an already imported module object."""


class ImportlibLoader(ModuleLoader):
    """ModuleLoader backed by ``importlib``."""

    def load(self, name: str) -> Module:
        handle = importlib.import_module(name)
        return self.describe(handle)

    def load_file(self, path: Path) -> Module:
        path = Path(path).resolve()

        existing = find_loaded(path)
        if existing is not None:
            logger.debug("%s already loaded as %s", path, existing.__name__)
            return self.describe(existing)

        name = _module_name_for(path)
        spec = importlib.util.spec_from_file_location(name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Not a loadable module: {path}", path=str(path))

        handle = importlib.util.module_from_spec(spec)
        sys.modules[name] = handle
        try:
            spec.loader.exec_module(handle)
        except BaseException:
            sys.modules.pop(name, None)
            raise
        logger.debug("loaded %s from %s", name, path)
        return self.describe(handle)

    def describe(self, handle: ModuleType) -> Module:
        location = module_location(handle)
        return Module(
            name=handle.__name__,
            location=location,
            dependencies=declared_dependencies(handle, location),
            handle=handle,
        )


# ── Helpers ─────────────────────────────────────────────────────


def module_location(handle: ModuleType) -> Path | None:
    """Resolved file of a module, or None for built-ins / namespace packages."""
    file = getattr(handle, "__file__", None)
    if not file or not isinstance(file, str):
        return None
    try:
        return Path(file).resolve()
    except OSError:
        return None


def find_loaded(path: Path) -> ModuleType | None:
    """Return the module in ``sys.modules`` whose file is ``path``, if any."""
    for handle in list(sys.modules.values()):
        if handle is None:
            continue
        location = module_location(handle)
        if location is not None and location == path:
            return handle
    return None


def _module_name_for(path: Path) -> str:
    """Module name for a file: the text before the first dot of its name.

    Extension modules must keep that base name (their init symbol
    depends on it). For a name already taken by another module, a
    path-derived suffix keeps the two apart.
    """
    base = path.name.split(".", 1)[0]
    if base not in sys.modules:
        return base
    digest = hashlib.md5(str(path).encode("utf-8")).hexdigest()[:8]
    return f"{base}_{digest}"


def is_source_file(path: Path) -> bool:
    return path.suffix in importlib.machinery.SOURCE_SUFFIXES


def declared_dependencies(handle: ModuleType, location: Path | None) -> tuple[str, ...]:
    """Names imported by the module's source, in first-seen order."""
    if location is None or not is_source_file(location):
        return ()

    try:
        source = location.read_text(encoding="utf-8")
        tree = ast.parse(source, filename=str(location))
    except (OSError, SyntaxError, ValueError) as e:
        logger.debug("Cannot read imports of %s: %s", location, e)
        return ()

    package = getattr(handle, "__package__", None) or ""
    names: dict[str, None] = {}

    for node in _module_level_imports(tree.body):
        if isinstance(node, ast.Import):
            for alias in node.names:
                names[alias.name] = None
        elif isinstance(node, ast.ImportFrom):
            if node.level:
                base = _resolve_relative(node.module, node.level, package)
                if base is None:
                    continue
                if node.module is None:
                    # from . import sibling → the siblings are the modules
                    for alias in node.names:
                        if alias.name != "*":
                            names[f"{base}.{alias.name}"] = None
                    continue
                names[base] = None
                _add_submodules(names, base, node.names)
            elif node.module:
                names[node.module] = None
                _add_submodules(names, node.module, node.names)

    names.pop(handle.__name__, None)
    return tuple(names)


def _add_submodules(names: dict[str, None], package: str, aliases: list[ast.alias]) -> None:
    # from pkg import sub loads pkg.sub as well
    for alias in aliases:
        if alias.name != "*" and _is_submodule(package, alias.name):
            names[f"{package}.{alias.name}"] = None


def _is_submodule(package: str, name: str) -> bool:
    full = f"{package}.{name}"
    if full in sys.modules:
        return True
    parent = sys.modules.get(package)
    if parent is None or not hasattr(parent, "__path__"):
        return False
    try:
        return importlib.util.find_spec(full) is not None
    except (ImportError, ValueError):
        return False


def _module_level_imports(body: list[ast.stmt]):
    """Import statements executed when the module body runs.

    Imports inside functions are lazy by intent and ``if TYPE_CHECKING:``
    blocks never run, so neither is followed.
    """
    for node in body:
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            yield node
        elif isinstance(node, ast.If):
            if not _is_type_checking(node.test):
                yield from _module_level_imports(node.body)
            yield from _module_level_imports(node.orelse)
        elif isinstance(node, (ast.Try, ast.TryStar)):
            yield from _module_level_imports(node.body)
            for handler in node.handlers:
                yield from _module_level_imports(handler.body)
            yield from _module_level_imports(node.orelse)
            yield from _module_level_imports(node.finalbody)
        elif isinstance(node, ast.With):
            yield from _module_level_imports(node.body)


def _is_type_checking(test: ast.expr) -> bool:
    if isinstance(test, ast.Name):
        return test.id == "TYPE_CHECKING"
    return isinstance(test, ast.Attribute) and test.attr == "TYPE_CHECKING"


def _resolve_relative(module: str | None, level: int, package: str) -> str | None:
    if not package:
        return None
    try:
        return importlib.util.resolve_name("." * level + (module or ""), package)
    except (ImportError, ValueError):
        return None
