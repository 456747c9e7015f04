"""
Type metadata — what a loaded module contains, as seen by queries.

Given a Module this answers:

    - which classes it declares (``scan_types``), tolerating names that
      fail to resolve (lazy ``__getattr__`` exports whose own imports
      are missing)
    - which functions it and its classes define (``iter_methods``)
    - whether a class implements an interface or inherits a base
    - how to turn a class or function into a stable text token and back

Tokens look like ``package.module:Outer.Inner.method``.
"""

from __future__ import annotations

import importlib
import inspect
import logging
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from plugboot.core.models.markers import Marker, markers_of
from plugboot.core.models.module import Module

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TypeLoadError:
    """A name in a module that could not be resolved."""

    name: str
    error: BaseException

    def __str__(self) -> str:
        return f"{self.name}: {type(self.error).__name__}: {self.error}"


@dataclass
class TypeScan:
    """Result of enumerating a module's declared types."""

    module: str
    types: list[type] = field(default_factory=list)
    errors: list[TypeLoadError] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.errors)


@dataclass(frozen=True)
class MarkedType:
    """A class together with the markers of the queried kind it carries."""

    type: type
    markers: tuple[Marker, ...]


@dataclass(frozen=True)
class MarkedMethod:
    """A function (module-level or defined in a class) with its markers."""

    method: Callable[..., Any]
    owner: Any                       # the module object or the defining class
    markers: tuple[Marker, ...]

    @property
    def token(self) -> str:
        return qualified_name(self.method)


# ── Enumeration ─────────────────────────────────────────────────


def scan_types(module: Module) -> TypeScan:
    """Enumerate the classes declared by ``module``.

    Resolution errors for individual names are collected, not raised,
    so a module with unused-but-missing dependencies still yields the
    types that did load.
    """
    handle = module.handle
    scan = TypeScan(module=module.name)
    if handle is None:
        return scan

    names = list(vars(handle))
    exported = getattr(handle, "__all__", None) or ()
    names.extend(n for n in exported if isinstance(n, str) and n not in names)

    for name in names:
        try:
            value = getattr(handle, name)
        except Exception as e:
            scan.errors.append(TypeLoadError(name=name, error=e))
            continue
        if inspect.isclass(value) and value.__module__ == module.name:
            if value not in scan.types:
                scan.types.append(value)

    if scan.partial:
        logger.debug(
            "type load errors in module %s (%d of %d names failed)",
            module.name, len(scan.errors), len(names),
        )
        logger.debug("module file is %s", module.location)
        for error in scan.errors:
            logger.debug("  loader error: %s", error)
    return scan


def iter_methods(module: Module, types: list[type]) -> Iterator[tuple[Callable[..., Any], Any]]:
    """Yield ``(callable, owner)`` for module functions and class-defined functions.

    Static and class methods are yielded as accessed through the class,
    so they are directly callable.
    """
    handle = module.handle
    if handle is not None:
        for value in list(vars(handle).values()):
            if inspect.isfunction(value) and value.__module__ == module.name:
                yield value, handle

    for cls in types:
        yield from _class_methods(cls)


def _class_methods(cls: type) -> Iterator[tuple[Callable[..., Any], type]]:
    for name, raw in list(vars(cls).items()):
        if not isinstance(raw, (staticmethod, classmethod)) and not inspect.isfunction(raw):
            continue
        try:
            yield getattr(cls, name), cls
        except Exception as e:
            logger.debug("cannot access %s.%s: %s", cls.__qualname__, name, e)


# ── Relations ───────────────────────────────────────────────────


def implements(cls: type, interface: type) -> bool:
    """Concrete class whose interface set contains ``interface``."""
    if cls is interface or inspect.isabstract(cls):
        return False
    try:
        return issubclass(cls, interface)
    except TypeError:
        # Protocols with data members refuse issubclass()
        return False


def inherits(cls: type, base: type) -> bool:
    """``base`` is a proper ancestor of ``cls``."""
    return base in cls.__mro__[1:]


def with_markers(objects, marker_cls: type[Marker]):
    """Pair each object with its ``marker_cls`` markers, dropping unmarked ones."""
    for obj in objects:
        found = markers_of(obj, marker_cls)
        if found:
            yield obj, found


# ── Tokens ──────────────────────────────────────────────────────


def qualified_name(obj: Any) -> str:
    """Stable text token for a class or function."""
    target = getattr(obj, "__func__", obj)
    return f"{target.__module__}:{target.__qualname__}"


def resolve_token(token: str, module: Module | None = None) -> Any:
    """Resolve a token produced by ``qualified_name``.

    Raises:
        LookupError: If the token is malformed or does not resolve.
    """
    module_name, sep, qualname = token.partition(":")
    if not sep or not module_name or not qualname:
        raise LookupError(f"Malformed token: {token!r}")

    if module is not None:
        # Results of a per-module query always belong to that module
        if module.name != module_name or module.handle is None:
            raise LookupError(f"{token!r} does not belong to module {module.name!r}")
        obj = module.handle
    else:
        obj = sys.modules.get(module_name)
        if obj is None:
            try:
                obj = importlib.import_module(module_name)
            except Exception as e:
                raise LookupError(f"Cannot import {module_name!r}: {e}") from e

    for part in qualname.split("."):
        if part == "<locals>":
            raise LookupError(f"Local objects cannot be resolved: {token!r}")
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise LookupError(f"Cannot resolve {token!r}: {e}") from e
    return obj


def owner_of(obj: Any, module: Module) -> Any:
    """The class a resolved method is defined on, or the module object."""
    target = getattr(obj, "__func__", obj)
    parts = target.__qualname__.split(".")
    if len(parts) == 1:
        return module.handle
    return resolve_token(f"{target.__module__}:{'.'.join(parts[:-1])}", module)
