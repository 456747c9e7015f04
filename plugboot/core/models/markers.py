"""
Declarative markers — metadata attached to classes and functions.

Markers are discoverable without calling the decorated object. The
query engine reads them back to answer "which types / methods carry
marker T" questions.

Usage:

    from plugboot import on_init

    @on_init
    def setup() -> None:
        ...

    class Feature:
        @staticmethod
        @on_init
        def register(modules: Sequence[Module]) -> None:
            ...
"""

from __future__ import annotations

from types import MethodType
from typing import Any, Callable, TypeVar

MARKERS_ATTR = "__plugboot_markers__"

T = TypeVar("T")


class Marker:
    """Base class for all declarative markers."""

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in vars(self).items())
        return f"{self.__class__.__name__}({fields})"

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return vars(self) == vars(other)

    def __hash__(self) -> int:
        return hash((type(self), tuple(sorted(vars(self).items()))))


class OnInit(Marker):
    """Activation marker: the method runs once, after all modules are known."""


def _target(obj: Any) -> Any:
    """The object that actually carries markers (unwraps static/class methods)."""
    if isinstance(obj, (staticmethod, classmethod, MethodType)):
        return obj.__func__
    return obj


def mark(marker: Marker) -> Callable[[T], T]:
    """Return a decorator that attaches ``marker`` to a class or function.

    The decorated object is returned unchanged. ``staticmethod`` and
    ``classmethod`` wrappers are accepted; the marker goes on the
    wrapped function.
    """

    def decorator(obj: T) -> T:
        target = _target(obj)
        # Read from the object's own namespace so subclasses don't
        # inherit (and then extend) a parent's markers.
        existing = vars(target).get(MARKERS_ATTR, ()) if hasattr(target, "__dict__") else ()
        setattr(target, MARKERS_ATTR, (*existing, marker))
        return obj

    return decorator


def on_init(obj: T) -> T:
    """Mark a zero-argument or module-sequence function as an activation method."""
    return mark(OnInit())(obj)


def markers_of(obj: Any, marker_cls: type[Marker]) -> tuple[Marker, ...]:
    """Return the ``marker_cls`` instances attached directly to ``obj``."""
    target = _target(obj)
    try:
        own = vars(target).get(MARKERS_ATTR, ())
    except TypeError:
        return ()
    return tuple(m for m in own if isinstance(m, marker_cls))
