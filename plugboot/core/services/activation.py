"""
Activation — validate and invoke one ``@on_init`` method.

Two call shapes are accepted:

    def setup() -> None                              → called with no arguments
    def setup(modules: Sequence[Module]) -> None     → called with every known module

The single parameter may be annotated with any of ``Iterable``,
``Sequence``, ``Collection``, ``list``, ``tuple``, ``set`` or
``frozenset``, parameterised with ``Module`` (the module records) or
``types.ModuleType`` (the live module objects). Anything else is
malformed: reported in a skipped receipt, never called.

``invoke`` never raises. Exceptions from the method become a failed
receipt and a warning in the log.
"""

from __future__ import annotations

import collections.abc
import inspect
import logging
import time
import typing
from dataclasses import dataclass
from enum import StrEnum
from types import ModuleType
from typing import Any, Callable

from plugboot.core.models.activation import ActivationReceipt
from plugboot.core.models.module import Module
from plugboot.core.observability.metrics import MetricsRegistry
from plugboot.core.services.type_metadata import MarkedMethod

logger = logging.getLogger(__name__)


class ActivationShape(StrEnum):
    NO_ARGS = "no_args"
    MODULES = "modules"
    MALFORMED = "malformed"


# Annotation origin → concrete container passed to the method
_CONTAINERS: dict[Any, Callable[[list], Any]] = {
    collections.abc.Iterable: tuple,
    collections.abc.Sequence: tuple,
    collections.abc.Collection: tuple,
    list: list,
    tuple: tuple,
    set: set,
    frozenset: frozenset,
}

_POSITIONAL = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


@dataclass(frozen=True)
class CallShape:
    """How an activation method must be called."""

    shape: ActivationShape
    container: Callable[[list], Any] | None = None
    element: type | None = None        # Module or ModuleType
    reason: str = ""

    @classmethod
    def malformed(cls, reason: str) -> CallShape:
        return cls(ActivationShape.MALFORMED, reason=reason)

    def argument(self, modules: list[Module]) -> Any:
        """The value passed for the single parameter."""
        if self.container is None:
            raise ValueError(f"{self.shape} methods take no argument")
        if self.element is ModuleType:
            return self.container([m.handle for m in modules if m.handle is not None])
        return self.container(list(modules))


def classify(fn: Callable[..., Any]) -> CallShape:
    """Work out how ``fn`` has to be called."""
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError) as e:
        return CallShape.malformed(f"no signature: {e}")

    params = list(signature.parameters.values())
    if not params:
        return CallShape(ActivationShape.NO_ARGS)
    if len(params) > 1:
        return CallShape.malformed(f"expected at most one parameter, got {len(params)}")

    param = params[0]
    if param.kind not in _POSITIONAL:
        return CallShape.malformed(f"parameter {param.name!r} must be positional")

    try:
        hints = typing.get_type_hints(fn)
    except Exception as e:
        return CallShape.malformed(f"cannot resolve annotations: {e}")

    annotation = hints.get(param.name)
    if annotation is None:
        return CallShape.malformed(f"parameter {param.name!r} is not annotated")

    origin = typing.get_origin(annotation)
    container = _CONTAINERS.get(origin)
    args = [a for a in typing.get_args(annotation) if a is not Ellipsis]
    if container is None or len(args) != 1:
        return CallShape.malformed(f"parameter {param.name!r} is not a module collection")

    element = args[0]
    if element is not Module and element is not ModuleType:
        return CallShape.malformed(f"parameter {param.name!r} holds {element!r}, not modules")
    return CallShape(ActivationShape.MODULES, container=container, element=element)


def invoke(
    found: MarkedMethod,
    modules: list[Module],
    metrics: MetricsRegistry | None = None,
) -> ActivationReceipt:
    """Call one activation method and record the outcome."""
    metrics = metrics or MetricsRegistry()
    token = found.token
    module_name = token.partition(":")[0]

    shape = classify(found.method)
    if shape.shape == ActivationShape.MALFORMED:
        logger.warning("Malformed activation method %s: %s", token, shape.reason)
        return ActivationReceipt.skip(token, module_name, shape.reason, shape=str(shape.shape))

    logger.debug("invoking %s (%s)", token, shape.shape)
    metrics.counter("activation.invoked").inc()
    start = time.monotonic()
    try:
        if shape.shape == ActivationShape.NO_ARGS:
            found.method()
        else:
            found.method(shape.argument(modules))
    except Exception as e:
        elapsed_ms = int((time.monotonic() - start) * 1000)
        metrics.counter("activation.failed").inc()
        logger.warning("Activation method %s failed: %s: %s", token, type(e).__name__, e)
        return ActivationReceipt.failure(
            token, module_name, f"{type(e).__name__}: {e}",
            shape=str(shape.shape), duration_ms=elapsed_ms,
        )

    elapsed_ms = int((time.monotonic() - start) * 1000)
    return ActivationReceipt.success(
        token, module_name, shape=str(shape.shape), duration_ms=elapsed_ms,
    )
