"""
Query engine — the four reflective queries, cached per module.

Each query takes an optional module. Without one it runs over every
module in the registry (name order) and concatenates the results.

    implementing(interface)        concrete classes implementing an ABC/protocol
    inheriting(base)               classes with ``base`` among their ancestors
    types_with_marker(marker_cls)  classes carrying the marker, with markers
    methods_with_marker(marker_cls) functions carrying the marker, with markers
"""

from __future__ import annotations

import logging
from typing import Iterable

from plugboot.core.models.markers import Marker, markers_of
from plugboot.core.models.module import Module
from plugboot.core.services.module_graph import ModuleRegistry
from plugboot.core.services.query_cache import QueryCache
from plugboot.core.services.type_metadata import (
    MarkedMethod,
    MarkedType,
    implements,
    inherits,
    iter_methods,
    owner_of,
    qualified_name,
    resolve_token,
    with_markers,
)

logger = logging.getLogger(__name__)


def _discriminator(kind: str, target: type) -> str:
    return f"{kind}:{qualified_name(target)}"


class QueryEngine:
    """Answers type/method queries over one module or all known modules."""

    def __init__(self, cache: QueryCache, registry: ModuleRegistry) -> None:
        self._cache = cache
        self._registry = registry

    # ── Types implementing an interface ─────────────────────────

    def implementing(self, interface: type, module: Module | None = None) -> list[type]:
        if module is None:
            return self._everywhere(lambda m: self.implementing(interface, m))
        return self._cache.query(
            module,
            _discriminator("implements", interface),
            lambda types: [t for t in types if implements(t, interface)],
            self._encode_types,
            lambda tokens: self._decode_types(tokens, module),
        )

    # ── Types inheriting a base ─────────────────────────────────

    def inheriting(self, base: type, module: Module | None = None) -> list[type]:
        if module is None:
            return self._everywhere(lambda m: self.inheriting(base, m))
        return self._cache.query(
            module,
            _discriminator("inherits", base),
            lambda types: [t for t in types if inherits(t, base)],
            self._encode_types,
            lambda tokens: self._decode_types(tokens, module),
        )

    # ── Types carrying a marker ─────────────────────────────────

    def types_with_marker(
        self, marker_cls: type[Marker], module: Module | None = None
    ) -> list[MarkedType]:
        if module is None:
            return self._everywhere(lambda m: self.types_with_marker(marker_cls, m))

        def compute(types: list[type]) -> list[MarkedType]:
            return [MarkedType(t, found) for t, found in with_markers(types, marker_cls)]

        def decode(tokens: list[str]) -> list[MarkedType]:
            return [
                MarkedType(t, markers_of(t, marker_cls))
                for t in self._decode_types(tokens, module)
            ]

        return self._cache.query(
            module,
            _discriminator("types-with", marker_cls),
            compute,
            lambda result: [qualified_name(r.type) for r in result],
            decode,
        )

    # ── Methods carrying a marker ───────────────────────────────

    def methods_with_marker(
        self, marker_cls: type[Marker], module: Module | None = None
    ) -> list[MarkedMethod]:
        if module is None:
            return self._everywhere(lambda m: self.methods_with_marker(marker_cls, m))

        def compute(types: list[type]) -> list[MarkedMethod]:
            found: list[MarkedMethod] = []
            for method, owner in iter_methods(module, types):
                markers = markers_of(method, marker_cls)
                if markers:
                    found.append(MarkedMethod(method, owner, markers))
            return found

        def decode(tokens: list[str]) -> list[MarkedMethod]:
            result: list[MarkedMethod] = []
            for token in tokens:
                method = resolve_token(token, module)
                markers = markers_of(method, marker_cls)
                if not markers:
                    raise LookupError(f"{token} no longer carries {marker_cls.__name__}")
                result.append(MarkedMethod(method, owner_of(method, module), markers))
            return result

        return self._cache.query(
            module,
            _discriminator("methods-with", marker_cls),
            compute,
            lambda result: [r.token for r in result],
            decode,
        )

    # ── Helpers ─────────────────────────────────────────────────

    def _everywhere(self, per_module):
        result: list = []
        for module in self._registry.modules():
            result.extend(per_module(module))
        return result

    @staticmethod
    def _encode_types(types: Iterable[type]) -> list[str]:
        return [qualified_name(t) for t in types]

    @staticmethod
    def _decode_types(tokens: list[str], module: Module) -> list[type]:
        types = []
        for token in tokens:
            obj = resolve_token(token, module)
            if not isinstance(obj, type):
                raise LookupError(f"{token} is not a class")
            types.append(obj)
        return types
