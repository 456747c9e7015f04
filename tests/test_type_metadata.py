"""
Tests for type metadata — type scans, relations, tokens.
"""

import abc
from typing import Protocol, runtime_checkable

import pytest

from plugboot.core.models.markers import OnInit
from plugboot.core.services.module_loader import ImportlibLoader
from plugboot.core.services.type_metadata import (
    implements,
    inherits,
    iter_methods,
    owner_of,
    qualified_name,
    resolve_token,
    scan_types,
)

SHAPES = """\
    import abc
    from plugboot import on_init

    class Shape(abc.ABC):
        @abc.abstractmethod
        def area(self): ...

    class Square(Shape):
        def area(self):
            return 1

        @staticmethod
        @on_init
        def register():
            pass

    class Outer:
        class Inner:
            pass

    @on_init
    def setup():
        pass

    IMPORTED = abc.ABCMeta
"""

PARTIAL = """\
    __all__ = ["Good", "Broken"]

    class Good:
        pass

    def __getattr__(name):
        if name == "Broken":
            import plugboot_missing_dependency_xyz
        raise AttributeError(name)
"""


@pytest.fixture
def shapes(write_module):
    write_module("shapes", SHAPES)
    return ImportlibLoader().load("shapes")


class TestScanTypes:
    def test_declared_classes_only(self, shapes):
        scan = scan_types(shapes)
        names = sorted(t.__qualname__ for t in scan.types)
        assert names == ["Outer", "Shape", "Square"]
        assert not scan.partial

    def test_partial_failure_keeps_loadable_types(self, write_module):
        write_module("partial_mod", PARTIAL)
        module = ImportlibLoader().load("partial_mod")

        scan = scan_types(module)
        assert [t.__name__ for t in scan.types] == ["Good"]
        assert scan.partial
        assert scan.errors[0].name == "Broken"
        assert isinstance(scan.errors[0].error, ImportError)

    def test_module_without_handle(self):
        from plugboot.core.models.module import Module

        assert scan_types(Module(name="ghost")).types == []


class TestIterMethods:
    def test_module_and_class_functions(self, shapes):
        scan = scan_types(shapes)
        methods = {qualified_name(fn) for fn, _owner in iter_methods(shapes, scan.types)}
        assert "shapes:setup" in methods
        assert "shapes:Square.register" in methods
        assert "shapes:Square.area" in methods

    def test_owner(self, shapes):
        scan = scan_types(shapes)
        owners = {qualified_name(fn): owner for fn, owner in iter_methods(shapes, scan.types)}
        assert owners["shapes:setup"] is shapes.handle
        assert owners["shapes:Square.register"] is shapes.handle.Square


class TestRelations:
    def test_implements_concrete_only(self, shapes):
        Shape, Square = shapes.handle.Shape, shapes.handle.Square
        assert implements(Square, Shape)
        assert not implements(Shape, Shape)

    def test_implements_protocol(self):
        @runtime_checkable
        class Closable(Protocol):
            def close(self) -> None: ...

        class File:
            def close(self) -> None:
                pass

        assert implements(File, Closable)

    def test_implements_data_protocol_is_false(self):
        @runtime_checkable
        class HasName(Protocol):
            name: str

        class Named:
            name = "x"

        assert not implements(Named, HasName)

    def test_inherits_proper_ancestor(self):
        class A:
            pass

        class B(A):
            pass

        class C(B):
            pass

        assert inherits(C, A)
        assert inherits(B, A)
        assert not inherits(A, A)
        assert not inherits(A, C)

    def test_abstract_helper_not_counted(self):
        class Iface(abc.ABC):
            @abc.abstractmethod
            def run(self): ...

        class Partial(Iface):
            pass

        assert not implements(Partial, Iface)
        assert inherits(Partial, Iface)


class TestTokens:
    def test_round_trip(self, shapes):
        Inner = shapes.handle.Outer.Inner
        token = qualified_name(Inner)
        assert token == "shapes:Outer.Inner"
        assert resolve_token(token, shapes) is Inner

    def test_static_method_token(self, shapes):
        register = shapes.handle.Square.register
        assert resolve_token(qualified_name(register), shapes) is register
        assert owner_of(register, shapes) is shapes.handle.Square

    def test_resolve_by_import(self):
        assert resolve_token("plugboot.core.models.markers:OnInit") is OnInit

    @pytest.mark.parametrize("token", ["no_colon", ":Name", "shapes:", "shapes:Missing"])
    def test_unresolvable(self, shapes, token: str):
        with pytest.raises(LookupError):
            resolve_token(token, shapes)

    def test_foreign_module_token_rejected(self, shapes):
        with pytest.raises(LookupError):
            resolve_token("other_module:Square", shapes)

    def test_locals_rejected(self, shapes):
        with pytest.raises(LookupError):
            resolve_token("shapes:f.<locals>.g", shapes)

    def test_unknown_module(self):
        with pytest.raises(LookupError):
            resolve_token("plugboot_no_such_module_abc:Thing")
