"""
Shared test fixtures and configuration.
"""

import importlib
import sys
import textwrap
from pathlib import Path
from typing import Callable

import pytest

from plugboot.core import context
from plugboot.core.models.module import Module
from plugboot.core.services.module_loader import ModuleLoader


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    """Return a temporary cache directory."""
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest.fixture
def module_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """A directory on sys.path for throwaway modules.

    Modules imported during the test are dropped from sys.modules
    afterwards so names can be reused between tests.
    """
    path = tmp_path / "mods"
    path.mkdir()
    monkeypatch.syspath_prepend(str(path))
    before = set(sys.modules)
    yield path
    for name in set(sys.modules) - before:
        sys.modules.pop(name, None)
    importlib.invalidate_caches()


@pytest.fixture
def write_module(module_dir: Path) -> Callable[..., Path]:
    """Write ``<name>.py`` (dedented) into ``module_dir`` and return its path."""

    def _write(name: str, source: str = "", directory: Path | None = None) -> Path:
        target = (directory or module_dir) / f"{name}.py"
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(textwrap.dedent(source))
        importlib.invalidate_caches()
        return target

    return _write


@pytest.fixture(autouse=True)
def _reset_context():
    """Every test starts without an entry override or default bootstrapper."""
    context.set_entry_module(None)
    context.set_bootstrapper(None)
    yield
    context.set_entry_module(None)
    context.set_bootstrapper(None)


class FakeLoader(ModuleLoader):
    """Loader over an in-memory module graph (name → dependencies)."""

    def __init__(self, graph: dict[str, list[str]]) -> None:
        self.graph = graph
        self.attempts: list[str] = []

    def load(self, name: str) -> Module:
        self.attempts.append(name)
        if name not in self.graph:
            raise ImportError(f"No module named {name!r}")
        return Module(name=name, dependencies=tuple(self.graph[name]))

    def load_file(self, path: Path) -> Module:
        raise ImportError(f"not supported: {path}")

    def describe(self, handle) -> Module:
        return Module(name=handle.__name__, handle=handle)


@pytest.fixture
def fake_loader() -> Callable[[dict[str, list[str]]], FakeLoader]:
    """Factory for FakeLoader instances."""
    return FakeLoader
