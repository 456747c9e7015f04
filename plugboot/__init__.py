"""
plugboot — module discovery, cached reflective queries and plugin activation.

Typical host:

    import plugboot

    @plugboot.on_init
    def setup(modules: list[plugboot.Module]) -> None:
        ...

    plugboot.init()

Plugins are plain modules next to the entry script whose functions
carry ``@on_init``. ``init()`` finds them, loads them, and runs every
activation method once.
"""

from __future__ import annotations

from types import ModuleType

from plugboot.core.context import get_bootstrapper, set_entry_module
from plugboot.core.engine.bootstrap import Bootstrapper, BootReport
from plugboot.core.models import Marker, Module, OnInit, mark, markers_of, on_init

__version__ = "0.1.0"


def init() -> BootReport:
    """Run the init sequence with the process-wide bootstrapper."""
    return get_bootstrapper().init()


def register_module(module: Module | ModuleType) -> bool:
    """Make a module known at runtime (for later queries and activation)."""
    bootstrapper = get_bootstrapper()
    if isinstance(module, ModuleType):
        module = bootstrapper.loader.describe(module)
    return bootstrapper.register_module(module)


__all__ = [
    "BootReport",
    "Bootstrapper",
    "Marker",
    "Module",
    "OnInit",
    "__version__",
    "get_bootstrapper",
    "init",
    "mark",
    "markers_of",
    "on_init",
    "register_module",
    "set_entry_module",
]
