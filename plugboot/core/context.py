"""
Process context — the entry module override and the default bootstrapper.

Most processes never touch this: the entry module is ``__main__`` and
``plugboot.init()`` uses a bootstrapper built from ``plugboot.yml``.
Hosts where ``__main__`` is not the application (interactive shells,
test runners, embedding hosts) register the real entry first:

    import plugboot, myapp
    plugboot.set_entry_module(myapp)
    plugboot.init()

Module-level singletons, like the rest of the process-wide state.
"""

from __future__ import annotations

import threading
from types import ModuleType
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from plugboot.core.engine.bootstrap import Bootstrapper

EntryModule = Union[ModuleType, str]

_entry_module: Optional[EntryModule] = None
_bootstrapper: Optional["Bootstrapper"] = None
_lock = threading.Lock()


def set_entry_module(module: Optional[EntryModule]) -> None:
    """Use ``module`` (object or dotted name) instead of ``__main__``."""
    global _entry_module
    _entry_module = module


def get_entry_module() -> Optional[EntryModule]:
    """Return the entry module override, or None if not set."""
    return _entry_module


def get_bootstrapper() -> "Bootstrapper":
    """The process-wide bootstrapper, created from the config on first use."""
    global _bootstrapper
    with _lock:
        if _bootstrapper is None:
            from plugboot.core.config.loader import load_config
            from plugboot.core.engine.bootstrap import Bootstrapper

            _bootstrapper = Bootstrapper(load_config())
        return _bootstrapper


def set_bootstrapper(bootstrapper: Optional["Bootstrapper"]) -> None:
    """Replace (or with None, forget) the process-wide bootstrapper."""
    global _bootstrapper
    with _lock:
        _bootstrapper = bootstrapper
