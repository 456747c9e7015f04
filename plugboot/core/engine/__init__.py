"""Engine — the init sequence."""

from plugboot.core.engine.bootstrap import Bootstrapper, BootReport

__all__ = ["BootReport", "Bootstrapper"]
