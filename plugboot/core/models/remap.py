"""
Remap rules — OS-scoped native library name mappings.

A rule says "on <os>, the library the code asks for as <library> is
really <target>". Rules are shipped in the ``remap.xml`` (or
``remap.yml``) manifest inside a module's native archive.
"""

from __future__ import annotations

import sys
from enum import StrEnum

from pydantic import BaseModel


class TargetOS(StrEnum):
    """Operating systems a remap rule can be scoped to."""

    WINDOWS = "windows"
    LINUX = "linux"
    MACOS = "mac"

    @classmethod
    def parse(cls, tag: str) -> TargetOS | None:
        """Map a manifest OS tag onto a TargetOS (None if unknown)."""
        value = tag.strip().lower()
        if value in ("win", "windows", "win32", "win64"):
            return cls.WINDOWS
        if value in ("linux", "nix", "unix"):
            return cls.LINUX
        if value in ("mac", "macos", "macosx"):
            return cls.MACOS
        return None

    @classmethod
    def current(cls) -> TargetOS:
        """The OS of the running interpreter."""
        if sys.platform.startswith("win") or sys.platform == "cygwin":
            return cls.WINDOWS
        if sys.platform == "darwin":
            return cls.MACOS
        return cls.LINUX


class RemapRule(BaseModel):
    """One directional mapping from a logical library name to a target."""

    library: str
    os: TargetOS
    target: str
