"""
ldconfig adapter — index of the system's shared library search paths.

Runs ``ldconfig -p`` once per process and keeps the entries built for
the interpreter's CPU architecture. Lines look like:

    libz.so.1 (libc6,x86-64) => /lib/x86_64-linux-gnu/libz.so.1
    libfoo.so (libc6) => /usr/lib/i386-linux-gnu/libfoo.so

Only POSIX systems with ldconfig have an index; everywhere else the
index is empty and callers fall back to the base directory.
"""

from __future__ import annotations

import logging
import platform
import re
import struct
import subprocess
import threading

logger = logging.getLogger(__name__)

LDCONFIG_COMMAND = ["/bin/sh", "-c", "ldconfig -p"]

_ENTRY = re.compile(
    r"^\s*(?P<name>\S+)\s+\((?P<flags>[^)]*)\)\s+=>\s+(?P<path>.+?)\s*$"
)

# platform.machine() → architecture tag used by ldconfig
_ARCH_TAGS = {
    "x86_64": "x86-64",
    "amd64": "x86-64",
    "aarch64": "AArch64",
    "arm64": "AArch64",
}


def interpreter_arch_tag() -> str | None:
    """ldconfig architecture tag for this interpreter (None on 32-bit)."""
    if struct.calcsize("P") != 8:
        return None
    return _ARCH_TAGS.get(platform.machine().lower())


def parse_ldconfig_output(output: str, arch: str | None) -> dict[str, str]:
    """Parse ``ldconfig -p`` output into ``{library name: path}``.

    Args:
        output: Raw command output (the first line is a summary).
        arch: Architecture tag to keep. None keeps only entries without
            an architecture tag.

    Returns:
        The first matching path for each library name.
    """
    index: dict[str, str] = {}
    for line in output.splitlines():
        match = _ENTRY.match(line)
        if not match:
            continue
        flags = [f.strip() for f in match.group("flags").split(",")]
        entry_arch = flags[1] if len(flags) > 1 else None
        if entry_arch != arch:
            continue
        index.setdefault(match.group("name"), match.group("path"))
    return index


class LdconfigIndex:
    """Lazily built, lock-guarded library name → path map."""

    def __init__(self, command: list[str] | None = None, timeout: int = 30) -> None:
        self._command = command or LDCONFIG_COMMAND
        self._timeout = timeout
        self._index: dict[str, str] | None = None
        self._lock = threading.Lock()

    @property
    def built(self) -> bool:
        return self._index is not None

    def lookup(self, name: str) -> str | None:
        """Path of library ``name`` as known to the dynamic linker."""
        return self._entries().get(name)

    def _entries(self) -> dict[str, str]:
        with self._lock:
            if self._index is None:
                self._index = self._build()
            return self._index

    def _build(self) -> dict[str, str]:
        logger.debug("Executing: %s", " ".join(self._command))
        try:
            result = subprocess.run(
                self._command,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning("ldconfig timed out after %ds", self._timeout)
            return {}
        except OSError as e:
            logger.warning("Could not run ldconfig: %s", e)
            return {}

        if result.returncode != 0:
            logger.warning(
                "ldconfig exited with code %d: %s",
                result.returncode, result.stderr.strip(),
            )
            return {}

        index = parse_ldconfig_output(result.stdout, interpreter_arch_tag())
        logger.debug("ldconfig index built (%d libraries)", len(index))
        return index
