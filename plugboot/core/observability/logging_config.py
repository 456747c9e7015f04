"""
Logging configuration — one-time setup for the ``plugboot`` command.

Every module logs through ``logging.getLogger(__name__)``. Embedding
hosts own their logging setup; only the CLI calls ``setup_logging``.

Console level precedence (``resolve_level``):

    --debug  >  --verbose  >  --quiet  >  $PLUGBOOT_LOG_LEVEL  >  WARNING

``$PLUGBOOT_LOG_FILE`` adds a file handler, at
``$PLUGBOOT_LOG_FILE_LEVEL`` or the console level.

What each level carries:
    WARNING — a feature degraded (link skipped, activation method failed)
    INFO    — progress (unpacking payloads, loading plugins, system info)
    DEBUG   — cache hits/misses, probe outcomes, per-name load errors
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Mapping

ENV_LEVEL = "PLUGBOOT_LOG_LEVEL"
ENV_FILE = "PLUGBOOT_LOG_FILE"
ENV_FILE_LEVEL = "PLUGBOOT_LOG_FILE_LEVEL"

# ── Formats (level → format, datefmt) ───────────────────────────

_CONSOLE_FORMATS: list[tuple[int, str, str | None]] = [
    (logging.DEBUG, "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
]
_CONSOLE_DEFAULT = "%(levelname)s: %(message)s"

_FILE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d  %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Imported (and chatty) while plugin candidates are probed
_NOISY_LOGGERS = ("urllib3", "asyncio", "PIL", "matplotlib")


def resolve_level(
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Console level name from CLI flags and the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    env = os.environ if environ is None else environ
    return env.get(ENV_LEVEL) or "WARNING"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Install console (and optional file) handlers on the root logger.

    Args:
        level: Console level name.
        log_file: Path of an extra log file, if any.
        log_file_level: Level for the file; defaults to ``level``.
        quiet_third_party: Cap known chatty libraries at WARNING unless
            the console runs at DEBUG.
    """
    console_level = _parse_level(level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_console_formatter(console_level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(handler)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _console_formatter(level: int) -> logging.Formatter:
    for threshold, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= threshold:
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter(_CONSOLE_DEFAULT)


def _parse_level(level: str | None) -> int:
    """Level name → numeric level (unknown names mean WARNING)."""
    numeric = getattr(logging, (level or "").upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING
