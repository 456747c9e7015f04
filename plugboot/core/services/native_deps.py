"""
Native dependency resolver — unpack native payloads shipped with modules.

A module may carry a zip archive of native libraries:

    package    → ``native.zip`` resource inside the package
    plain file → ``<stem>.native.zip`` next to the module file

Layout of the archive:

    remap.xml | remap.yml        OS-scoped library name mappings
    <platform>/<arch>/...        files for one platform/architecture

For the running platform the matching subtree is extracted into the
base directory, then one symbolic link is created per remap rule. No
failure here ever propagates: every problem is logged as a warning
and the next entry, link or module is processed.
"""

from __future__ import annotations

import logging
import os
import shutil
import struct
import threading
import zipfile
from contextlib import ExitStack
from datetime import datetime
from importlib import resources
from pathlib import Path, PurePosixPath
from xml.etree import ElementTree

import yaml

from plugboot.adapters.shell.ldconfig import LdconfigIndex
from plugboot.core.models.config import DEFAULT_NATIVE_ARCHIVE
from plugboot.core.models.module import Module
from plugboot.core.models.remap import RemapRule, TargetOS
from plugboot.core.observability.metrics import MetricsRegistry

logger = logging.getLogger(__name__)

MANIFEST_XML = "remap.xml"
MANIFEST_YAML = "remap.yml"


def platform_dir(os_: TargetOS | None = None) -> str:
    return str(os_ or TargetOS.current())


def arch_dir() -> str:
    return "AMD64" if struct.calcsize("P") == 8 else "x86"


# ── Manifest parsing ────────────────────────────────────────────


def _rule(library, os_tag, target) -> RemapRule | None:
    if not library or not os_tag or not target:
        return None
    os_ = TargetOS.parse(str(os_tag))
    if os_ is None:
        logger.debug("unknown os tag in remap rule: %s", os_tag)
        return None
    return RemapRule(library=str(library), os=os_, target=str(target))


def parse_remap_xml(text: str) -> list[RemapRule]:
    """Parse ``<configuration><dllmap dll=".." os=".." target=".."/></configuration>``."""
    root = ElementTree.fromstring(text)
    rules = []
    for element in root.iter("dllmap"):
        rule = _rule(element.get("dll"), element.get("os"), element.get("target"))
        if rule is not None:
            rules.append(rule)
    return rules


def parse_remap_yaml(text: str) -> list[RemapRule]:
    """Parse ``mappings: [{library: .., os: .., target: ..}, ...]``."""
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError("remap manifest must be a mapping")
    rules = []
    for item in data.get("mappings") or []:
        if not isinstance(item, dict):
            continue
        rule = _rule(item.get("library"), item.get("os"), item.get("target"))
        if rule is not None:
            rules.append(rule)
    return rules


def read_manifest(archive: zipfile.ZipFile, os_: TargetOS) -> list[RemapRule]:
    """Remap rules for ``os_`` from the archive root (empty if none)."""
    names = set(archive.namelist())
    if MANIFEST_XML in names:
        rules = parse_remap_xml(archive.read(MANIFEST_XML).decode("utf-8"))
    elif MANIFEST_YAML in names:
        rules = parse_remap_yaml(archive.read(MANIFEST_YAML).decode("utf-8"))
    else:
        return []
    return [r for r in rules if r.os == os_]


# ── Resolver ────────────────────────────────────────────────────


class NativeDependencyResolver:
    """Extracts native payloads and creates remap links, once per module."""

    def __init__(
        self,
        base_dir: Path,
        library_index: LdconfigIndex | None = None,
        archive_name: str = DEFAULT_NATIVE_ARCHIVE,
        metrics: MetricsRegistry | None = None,
        target_os: TargetOS | None = None,
    ) -> None:
        self._base_dir = Path(base_dir)
        self._index = library_index or LdconfigIndex()
        self._archive_name = archive_name
        self._metrics = metrics or MetricsRegistry()
        self._os = target_os or TargetOS.current()
        self._seen: set[str] = set()
        self._lock = threading.Lock()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def resolve(self, module: Module) -> None:
        """Unpack ``module``'s native payload (no-op without one, or if seen)."""
        with self._lock:
            if module.key in self._seen:
                return
            self._seen.add(module.key)

        try:
            with ExitStack() as stack:
                path = self._locate_archive(module, stack)
                if path is None:
                    return
                logger.info("unpacking native dependencies for %s", module.name)
                with zipfile.ZipFile(path) as archive:
                    rules = self._read_rules(archive, module)
                    self._extract(archive)
                for rule in rules:
                    self._link(rule)
        except Exception as e:
            logger.warning("Could not unpack native dependencies for %s: %s", module.name, e)

    def resolve_all(self, modules) -> None:
        for module in modules:
            self.resolve(module)

    def _locate_archive(self, module: Module, stack: ExitStack) -> Path | None:
        handle = module.handle
        if handle is not None and hasattr(handle, "__path__"):
            try:
                ref = resources.files(handle).joinpath(self._archive_name)
                if ref.is_file():
                    return stack.enter_context(resources.as_file(ref))
            except (TypeError, ValueError, OSError) as e:
                logger.debug("no resources for %s: %s", module.name, e)
            return None

        if module.location is None:
            return None
        stem = module.location.name.split(".", 1)[0]
        sibling = module.location.with_name(f"{stem}.{self._archive_name}")
        return sibling if sibling.is_file() else None

    def _read_rules(self, archive: zipfile.ZipFile, module: Module) -> list[RemapRule]:
        try:
            rules = read_manifest(archive, self._os)
        except Exception as e:
            logger.warning("Invalid remap manifest in %s: %s", module.name, e)
            return []
        logger.debug("%d remap rules for %s", len(rules), self._os)
        return rules

    def _extract(self, archive: zipfile.ZipFile) -> None:
        prefix = f"{platform_dir(self._os)}/{arch_dir()}/"
        for info in archive.infolist():
            if info.is_dir() or not info.filename.startswith(prefix):
                continue
            relative = PurePosixPath(info.filename[len(prefix):])
            if not relative.parts or ".." in relative.parts or relative.is_absolute():
                logger.warning("Refusing to extract %s", info.filename)
                continue
            try:
                self._extract_entry(archive, info, self._base_dir.joinpath(*relative.parts))
            except Exception as e:
                logger.warning("Could not extract %s: %s", info.filename, e)

    def _extract_entry(self, archive: zipfile.ZipFile, info: zipfile.ZipInfo, dest: Path) -> None:
        entry_time = datetime(*info.date_time).timestamp()
        if dest.exists():
            if dest.stat().st_mtime >= entry_time:
                logger.debug("skipping (up to date): %s", dest)
                return
            logger.info("outdated, overwriting: %s", dest)
        else:
            logger.info("unpacking: %s", dest)

        dest.parent.mkdir(parents=True, exist_ok=True)
        with archive.open(info) as src, open(dest, "wb") as out:
            shutil.copyfileobj(src, out)
        self._metrics.counter("native.extracted").inc()

    def _link(self, rule: RemapRule) -> None:
        if self._os == TargetOS.WINDOWS:
            logger.warning("symlinks are not supported on windows (%s -> %s)", rule.library, rule.target)
            return

        try:
            target = self._index.lookup(rule.target)
            target_path = Path(target) if target else self._base_dir / rule.target
            if not target_path.exists():
                logger.warning("symlink target does not exist: %s", target_path)
                return

            link = self._base_dir / rule.library
            if link.is_symlink() or link.exists():
                logger.debug("deleting old symlink %s", link)
                link.unlink()
            logger.info("creating symlink %s -> %s", link, target_path)
            os.symlink(target_path, link)
            self._metrics.counter("native.symlinks").inc()
        except Exception as e:
            logger.warning("Could not create symlink %s -> %s: %s", rule.library, rule.target, e)
