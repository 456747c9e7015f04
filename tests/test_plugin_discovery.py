"""
Tests for plugin discovery — probing, the verdict cache, staleness.
"""

import json
import os
import sys
from pathlib import Path

import pytest

from plugboot.core.observability.metrics import MetricsRegistry
from plugboot.core.persistence.candidate_cache import (
    candidate_cache_path,
    load_candidate_cache,
    save_candidate_cache,
)
from plugboot.core.models.cache import CandidateCache
from plugboot.core.services.module_graph import ModuleRegistry
from plugboot.core.services.module_loader import ImportlibLoader
from plugboot.core.services.plugin_discovery import PluginDiscovery
from plugboot.core.services.query_cache import QueryCache
from plugboot.core.services.query_engine import QueryEngine

PLUGIN = """\
    from plugboot import on_init

    @on_init
    def activate():
        pass
"""

NOT_PLUGIN = """\
    def helper():
        pass
"""


@pytest.fixture
def plugin_dir(tmp_path: Path, module_dir) -> Path:
    """Candidate directory (module_dir cleans up sys.modules)."""
    path = tmp_path / "plugins"
    path.mkdir()
    return path


@pytest.fixture
def metrics() -> MetricsRegistry:
    return MetricsRegistry()


@pytest.fixture
def discovery(cache_dir: Path, metrics: MetricsRegistry) -> PluginDiscovery:
    engine = QueryEngine(QueryCache(cache_dir, metrics), ModuleRegistry())
    return PluginDiscovery(
        candidate_cache_path(cache_dir, "app"),
        ImportlibLoader(),
        engine,
        [".py"],
        metrics,
    )


def _write(directory: Path, name: str, source: str) -> Path:
    path = directory / name
    path.write_text(source.replace("\n    ", "\n").lstrip())
    return path


def _bump_mtime(path: Path) -> None:
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 5_000_000_000))


class TestDiscovery:
    def test_finds_plugins(self, discovery, plugin_dir):
        _write(plugin_dir, "dp_plugin.py", PLUGIN)
        _write(plugin_dir, "dp_helper.py", NOT_PLUGIN)
        _write(plugin_dir, "readme.txt", "not a module")

        found = discovery.discover(plugin_dir)
        assert [p.name for p in found] == ["dp_plugin.py"]

    def test_verdicts_cached(self, discovery, plugin_dir, metrics):
        _write(plugin_dir, "dp_plugin.py", PLUGIN)
        _write(plugin_dir, "dp_helper.py", NOT_PLUGIN)

        discovery.discover(plugin_dir)
        assert metrics.value("plugins.probes") == 2

        again = discovery.discover(plugin_dir)
        assert [p.name for p in again] == ["dp_plugin.py"]
        assert metrics.value("plugins.probes") == 2

    def test_cache_file_contents(self, discovery, plugin_dir):
        plugin = _write(plugin_dir, "dp_plugin.py", PLUGIN)
        helper = _write(plugin_dir, "dp_helper.py", NOT_PLUGIN)

        discovery.discover(plugin_dir)
        data = json.loads(discovery.cache_path.read_text())
        entries = data["entries"]
        assert entries[str(plugin.resolve())]["is_plugin"] is True
        assert entries[str(helper.resolve())]["is_plugin"] is False

    def test_modified_candidate_is_reprobed(self, discovery, plugin_dir, metrics):
        path = _write(plugin_dir, "dp_late.py", NOT_PLUGIN)
        assert discovery.discover(plugin_dir) == []

        # Turn it into a plugin, then make sure it is visibly newer
        path.write_text(PLUGIN.replace("\n    ", "\n").lstrip())
        _bump_mtime(path)

        # A fresh process would import it again
        for name in [n for n, m in sys.modules.items()
                     if getattr(m, "__file__", None) == str(path.resolve())]:
            del sys.modules[name]

        found = discovery.discover(plugin_dir)
        assert [p.name for p in found] == ["dp_late.py"]
        assert metrics.value("plugins.probes") == 2

    def test_unreadable_write_time_is_not_recorded(
        self, discovery, plugin_dir, metrics, monkeypatch
    ):
        path = _write(plugin_dir, "dp_untimed.py", NOT_PLUGIN)

        def _no_stat(p):
            raise OSError("stat failed")

        with monkeypatch.context() as patch:
            patch.setattr("plugboot.core.services.plugin_discovery.mtime_ticks", _no_stat)
            assert discovery.discover(plugin_dir) == []
        assert load_candidate_cache(discovery.cache_path).entries == {}

        path.write_text(PLUGIN.replace("\n    ", "\n").lstrip())
        _bump_mtime(path)
        for name in [n for n, m in sys.modules.items()
                     if getattr(m, "__file__", None) == str(path.resolve())]:
            del sys.modules[name]

        found = discovery.discover(plugin_dir)
        assert [p.name for p in found] == ["dp_untimed.py"]
        assert metrics.value("plugins.probes") == 2

    def test_broken_candidates_are_not_plugins(self, discovery, plugin_dir):
        _write(plugin_dir, "dp_raises.py", "raise RuntimeError('nope')\n")
        _write(plugin_dir, "dp_exits.py", "import sys\nsys.exit(3)\n")
        _write(plugin_dir, "dp_syntax.py", "def (:\n")
        _write(plugin_dir, "dp_ok.py", PLUGIN)

        found = discovery.discover(plugin_dir)
        assert [p.name for p in found] == ["dp_ok.py"]

    def test_corrupt_cache_file(self, discovery, plugin_dir):
        _write(plugin_dir, "dp_plugin.py", PLUGIN)
        discovery.cache_path.write_text("\x00\x01 not json")

        found = discovery.discover(plugin_dir)
        assert [p.name for p in found] == ["dp_plugin.py"]
        assert load_candidate_cache(discovery.cache_path).entries

    def test_vanished_candidates_pruned(self, discovery, plugin_dir):
        keep = _write(plugin_dir, "dp_keep.py", PLUGIN)
        gone = _write(plugin_dir, "dp_gone.py", NOT_PLUGIN)
        discovery.discover(plugin_dir)

        gone.unlink()
        discovery.discover(plugin_dir)
        entries = load_candidate_cache(discovery.cache_path).entries
        assert list(entries) == [str(keep.resolve())]

    def test_missing_directory(self, discovery, tmp_path):
        assert discovery.discover(tmp_path / "nowhere") == []


class TestCandidateCachePersistence:
    def test_round_trip(self, tmp_path: Path):
        path = tmp_path / "app_plugins.json"
        cache = CandidateCache()
        cache.record("/x/a.py", 10, True)
        save_candidate_cache(cache, path)

        loaded = load_candidate_cache(path)
        assert loaded.entries["/x/a.py"].is_plugin is True
        assert loaded.entries["/x/a.py"].last_write == 10

    def test_missing_file_is_empty(self, tmp_path: Path):
        assert load_candidate_cache(tmp_path / "none.json").entries == {}

    def test_wrong_schema_is_empty(self, tmp_path: Path):
        path = tmp_path / "app_plugins.json"
        path.write_text(json.dumps({"entries": {"/x": {"is_plugin": "maybe"}}}))
        assert load_candidate_cache(path).entries == {}

    def test_no_temp_files_left(self, tmp_path: Path):
        save_candidate_cache(CandidateCache(), tmp_path / "c_plugins.json")
        assert [p.name for p in tmp_path.iterdir()] == ["c_plugins.json"]

    def test_unwritable_location_is_not_fatal(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        save_candidate_cache(CandidateCache(), blocker / "sub" / "c.json")

    def test_cache_path_sanitized(self, tmp_path: Path):
        path = candidate_cache_path(tmp_path, "my app/main")
        assert path.name == "my_app_main_plugins.json"
