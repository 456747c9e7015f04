"""
Tests for CLI commands — init, modules, plugins, query, cache, global options.
"""

import json
import logging
import textwrap
from pathlib import Path

import pytest
from click.testing import CliRunner

from plugboot.main import cli

API = """\
    from plugboot import Marker

    class Exporter:
        pass

    class Tag(Marker):
        pass
"""

IMPL = """\
    from cli_api import Exporter, Tag
    from plugboot import mark, on_init

    @mark(Tag())
    class CsvExporter(Exporter):
        pass

    @on_init
    def start():
        pass
"""

APP = """\
    import cli_impl
"""


@pytest.fixture(autouse=True)
def _restore_logging(monkeypatch):
    """The CLI reconfigures the root logger; put it back afterwards."""
    for var in ("PLUGBOOT_ENTRY_MODULE", "PLUGBOOT_BASE_DIR", "PLUGBOOT_PLUGIN_DIR",
                "PLUGBOOT_CACHE_DIR", "PLUGBOOT_LOG_LEVEL", "PLUGBOOT_LOG_FILE"):
        monkeypatch.delenv(var, raising=False)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    raise_exceptions = logging.raiseExceptions
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.raiseExceptions = raise_exceptions


@pytest.fixture
def project(write_module, module_dir: Path, tmp_path: Path) -> Path:
    """Modules on sys.path plus a plugboot.yml pointing at them."""
    write_module("cli_api", API)
    write_module("cli_impl", IMPL)
    write_module("cli_app", APP)

    plugins = tmp_path / "plugins"
    plugins.mkdir()
    (plugins / "cli_plugin.py").write_text("from plugboot import on_init\n\n@on_init\ndef go():\n    pass\n")
    (plugins / "cli_other.py").write_text("X = 1\n")

    config = tmp_path / "plugboot.yml"
    config.write_text(textwrap.dedent("""\
        entry_module: cli_app
        cache_dir: cache
        plugin_dir: plugins
        base_dir: base
    """))
    (tmp_path / "base").mkdir()
    return config


def _run(*args: str):
    return CliRunner().invoke(cli, list(args))


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        result = _run("--help")
        assert result.exit_code == 0
        assert "discover modules" in result.output

    def test_version(self):
        result = _run("--version")
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_missing_config(self, tmp_path: Path):
        result = _run("-c", str(tmp_path / "nope.yml"), "modules")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_invalid_config(self, tmp_path: Path):
        bad = tmp_path / "plugboot.yml"
        bad.write_text("discover_plugins: sometimes\n")
        result = _run("-c", str(bad), "cache", "info")
        assert result.exit_code == 1
        assert "Invalid boot configuration" in result.output


class TestInitCommand:
    def test_json_report(self, project: Path):
        result = _run("-q", "-c", str(project), "init", "--json")
        assert result.exit_code == 0, result.output

        data = json.loads(result.output)
        assert data["entry"] == "cli_app"
        assert data["status"] == "ok"
        assert data["plugins"] == ["cli_plugin"]
        assert sorted(r["method"] for r in data["receipts"]) == ["cli_impl:start", "cli_plugin:go"]

    def test_human_output(self, project: Path):
        result = _run("-q", "-c", str(project), "init")
        assert result.exit_code == 0, result.output
        assert "init: ok" in result.output
        assert "cli_plugin:go" in result.output


class TestModulesCommand:
    def test_json(self, project: Path):
        result = _run("-q", "-c", str(project), "modules", "--json")
        assert result.exit_code == 0, result.output

        data = json.loads(result.output)
        names = [m["name"] for m in data["modules"]]
        assert {"cli_app", "cli_impl", "cli_api"} <= set(names)
        app = next(m for m in data["modules"] if m["name"] == "cli_app")
        assert app["dependencies"] == ["cli_impl"]


class TestPluginsCommand:
    def test_configured_directory(self, project: Path):
        result = _run("-q", "-c", str(project), "plugins", "--json")
        assert result.exit_code == 0, result.output

        data = json.loads(result.output)
        assert [Path(p).name for p in data["plugins"]] == ["cli_plugin.py"]
        assert data["probes"] == 2

    def test_explicit_empty_directory(self, project: Path, tmp_path: Path):
        empty = tmp_path / "empty"
        empty.mkdir()
        result = _run("-q", "-c", str(project), "plugins", str(empty))
        assert result.exit_code == 0
        assert "No plugins found." in result.output


class TestQueryCommand:
    def test_implements_in_module(self, project: Path):
        result = _run("-q", "-c", str(project), "query", "implements", "cli_api:Exporter",
                      "-m", "cli_impl")
        assert result.exit_code == 0, result.output
        assert result.output.split() == ["cli_impl:CsvExporter"]

    def test_types_with_marker_from_entry(self, project: Path):
        result = _run("-q", "-c", str(project), "query", "types", "cli_api:Tag", "--json")
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["results"] == ["cli_impl:CsvExporter"]

    def test_methods_with_marker(self, project: Path):
        result = _run("-q", "-c", str(project), "query", "methods", "plugboot:OnInit")
        assert result.exit_code == 0, result.output
        assert "cli_impl:start" in result.output.split()

    def test_unresolvable_target(self, project: Path):
        result = _run("-q", "-c", str(project), "query", "inherits", "cli_api:Nope")
        assert result.exit_code == 1

    def test_target_must_be_a_class(self, project: Path):
        result = _run("-q", "-c", str(project), "query", "inherits", "plugboot:init")
        assert result.exit_code == 1
        assert "not a class" in result.output


class TestCacheCommands:
    def test_info_and_clear(self, project: Path):
        _run("-q", "-c", str(project), "query", "implements", "cli_api:Exporter", "-m", "cli_impl")

        info = json.loads(_run("-q", "-c", str(project), "cache", "info", "--json").output)
        assert Path(info["cache_dir"]) == (project.parent / "cache").resolve()
        assert info["query_files"] == 1

        result = _run("-q", "-c", str(project), "cache", "clear")
        assert result.exit_code == 0
        assert "Removed 1" in result.output

        info = json.loads(_run("-q", "-c", str(project), "cache", "info", "--json").output)
        assert info["files"] == 0
