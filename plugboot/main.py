"""
plugboot — CLI entrypoint.

Usage:
    plugboot --help
    plugboot init
    plugboot plugins ./plugins
    plugboot query implements mypkg.api:Exporter
    plugboot cache info
"""

from __future__ import annotations

import json
import os
import shutil
import sys
from pathlib import Path

import click

from plugboot import __version__
from plugboot.core.observability.logging_config import (
    ENV_FILE,
    ENV_FILE_LEVEL,
    resolve_level,
    setup_logging,
)


def _bootstrapper(ctx: click.Context):
    """Bootstrapper for this invocation, built from the config once."""
    from plugboot.core.config.loader import ConfigError, load_config
    from plugboot.core.engine.bootstrap import Bootstrapper

    if "bootstrapper" not in ctx.obj:
        try:
            config = load_config(ctx.obj.get("config_path"))
        except ConfigError as e:
            click.secho(f"❌ {e}", fg="red", err=True)
            sys.exit(1)
        # The console script is not the application: never walk __main__
        ctx.obj["bootstrapper"] = Bootstrapper(config, use_main=False)
    return ctx.obj["bootstrapper"]


@click.group()
@click.version_option(version=__version__, prog_name="plugboot")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to plugboot.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """plugboot — discover modules, query them, activate plugins."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug, verbose, quiet),
        log_file=os.environ.get(ENV_FILE),
        log_file_level=os.environ.get(ENV_FILE_LEVEL),
        quiet_third_party=not debug,
    )


# ── init ────────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def init(ctx: click.Context, as_json: bool) -> None:
    """Run the full init sequence and report what was activated."""
    bootstrapper = _bootstrapper(ctx)
    try:
        report = bootstrapper.init()
    finally:
        bootstrapper.shutdown()

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        return

    click.secho(f"\n🚀 init: {report.status}", fg="cyan", bold=True)
    click.echo(f"   Entry: {report.entry or '(directory scan)'}")
    click.echo(f"   Modules: {len(report.modules)}")
    click.echo(f"   Plugins: {len(report.plugins)}")
    for name in report.plugins:
        click.echo(f"     • {name}")

    if report.receipts:
        click.echo()
        click.secho(f"   Activation methods: {report.total}", fg="white", bold=True)
    for receipt in report.receipts:
        icon = {"ok": "✅", "failed": "❌", "skipped": "⏭️ "}.get(receipt.status, "•")
        suffix = f" — {receipt.error}" if receipt.error else ""
        click.echo(f"     {icon} {receipt.method} ({receipt.duration_ms}ms){suffix}")
    click.echo()


# ── modules ─────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def modules(ctx: click.Context, as_json: bool) -> None:
    """Walk the module graph from the entry module and list known modules."""
    bootstrapper = _bootstrapper(ctx)
    bootstrapper.enumerate_entry()
    known = bootstrapper.registry.modules()

    if as_json:
        click.echo(json.dumps({
            "entry": bootstrapper.entry_name(),
            "modules": [
                {"name": m.name, "location": str(m.location) if m.location else None,
                 "dependencies": list(m.dependencies)}
                for m in known
            ],
            "unresolved": sorted(bootstrapper.walker.failed),
        }, indent=2))
        return

    click.secho(f"\n📦 Modules: {len(known)}", fg="cyan", bold=True)
    for module in known:
        location = f"  → {module.location}" if module.location else ""
        click.echo(f"     • {module.name}{location}")
    click.echo()


# ── plugins ─────────────────────────────────────────────────────


@cli.command()
@click.argument("directory", required=False, type=click.Path(file_okay=False))
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plugins(ctx: click.Context, directory: str | None, as_json: bool) -> None:
    """Find plugin files (default: the configured plugin directory)."""
    bootstrapper = _bootstrapper(ctx)
    found = bootstrapper.discover_plugins(Path(directory) if directory else None)

    if as_json:
        click.echo(json.dumps({
            "plugins": [str(p) for p in found],
            "probes": bootstrapper.metrics.value("plugins.probes"),
        }, indent=2))
        return

    if not found:
        click.echo("No plugins found.")
        return
    click.secho(f"\n🔌 Plugins: {len(found)}", fg="cyan", bold=True)
    for path in found:
        click.echo(f"     • {path}")
    click.echo()


# ── query ───────────────────────────────────────────────────────


@cli.command()
@click.argument("kind", type=click.Choice(["implements", "inherits", "types", "methods"]))
@click.argument("target")
@click.option("--module", "-m", "module_name", default=None, help="Only query this module.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def query(ctx: click.Context, kind: str, target: str, module_name: str | None, as_json: bool) -> None:
    """Run a cached query. TARGET is 'package.module:QualName'."""
    from plugboot.core.services.type_metadata import qualified_name, resolve_token

    bootstrapper = _bootstrapper(ctx)
    try:
        target_obj = resolve_token(target)
    except LookupError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)
    if not isinstance(target_obj, type):
        click.secho(f"❌ {target} is not a class", fg="red", err=True)
        sys.exit(1)

    module = None
    if module_name:
        try:
            module = bootstrapper.loader.load(module_name)
        except Exception as e:
            click.secho(f"❌ Cannot load {module_name}: {e}", fg="red", err=True)
            sys.exit(1)
    else:
        bootstrapper.enumerate_entry()

    engine = bootstrapper.engine
    if kind == "implements":
        results = [qualified_name(t) for t in engine.implementing(target_obj, module)]
    elif kind == "inherits":
        results = [qualified_name(t) for t in engine.inheriting(target_obj, module)]
    elif kind == "types":
        results = [qualified_name(r.type) for r in engine.types_with_marker(target_obj, module)]
    else:
        results = [r.token for r in engine.methods_with_marker(target_obj, module)]

    if as_json:
        click.echo(json.dumps({
            "kind": kind,
            "target": target,
            "results": results,
            "metrics": bootstrapper.metrics.to_dict(),
        }, indent=2))
        return

    if not results:
        click.echo("No results.")
        return
    for token in results:
        click.echo(token)


# ── cache ───────────────────────────────────────────────────────


@cli.group()
def cache() -> None:
    """Inspect or clear the query and plugin caches."""


@cache.command("info")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def cache_info(ctx: click.Context, as_json: bool) -> None:
    """Show the cache directory and its contents."""
    cache_dir = _bootstrapper(ctx).cache_dir
    files = sorted(p for p in cache_dir.iterdir() if p.is_file())
    size = sum(p.stat().st_size for p in files)

    if as_json:
        click.echo(json.dumps({
            "cache_dir": str(cache_dir),
            "files": len(files),
            "query_files": sum(1 for p in files if p.suffix == ".txt"),
            "bytes": size,
        }, indent=2))
        return

    click.echo(f"Cache dir: {cache_dir}")
    click.echo(f"   Files: {len(files)} ({size} bytes)")


@cache.command("clear")
@click.pass_context
def cache_clear(ctx: click.Context) -> None:
    """Delete every cache file."""
    cache_dir = _bootstrapper(ctx).cache_dir
    removed = 0
    for path in cache_dir.iterdir():
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink()
        removed += 1
    click.secho(f"✅ Removed {removed} cache entries from {cache_dir}", fg="green")


if __name__ == "__main__":
    cli()
