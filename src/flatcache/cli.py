"""Click CLI for flatcache: inspect and manipulate a cache directory."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.pretty import Pretty
from rich.table import Table

from flatcache.cache.engine import DEFAULT_GROUP, CacheEngine
from flatcache.config.loader import load_cache_config
from flatcache.config.schema import CacheConfig

console = Console()
error_console = Console(stderr=True)


def _setup_logging(verbosity: int) -> None:
    """Configure logging based on verbosity level."""
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=error_console, show_time=False, show_path=False)],
    )


def _engine(ctx: click.Context) -> CacheEngine:
    """Build the engine on first use so --help never touches the filesystem."""
    obj = ctx.ensure_object(dict)
    if "engine" not in obj:
        overrides = {"cache_dir": obj.get("cache_dir"), "tenant_id": obj.get("tenant_id")}
        try:
            if obj.get("config_path"):
                # An explicit file replaces the default search; flags still win
                settings = load_cache_config(obj["config_path"]).model_dump()
                settings.update({k: v for k, v in overrides.items() if v is not None})
                obj["engine"] = CacheEngine(CacheConfig(**settings))
            else:
                obj["engine"] = CacheEngine.from_config(**overrides)
        except (ValueError, yaml.YAMLError) as e:
            error_console.print(f"[red]Invalid configuration:[/red] {e}")
            sys.exit(2)
        if not obj.get("verbose"):
            logging.getLogger("flatcache").setLevel(obj["engine"].config.log_level)
    return obj["engine"]


def _parse_value(raw: str, as_json: bool) -> Any:
    if not as_json:
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="VALUE") from e


group_option = click.option(
    "-g", "--group", default=DEFAULT_GROUP, show_default=True, help="Cache group."
)


@click.group()
@click.version_option(package_name="flatcache")
@click.option("--cache-dir", type=click.Path(file_okay=False), default=None, help="Cache root.")
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Cache config YAML (skips the global/project config search).",
)
@click.option("--tenant", type=int, default=None, help="Tenant id (>= 1).")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug).")
@click.pass_context
def cli(
    ctx: click.Context,
    cache_dir: str | None,
    config_path: str | None,
    tenant: int | None,
    verbose: int,
) -> None:
    """flatcache: persistent file-backed object cache."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["cache_dir"] = cache_dir
    ctx.obj["tenant_id"] = tenant
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


@cli.command()
@click.argument("key")
@group_option
@click.pass_context
def get(ctx: click.Context, key: str, group: str) -> None:
    """Print a cached value."""
    engine = _engine(ctx)
    missing = object()
    value = engine.get(key, group, default=missing)
    if value is missing:
        error_console.print(f"[yellow]Not found:[/yellow] {group}/{key}")
        sys.exit(1)
    if isinstance(value, str):
        click.echo(value)
    else:
        console.print(Pretty(value))


def _store(
    ctx: click.Context, op: str, key: str, raw: str, group: str, ttl: int, as_json: bool
) -> None:
    engine = _engine(ctx)
    value = _parse_value(raw, as_json)
    if not getattr(engine, op)(key, value, group, ttl):
        error_console.print(f"[red]{op} failed:[/red] {group}/{key}")
        sys.exit(1)
    console.print(f"[green]Stored {group}/{key}[/green]")


_store_options = [
    click.argument("key"),
    click.argument("value"),
    group_option,
    click.option("--ttl", type=int, default=0, help="Seconds to live (0 = default expiration)."),
    click.option("--json", "as_json", is_flag=True, default=False, help="Parse VALUE as JSON."),
]


def _with_store_options(fn: Any) -> Any:
    for option in reversed(_store_options):
        fn = option(fn)
    return fn


@cli.command("set")
@_with_store_options
@click.pass_context
def set_(ctx: click.Context, key: str, value: str, group: str, ttl: int, as_json: bool) -> None:
    """Store a value unconditionally."""
    _store(ctx, "set", key, value, group, ttl, as_json)


@cli.command()
@_with_store_options
@click.pass_context
def add(ctx: click.Context, key: str, value: str, group: str, ttl: int, as_json: bool) -> None:
    """Store a value only if the key is not cached yet."""
    _store(ctx, "add", key, value, group, ttl, as_json)


@cli.command()
@_with_store_options
@click.pass_context
def replace(ctx: click.Context, key: str, value: str, group: str, ttl: int, as_json: bool) -> None:
    """Store a value only if the key is already cached."""
    _store(ctx, "replace", key, value, group, ttl, as_json)


@cli.command()
@click.argument("key")
@group_option
@click.pass_context
def delete(ctx: click.Context, key: str, group: str) -> None:
    """Delete a cached value."""
    if not _engine(ctx).delete(key, group):
        error_console.print(f"[yellow]Not found:[/yellow] {group}/{key}")
        sys.exit(1)
    console.print(f"[green]Deleted {group}/{key}[/green]")


def _adjust(ctx: click.Context, op: str, key: str, offset: int, group: str) -> None:
    engine = _engine(ctx)
    # Counters live in memory only per process; load the disk copy first.
    engine.get(key, group)
    result = getattr(engine, op)(key, offset, group)
    if result is False:
        error_console.print(f"[yellow]Not found:[/yellow] {group}/{key}")
        sys.exit(1)
    click.echo(result)


@cli.command()
@click.argument("key")
@click.argument("offset", type=int, default=1)
@group_option
@click.pass_context
def incr(ctx: click.Context, key: str, offset: int, group: str) -> None:
    """Increment an integer value."""
    _adjust(ctx, "increment", key, offset, group)


@cli.command()
@click.argument("key")
@click.argument("offset", type=int, default=1)
@group_option
@click.pass_context
def decr(ctx: click.Context, key: str, offset: int, group: str) -> None:
    """Decrement an integer value (floors at zero)."""
    _adjust(ctx, "decrement", key, offset, group)


@cli.command()
@click.argument("key")
@group_option
@click.pass_context
def path(ctx: click.Context, key: str, group: str) -> None:
    """Show the file an entry is stored in."""
    click.echo(str(_engine(ctx).path_for(key, group)))


@cli.command()
@click.confirmation_option(prompt="Are you sure you want to flush the cache?")
@click.pass_context
def flush(ctx: click.Context) -> None:
    """Delete every cached entry."""
    _engine(ctx).flush()
    console.print("[green]Cache flushed.[/green]")


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show cache directory statistics."""
    engine = _engine(ctx)
    config = engine.config
    usage = engine.disk.usage()

    table = Table(title="Cache Statistics", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")

    table.add_row("Cache dir", str(config.cache_dir))
    table.add_row("Tenant", str(engine.tenant_id))
    table.add_row("Entries", str(usage.files))
    table.add_row("Directories", str(usage.directories))
    table.add_row("Size (MB)", f"{usage.size_mb:.2f}")
    table.add_row("Default expiration", f"{config.default_expiration}s")
    table.add_row("Global groups", ", ".join(sorted(engine.global_groups)) or "-")
    table.add_row("Non-persistent groups", ", ".join(sorted(engine.non_persistent_groups)) or "-")
    if config.hash_tenant and not config.secret:
        table.add_row("Secret", "[yellow]not set[/yellow]")

    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    cli()
