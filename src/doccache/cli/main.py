"""Main CLI entry point for doccache.

Provides command-line inspection and maintenance of a documentation cache.
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from doccache.cache import CacheConfig, CacheError, CacheManager

# Global console for Rich output
console = Console()

# Distinguishes a miss from a cached null
_MISSING = object()


def setup_logging(verbose: bool = False) -> None:
    """Send doccache log records to stderr through Rich.

    Args:
        verbose: Log at DEBUG instead of WARNING
    """
    package_logger = logging.getLogger("doccache")
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)

    handler = RichHandler(console=Console(stderr=True), show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def resolve_config(
    config_path: Optional[str] = None,
    cache_dir: Optional[str] = None,
    max_size: Optional[int] = None,
    ttl: Optional[int] = None,
) -> CacheConfig:
    """Build cache configuration from multiple sources.

    Priority (highest first):
    1. Explicit --cache-dir / --max-size / --ttl flags
    2. DOCCACHE_* environment variables
    3. --config JSON file
    4. Defaults

    Raises:
        click.ClickException: If the config file cannot be read
    """
    base = None
    if config_path:
        try:
            base = CacheConfig.load(Path(config_path))
        except (OSError, ValueError, TypeError) as e:
            raise click.ClickException(f"Invalid config file {config_path}: {e}")

    try:
        config = CacheConfig.from_env(base)
    except ValueError as e:
        raise click.ClickException(f"Invalid DOCCACHE_* environment variable: {e}")

    if cache_dir:
        config.cache_dir = Path(cache_dir).expanduser()
    if max_size is not None:
        config.max_size = max_size
    if ttl is not None:
        config.ttl = ttl
    return config


def open_cache(ctx: click.Context) -> CacheManager:
    """Create a cache manager for the configuration on the click context."""
    try:
        return CacheManager.from_config(ctx.obj["config"])
    except CacheError as e:
        raise click.ClickException(str(e))


def format_bytes(size: int) -> str:
    """Format a byte count for display."""
    if size < 1024:
        return f"{size} B"
    if size < 1024**2:
        return f"{size / 1024:.2f} KB"
    return f"{size / (1024**2):.2f} MB"


def format_ms_timestamp(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp / 1000).strftime("%Y-%m-%d %H:%M:%S")


@click.group()
@click.option(
    "--cache-dir",
    "-C",
    help="Cache directory (default: DOCCACHE_DIR or ./cache)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    help="JSON file with cache settings",
)
@click.option("--max-size", type=int, help="Maximum total cache size in bytes")
@click.option("--ttl", type=int, help="Entry time-to-live in milliseconds")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, cache_dir, config_path, max_size, ttl, verbose):
    """doccache - Inspect and maintain the documentation cache."""
    ctx.ensure_object(dict)
    setup_logging(verbose)
    ctx.obj["config"] = resolve_config(config_path, cache_dir, max_size, ttl)


@cli.command("stats")
@click.pass_context
def stats_cmd(ctx):
    """Show cache statistics.

    Example:
        doccache stats
    """
    try:
        with open_cache(ctx) as cache:
            stats = cache.get_stats()
            hit_rate = cache.stats.hit_rate

        table = Table(title=f"Cache statistics: {ctx.obj['config'].cache_dir}")
        table.add_column("Metric", style="cyan", no_wrap=True)
        table.add_column("Value", justify="right", style="green")

        table.add_row("Entries", str(stats["entries"]))
        table.add_row("Size", format_bytes(stats["size"]))
        table.add_row("Max size", format_bytes(ctx.obj["config"].max_size))
        table.add_row("Hits", str(stats["hits"]))
        table.add_row("Misses", str(stats["misses"]))
        table.add_row("Hit rate", f"{hit_rate:.1%}")
        table.add_row("Last cleanup", format_ms_timestamp(stats["last_cleanup"]))

        console.print(table)

    except CacheError as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("info")
@click.pass_context
def info_cmd(ctx):
    """Show details about the cache directory."""
    try:
        with open_cache(ctx) as cache:
            info = cache.get_directory_info()

        table = Table(title="Cache directory")
        table.add_column("Property", style="cyan", no_wrap=True)
        table.add_column("Value", style="white")

        table.add_row("Path", info["path"])
        table.add_row("Exists", "yes" if info["exists"] else "no")
        table.add_row("Writable", "yes" if info["is_writable"] else "no")
        table.add_row("Files", str(info["files"]))
        table.add_row("Directory size", format_bytes(info["size"]))
        table.add_row("Last modified", format_ms_timestamp(info["last_modified"]))

        console.print(table)

    except CacheError as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("get")
@click.argument("key")
@click.pass_context
def get_cmd(ctx, key):
    """Print the cached value for KEY as JSON.

    Exits with status 1 on a cache miss.
    """
    try:
        with open_cache(ctx) as cache:
            value = cache.get(key, default=_MISSING)
    except CacheError as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)

    if value is _MISSING:
        console.print(f"[yellow]Cache miss:[/yellow] {key}")
        sys.exit(1)

    click.echo(json.dumps(value, indent=2, ensure_ascii=False))


@cli.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def set_cmd(ctx, key, value):
    """Store VALUE under KEY.

    VALUE is parsed as JSON when possible and stored as a plain string
    otherwise.

    Example:
        doccache set react/hooks '{"title": "Hooks"}'
    """
    try:
        payload = json.loads(value)
    except ValueError:
        payload = value

    try:
        with open_cache(ctx) as cache:
            cache.set(key, payload)
        console.print(f"[green]✓[/green] Cached '{key}'")

    except CacheError as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("delete")
@click.argument("key")
@click.pass_context
def delete_cmd(ctx, key):
    """Remove the entry for KEY."""
    try:
        with open_cache(ctx) as cache:
            cache.delete(key)
        console.print(f"[green]✓[/green] Deleted '{key}'")

    except CacheError as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation")
@click.pass_context
def clear_cmd(ctx, yes):
    """Remove every cache entry and reset statistics."""
    cache_dir = ctx.obj["config"].cache_dir
    if not yes and not click.confirm(f"Remove all cache entries in {cache_dir}?"):
        console.print("[yellow]Cancelled[/yellow]")
        return

    try:
        with open_cache(ctx) as cache:
            cache.clear()
        console.print(f"[green]✓[/green] Cleared cache at {cache_dir}")

    except CacheError as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("cleanup")
@click.pass_context
def cleanup_cmd(ctx):
    """Remove expired and corrupt entries."""
    try:
        with open_cache(ctx) as cache:
            result = cache.cleanup()

        console.print(f"[green]✓[/green] Removed {result['removed']} files")
        console.print(f"  Freed: {format_bytes(result['freed'])}")
        console.print(f"  Remaining entries: {result['remaining']}")

    except CacheError as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


if __name__ == "__main__":
    cli()
