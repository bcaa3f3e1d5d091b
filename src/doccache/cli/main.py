"""Main CLI entry point for doccache.

Provides command-line access to document fetching, scanning and the cache.
"""

import logging
import sys
from dataclasses import replace
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from doccache.cache.config import DEFAULT_MAX_CONTENT_BYTES, DEFAULT_TIMEOUT, FetchConfig
from doccache.cache.metadata import CacheStore
from doccache.cache.validation import compute_checksum, derive_cache_key
from doccache.errors import DocCacheError
from doccache.processor import DocumentSetProcessor
from doccache.scanner import Scanner

# Global consoles for Rich output
console = Console()
err_console = Console(stderr=True)


def build_config(ctx_cache_dir: Optional[str] = None, **overrides) -> FetchConfig:
    """Build a FetchConfig from CLI context.

    Priority for the cache directory:
    1. Explicit --cache-dir flag
    2. DOCCACHE_CACHE_DIR environment variable
    3. Platform default

    Raises:
        click.ClickException: If the configuration is invalid
    """
    try:
        config = FetchConfig.from_env()
        if ctx_cache_dir:
            config = replace(config, cache_dir=ctx_cache_dir)
        for name, value in overrides.items():
            if value is not None:
                setattr(config, name, value)
        config.validate()
    except DocCacheError as e:
        raise click.ClickException(str(e)) from e
    return config


def _fail(e: Exception) -> None:
    console.print(f"[red]✗[/red] Error: {e}", style="red")
    sys.exit(1)


def _integrity(path, expected_hash: str) -> str:
    """Compare a cached file against its recorded SHA-256."""
    if not path.is_file():
        return "[red]content file missing[/red]"
    if compute_checksum(path) == expected_hash:
        return "[green]ok[/green]"
    return "[red]checksum mismatch[/red]"


@click.group()
@click.option(
    "--cache-dir",
    type=click.Path(),
    help="Cache directory (default: DOCCACHE_CACHE_DIR env var or platform cache dir)",
)
@click.option("--verbose", "-v", count=True, help="Increase log verbosity (-v, -vv)")
@click.pass_context
def cli(ctx, cache_dir, verbose):
    """doccache CLI - Fetch, scan and cache documents for indexing.

    Use --cache-dir to choose the cache location, or set DOCCACHE_CACHE_DIR.
    """
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    ctx.ensure_object(dict)
    ctx.obj["cache_dir"] = cache_dir


# ==================== Document Commands ====================


@cli.command("fetch")
@click.argument("locators", nargs=-1, required=True)
@click.option("--timeout", type=float, help=f"HTTP timeout in seconds (default: {DEFAULT_TIMEOUT:g})")
@click.option(
    "--max-size",
    type=int,
    help=f"Maximum document size in bytes (default: {DEFAULT_MAX_CONTENT_BYTES})",
)
@click.option("--force", is_flag=True, help="Re-download even if cached")
@click.pass_context
def fetch(ctx, locators, timeout, max_size, force):
    """Resolve URLs, files and directories into local text file paths.

    Example:
        doccache fetch https://example.com/guide.md ./docs notes.txt
        doccache fetch --force https://example.com/guide.md
    """
    try:
        config = build_config(
            ctx.obj.get("cache_dir"),
            timeout=timeout,
            max_content_bytes=max_size,
            force_refresh=True if force else None,
        )
        processor = DocumentSetProcessor(config=config)
        paths = processor.process(list(locators))

        for path in paths:
            click.echo(str(path))

        err_console.print(f"[green]✓[/green] Resolved {len(paths)} document(s)")

    except click.ClickException:
        raise
    except Exception as e:
        _fail(e)


@cli.command("scan")
@click.argument("path", type=click.Path())
@click.option("--no-recursive", is_flag=True, help="Do not descend into subdirectories")
def scan(path, no_recursive):
    """List text files under a directory.

    Example:
        doccache scan ./docs
        doccache scan ./docs --no-recursive
    """
    try:
        files = Scanner().scan_directory(path, recursive=not no_recursive)
        for file_path in files:
            click.echo(str(file_path))
    except Exception as e:
        _fail(e)


# ==================== Cache Commands ====================


@cli.command("where")
@click.pass_context
def where(ctx):
    """Print the cache directory in use."""
    config = build_config(ctx.obj.get("cache_dir"))
    click.echo(str(config.cache_dir))


@cli.command("info")
@click.argument("url")
@click.pass_context
def info(ctx, url):
    """Show cached metadata for a URL.

    Example:
        doccache info https://example.com/guide.md
    """
    try:
        config = build_config(ctx.obj.get("cache_dir"))
        store = CacheStore(config.cache_dir)
        key = derive_cache_key(url)

        entry = store.get_entry(url)
        if entry is None:
            console.print(f"[yellow]Not cached: {url}[/yellow]")
            sys.exit(1)

        console.print(f"\n[bold cyan]Cached document: {url}[/bold cyan]")
        console.print("=" * 60)
        console.print(f"[bold]Key:[/bold] {key}")
        console.print(f"[bold]Path:[/bold] {store.document_path(key)}")
        console.print(f"[bold]Downloaded:[/bold] {entry.downloaded_at.isoformat()}")
        console.print(f"[bold]Content type:[/bold] {entry.content_type or 'N/A'}")
        console.print(f"[bold]Size:[/bold] {entry.size} bytes")
        console.print(f"[bold]SHA-256:[/bold] {entry.content_hash}")
        integrity = _integrity(store.document_path(key), entry.content_hash)
        console.print(f"[bold]Integrity:[/bold] {integrity}")
        console.print(f"[bold]ETag:[/bold] {entry.etag or 'N/A'}")
        console.print(f"[bold]Last-Modified:[/bold] {entry.last_modified or 'N/A'}")
        console.print()

    except Exception as e:
        _fail(e)


@cli.command("list")
@click.pass_context
def list_entries(ctx):
    """List all cached documents."""
    try:
        config = build_config(ctx.obj.get("cache_dir"))
        entries = CacheStore(config.cache_dir).list_entries()

        if not entries:
            console.print("[yellow]No cached documents[/yellow]")
            return

        table = Table(title=f"Cached documents ({len(entries)})")
        table.add_column("URL", style="cyan")
        table.add_column("Size", justify="right", style="green")
        table.add_column("Downloaded", style="blue")
        table.add_column("Validators", style="magenta")

        for entry in entries:
            validators = ", ".join(
                name
                for name, value in (("etag", entry.etag), ("last-modified", entry.last_modified))
                if value
            )
            table.add_row(
                entry.url,
                str(entry.size),
                entry.downloaded_at.strftime("%Y-%m-%d %H:%M"),
                validators or "-",
            )

        console.print(table)

    except Exception as e:
        _fail(e)


@cli.command("clear")
@click.argument("url", required=False)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def clear(ctx, url, yes):
    """Remove one cached document, or the whole cache.

    Example:
        doccache clear https://example.com/guide.md
        doccache clear -y
    """
    try:
        config = build_config(ctx.obj.get("cache_dir"))
        store = CacheStore(config.cache_dir)

        if url:
            if store.remove(url):
                console.print(f"[green]✓[/green] Removed cached document for {url}")
            else:
                console.print(f"[yellow]Not cached: {url}[/yellow]")
            return

        if not yes:
            if not click.confirm(f"Delete all cached documents in {store.documents_dir}?"):
                console.print("[yellow]Cancelled[/yellow]")
                return

        store.clear()
        console.print("[green]✓[/green] Cleared document cache")

    except Exception as e:
        _fail(e)


if __name__ == "__main__":
    cli()
