"""
CLI interface for the document mirror.

Usage:
    docmirror tree pages.json
    docmirror search pages.json "query text"
    docmirror show pages.json PAGE_ID
    docmirror precache pages.json
    docmirror clear-cache
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import Mirror
from .errors import DuplicateItemError, ItemNotFoundError
from .logging_config import configure_quiet_mode, enable_debug_mode
from .records import load_snapshot
from .types import Item, format_utc_timestamp


# Configure quiet mode by default (suppress verbose library output)
# Set DOCMIRROR_VERBOSE=1 to enable debug mode via environment
if os.environ.get("DOCMIRROR_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from . import __version__
        print(f"docmirror {__version__}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    if value is not None:
        _store_override = value


app = typer.Typer(
    name="docmirror",
    help="Searchable local mirror of a remote document collection.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="DOCMIRROR_STORE_PATH",
        help="Path to the store directory",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Searchable local mirror of a remote document collection."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

SnapshotArgument = Annotated[
    Path,
    typer.Argument(
        exists=True,
        dir_okay=False,
        help="JSON snapshot of the collection (raw API records or items)",
    )
]

LimitOption = Annotated[
    int,
    typer.Option(
        "--limit", "-n",
        help="Maximum results to return"
    )
]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _get_mirror() -> Mirror:
    """Open the mirror store, handling config errors gracefully."""
    import atexit

    try:
        mirror = Mirror(_store_override)
    except (ValueError, OSError) as e:
        typer.echo(f"Error opening store: {e}", err=True)
        raise typer.Exit(1)
    atexit.register(mirror.close)
    return mirror


def _load_into(mirror: Mirror, snapshot: Path) -> None:
    """Refresh the mirror from a snapshot file, reporting integrity errors."""
    try:
        items = load_snapshot(snapshot)
    except (ValueError, KeyError) as e:
        typer.echo(f"Error reading snapshot {snapshot}: {e}", err=True)
        raise typer.Exit(1)
    try:
        mirror.refresh(items)
    except DuplicateItemError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _item_line(item: Item, depth: int = 0) -> str:
    summary = ", ".join(
        token for value in list(item.attributes.values())[:3] for token in value.tokens()[:2]
    )
    line = f"{'  ' * depth}{item.title}  [{item.id}]"
    if summary:
        line += f"  ({summary})"
    return line


def _item_json(item: Item, depth: Optional[int] = None) -> dict:
    d = item.to_dict()
    if depth is not None:
        d["depth"] = depth
    return d


def _report_diagnostics(mirror: Mirror) -> None:
    counts = mirror.diagnostics.counts()
    if counts:
        pairs = ", ".join(f"{kind}={n}" for kind, n in sorted(counts.items()))
        typer.echo(f"Warnings: {pairs} (run with --verbose for details)", err=True)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def tree(
    snapshot: SnapshotArgument,
    query: Annotated[Optional[str], typer.Option(
        "--query", "-q",
        help="Only show items matching this search"
    )] = None,
    flat: Annotated[bool, typer.Option(
        "--flat",
        help="List items without hierarchy (most recent first)"
    )] = False,
):
    """
    Show the collection as a tree (or flat list).

    \b
    Examples:
        docmirror tree pages.json
        docmirror tree pages.json -q roadmap
        docmirror tree pages.json --flat
    """
    mirror = _get_mirror()
    _load_into(mirror, snapshot)
    rows = mirror.view(query or "", mode="flat" if flat else "tree")

    if _get_json_output():
        typer.echo(json.dumps([_item_json(item, depth) for depth, item in rows], indent=2))
    else:
        for depth, item in rows:
            typer.echo(_item_line(item, depth))
        if not rows and query:
            typer.echo(f"No items match {query!r}", err=True)
    _report_diagnostics(mirror)


@app.command()
def search(
    snapshot: SnapshotArgument,
    query: Annotated[str, typer.Argument(help="Search query text")],
    limit: LimitOption = 20,
):
    """
    Fuzzy search over titles, cached content and attributes.

    Only content already in the cache is searched; run `docmirror precache`
    first to include everything.
    """
    mirror = _get_mirror()
    _load_into(mirror, snapshot)
    hits = mirror.search_hits(query)[:limit]

    if _get_json_output():
        typer.echo(json.dumps([
            {**_item_json(hit.item), "score": round(hit.score, 3), "fields": hit.fields}
            for hit in hits
        ], indent=2))
        return
    for hit in hits:
        typer.echo(f"{hit.score:4.2f}  {_item_line(hit.item)}")
    if not hits:
        typer.echo(f"No items match {query!r}", err=True)


@app.command()
def show(
    snapshot: SnapshotArgument,
    item_id: Annotated[str, typer.Argument(help="Item id")],
):
    """Print an item's content, fetching it if the cache is stale."""
    mirror = _get_mirror()
    _load_into(mirror, snapshot)
    try:
        content = mirror.resolve_content(item_id)
    except ItemNotFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    item = mirror.get_item(item_id)

    if _get_json_output():
        typer.echo(json.dumps({**_item_json(item), "content": content}, indent=2))
    else:
        typer.echo(f"# {item.title}")
        typer.echo(f"Last modified: {format_utc_timestamp(item.last_modified)}")
        typer.echo("")
        typer.echo(content)
    _report_diagnostics(mirror)


@app.command()
def precache(
    snapshot: SnapshotArgument,
    concurrency: Annotated[Optional[int], typer.Option(
        "--concurrency", "-c",
        help="Simultaneous fetches per batch (default from config)"
    )] = None,
):
    """Fetch and cache content for every item so search covers it."""
    mirror = _get_mirror()
    _load_into(mirror, snapshot)

    def on_progress(processed: int, total: int) -> None:
        if not _get_json_output():
            typer.echo(f"\r{processed}/{total} items cached", nl=False, err=True)

    summary = asyncio.run(mirror.refresh_all_content(
        on_progress=on_progress, concurrency=concurrency,
    ))

    if _get_json_output():
        typer.echo(json.dumps({
            "total": summary.total,
            "processed": summary.processed,
            "failed": summary.failed,
            "already_cached": summary.already_cached,
            "fetched_or_cached": summary.fetched_or_cached,
        }))
        return
    typer.echo("", err=True)
    typer.echo(f"Cached content for {summary.fetched_or_cached}/{summary.total} items")
    if summary.failed:
        typer.echo(f"{summary.failed} items could not be fetched", err=True)


@app.command("clear-cache")
def clear_cache():
    """Delete all cached content."""
    mirror = _get_mirror()
    removed = mirror.clear_cache()
    if _get_json_output():
        typer.echo(json.dumps({"removed": removed}))
    else:
        typer.echo(f"Cleared {removed} cached entries")


@app.command()
def stats():
    """Show cache statistics."""
    mirror = _get_mirror()
    info = {"store": str(mirror.store_path), **mirror.cache_stats()}
    if _get_json_output():
        typer.echo(json.dumps(info))
    else:
        for key, value in info.items():
            typer.echo(f"{key}: {value}")


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="docmirror CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
