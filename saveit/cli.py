"""
CLI for browsing saved pages.

Usage:
    saveit list
    saveit tags --general Technology
    saveit discover domain "Machine Learning"
    saveit search "vector databases"
"""

import asyncio
import json
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import SavedPages
from .backend import create_backend
from .cache import IdentityIsolatedCache
from .client import BackendError
from .config import SaveitConfig, get_config_dir, load_or_create_config
from .discovery import DiscoveryController, DiscoveryResult
from .identity import SessionIdentity
from .kv_store import MemoryKeyValueStore, SqliteKeyValueStore
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .reconcile import ResponseShapeError, reconcile
from .tags import domain_tags_under, general_tags, topic_tags_under
from .types import TAG_TYPES, Item, SimilarityMatch, TagRef

# Identity used for --local when SAVEIT_IDENTITY is not set
LOCAL_IDENTITY = "local"


# Configure quiet mode by default (suppress verbose library output)
# Set SAVEIT_VERBOSE=1 to enable debug mode via environment
if os.environ.get("SAVEIT_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"saveit {version('saveit-discovery')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_local_path: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _local_callback(value: Optional[Path]):
    global _local_path
    _local_path = value


app = typer.Typer(
    name="saveit",
    help="Browse saved pages by tag and similarity.",
    no_args_is_help=True,
    rich_markup_mode=None,
)

cache_app = typer.Typer(
    name="cache",
    help="Inspect and reset the listing cache.",
    no_args_is_help=True,
)
app.add_typer(cache_app)


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
    local: Annotated[Optional[Path], typer.Option(
        "--local", "-l",
        envvar="SAVEIT_LOCAL_FILE",
        help="Serve pages from a JSON file instead of the backend",
        callback=_local_callback,
        is_eager=True,
    )] = None,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
):
    """Browse saved pages by tag and similarity."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

LimitOption = Annotated[
    Optional[int],
    typer.Option(
        "--limit", "-n",
        help="Maximum results to return (default: discovery.page_limit)"
    )
]

MinSimilarityOption = Annotated[
    Optional[float],
    typer.Option(
        "--min-similarity",
        help="Hide matches below this similarity (default: discovery.similarity_threshold)"
    )
]


# -----------------------------------------------------------------------------
# Session setup
# -----------------------------------------------------------------------------

def _get_identity() -> SessionIdentity:
    identity = SessionIdentity.from_env()
    if _local_path is not None and identity.current_identity_id() is None:
        # One cache slot per local file
        local_id = f"{LOCAL_IDENTITY}:{_local_path.resolve()}"
        return SessionIdentity(local_id, LOCAL_IDENTITY)
    return identity


def _create_store(config: SaveitConfig):
    if config.cache_backend == "memory":
        return MemoryKeyValueStore()
    return SqliteKeyValueStore(config.cache_db_path)


@asynccontextmanager
async def _session():
    """Config, ops log, backend and cache for one command."""
    try:
        config = load_or_create_config(get_config_dir())
    except ValueError as e:
        typer.echo(f"Error: invalid config: {e}", err=True)
        raise typer.Exit(1)

    identity = _get_identity()
    try:
        backend = create_backend(config, identity, local_path=_local_path)
    except (ValueError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    ops_handler = configure_ops_log(config.path)
    store = _create_store(config)
    cache = IdentityIsolatedCache(store, ttl_ms=config.cache_ttl_ms)
    pages = SavedPages(backend, cache, identity, limit=config.page_limit, sort=config.sort)
    try:
        yield config, pages
    finally:
        await pages.close()
        await store.close()
        logging.getLogger("saveit").removeHandler(ops_handler)
        ops_handler.close()


def _require_identity(pages: SavedPages) -> None:
    if not pages.identity_id():
        typer.echo("Not signed in. Set SAVEIT_IDENTITY and SAVEIT_TOKEN, or use --local.", err=True)
        raise typer.Exit(1)


def _run(coro):
    """Run a command coroutine, turning backend failures into clean errors."""
    try:
        return asyncio.run(coro)
    except BackendError as e:
        status = f" (HTTP {e.status_code})" if e.status_code else ""
        typer.echo(f"Error: {e}{status}", err=True)
        raise typer.Exit(1)
    except ResponseShapeError as e:
        typer.echo(f"Error: unexpected response from backend: {e}", err=True)
        raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Output
# -----------------------------------------------------------------------------

def _echo_json(data) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _format_item(item: Item) -> str:
    pin = "*" if item.pinned else " "
    title = item.title or item.url or "(untitled)"
    return f"{pin} {item.id}  {title}"


def _format_match(match: SimilarityMatch) -> str:
    line = f"{match.similarity:5.2f}  {_format_item(match.page)}"
    if match.matched_label:
        line += f"  [{match.matched_label}]"
    return line


def _print_items(items: list[Item]) -> None:
    if _json_output:
        _echo_json([i.to_dict() for i in items])
        return
    if not items:
        typer.echo("No pages.", err=True)
        return
    for item in items:
        typer.echo(_format_item(item))


def _print_matches(matches: list[SimilarityMatch], min_similarity: float) -> None:
    shown = [m for m in matches if m.similarity >= min_similarity]
    if _json_output:
        _echo_json([m.to_dict() for m in shown])
        return
    if not shown:
        typer.echo("No matching pages.", err=True)
        return
    for match in shown:
        typer.echo(_format_match(match))
    hidden = len(matches) - len(shown)
    if hidden:
        typer.echo(f"({hidden} below similarity {min_similarity:.2f} hidden)", err=True)


def _print_tags(tags: list[TagRef]) -> None:
    if _json_output:
        _echo_json([{"type": t.type, "label": t.label} for t in tags])
        return
    for tag in tags:
        typer.echo(tag.label)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command("list")
def list_pages(
    fresh: Annotated[bool, typer.Option(
        "--fresh", "-f",
        help="Bypass the cache"
    )] = False,
    search: Annotated[str, typer.Option(
        "--search", "-q",
        help="Filter by title, URL, description or tag"
    )] = "",
    limit: LimitOption = None,
    offset: Annotated[int, typer.Option(
        "--offset",
        help="Skip this many pages"
    )] = 0,
):
    """List saved pages, newest first."""
    async def run():
        async with _session() as (config, pages):
            _require_identity(pages)
            return await pages.get_saved_pages(
                search=search, limit=limit, offset=offset, skip_cache=fresh,
            )

    listing = _run(run())
    if _json_output:
        _echo_json(listing.to_dict())
        return
    _print_items(listing.pages)
    if listing.pagination.has_next_page:
        typer.echo(
            f"({len(listing.pages)} of {listing.pagination.total}; use --offset for more)", err=True,
        )


@app.command()
def tags(
    general: Annotated[Optional[str], typer.Option(
        "--general", "-g",
        help="Show the domain tags under this general tag"
    )] = None,
    domain: Annotated[Optional[str], typer.Option(
        "--domain", "-d",
        help="Show the topic tags under this domain tag"
    )] = None,
):
    """List tags of the saved collection, one hierarchy level at a time."""
    async def run():
        async with _session() as (config, pages):
            _require_identity(pages)
            return (await pages.get_saved_pages()).pages

    items = _run(run())
    if domain:
        _print_tags(topic_tags_under(domain, items))
    elif general:
        _print_tags(domain_tags_under(general, items))
    else:
        _print_tags(general_tags(items))


@app.command()
def discover(
    type: Annotated[str, typer.Argument(help="Tag level: general, domain or topic")],
    label: Annotated[str, typer.Argument(help="Tag label")],
    min_similarity: MinSimilarityOption = None,
):
    """Browse pages similar to a tag."""
    if type not in TAG_TYPES:
        typer.echo(f"Error: tag type must be one of {', '.join(TAG_TYPES)}", err=True)
        raise typer.Exit(1)

    async def run() -> tuple[Optional[DiscoveryResult], float]:
        async with _session() as (config, pages):
            _require_identity(pages)
            controller = DiscoveryController(pages, refresh_delay=config.refresh_delay)
            await controller.load()
            threshold = config.similarity_threshold if min_similarity is None else min_similarity
            return await controller.on_tag_click(type, label), threshold

    result, threshold = _run(run())

    if result is None:
        typer.echo(f"No saved page has {type} tag {label!r}.", err=True)
        raise typer.Exit(1)
    if result.context and not _json_output:
        path = [result.context.grandparent_label, result.context.parent_label, result.context.label]
        typer.echo(" > ".join(p for p in path if p))
    _print_matches(result.matches, threshold)


@app.command()
def similar(
    id: Annotated[str, typer.Argument(help="Page ID")],
    label: Annotated[Optional[str], typer.Option(
        "--label",
        help="Compare on this classification label only"
    )] = None,
    limit: LimitOption = None,
    min_similarity: MinSimilarityOption = None,
):
    """Find pages similar to a saved page."""
    async def run():
        async with _session() as (config, pages):
            _require_identity(pages)
            listing = await pages.get_saved_pages()
            response = await pages.similar_to(
                id, limit=limit or config.page_limit, classification_label=label,
            )
            threshold = config.similarity_threshold if min_similarity is None else min_similarity
            return reconcile(response, listing.pages), threshold

    matches, threshold = _run(run())
    _print_matches(matches, threshold)


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search text")],
    limit: LimitOption = None,
    threshold: Annotated[float, typer.Option(
        "--threshold", "-t",
        help="Minimum similarity for a match"
    )] = 0.58,
):
    """Search page content (hybrid keyword and semantic search)."""
    async def run():
        async with _session() as (config, pages):
            _require_identity(pages)
            response = await pages.search_content(
                query, limit=limit or config.page_limit, threshold=threshold,
            )
            return reconcile(response)

    _print_matches(_run(run()), threshold)


@app.command()
def delete(
    id: Annotated[str, typer.Argument(help="Page ID to delete")],
):
    """Delete a saved page."""
    async def run():
        async with _session() as (config, pages):
            _require_identity(pages)
            return await pages.delete_page(id)

    result = _run(run())
    if _json_output:
        _echo_json(result)
    else:
        typer.echo(f"Deleted {id}")


@app.command()
def pin(
    id: Annotated[str, typer.Argument(help="Page ID")],
    unpin: Annotated[bool, typer.Option(
        "--unpin",
        help="Unpin instead of pin"
    )] = False,
):
    """Pin a page to the top of the list."""
    async def run():
        async with _session() as (config, pages):
            _require_identity(pages)
            return await pages.pin_page(id, not unpin)

    result = _run(run())
    if _json_output:
        _echo_json(result)
    else:
        typer.echo(f"{'Unpinned' if unpin else 'Pinned'} {id}")


@app.command()
def update(
    id: Annotated[str, typer.Argument(help="Page ID")],
    notes: Annotated[Optional[str], typer.Option(
        "--notes",
        help="Replace the page's notes"
    )] = None,
    tag: Annotated[Optional[list[str]], typer.Option(
        "--tag", "-t",
        help="Manual tag (repeatable; replaces existing manual tags)"
    )] = None,
):
    """Update a page's notes or manual tags."""
    updates: dict = {}
    if notes is not None:
        updates["notes"] = notes
    if tag is not None:
        updates["manual_tags"] = tag
    if not updates:
        typer.echo("Error: nothing to update (use --notes or --tag)", err=True)
        raise typer.Exit(1)

    async def run():
        async with _session() as (config, pages):
            _require_identity(pages)
            return await pages.update_page(id, updates)

    result = _run(run())
    if _json_output:
        _echo_json(result)
    else:
        typer.echo(f"Updated {id}")


@app.command("config")
def show_config():
    """Show the effective configuration."""
    config = load_or_create_config(get_config_dir())
    data = {
        "file": str(config.config_path),
        "environment": config.environment,
        "api_url": config.api_url,
        "timeout": config.timeout,
        "cache_backend": config.cache_backend,
        "cache_ttl_seconds": config.cache_ttl_seconds,
        "cache_path": str(config.cache_db_path),
        "similarity_threshold": config.similarity_threshold,
        "refresh_delay": config.refresh_delay,
        "page_limit": config.page_limit,
        "sort": config.sort,
    }
    if _json_output:
        _echo_json(data)
        return
    for key, value in data.items():
        typer.echo(f"{key}: {value}")


# -----------------------------------------------------------------------------
# Cache commands
# -----------------------------------------------------------------------------

@cache_app.command("invalidate")
def cache_invalidate():
    """Drop the cached listing of the current identity."""
    async def run():
        async with _session() as (config, pages):
            _require_identity(pages)
            await pages.invalidate_cache()
            return pages.identity_id()

    typer.echo(f"Invalidated cache for {_run(run())}")


@cache_app.command("clear")
def cache_clear():
    """Drop every cached listing, for all identities."""
    async def run():
        async with _session() as (config, pages):
            await pages.clear_all_cache()

    _run(run())
    typer.echo("Cleared cache")


@cache_app.command("purge-legacy")
def cache_purge_legacy():
    """Remove the pre-isolation shared cache entry."""
    async def run():
        async with _session() as (config, pages):
            await pages.purge_legacy_cache()

    _run(run())
    typer.echo("Purged legacy cache entry")


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
        log_path = log_exception(e, context="saveit CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
