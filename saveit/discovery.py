"""
Discovery browsing: tag clicks in, similarity-ranked page lists out.

DiscoveryController owns the page collections and the tag selection, and
moves through four states::

    IDLE ──click──▶ LOADING ──ok──▶ SHOWING
                       │
                       └──fail──▶ ERROR

Rendering is external. The controller reports through three optional
async-or-sync callbacks (``on_loading``, ``on_render``, ``on_error``).

Backend calls cannot be cancelled, so every call records the generation
it started in. The generation is bumped by each selection change, clear,
reload and identity change; a result arriving for an older generation is
dropped.
"""

import asyncio
import enum
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .api import SavedPages
from .reconcile import reconcile
from .representative import find_representative
from .selection import SelectionStateMachine, Transition
from .tags import TagBar, breadcrumb, build_tag_bar
from .types import Breadcrumb, Item, Pagination, SelectionState, SimilarityMatch

logger = logging.getLogger(__name__)

# Delay before a background refresh starts fetching
DEFAULT_REFRESH_DELAY = 0.5


class DiscoveryState(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    SHOWING = "showing"
    ERROR = "error"


@dataclass
class DiscoveryResult:
    """Pages to render after a tag click.

    ``cleared`` is True when the click toggled the selection off and
    ``matches`` is the full collection at similarity 1.0.
    """
    matches: list[SimilarityMatch] = field(default_factory=list)
    selection: SelectionState = field(default_factory=SelectionState)
    context: Optional[Breadcrumb] = None
    cleared: bool = False

    @property
    def pages(self) -> list[Item]:
        return [m.page for m in self.matches]


Callback = Callable[..., Any]


async def _call(callback: Optional[Callback], *args) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class DiscoveryController:
    """
    Orchestrates selection, representative lookup, search and reconciliation.

    Args:
        pages: Saved-pages service (listing, discovery, cache)
        on_loading: Called with no arguments when a discovery call starts
        on_render: Called with a DiscoveryResult when pages are ready
        on_error: Called with the exception when a discovery call fails
        refresh_delay: Seconds a background refresh waits before fetching
        similar_limit: Maximum results requested from similar-page search
    """

    def __init__(
        self,
        pages: SavedPages,
        *,
        on_loading: Optional[Callback] = None,
        on_render: Optional[Callback] = None,
        on_error: Optional[Callback] = None,
        refresh_delay: float = DEFAULT_REFRESH_DELAY,
        similar_limit: int = 50,
    ):
        self._pages = pages
        self._on_loading = on_loading
        self._on_render = on_render
        self._on_error = on_error
        self._refresh_delay = refresh_delay
        self._similar_limit = similar_limit

        self._selection = SelectionStateMachine()
        self._state = DiscoveryState.IDLE
        self._generation = 0
        self._error: Optional[BaseException] = None

        self._all_items: list[Item] = []
        self._displayed: list[Item] = []
        self._listing_payload: Optional[dict] = None
        self._pagination = Pagination()
        self._offset = 0
        self._last_result: Optional[DiscoveryResult] = None

        pages.identity.subscribe(self.on_identity_change)

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    @property
    def state(self) -> DiscoveryState:
        return self._state

    @property
    def error(self) -> Optional[BaseException]:
        """The failure behind the ERROR state, if any."""
        return self._error

    @property
    def selection(self) -> SelectionState:
        return self._selection.state

    @property
    def all_items(self) -> list[Item]:
        return list(self._all_items)

    @property
    def displayed(self) -> list[Item]:
        return list(self._displayed)

    @property
    def pagination(self) -> Pagination:
        return self._pagination

    @property
    def last_result(self) -> Optional[DiscoveryResult]:
        return self._last_result

    def active_label(self) -> Optional[str]:
        return self._selection.active_label()

    def active_type(self) -> Optional[str]:
        return self._selection.active_type()

    def tag_bar(self) -> TagBar:
        return build_tag_bar(self._selection.state, self._all_items, self._displayed)

    def breadcrumb(self) -> Optional[Breadcrumb]:
        """Ancestry of the active tag, for the discovery header."""
        label, type = self.active_label(), self.active_type()
        if label is None:
            return None
        return breadcrumb(type, label, self._all_items, self._displayed)

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def _apply_listing(self, listing_payload: dict, items: list[Item], pagination: Pagination) -> None:
        self._listing_payload = listing_payload
        self._all_items = items
        self._pagination = pagination
        self._offset = 0

    async def load(self, *, skip_cache: bool = False) -> list[Item]:
        """
        Load the collection (from cache when fresh) and show every page.

        Raises:
            BackendError: the listing fetch failed
        """
        self._generation += 1
        listing = await self._pages.get_saved_pages(skip_cache=skip_cache)
        self._apply_listing(listing.to_dict(), listing.pages, listing.pagination)
        self._selection.clear()
        self._displayed = list(self._all_items)
        self._error = None
        self._state = DiscoveryState.SHOWING if self._pages.identity_id() else DiscoveryState.IDLE
        logger.info("Loaded %d pages", len(self._all_items))
        return self.displayed

    async def load_more(self) -> list[Item]:
        """Fetch the next listing page and append it. Returns the new pages."""
        if not self._pagination.has_next_page:
            return []
        generation = self._generation
        offset = self._offset + self._pages.limit
        listing = await self._pages.get_saved_pages(offset=offset)
        if generation != self._generation:
            logger.debug("Ignoring superseded listing page at offset %d", offset)
            return []
        self._offset = offset
        self._pagination = listing.pagination
        self._all_items.extend(listing.pages)
        if self._selection.state.is_empty:
            self._displayed.extend(listing.pages)
        return list(listing.pages)

    # -------------------------------------------------------------------------
    # Tag clicks
    # -------------------------------------------------------------------------

    async def on_tag_click(self, type: str, label: str) -> Optional[DiscoveryResult]:
        """
        Handle a click on a tag.

        Returns:
            The pages to show, or None when the click changed nothing or
            its result was superseded by a newer action

        Raises:
            ValueError: unknown tag type
            Exception: whatever the backend raised; the controller is left
                in ERROR and the error callback has been called
        """
        transition = self._selection.select(type, label, self._all_items, self._displayed)

        if transition is Transition.NOOP:
            return None

        if transition is Transition.SHOW_ALL:
            self._generation += 1
            self._displayed = list(self._all_items)
            self._state = DiscoveryState.SHOWING
            self._error = None
            result = DiscoveryResult(
                matches=[SimilarityMatch(item, 1.0) for item in self._all_items],
                selection=self._selection.state,
                cleared=True,
            )
            self._last_result = result
            await _call(self._on_render, result)
            return result

        return await self._run_discovery()

    async def _run_discovery(self, *, surface_errors: bool = True) -> Optional[DiscoveryResult]:
        """
        Query the backend for the active selection and show the result.

        With ``surface_errors`` False a failure leaves the current state and
        result in place and skips the error callback; the exception still
        propagates.
        """
        self._generation += 1
        generation = self._generation
        selection = self._selection.state
        label, type = selection.active_label, selection.active_type
        context = breadcrumb(type, label, self._all_items, self._displayed)

        previous_state = self._state
        self._state = DiscoveryState.LOADING
        self._error = None
        await _call(self._on_loading)

        anchor = find_representative(label, self._all_items, self._displayed)
        try:
            if anchor is not None:
                logger.debug("Discovering %r via representative %s", label, anchor.id)
                response = await self._pages.similar_to(
                    anchor.id, limit=self._similar_limit, classification_label=label,
                )
            else:
                logger.debug("Discovering %r via tag search", label)
                response = await self._pages.search_by_tag(label)
            matches = reconcile(response, [*self._all_items, *self._displayed])
        except Exception as e:
            if generation != self._generation:
                logger.debug("Ignoring failure of superseded discovery for %r: %s", label, e)
                return None
            if not surface_errors:
                self._state = previous_state
                raise
            logger.warning("Discovery for %s %r failed: %s", type, label, e)
            self._state = DiscoveryState.ERROR
            self._error = e
            self._last_result = None
            await _call(self._on_error, e)
            raise

        if generation != self._generation:
            logger.debug("Ignoring superseded discovery result for %r", label)
            return None

        self._displayed = [m.page for m in matches]
        self._state = DiscoveryState.SHOWING
        result = DiscoveryResult(matches=matches, selection=selection, context=context)
        self._last_result = result
        logger.info("Discovery for %s %r: %d pages", type, label, len(matches))
        await _call(self._on_render, result)
        return result

    def exit(self) -> list[Item]:
        """Leave discovery: clear the selection and show every page."""
        self._generation += 1
        self._selection.clear()
        self._displayed = list(self._all_items)
        self._last_result = None
        self._error = None
        self._state = DiscoveryState.SHOWING if self._all_items else DiscoveryState.IDLE
        return self.displayed

    # -------------------------------------------------------------------------
    # Background refresh
    # -------------------------------------------------------------------------

    async def on_background_refresh(self) -> bool:
        """
        Refresh the collection behind already-displayed (cached) data.

        Waits ``refresh_delay`` seconds, fetches with the cache bypassed and,
        if the payload changed, replaces the collection and re-runs the
        active discovery query. Failures are logged, never raised.

        Returns:
            True if the collection changed
        """
        if not self._pages.identity_id():
            return False
        try:
            await asyncio.sleep(self._refresh_delay)
            generation = self._generation
            identity_id = self._pages.identity_id()
            listing = await self._pages.get_saved_pages(skip_cache=True)
            if generation != self._generation or identity_id != self._pages.identity_id():
                logger.debug("Background refresh superseded; discarding")
                return False

            payload = listing.to_dict()
            if payload == self._listing_payload:
                logger.debug("Background refresh: no changes")
                return False

            logger.info("Background refresh: collection changed (%d pages)", len(listing.pages))
            self._apply_listing(payload, listing.pages, listing.pagination)
            if self.active_label():
                await self._run_discovery(surface_errors=False)
            else:
                self._displayed = list(self._all_items)
                self._state = DiscoveryState.SHOWING
                result = DiscoveryResult(
                    matches=[SimilarityMatch(item, 1.0) for item in self._all_items],
                    selection=self._selection.state,
                )
                await _call(self._on_render, result)
            return True
        except Exception as e:
            logger.warning("Background refresh failed: %s", e, exc_info=True)
            return False

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    async def on_identity_change(self, identity_id: Optional[str]) -> None:
        """Forget everything that belonged to the previous identity."""
        self._generation += 1
        self._selection.clear()
        self._all_items = []
        self._displayed = []
        self._listing_payload = None
        self._pagination = Pagination()
        self._offset = 0
        self._last_result = None
        self._error = None
        self._state = DiscoveryState.IDLE
        logger.debug("Discovery state reset for identity change")
