"""
Saved-pages service: cached listing, discovery queries and mutations.

SavedPages ties the backend to the identity-isolated cache:

- listings of the default view are served from cache when fresh and
  written back after every successful fetch
- every successful mutation (delete, update, pin) invalidates the
  current identity's cache slot
- an identity change invalidates the new identity's slot before any
  further write can happen

Discovery queries pass straight through; their results are never cached.
"""

import logging
from typing import Any, Optional

from .cache import IdentityIsolatedCache
from .client import BackendError
from .protocol import IdentityProviderProtocol, SearchBackendProtocol
from .types import PageListing

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
DEFAULT_SORT = "newest"

# Listing attempts when the identity keeps changing mid-fetch
MAX_LISTING_ATTEMPTS = 2


class SavedPages:
    """
    Listing and discovery operations for the signed-in identity.

    Args:
        backend: Listing/search backend
        cache: Identity-isolated listing cache
        identity: Source of the current identity and change events
        limit: Page size for listings
        sort: Default sort order for listings
    """

    def __init__(
        self,
        backend: SearchBackendProtocol,
        cache: IdentityIsolatedCache,
        identity: IdentityProviderProtocol,
        *,
        limit: int = DEFAULT_LIMIT,
        sort: str = DEFAULT_SORT,
    ):
        self._backend = backend
        self._cache = cache
        self._identity = identity
        self._limit = limit
        self._sort = sort
        identity.subscribe(self._on_identity_change)

    @property
    def cache(self) -> IdentityIsolatedCache:
        return self._cache

    @property
    def identity(self) -> IdentityProviderProtocol:
        return self._identity

    @property
    def limit(self) -> int:
        return self._limit

    def identity_id(self) -> Optional[str]:
        return self._identity.current_identity_id()

    async def _on_identity_change(self, identity_id: Optional[str]) -> None:
        await self._cache.switch_identity(identity_id)

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    def _is_default_view(self, search: str, sort: Optional[str], offset: int) -> bool:
        """Only the unfiltered first page is cached; it is the collection's full view."""
        return not search and (sort or self._sort) == self._sort and offset == 0

    async def get_saved_pages(
        self,
        *,
        search: str = "",
        sort: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        skip_cache: bool = False,
    ) -> PageListing:
        """
        Fetch a listing of saved pages.

        Serves the default view from cache unless ``skip_cache``. Returns an
        empty listing when nobody is signed in.

        Raises:
            BackendError: request failed or returned malformed data
        """
        cacheable = self._is_default_view(search, sort, offset)

        for _ in range(MAX_LISTING_ATTEMPTS):
            identity_id = self.identity_id()
            if not identity_id:
                logger.debug("No identity, returning empty listing")
                return PageListing()

            if cacheable and not skip_cache:
                cached = await self._cache.read(identity_id)
                if self.identity_id() != identity_id:
                    logger.debug("Identity changed during cache read; retrying")
                    continue
                if cached is not None:
                    try:
                        return PageListing.from_response(cached)
                    except (ValueError, TypeError, AttributeError) as e:
                        logger.warning("Ignoring unreadable cached listing: %s", e)

            data = await self._backend.list_pages(
                search=search,
                sort=sort or self._sort,
                limit=limit or self._limit,
                offset=offset,
            )
            try:
                listing = PageListing.from_response(data)
            except (ValueError, TypeError, AttributeError) as e:
                raise BackendError(f"Malformed listing response: {e}") from e

            if self.identity_id() != identity_id:
                # Fetched with the previous identity's token; never show or cache it
                logger.warning("Identity changed during listing fetch; discarding result")
                continue

            if cacheable:
                await self._cache.write(identity_id, listing.to_dict())
            logger.debug(
                "Fetched %d pages (total %d)", len(listing.pages), listing.pagination.total,
            )
            return listing

        logger.warning("Identity kept changing during listing fetch; giving up")
        return PageListing()

    # -------------------------------------------------------------------------
    # Discovery (never cached)
    # -------------------------------------------------------------------------

    async def search_by_tag(self, label: str) -> dict:
        return await self._backend.search_by_tag(label)

    async def similar_to(
        self,
        thing_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        classification_label: Optional[str] = None,
    ) -> dict:
        return await self._backend.similar_to(
            thing_id, limit=limit, offset=offset, classification_label=classification_label,
        )

    async def search_content(
        self,
        query: str,
        *,
        limit: int = 50,
        offset: int = 0,
        threshold: float = 0.58,
    ) -> dict:
        return await self._backend.search_content(
            query, limit=limit, offset=offset, threshold=threshold,
        )

    # -------------------------------------------------------------------------
    # Mutations: each invalidates the cache on success
    # -------------------------------------------------------------------------

    async def delete_page(self, id: str) -> dict:
        result = await self._backend.delete_page(id)
        await self._cache.invalidate(self.identity_id())
        logger.info("Deleted page %s", id)
        return result

    async def update_page(self, id: str, updates: dict[str, Any]) -> dict:
        result = await self._backend.update_page(id, updates)
        await self._cache.invalidate(self.identity_id())
        logger.info("Updated page %s (%s)", id, ", ".join(sorted(updates)))
        return result

    async def pin_page(self, id: str, pinned: bool) -> dict:
        result = await self._backend.pin_page(id, pinned)
        await self._cache.invalidate(self.identity_id())
        logger.info("%s page %s", "Pinned" if pinned else "Unpinned", id)
        return result

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def invalidate_cache(self) -> None:
        await self._cache.invalidate(self.identity_id())

    async def clear_all_cache(self) -> None:
        await self._cache.clear_all()

    async def purge_legacy_cache(self) -> None:
        await self._cache.purge_legacy()

    async def close(self) -> None:
        await self._backend.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
