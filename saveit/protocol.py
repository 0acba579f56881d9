"""
Protocol definitions for the collaborators of the discovery engine.

Defines interface contracts for:
- IdentityProviderProtocol: the signed-in principal and its bearer token
- KeyValueStoreProtocol: async string-keyed persistent storage
- SearchBackendProtocol: the remote listing/search/classification service
  (HTTP client in production, in-memory backend in standalone mode)
"""

from typing import Any, Awaitable, Callable, Optional, Protocol, runtime_checkable


IdentityListener = Callable[[Optional[str]], Awaitable[None]]


@runtime_checkable
class IdentityProviderProtocol(Protocol):
    """
    Issues opaque identity ids and tokens, and announces identity changes.

    Implemented by:
    - SessionIdentity (saveit.identity)
    """

    def current_identity_id(self) -> Optional[str]: ...

    async def get_token(self) -> Optional[str]: ...

    def subscribe(self, listener: IdentityListener) -> None: ...


@runtime_checkable
class KeyValueStoreProtocol(Protocol):
    """
    Async key/value store with browser-storage semantics.

    ``get`` returns ``{key: value}`` when present and ``{}`` otherwise.
    Any method may raise; callers treat failures as a cache miss.

    Implemented by:
    - SqliteKeyValueStore, MemoryKeyValueStore (saveit.kv_store)
    """

    async def get(self, key: str) -> dict[str, Any]: ...

    async def set(self, items: dict[str, Any]) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def clear(self) -> None: ...


@runtime_checkable
class SearchBackendProtocol(Protocol):
    """
    The listing and similarity service.

    Query operations return raw JSON-decoded payloads; shape decoding
    happens in saveit.reconcile and saveit.types.PageListing.

    Implemented by:
    - BackendClient (saveit.client, HTTP)
    - LocalBackend (saveit.backend, standalone collection)
    """

    # -- Query operations --

    async def list_pages(
        self,
        *,
        search: str = "",
        sort: str = "newest",
        limit: int = 50,
        offset: int = 0,
    ) -> Any: ...

    async def search_by_tag(self, label: str) -> dict: ...

    async def similar_to(
        self,
        thing_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        classification_label: Optional[str] = None,
    ) -> dict: ...

    async def search_content(
        self,
        query: str,
        *,
        limit: int = 50,
        offset: int = 0,
        threshold: float = 0.58,
    ) -> dict: ...

    # -- Write operations --

    async def delete_page(self, id: str) -> dict: ...

    async def update_page(self, id: str, updates: dict[str, Any]) -> dict: ...

    async def pin_page(self, id: str, pinned: bool) -> dict: ...

    async def close(self) -> None: ...
