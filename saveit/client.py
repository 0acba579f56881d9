"""
HTTP client for the saved-pages backend.

Every request carries the current identity's bearer token. The backend
multiplexes on query parameters: the same GET endpoint lists pages, runs
tag search (``label``), similar-page search (``thing_id``) and content
search (``search_text``).

Errors are not retried here. Discovery surfaces them to the caller and the
background refresh logs them.
"""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from .protocol import IdentityProviderProtocol

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class BackendError(Exception):
    """The backend request failed or returned an unusable response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotSignedInError(BackendError):
    """A request needed a bearer token but nobody is signed in."""


def _error_message(resp: httpx.Response) -> str:
    """Server-provided error text, else the HTTP reason phrase."""
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        message = data.get("error") or data.get("message")
        if message:
            return str(message)
    return resp.reason_phrase or f"HTTP {resp.status_code}"


class BackendClient:
    """Async HTTP client for the listing and discovery API."""

    def __init__(
        self,
        api_url: str,
        identity: IdentityProviderProtocol,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_url = api_url.rstrip("/")
        self._identity = identity

        # Refuse non-HTTPS for remote APIs (bearer token would be sent in cleartext)
        if not self._api_url.startswith("https://"):
            host = urlparse(self._api_url).hostname or ""
            if host not in ("localhost", "127.0.0.1", "::1"):
                raise ValueError(
                    f"API URL must use HTTPS (got {self._api_url}). "
                    "Use HTTPS to protect identity tokens, or use localhost for local development."
                )

        self._client = httpx.AsyncClient(
            base_url=self._api_url,
            timeout=timeout,
            transport=transport,
        )

    @property
    def api_url(self) -> str:
        return self._api_url

    async def _request(
        self,
        method: str,
        path: str = "",
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        token = await self._identity.get_token()
        if not token:
            raise NotSignedInError("No user signed in")

        try:
            resp = await self._client.request(
                method,
                path,
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise BackendError(f"{method} {path or '/'} failed: {e}") from e

        if resp.is_error:
            raise BackendError(_error_message(resp), status_code=resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            raise BackendError(
                f"Malformed JSON from {method} {path or '/'}", status_code=resp.status_code,
            ) from e

    # -- Query operations --

    async def list_pages(
        self,
        *,
        search: str = "",
        sort: str = "newest",
        limit: int = 50,
        offset: int = 0,
    ) -> Any:
        """GET / -> {pages, pagination}."""
        params = {"limit": limit, "offset": offset, "search": search, "sort": sort}
        return await self._request("GET", "", params=params)

    async def search_by_tag(self, label: str) -> dict:
        """GET /?label= -> {exact_matches, similar_matches, related_matches}."""
        return await self._request("GET", "", params={"label": label})

    async def similar_to(
        self,
        thing_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        classification_label: Optional[str] = None,
    ) -> dict:
        """GET /?thing_id= -> {results, pagination, source}.

        ``thing_id`` in the query string selects the similar-things handler.
        """
        params: dict[str, Any] = {"thing_id": thing_id, "limit": limit, "offset": offset}
        if classification_label:
            params["classification_label"] = classification_label
        return await self._request("GET", "", params=params)

    async def search_content(
        self,
        query: str,
        *,
        limit: int = 50,
        offset: int = 0,
        threshold: float = 0.58,
    ) -> dict:
        """GET /?search_text= -> {results, pagination, query, threshold} (hybrid BM25 + vector)."""
        params = {
            "search_text": query,
            "search_type": "hybrid",
            "limit": limit,
            "offset": offset,
            "threshold": threshold,
        }
        return await self._request("GET", "", params=params)

    # -- Write operations --

    async def delete_page(self, id: str) -> dict:
        """DELETE /?id=: remove a saved page."""
        return await self._request("DELETE", "", params={"id": id})

    async def update_page(self, id: str, updates: dict[str, Any]) -> dict:
        """PATCH /updatePage: update notes, tags and other editable fields."""
        return await self._request("PATCH", "/updatePage", json={"id": id, **updates})

    async def pin_page(self, id: str, pinned: bool) -> dict:
        """POST /pin: pin or unpin a page."""
        return await self._request("POST", "/pin", json={"id": id, "pinned": pinned})

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
