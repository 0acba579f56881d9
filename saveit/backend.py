"""
Search backend factory and the standalone in-memory backend.

Creates the backend the rest of the package talks to, based on
configuration:

- remote (default): BackendClient over HTTP with bearer auth
- local: LocalBackend over a JSON file of page records, for development
  and offline use. It answers the same queries with the same response
  shapes, using plain tag matching in place of embeddings.
"""

import copy
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .client import BackendClient, BackendError
from .config import SaveitConfig
from .protocol import IdentityProviderProtocol, SearchBackendProtocol

logger = logging.getLogger(__name__)

# Tag search scores
EXACT_MATCH_SCORE = 1.0
SUBSTRING_MATCH_SCORE = 0.85

# Weighted fields for content search
_CONTENT_WEIGHTS = (
    ("title", 0.4),
    ("ai_summary_brief", 0.3),
    ("ai_summary_extended", 0.2),
    ("description", 0.1),
)
_CLASSIFICATION_WEIGHT = 0.15


def _page_tags(page: dict, lowercase: bool = False) -> list[str]:
    tags = [c.get("label", "") for c in page.get("classifications") or []]
    if page.get("primary_classification_label"):
        tags.append(page["primary_classification_label"])
    tags.extend(page.get("manual_tags") or [])
    tags = [t for t in tags if t]
    return [t.lower() for t in tags] if lowercase else tags


def _tag_similarity(page_tags: list[str], label: str) -> tuple[Optional[str], float, Optional[str]]:
    """(tier, score, matched tag) for one page against a query label."""
    wanted = label.lower()
    for tag in page_tags:
        if tag.lower() == wanted:
            return "exact", EXACT_MATCH_SCORE, tag
    for tag in page_tags:
        lower = tag.lower()
        if wanted in lower or lower in wanted:
            return "similar", SUBSTRING_MATCH_SCORE, tag
    return None, 0.0, None


def _saved_at(page: dict) -> datetime:
    value = page.get("saved_at")
    if not value:
        return datetime.min
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        return datetime.min


class LocalBackend:
    """
    In-memory backend over a list of page records.

    Page records use the wire format (dicts). Responses are deep copies, so
    callers can never mutate the backend's collection.
    """

    def __init__(self, pages: list[dict]):
        self._pages = [copy.deepcopy(p) for p in pages]

    @classmethod
    def from_file(cls, path: Path) -> "LocalBackend":
        """Load page records from a JSON file (a list, or ``{"pages": [...]}``)."""
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        pages = data.get("pages", []) if isinstance(data, dict) else data
        logger.info("Loaded %d pages from %s", len(pages), path)
        return cls(pages)

    def _find(self, id: str) -> Optional[dict]:
        for page in self._pages:
            if str(page.get("id")) == id:
                return page
        return None

    # -- Query operations --

    async def list_pages(
        self,
        *,
        search: str = "",
        sort: str = "newest",
        limit: int = 50,
        offset: int = 0,
    ) -> dict:
        pages = [p for p in self._pages if not p.get("deleted")]
        if search:
            query = search.lower()
            pages = [
                p for p in pages
                if query in (p.get("title") or "").lower()
                or query in (p.get("url") or "").lower()
                or query in (p.get("description") or "").lower()
                or any(query in t.lower() for t in p.get("manual_tags") or [])
            ]
        if sort in ("newest", "oldest"):
            pages.sort(key=_saved_at, reverse=(sort == "newest"))

        total = len(pages)
        batch = pages[offset:offset + limit]
        return {
            "pages": copy.deepcopy(batch),
            "pagination": {
                "total": total,
                "hasNextPage": offset + len(batch) < total,
                "nextCursor": None,
            },
        }

    async def search_by_tag(self, label: str) -> dict:
        results: dict[str, Any] = {
            "query_label": label,
            "exact_matches": [],
            "similar_matches": [],
            "related_matches": [],
        }
        for page in self._pages:
            tier, score, matched = _tag_similarity(_page_tags(page), label)
            if tier is None:
                continue
            results[f"{tier}_matches"].append({
                "thing_id": str(page.get("id")),
                "thing_data": copy.deepcopy(page),
                "similarity": score,
                "matched_label": matched,
            })
        return results

    async def similar_to(
        self,
        thing_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        classification_label: Optional[str] = None,
    ) -> dict:
        """Pages ranked by the share of the source page's tags they also carry."""
        source = self._find(thing_id)
        if source is None:
            return {
                "results": [],
                "pagination": {"limit": limit, "offset": offset, "total": 0, "has_more": False},
                "source": {"thing_id": thing_id, "label": None},
            }

        source_tags = _page_tags(source, lowercase=True)
        scored = []
        for page in self._pages:
            if str(page.get("id")) == thing_id:
                continue
            page_tags = _page_tags(page, lowercase=True)
            overlap = sum(1 for t in source_tags if t in page_tags)
            similarity = overlap / len(source_tags) if source_tags else 0.0
            if similarity > 0:
                scored.append((similarity, page))
        scored.sort(key=lambda pair: pair[0], reverse=True)

        batch = scored[offset:offset + limit]
        return {
            "results": [
                {
                    "thing_id": str(page.get("id")),
                    "similarity": similarity,
                    "thing_data": copy.deepcopy(page),
                }
                for similarity, page in batch
            ],
            "pagination": {
                "limit": limit,
                "offset": offset,
                "total": len(scored),
                "has_more": offset + limit < len(scored),
            },
            "source": {
                "thing_id": thing_id,
                "label": classification_label or source.get("primary_classification_label"),
            },
        }

    async def search_content(
        self,
        query: str,
        *,
        limit: int = 50,
        offset: int = 0,
        threshold: float = 0.58,
    ) -> dict:
        """Weighted substring match over title, summaries, description and labels."""
        q = query.lower()
        scored = []
        for page in self._pages:
            if page.get("deleted"):
                continue
            score = sum(
                weight for key, weight in _CONTENT_WEIGHTS
                if q in (page.get(key) or "").lower()
            )
            if any(q in (c.get("label") or "").lower() for c in page.get("classifications") or []):
                score += _CLASSIFICATION_WEIGHT
            score = min(score, 1.0)
            if score >= threshold:
                scored.append((score, page))
        scored.sort(key=lambda pair: pair[0], reverse=True)

        batch = scored[offset:offset + limit]
        return {
            "results": [
                {"thing_id": str(p.get("id")), "similarity": s, "thing_data": copy.deepcopy(p)}
                for s, p in batch
            ],
            "pagination": {
                "limit": limit,
                "offset": offset,
                "total": len(scored),
                "has_more": offset + limit < len(scored),
            },
            "query": query,
            "threshold": threshold,
        }

    # -- Write operations --

    async def delete_page(self, id: str) -> dict:
        page = self._find(id)
        if page is not None:
            self._pages.remove(page)
        return {"success": True}

    async def update_page(self, id: str, updates: dict[str, Any]) -> dict:
        page = self._find(id)
        if page is None:
            raise BackendError("Page not found", status_code=404)
        page.update(copy.deepcopy(updates))
        return copy.deepcopy(page)

    async def pin_page(self, id: str, pinned: bool) -> dict:
        page = self._find(id)
        if page is None:
            raise BackendError("Page not found", status_code=404)
        page["pinned"] = pinned
        return {"success": True}

    async def close(self) -> None:
        pass


def create_backend(
    config: SaveitConfig,
    identity: IdentityProviderProtocol,
    *,
    local_path: Optional[Path] = None,
) -> SearchBackendProtocol:
    """
    Create the search backend.

    A ``local_path`` selects the standalone LocalBackend over that file;
    otherwise the HTTP client for the configured API URL is returned.
    """
    if local_path is not None:
        return LocalBackend.from_file(local_path)
    return BackendClient(config.api_url, identity, timeout=config.timeout)
