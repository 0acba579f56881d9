"""
Data types for saved pages and discovery browsing.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


# Classification levels, broadest first
GENERAL = "general"
DOMAIN = "domain"
TOPIC = "topic"
TAG_TYPES = (GENERAL, DOMAIN, TOPIC)

# Wire fields that Item models explicitly; everything else lands in Item.fields
_ITEM_KEYS = frozenset({
    "id", "classifications", "manual_tags", "primary_classification_label",
})


def validate_tag_type(type: str) -> None:
    """Validate a classification level name."""
    if type not in TAG_TYPES:
        raise ValueError(f"Unknown tag type: {type!r} (expected one of {', '.join(TAG_TYPES)})")


def utc_now_ms() -> int:
    """Current UTC time as epoch milliseconds.

    Cache timestamps are stored in this unit for compatibility with the
    browser store format.
    """
    return int(datetime.now(timezone.utc).timestamp() * 1000)


@dataclass(frozen=True)
class Classification:
    """One AI-derived (type, label, confidence) tuple attached to an Item."""
    type: str
    label: str
    confidence: float = 0.0

    @classmethod
    def from_dict(cls, d: dict) -> "Classification":
        return cls(
            type=d.get("type", ""),
            label=d.get("label") or "",
            confidence=float(d.get("confidence") or 0.0),
        )

    def to_dict(self) -> dict:
        return {"type": self.type, "label": self.label, "confidence": self.confidence}


@dataclass(frozen=True)
class Item:
    """
    A saved page.

    This is a read-only snapshot. The engine never edits items; a refresh
    replaces the whole collection.

    Attributes:
        id: Unique page identifier
        classifications: Ordered classifications (general/domain/topic)
        manual_tags: User-assigned tags
        primary_classification_label: Optional headline classification
        fields: Remaining wire fields (url, title, saved_at, ...)
    """
    id: str
    classifications: tuple[Classification, ...] = ()
    manual_tags: tuple[str, ...] = ()
    primary_classification_label: Optional[str] = None
    fields: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def title(self) -> str | None:
        return self.fields.get("title")

    @property
    def url(self) -> str | None:
        return self.fields.get("url")

    @property
    def pinned(self) -> bool:
        return bool(self.fields.get("pinned"))

    def first_label(self, type: str) -> Optional[str]:
        """Label of the first classification of the given type, if any."""
        for c in self.classifications:
            if c.type == type:
                return c.label
        return None

    def labels(self, type: str) -> list[str]:
        """All labels of the given type, in classification order."""
        return [c.label for c in self.classifications if c.type == type and c.label]

    def has_classification(self, type: str, label: str) -> bool:
        return any(c.type == type and c.label == label for c in self.classifications)

    @classmethod
    def from_dict(cls, d: dict) -> "Item":
        """Build an Item from a backend page record."""
        if "id" not in d:
            raise ValueError("Page record has no id")
        return cls(
            id=str(d["id"]),
            classifications=tuple(
                Classification.from_dict(c) for c in (d.get("classifications") or [])
            ),
            manual_tags=tuple(d.get("manual_tags") or ()),
            primary_classification_label=d.get("primary_classification_label"),
            fields={k: copy.deepcopy(v) for k, v in d.items() if k not in _ITEM_KEYS},
        )

    def to_dict(self) -> dict:
        """Serialize back to the backend page record shape."""
        d = copy.deepcopy(self.fields)
        d["id"] = self.id
        d["classifications"] = [c.to_dict() for c in self.classifications]
        d["manual_tags"] = list(self.manual_tags)
        d["primary_classification_label"] = self.primary_classification_label
        return d

    def __str__(self) -> str:
        title = self.title or self.url or ""
        return f"{self.id}: {title[:60]}"


@dataclass(frozen=True)
class TagRef:
    """A (type, label) pair naming one tag in the hierarchy."""
    type: str
    label: str


@dataclass(frozen=True)
class Breadcrumb:
    """Ancestry of a tag, read off the first item carrying it."""
    type: str
    label: str
    parent_label: Optional[str] = None
    grandparent_label: Optional[str] = None


@dataclass(frozen=True)
class SelectionState:
    """Currently chosen general (l1), domain (l2) and topic (l3) labels."""
    l1: Optional[str] = None
    l2: Optional[str] = None
    l3: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.l1 is None and self.l2 is None and self.l3 is None

    @property
    def active_label(self) -> Optional[str]:
        """Deepest selected label."""
        return self.l3 or self.l2 or self.l1

    @property
    def active_type(self) -> Optional[str]:
        if self.l3:
            return TOPIC
        if self.l2:
            return DOMAIN
        if self.l1:
            return GENERAL
        return None

    def label_at(self, type: str) -> Optional[str]:
        return {GENERAL: self.l1, DOMAIN: self.l2, TOPIC: self.l3}[type]


@dataclass(frozen=True)
class SimilarityMatch:
    """A page returned by discovery, with its similarity annotation.

    The annotation lives here rather than on the page so the caller's Item
    objects are never modified.
    """
    page: Item
    similarity: float
    matched_label: Optional[str] = None

    def to_dict(self) -> dict:
        """Page record with transient ``_similarity``/``_matched_label`` fields."""
        d = self.page.to_dict()
        d["_similarity"] = self.similarity
        d["_matched_label"] = self.matched_label
        return d


@dataclass(frozen=True)
class Pagination:
    total: int = 0
    has_next_page: bool = False
    next_cursor: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "hasNextPage": self.has_next_page,
            "nextCursor": self.next_cursor,
        }


@dataclass
class PageListing:
    """Normalized listing payload: pages plus pagination metadata.

    This is the payload the cache stores per identity.
    """
    pages: list[Item] = field(default_factory=list)
    pagination: Pagination = field(default_factory=Pagination)

    @classmethod
    def from_response(cls, data: Any) -> "PageListing":
        """Normalize a listing response.

        The backend should return ``{pages, pagination}``; a bare list of
        pages is accepted with pagination derived from its length.
        """
        if isinstance(data, list):
            raw_pages, raw_pagination = data, None
        elif isinstance(data, dict):
            raw_pages = data.get("pages") or []
            raw_pagination = data.get("pagination")
        else:
            raise ValueError(f"Unexpected listing response type: {type(data).__name__}")

        pages = [Item.from_dict(p) for p in raw_pages]
        if raw_pagination:
            pagination = Pagination(
                total=int(raw_pagination.get("total") or 0),
                has_next_page=bool(raw_pagination.get("hasNextPage")),
                next_cursor=raw_pagination.get("nextCursor"),
            )
        else:
            pagination = Pagination(total=len(pages))
        return cls(pages=pages, pagination=pagination)

    def to_dict(self) -> dict:
        return {
            "pages": [p.to_dict() for p in self.pages],
            "pagination": self.pagination.to_dict(),
        }
