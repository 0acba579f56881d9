"""
Similarity result reconciliation.

The backend answers discovery queries in one of two shapes:

- tiered: ``{exact_matches, similar_matches, related_matches}`` from tag search
- flat: ``{results}`` from similar-to-page search

Both are decoded once, at the boundary, into TieredResult or FlatResult.
reconcile() then turns either into one ordered list of SimilarityMatch.
Tier order is the ranking: exact, then similar, then related. Scores are
carried along but never used to re-sort.
"""

import logging
from typing import Any, Iterable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .types import Item, SimilarityMatch

logger = logging.getLogger(__name__)

TIER_KEYS = ("exact_matches", "similar_matches", "related_matches")


class ResponseShapeError(ValueError):
    """A discovery response matched neither the tiered nor the flat shape."""


class MatchEntry(BaseModel):
    """One element of a discovery response."""
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    thing_id: Optional[str] = None
    thing_data: Optional[dict[str, Any]] = None
    similarity: Optional[float] = None
    matched_label: Optional[str] = None


class TieredResult(BaseModel):
    """Tag search response, grouped by match strength."""
    model_config = ConfigDict(extra="ignore")

    kind: Literal["tiered"] = "tiered"
    exact_matches: list[MatchEntry] = Field(default_factory=list)
    similar_matches: list[MatchEntry] = Field(default_factory=list)
    related_matches: list[MatchEntry] = Field(default_factory=list)

    def entries(self) -> list[MatchEntry]:
        return [*self.exact_matches, *self.similar_matches, *self.related_matches]


class FlatResult(BaseModel):
    """Similar-to-page response, already ranked by the backend."""
    model_config = ConfigDict(extra="ignore")

    kind: Literal["flat"] = "flat"
    results: list[MatchEntry] = Field(default_factory=list)

    def entries(self) -> list[MatchEntry]:
        return list(self.results)


SearchResponse = Union[TieredResult, FlatResult]


def decode_response(data: Any) -> SearchResponse:
    """
    Decode a raw discovery payload into its tagged variant.

    Raises:
        ResponseShapeError: payload is not a dict, has neither ``results``
            nor a tier key, or fails validation
    """
    if isinstance(data, (TieredResult, FlatResult)):
        return data
    if not isinstance(data, dict):
        raise ResponseShapeError(f"Discovery response must be an object, got {type(data).__name__}")

    # Tier lists may come back as null
    payload = {k: v for k, v in data.items() if v is not None}
    try:
        if "results" in data:
            return FlatResult.model_validate({"results": payload.get("results", [])})
        if any(k in data for k in TIER_KEYS):
            return TieredResult.model_validate({k: payload.get(k, []) for k in TIER_KEYS})
    except ValidationError as e:
        raise ResponseShapeError(f"Malformed discovery response: {e}") from e
    raise ResponseShapeError(
        f"Discovery response has neither 'results' nor tier keys: {sorted(data)}"
    )


def _resolve(entry: MatchEntry, by_id: dict[str, Item]) -> Optional[Item]:
    """Page for an entry: embedded data first, then lookup by id."""
    if entry.thing_data:
        try:
            return Item.from_dict(entry.thing_data)
        except ValueError as e:
            logger.debug("Embedded page data unusable: %s", e)
    if entry.thing_id is not None:
        return by_id.get(entry.thing_id)
    return None


def reconcile(response: Any, fallback_items: Iterable[Item] = ()) -> list[SimilarityMatch]:
    """
    Normalize a discovery response into an ordered list of matches.

    Args:
        response: Raw payload or an already-decoded variant
        fallback_items: Pages to look up entries that carry only ``thing_id``

    Returns:
        Matches in backend order (tier order for tiered responses),
        unresolvable entries dropped, duplicate pages removed (first wins)
    """
    decoded = decode_response(response)

    by_id: dict[str, Item] = {}
    for item in fallback_items:
        by_id.setdefault(item.id, item)

    matches: list[SimilarityMatch] = []
    seen: set[str] = set()
    dropped = 0
    duplicates = 0
    for entry in decoded.entries():
        page = _resolve(entry, by_id)
        if page is None:
            dropped += 1
            continue
        if page.id in seen:
            duplicates += 1
            continue
        seen.add(page.id)
        matches.append(SimilarityMatch(
            page,
            entry.similarity if entry.similarity is not None else 0.0,
            entry.matched_label,
        ))

    if dropped or duplicates:
        logger.debug(
            "Reconciled %s response: %d kept, %d unresolved, %d duplicate",
            decoded.kind, len(matches), dropped, duplicates,
        )
    return matches
