"""
Representative item selection.

A similarity query needs one concrete page to anchor on. For a tag label,
the best anchor is the page carrying that label with the richest tag set:
more classifications usually means more thorough AI processing.
"""

import logging
from typing import Callable, Iterable, Optional, Sequence

from .types import Item

logger = logging.getLogger(__name__)

LookupStrategy = Callable[[str], Optional[Item]]


def item_tag_set(item: Item) -> set[str]:
    """Casefolded union of classification labels, primary label and manual tags."""
    tags = {c.label.casefold() for c in item.classifications if c.label}
    if item.primary_classification_label:
        tags.add(item.primary_classification_label.casefold())
    tags.update(t.casefold() for t in item.manual_tags if t)
    return tags


def pick_representative(label: str, items: Iterable[Item]) -> Optional[Item]:
    """
    The item carrying ``label`` with the largest tag set.

    Matching is case-insensitive. Ties go to the first item encountered.
    Returns None if no item carries the label.
    """
    wanted = label.casefold()
    best: Optional[Item] = None
    best_size = -1
    for item in items:
        tags = item_tag_set(item)
        if wanted in tags and len(tags) > best_size:
            best, best_size = item, len(tags)
    return best


def collection_strategy(items: Sequence[Item]) -> LookupStrategy:
    """Lookup strategy searching one collection."""
    return lambda label: pick_representative(label, items)


def first_hit(label: str, strategies: Iterable[LookupStrategy]) -> Optional[Item]:
    """Try each strategy in order; stop at the first that finds an item."""
    for strategy in strategies:
        item = strategy(label)
        if item is not None:
            return item
    return None


def find_representative(label: str, *collections: Sequence[Item]) -> Optional[Item]:
    """
    Search collections in order for a representative of ``label``.

    Pass the primary collection first and fallbacks (e.g. the pages
    currently on screen) after it, so a tag that only appears in earlier
    search results can still be browsed.
    """
    item = first_hit(label, (collection_strategy(c) for c in collections))
    if item is None:
        logger.debug("No representative for %r in %d collections", label, len(collections))
    return item
