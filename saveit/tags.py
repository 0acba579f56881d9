"""
Tag hierarchy over a collection of saved pages.

Three fixed levels: general (L1) → domain (L2) → topic (L3). The hierarchy
is not stored anywhere; it is derived on demand from the classifications
on each item. An item's parent at a level is its *first* classification of
that level.

Every function here is pure: it reads the items passed in and returns a
fresh, label-sorted, label-deduplicated list.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from .types import (
    DOMAIN,
    GENERAL,
    TOPIC,
    Breadcrumb,
    Item,
    SelectionState,
    TagRef,
    validate_tag_type,
)


def _collect(type: str, labels: Iterable[str]) -> list[TagRef]:
    """Deduplicate labels (case-sensitive) and sort them."""
    seen = {label for label in labels if label}
    return [TagRef(type, label) for label in sorted(seen)]


def _labels_under(
    child_type: str, parent_type: str, parent_label: str, items: Iterable[Item],
) -> list[TagRef]:
    """Child-level tags on items whose parent classification is ``parent_label``."""
    labels: list[str] = []
    for item in items:
        if item.first_label(parent_type) == parent_label:
            labels.extend(item.labels(child_type))
    return _collect(child_type, labels)


def _search_set(all_items: Sequence[Item], filtered_items: Optional[Sequence[Item]]) -> Sequence[Item]:
    """Prefer the complete collection; use the narrower one only when it's all we have."""
    if all_items or filtered_items is None:
        return all_items
    return filtered_items


def general_tags(items: Iterable[Item]) -> list[TagRef]:
    """All distinct general tags."""
    return _collect(GENERAL, (l for item in items for l in item.labels(GENERAL)))


def all_domain_tags(items: Iterable[Item]) -> list[TagRef]:
    """All distinct domain tags, regardless of parent."""
    return _collect(DOMAIN, (l for item in items for l in item.labels(DOMAIN)))


def all_topic_tags(items: Iterable[Item]) -> list[TagRef]:
    """All distinct topic tags, regardless of parent."""
    return _collect(TOPIC, (l for item in items for l in item.labels(TOPIC)))


def domain_tags_under(general_label: str, items: Iterable[Item]) -> list[TagRef]:
    """Domain tags on items whose general classification is ``general_label``."""
    return _labels_under(DOMAIN, GENERAL, general_label, items)


def topic_tags_under(domain_label: str, items: Iterable[Item]) -> list[TagRef]:
    """Topic tags on items whose domain classification is ``domain_label``."""
    return _labels_under(TOPIC, DOMAIN, domain_label, items)


def topic_tags_under_general(general_label: str, items: Iterable[Item]) -> list[TagRef]:
    """Topic tags reachable from ``general_label`` through any domain."""
    return _labels_under(TOPIC, GENERAL, general_label, items)


def _parent_of(type: str, label: str, parent_type: str, items: Sequence[Item]) -> Optional[str]:
    """Parent label read off the first item carrying (type, label)."""
    for item in items:
        if item.has_classification(type, label):
            return item.first_label(parent_type)
    return None


def siblings_of(
    type: str,
    label: str,
    all_items: Sequence[Item],
    filtered_items: Optional[Sequence[Item]] = None,
) -> list[TagRef]:
    """
    Tags sharing a parent with (type, label), excluding the tag itself.

    General tags have no parent level, so for ``type="general"`` this
    returns the tag's domain children instead.

    Searches ``all_items`` whenever it is non-empty, so tags missing from
    the currently filtered view are still found.
    """
    validate_tag_type(type)
    items = _search_set(all_items, filtered_items)

    if type == GENERAL:
        return domain_tags_under(label, items)

    parent_type = GENERAL if type == DOMAIN else DOMAIN
    parent = _parent_of(type, label, parent_type, items)
    if parent is None:
        return []
    return [t for t in _labels_under(type, parent_type, parent, items) if t.label != label]


def breadcrumb(
    type: str,
    label: str,
    all_items: Sequence[Item],
    filtered_items: Optional[Sequence[Item]] = None,
) -> Optional[Breadcrumb]:
    """
    Ancestry of (type, label), or None if no item carries it.

    Reads the ancestors off the first item with that classification. When
    the same label sits under different parents on different items, the
    first item in collection order wins.
    """
    validate_tag_type(type)
    for item in _search_set(all_items, filtered_items):
        if not item.has_classification(type, label):
            continue
        if type == GENERAL:
            return Breadcrumb(GENERAL, label)
        if type == DOMAIN:
            return Breadcrumb(DOMAIN, label, parent_label=item.first_label(GENERAL))
        return Breadcrumb(
            TOPIC, label,
            parent_label=item.first_label(DOMAIN),
            grandparent_label=item.first_label(GENERAL),
        )
    return None


# ---------------------------------------------------------------------------
# Tag bar: the three rows shown above the page list
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TagChip:
    """One tag in the tag bar."""
    type: str
    label: str
    active: bool = False


@dataclass
class TagBar:
    """Rows of the tag bar. Lower rows are empty until their parent is chosen."""
    general: list[TagChip] = field(default_factory=list)
    domain: list[TagChip] = field(default_factory=list)
    topic: list[TagChip] = field(default_factory=list)

    def rows(self) -> list[list[TagChip]]:
        return [row for row in (self.general, self.domain, self.topic) if row]


def build_tag_bar(
    selection: SelectionState,
    all_items: Sequence[Item],
    filtered_items: Sequence[Item],
) -> TagBar:
    """
    Build the tag bar for the current selection.

    The general row always comes from all items. The domain row appears
    once a general tag is selected and the topic row once a domain tag is;
    both are drawn from the filtered items.
    """
    def chips(tags: list[TagRef], selected: Optional[str]) -> list[TagChip]:
        return [TagChip(t.type, t.label, active=t.label == selected) for t in tags]

    bar = TagBar(general=chips(general_tags(all_items), selection.l1))
    if selection.l1:
        bar.domain = chips(domain_tags_under(selection.l1, filtered_items), selection.l2)
    if selection.l2:
        bar.topic = chips(topic_tags_under(selection.l2, filtered_items), selection.l3)
    return bar
