"""
Three-level tag selection state.

Clicking a tag at any level selects it together with its resolved
ancestors, so the state always describes a valid path through the
hierarchy even when the user jumps straight to a topic. Clicking the
deepest selected tag again clears everything.
"""

import enum
import logging
from typing import Optional, Sequence

from .tags import breadcrumb
from .types import DOMAIN, GENERAL, Item, SelectionState, validate_tag_type

logger = logging.getLogger(__name__)


class Transition(enum.Enum):
    """What the caller should do after a select()."""
    SHOW_ALL = "show_all"   # selection toggled off: show every page
    SELECTED = "selected"   # selection changed: run discovery for active_label()
    NOOP = "noop"           # tag not found in the collection: nothing changed


class SelectionStateMachine:
    """Holds the selected general/domain/topic labels."""

    def __init__(self):
        self._state = SelectionState()

    @property
    def state(self) -> SelectionState:
        return self._state

    def _is_toggle_off(self, type: str, label: str) -> bool:
        s = self._state
        if type == GENERAL:
            return s.l1 == label and s.l2 is None and s.l3 is None
        if type == DOMAIN:
            return s.l2 == label and s.l3 is None
        return s.l3 == label

    def select(
        self,
        type: str,
        label: str,
        items: Sequence[Item],
        fallback_items: Optional[Sequence[Item]] = None,
    ) -> Transition:
        """
        Apply a tag click.

        Args:
            type: Level of the clicked tag (general, domain, topic)
            label: Label of the clicked tag
            items: The complete item collection, used to resolve ancestry
            fallback_items: Narrower collection searched only if ``items`` is empty

        Returns:
            The Transition taken
        """
        validate_tag_type(type)

        if self._is_toggle_off(type, label):
            self.clear()
            return Transition.SHOW_ALL

        crumb = breadcrumb(type, label, items, fallback_items)
        if crumb is None:
            logger.warning("No ancestry found for %s tag %r; selection unchanged", type, label)
            return Transition.NOOP

        if type == GENERAL:
            new_state = SelectionState(l1=label)
        elif type == DOMAIN:
            if not crumb.parent_label:
                logger.warning("Domain tag %r has no general parent; selection unchanged", label)
                return Transition.NOOP
            new_state = SelectionState(l1=crumb.parent_label, l2=label)
        else:
            if not (crumb.parent_label and crumb.grandparent_label):
                logger.warning("Topic tag %r has incomplete ancestry; selection unchanged", label)
                return Transition.NOOP
            new_state = SelectionState(
                l1=crumb.grandparent_label, l2=crumb.parent_label, l3=label,
            )

        logger.debug("Selection %s -> %s", self._state, new_state)
        self._state = new_state
        return Transition.SELECTED

    def active_label(self) -> Optional[str]:
        """Deepest selected label; drives the discovery query."""
        return self._state.active_label

    def active_type(self) -> Optional[str]:
        return self._state.active_type

    def clear(self) -> None:
        self._state = SelectionState()
