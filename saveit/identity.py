"""
Signed-in identity for the current session.

The real authentication provider lives outside this package; SessionIdentity
is the in-process stand-in it reports into. Listeners are awaited in
subscription order on every change, so cache invalidation has finished
before anything else reacts to the new identity.
"""

import logging
import os
from typing import Optional

from .protocol import IdentityListener

logger = logging.getLogger(__name__)


class SessionIdentity:
    """The current identity id and bearer token, with change notifications."""

    def __init__(self, identity_id: Optional[str] = None, token: Optional[str] = None):
        self._identity_id = identity_id or None
        self._token = token or None
        self._listeners: list[IdentityListener] = []

    @classmethod
    def from_env(cls) -> "SessionIdentity":
        """Identity from SAVEIT_IDENTITY / SAVEIT_TOKEN."""
        return cls(os.environ.get("SAVEIT_IDENTITY"), os.environ.get("SAVEIT_TOKEN"))

    def current_identity_id(self) -> Optional[str]:
        return self._identity_id

    async def get_token(self) -> Optional[str]:
        return self._token

    def subscribe(self, listener: IdentityListener) -> None:
        self._listeners.append(listener)

    async def sign_in(self, identity_id: str, token: str) -> None:
        """Switch to ``identity_id``. Listeners run even if the id is unchanged."""
        if not identity_id:
            raise ValueError("identity_id is required")
        self._identity_id = identity_id
        self._token = token
        await self._notify()

    async def sign_out(self) -> None:
        if self._identity_id is None:
            return
        self._identity_id = None
        self._token = None
        await self._notify()

    async def _notify(self) -> None:
        logger.info("Identity changed to %s", self._identity_id or "(signed out)")
        for listener in self._listeners:
            await listener(self._identity_id)
