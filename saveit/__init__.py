"""
Saveit discovery

Browse a collection of saved web pages through a three-level tag
hierarchy (general > domain > topic) and similarity search.

Quick Start:
    from saveit import DiscoveryController, SavedPages, SessionIdentity

    identity = SessionIdentity("user-1", token)
    pages = SavedPages(backend, IdentityIsolatedCache(store), identity)
    controller = DiscoveryController(pages, on_render=show)
    await controller.load()
    await controller.on_tag_click("domain", "Machine Learning")

CLI Usage:
    saveit list
    saveit tags --general Technology
    saveit discover domain "Machine Learning"

Environment Variables:
    SAVEIT_CONFIG_DIR  - Override the config directory (default ~/.saveit)
    SAVEIT_API_URL     - Override the backend URL
    SAVEIT_ENV         - Backend environment (development, staging, production)
    SAVEIT_IDENTITY    - Signed-in identity id for the CLI
    SAVEIT_TOKEN       - Bearer token for the CLI
    SAVEIT_VERBOSE     - Set to 1 for debug logging
"""

from .api import SavedPages
from .backend import LocalBackend, create_backend
from .cache import CacheError, CacheResult, IdentityIsolatedCache
from .client import BackendClient, BackendError, NotSignedInError
from .discovery import DiscoveryController, DiscoveryResult, DiscoveryState
from .identity import SessionIdentity
from .kv_store import MemoryKeyValueStore, SqliteKeyValueStore
from .reconcile import ResponseShapeError, reconcile
from .selection import SelectionStateMachine, Transition
from .types import (
    DOMAIN, GENERAL, TOPIC, Breadcrumb, Classification, Item, PageListing,
    SelectionState, SimilarityMatch, TagRef,
)

__version__ = "0.1.0"
__all__ = [
    "SavedPages",
    "LocalBackend",
    "create_backend",
    "CacheError",
    "CacheResult",
    "IdentityIsolatedCache",
    "BackendClient",
    "BackendError",
    "NotSignedInError",
    "DiscoveryController",
    "DiscoveryResult",
    "DiscoveryState",
    "SessionIdentity",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "ResponseShapeError",
    "reconcile",
    "SelectionStateMachine",
    "Transition",
    "GENERAL",
    "DOMAIN",
    "TOPIC",
    "Breadcrumb",
    "Classification",
    "Item",
    "PageListing",
    "SelectionState",
    "SimilarityMatch",
    "TagRef",
]
