"""
Shared pytest fixtures for saveit tests.

Builds small page collections in the backend's wire format and wires the
listing service to in-memory fakes, so no test touches the network.
"""

import asyncio
from typing import Any, Optional

import pytest

from saveit.api import SavedPages
from saveit.backend import LocalBackend
from saveit.cache import IdentityIsolatedCache
from saveit.identity import SessionIdentity
from saveit.kv_store import MemoryKeyValueStore
from saveit.types import Item


def page(
    id: str,
    general: Optional[str] = None,
    domain: Optional[str] = None,
    topic: Optional[str] = None,
    *,
    manual_tags: Optional[list[str]] = None,
    **fields: Any,
) -> dict:
    """Page record in wire format with up to one classification per level."""
    classifications = []
    for type, label in (("general", general), ("domain", domain), ("topic", topic)):
        if label:
            classifications.append({"type": type, "label": label, "confidence": 0.9})
    record = {
        "id": id,
        "title": fields.pop("title", f"Page {id}"),
        "url": fields.pop("url", f"https://example.com/{id}"),
        "classifications": classifications,
        "manual_tags": manual_tags or [],
    }
    record.update(fields)
    return record


def items(*records: dict) -> list[Item]:
    return [Item.from_dict(r) for r in records]


SAMPLE_PAGES = [
    page("p1", "Technology", "Machine Learning", "Neural Networks",
         manual_tags=["deep learning"], saved_at="2025-01-05T10:00:00Z"),
    page("p2", "Technology", "Machine Learning", "Transformers",
         saved_at="2025-01-04T10:00:00Z"),
    page("p3", "Technology", "Web Development", "React",
         saved_at="2025-01-03T10:00:00Z"),
    page("p4", "Science", "Physics", "Quantum Computing",
         saved_at="2025-01-02T10:00:00Z"),
    page("p5", "Science", "Biology", "Genetics",
         saved_at="2025-01-01T10:00:00Z"),
]


class FakeClock:
    """Settable epoch-millisecond clock."""

    def __init__(self, now_ms: int = 1_700_000_000_000):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class FailingStore(MemoryKeyValueStore):
    """Store whose operations raise on demand."""

    def __init__(self, fail_on: tuple[str, ...] = ("get", "set", "remove", "clear")):
        super().__init__()
        self.fail_on = set(fail_on)

    def _check(self, op: str) -> None:
        if op in self.fail_on:
            raise OSError(f"{op} failed")

    async def get(self, key):
        self._check("get")
        return await super().get(key)

    async def set(self, items):
        self._check("set")
        await super().set(items)

    async def remove(self, key):
        self._check("remove")
        await super().remove(key)

    async def clear(self):
        self._check("clear")
        await super().clear()


class BlockingStore(MemoryKeyValueStore):
    """Store whose next `get` waits until released, after block() is called."""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.released = asyncio.Event()
        self._armed = False

    def block(self) -> None:
        self._armed = True

    def release(self) -> None:
        self.released.set()

    async def get(self, key):
        if self._armed:
            self._armed = False
            self.entered.set()
            await self.released.wait()
        return await super().get(key)


@pytest.fixture
def sample_pages() -> list[dict]:
    return [dict(p) for p in SAMPLE_PAGES]


@pytest.fixture
def sample_items() -> list[Item]:
    return items(*SAMPLE_PAGES)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def cache(memory_store, clock) -> IdentityIsolatedCache:
    return IdentityIsolatedCache(memory_store, clock=clock)


@pytest.fixture
def identity() -> SessionIdentity:
    return SessionIdentity("user-a", "token-a")


@pytest.fixture
def local_backend(sample_pages) -> LocalBackend:
    return LocalBackend(sample_pages)


@pytest.fixture
def saved_pages(local_backend, cache, identity) -> SavedPages:
    """Listing service over the sample collection, signed in as user-a."""
    return SavedPages(local_backend, cache, identity)
