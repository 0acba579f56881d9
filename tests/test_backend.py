"""Tests for saveit.backend: standalone backend and backend factory."""

import json

import pytest

from saveit.backend import LocalBackend, create_backend
from saveit.client import BackendClient, BackendError
from saveit.config import SaveitConfig
from saveit.identity import SessionIdentity

from conftest import page


class TestListPages:
    @pytest.mark.asyncio
    async def test_newest_first_with_pagination(self, local_backend):
        data = await local_backend.list_pages(limit=2)
        assert [p["id"] for p in data["pages"]] == ["p1", "p2"]
        assert data["pagination"] == {"total": 5, "hasNextPage": True, "nextCursor": None}

    @pytest.mark.asyncio
    async def test_oldest_and_offset(self, local_backend):
        data = await local_backend.list_pages(sort="oldest", limit=2, offset=4)
        assert [p["id"] for p in data["pages"]] == ["p1"]
        assert data["pagination"]["hasNextPage"] is False

    @pytest.mark.asyncio
    async def test_search_matches_manual_tags(self, local_backend):
        data = await local_backend.list_pages(search="DEEP")
        assert [p["id"] for p in data["pages"]] == ["p1"]

    @pytest.mark.asyncio
    async def test_responses_are_copies(self, local_backend):
        data = await local_backend.list_pages()
        data["pages"][0]["title"] = "changed"
        again = await local_backend.list_pages()
        assert again["pages"][0]["title"] == "Page p1"


class TestDiscoveryQueries:
    @pytest.mark.asyncio
    async def test_search_by_tag_tiers(self, local_backend):
        data = await local_backend.search_by_tag("Machine Learning")
        assert {e["thing_id"] for e in data["exact_matches"]} == {"p1", "p2"}
        assert all(e["similarity"] == 1.0 for e in data["exact_matches"])

    @pytest.mark.asyncio
    async def test_search_by_tag_substring_is_similar(self, local_backend):
        data = await local_backend.search_by_tag("Quantum")
        assert [e["thing_id"] for e in data["similar_matches"]] == ["p4"]
        assert data["similar_matches"][0]["similarity"] == 0.85
        assert data["exact_matches"] == []

    @pytest.mark.asyncio
    async def test_similar_to_ranks_by_overlap(self, local_backend):
        data = await local_backend.similar_to("p1", classification_label="Machine Learning")
        ids = [r["thing_id"] for r in data["results"]]
        assert ids[0] == "p2"
        assert "p1" not in ids
        assert "p4" not in ids
        assert data["source"]["label"] == "Machine Learning"

    @pytest.mark.asyncio
    async def test_similar_to_unknown_source(self, local_backend):
        data = await local_backend.similar_to("nope")
        assert data["results"] == []

    @pytest.mark.asyncio
    async def test_search_content_threshold(self):
        backend = LocalBackend([
            page("a", title="Rust ownership", ai_summary_brief="rust borrow checker"),
            page("b", title="Cooking", description="rust on pans"),
        ])
        data = await backend.search_content("rust", threshold=0.5)
        assert [r["thing_id"] for r in data["results"]] == ["a"]
        assert data["results"][0]["similarity"] == pytest.approx(0.7)


class TestMutations:
    @pytest.mark.asyncio
    async def test_delete(self, local_backend):
        await local_backend.delete_page("p1")
        data = await local_backend.list_pages()
        assert "p1" not in [p["id"] for p in data["pages"]]

    @pytest.mark.asyncio
    async def test_update_and_pin(self, local_backend):
        updated = await local_backend.update_page("p2", {"notes": "read later"})
        assert updated["notes"] == "read later"
        await local_backend.pin_page("p2", True)
        data = await local_backend.list_pages()
        p2 = next(p for p in data["pages"] if p["id"] == "p2")
        assert p2["pinned"] is True

    @pytest.mark.asyncio
    async def test_missing_page(self, local_backend):
        with pytest.raises(BackendError) as exc_info:
            await local_backend.update_page("nope", {})
        assert exc_info.value.status_code == 404
        with pytest.raises(BackendError):
            await local_backend.pin_page("nope", True)


class TestFactory:
    def test_local_file(self, tmp_path, sample_pages):
        path = tmp_path / "pages.json"
        path.write_text(json.dumps({"pages": sample_pages}))
        backend = create_backend(SaveitConfig(path=tmp_path), SessionIdentity(), local_path=path)
        assert isinstance(backend, LocalBackend)

    def test_local_file_bare_list(self, tmp_path, sample_pages):
        path = tmp_path / "pages.json"
        path.write_text(json.dumps(sample_pages))
        assert len(LocalBackend.from_file(path)._pages) == 5

    def test_remote(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SAVEIT_API_URL", raising=False)
        config = SaveitConfig(path=tmp_path, url="https://api.example.com")
        backend = create_backend(config, SessionIdentity())
        assert isinstance(backend, BackendClient)
        assert backend.api_url == "https://api.example.com"
