"""Tests for FactStore.

Tests cover:
1. Save and retrieve single fact
2. Refresh of existing facts preserves citation columns
3. URL index over source_url and file_url
4. Active/archived filtering
5. Per-URL verifications
6. Statistics
7. Persistence (save/load cycle)
"""

import json

import pytest

from civic_pipeline.data_management.fact_store import FactStore


def make_fact(fact_id: str, **overrides):
    fact = {
        "fact_id": fact_id,
        "content_hash": f"hash-{fact_id}",
        "data_type": "spending",
        "title": "Road resurfacing",
        "department": "Highways",
        "amount": 12500.0,
        "source_url": "https://www.example-council.gov.uk/spending",
    }
    fact.update(overrides)
    return fact


class TestFactStoreSaveAndRetrieve:
    """Tests for basic save and retrieve operations."""

    @pytest.fixture
    def store(self):
        return FactStore()

    @pytest.mark.asyncio
    async def test_save_single_fact(self, store):
        stats = await store.save_facts([make_fact("f-001")])

        assert stats == {"saved": 1, "updated": 0, "skipped": 0, "total": 1}

    @pytest.mark.asyncio
    async def test_new_fact_defaults(self, store):
        await store.save_facts([make_fact("f-001")])
        fact = await store.get_fact("f-001")

        assert fact["status"] == "active"
        assert fact["archived"] is False
        assert "stored_at" in fact and "updated_at" in fact

    @pytest.mark.asyncio
    async def test_fact_without_id_skipped(self, store):
        stats = await store.save_facts([{"title": "orphan"}])

        assert stats["skipped"] == 1
        assert stats["total"] == 0

    @pytest.mark.asyncio
    async def test_retrieve_nonexistent_fact(self, store):
        assert await store.get_fact("nonexistent") is None

    @pytest.mark.asyncio
    async def test_get_fact_returns_copy(self, store):
        await store.save_facts([make_fact("f-001")])
        fact = await store.get_fact("f-001")
        fact["title"] = "changed"

        assert (await store.get_fact("f-001"))["title"] == "Road resurfacing"


class TestFactStoreRefresh:
    """Tests for re-saving facts that already exist."""

    @pytest.fixture
    def store(self):
        return FactStore()

    @pytest.mark.asyncio
    async def test_resave_updates_in_place(self, store):
        await store.save_facts([make_fact("f-001")])
        stats = await store.save_facts([make_fact("f-001", title="Resurfacing (revised)")])

        assert stats["saved"] == 0
        assert stats["updated"] == 1
        assert stats["total"] == 1
        assert (await store.get_fact("f-001"))["title"] == "Resurfacing (revised)"

    @pytest.mark.asyncio
    async def test_resave_preserves_citation_columns(self, store):
        await store.save_facts([make_fact("f-001")])
        await store.update_fact("f-001", {
            "citation_metadata": {"source_url": "https://www.example-council.gov.uk/spending"},
            "extraction_confidence": 0.9,
        })

        await store.save_facts([make_fact("f-001", extraction_confidence=0.4, citation_metadata=None)])
        fact = await store.get_fact("f-001")

        assert fact["extraction_confidence"] == 0.9
        assert fact["citation_metadata"] is not None

    @pytest.mark.asyncio
    async def test_update_missing_fact_returns_none(self, store):
        assert await store.update_fact("missing", {"title": "x"}) is None


class TestFactStoreUrlIndex:
    """Tests for lookups by cited URL."""

    @pytest.fixture
    def store(self):
        return FactStore()

    @pytest.mark.asyncio
    async def test_lookup_by_source_and_file_url(self, store):
        await store.save_facts([
            make_fact("f-001", file_url="https://www.example-council.gov.uk/docs/spend.csv"),
            make_fact("f-002"),
        ])

        by_page = await store.get_facts_by_url("https://www.example-council.gov.uk/spending")
        by_file = await store.get_facts_by_url("https://www.example-council.gov.uk/docs/spend.csv")

        assert [f["fact_id"] for f in by_page] == ["f-001", "f-002"]
        assert [f["fact_id"] for f in by_file] == ["f-001"]

    @pytest.mark.asyncio
    async def test_update_reindexes(self, store):
        await store.save_facts([make_fact("f-001")])
        await store.update_fact("f-001", {"source_url": "https://www.example-council.gov.uk/new"})

        assert await store.get_facts_by_url("https://www.example-council.gov.uk/spending") == []
        assert await store.list_urls() == ["https://www.example-council.gov.uk/new"]


class TestFactStoreFiltering:
    """Tests for active and archived filtering."""

    @pytest.mark.asyncio
    async def test_list_facts_filters(self):
        store = FactStore()
        await store.save_facts([
            make_fact("active"),
            make_fact("review", status="review"),
            make_fact("archived", archived=True),
        ])

        assert {f["fact_id"] for f in await store.list_facts()} == {"active"}
        assert {f["fact_id"] for f in await store.list_facts(active_only=False)} == {"active", "review"}
        assert len(await store.list_facts(active_only=False, include_archived=True)) == 3


class TestFactStoreVerifications:
    """Tests for per-URL verification records."""

    @pytest.mark.asyncio
    async def test_save_and_get_verification(self):
        store = FactStore()
        url = "https://www.example-council.gov.uk/spending"
        await store.save_verification(url, {"accessible": True, "status": 200})

        assert await store.get_verification(url) == {"accessible": True, "status": 200}
        assert await store.get_verification("https://other") is None
        assert list(await store.get_all_verifications()) == [url]

    @pytest.mark.asyncio
    async def test_storage_stats(self):
        store = FactStore()
        await store.save_facts([make_fact("f-001"), make_fact("f-002", status="review")])
        await store.save_verification("https://www.example-council.gov.uk/spending", {"accessible": True})

        stats = await store.get_storage_stats()

        assert stats["total_facts"] == 2
        assert stats["active_facts"] == 1
        assert stats["verified_urls"] == 1
        assert stats["persistence_enabled"] is False


class TestFactStorePersistence:
    """Tests for JSON persistence."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, tmp_path):
        path = tmp_path / "facts.json"
        store = FactStore(persistence_path=str(path))
        await store.save_facts([make_fact("f-001")])
        await store.save_verification("https://www.example-council.gov.uk/spending", {"accessible": False})

        data = json.loads(path.read_text())
        assert "f-001" in data["facts"]

        reloaded = FactStore(persistence_path=str(path))
        assert (await reloaded.get_fact("f-001"))["title"] == "Road resurfacing"
        assert len(await reloaded.get_facts_by_url("https://www.example-council.gov.uk/spending")) == 1
        assert await reloaded.get_verification("https://www.example-council.gov.uk/spending") == {
            "accessible": False
        }

    @pytest.mark.asyncio
    async def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "facts.json"
        path.write_text("{not json")

        store = FactStore(persistence_path=str(path))

        assert await store.list_facts() == []
