"""
Tests for the SQLite blob store and the typed solution/article collections.
"""
import json
import sqlite3

import pytest

from src.knowledge.models import Article, Solution
from src.shared.errors import NotFoundError
from src.storage.blob_store import BlobStore
from src.storage.collections import SOLUTIONS_BLOB, ArticleStore, SolutionStore


@pytest.fixture()
def blobs(tmp_path):
    store = BlobStore(tmp_path / "hub" / "knowledge_hub.sqlite")
    store.initialize()
    return store


# ───────── BlobStore ─────────


def test_initialize_creates_schema(tmp_path):
    db_path = tmp_path / "nested" / "knowledge_hub.sqlite"
    BlobStore(db_path).initialize()

    assert db_path.exists()
    with sqlite3.connect(db_path) as conn:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='blobs'"
        ).fetchone()
    assert row is not None


def test_blob_roundtrip_and_overwrite(blobs):
    assert not blobs.exists("a")
    assert blobs.load_blob("a") is None

    blobs.save_blob("a", "one")
    blobs.save_blob("a", "two")
    assert blobs.exists("a")
    assert blobs.load_blob("a") == "two"
    assert blobs.blob_size("a") == 3


def test_delete_blob(blobs):
    blobs.save_blob("a", "x")
    assert blobs.delete_blob("a") is True
    assert blobs.delete_blob("a") is False
    assert blobs.blob_size("a") == 0


def test_missing_collection_is_empty(blobs):
    assert blobs.load_collection("nothing") == []


def test_malformed_collection_loads_empty(blobs):
    blobs.save_blob("broken", "{not json")
    assert blobs.load_collection("broken") == []

    blobs.save_blob("object", json.dumps({"a": 1}))
    assert blobs.load_collection("object") == []


def test_collection_skips_non_record_entries(blobs):
    blobs.save_blob("mixed", json.dumps([{"a": 1}, 3, "x", {"b": 2}]))
    assert blobs.load_collection("mixed") == [{"a": 1}, {"b": 2}]


# ───────── SolutionStore ─────────


class TestSolutionStore:
    def test_mistyped_fields_fall_back_to_defaults(self, blobs):
        blobs.save_blob(SOLUTIONS_BLOB, json.dumps([
            {"ticket_id": "INC-1", "validation_count": "oops", "steps": ["a", 2, "b"], "embedding": "bad"},
        ]))
        [s] = SolutionStore(blobs).load_solutions()
        assert s.ticket_id == "INC-1"
        assert s.validation_count == 0
        assert s.steps == ["a", "b"]
        assert s.embedding == []

    def test_upsert_keeps_counters_monotonic(self, blobs):
        store = SolutionStore(blobs)
        store.upsert(Solution(ticket_id="INC-1", solution="old", validation_count=4, is_promoted=True))
        store.upsert(Solution(ticket_id="INC-1", solution="new", validation_count=1, is_promoted=False))

        [s] = store.load_solutions()
        assert s.solution == "new"
        assert s.validation_count == 4
        assert s.is_promoted is True

    def test_upsert_matches_ticket_id_case_insensitively(self, blobs):
        store = SolutionStore(blobs)
        store.upsert(Solution(ticket_id="INC-1", solution="old", validation_count=2))
        stored = store.upsert(Solution(ticket_id="inc-1", solution="new"))

        [s] = store.load_solutions()
        assert s.ticket_id == "INC-1"
        assert s.solution == "new"
        assert s.validation_count == 2
        assert stored.ticket_id == "INC-1"

    def test_merge_skips_existing_keys_in_other_case(self, blobs):
        store = SolutionStore(blobs)
        store.upsert(Solution(ticket_id="INC-1"))
        assert store.merge([Solution(ticket_id="inc-1")]) == 0
        assert len(store.load_solutions()) == 1

    def test_merge_skips_existing_keys(self, blobs):
        store = SolutionStore(blobs)
        store.upsert(Solution(ticket_id="INC-1", solution="original"))

        added = store.merge([
            Solution(ticket_id="INC-1", solution="duplicate"),
            Solution(ticket_id="INC-2"),
            Solution(ticket_id="INC-2"),
        ])

        assert added == 1
        solutions = {s.ticket_id: s for s in store.load_solutions()}
        assert set(solutions) == {"INC-1", "INC-2"}
        assert solutions["INC-1"].solution == "original"

    def test_update_unknown_raises(self, blobs):
        with pytest.raises(NotFoundError):
            SolutionStore(blobs).update("INC-404", lambda s: None)

    def test_update_case_insensitive(self, blobs):
        store = SolutionStore(blobs)
        store.upsert(Solution(ticket_id="INC-1"))
        updated = store.update("inc-1", lambda s: setattr(s, "validation_count", 2))
        assert updated.validation_count == 2
        assert store.load_solutions()[0].validation_count == 2

    def test_delete(self, blobs):
        store = SolutionStore(blobs)
        store.upsert(Solution(ticket_id="INC-1"))
        assert store.delete("INC-1") is True
        assert store.delete("INC-1") is False
        assert store.load_solutions() == []

    def test_processed_ids_roundtrip(self, blobs):
        store = SolutionStore(blobs)
        assert store.load_processed_ids() == set()
        store.save_processed_ids({"B-1", "A-1"})
        assert store.load_processed_ids() == {"A-1", "B-1"}


# ───────── ArticleStore ─────────


class TestArticleStore:
    def test_insert_new_sees_all_articles(self, blobs):
        store = ArticleStore(blobs)
        store.upsert(Article(id=3, kb_number="KB0000003", is_active=False))

        seen = []

        def build(existing):
            seen.extend(a.id for a in existing)
            return Article(id=4, kb_number="KB0000004")

        store.insert_new(build)
        assert seen == [3]
        assert [a.id for a in store.load()] == [3, 4]

    def test_delete_by_kb_number(self, blobs):
        store = ArticleStore(blobs)
        store.upsert(Article(id=1, kb_number="KB0000001"))
        removed = store.delete("kb0000001")
        assert removed.id == 1
        assert store.delete("KB0000001") is None
        assert store.load() == []

    def test_update_unknown_raises(self, blobs):
        with pytest.raises(NotFoundError):
            ArticleStore(blobs).update(42, lambda a: None)
