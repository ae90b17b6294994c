"""Tests for the document store backends."""
from __future__ import annotations

import sqlite3
from datetime import datetime

import pytest

from family_graph.store import (
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    BatchTooLarge,
    DeleteWrite,
    DocumentMissing,
    FieldFilter,
    Increment,
    InMemoryDocumentStore,
    OrderBy,
    PreconditionFailed,
    SetWrite,
    SQLiteDocumentStore,
    StoreError,
    UpdateWrite,
)

from conftest import FailingMemoryStore


class TestDocumentCrud:
    """CRUD behaviour shared by every backend."""

    def test_create_and_get(self, any_store):
        """Test a created document reads back with its id."""
        doc_id = any_store.create("people", {"name": "Venkat", "tags": ["a"]})

        doc = any_store.get("people", doc_id)
        assert doc == {"id": doc_id, "name": "Venkat", "tags": ["a"]}

    def test_create_with_explicit_id(self, any_store):
        """Test caller-chosen ids."""
        assert any_store.create("people", {"name": "Venkat"}, doc_id="p1") == "p1"
        assert any_store.get("people", "p1")["name"] == "Venkat"

    def test_get_missing_returns_none(self, any_store):
        """Test missing documents."""
        assert any_store.get("people", "nope") is None

    def test_update_merges_fields(self, any_store):
        """Test partial updates keep untouched fields."""
        any_store.create("people", {"name": "Venkat", "city": "Pune"}, doc_id="p1")
        any_store.update("people", "p1", {"city": "Mysore"})

        assert any_store.get("people", "p1") == {"id": "p1", "name": "Venkat", "city": "Mysore"}

    def test_update_missing_raises(self, any_store):
        """Test that updating a missing document fails."""
        with pytest.raises(DocumentMissing):
            any_store.update("people", "nope", {"name": "x"})

    def test_delete(self, any_store):
        """Test deletion."""
        any_store.create("people", {"name": "Venkat"}, doc_id="p1")
        any_store.delete("people", "p1")
        assert any_store.get("people", "p1") is None

    def test_new_ids_are_unique(self, any_store):
        """Test id allocation."""
        ids = {any_store.new_id("people") for _ in range(50)}
        assert len(ids) == 50


class TestFieldTransforms:
    """Tests for Increment, ArrayUnion, ArrayRemove and SERVER_TIMESTAMP."""

    def test_increment(self, any_store):
        """Test numeric increments, including from a missing field."""
        any_store.create("trees", {"member_count": 1}, doc_id="t1")
        any_store.update("trees", "t1", {"member_count": Increment(2), "version": Increment(1)})
        any_store.update("trees", "t1", {"member_count": Increment(-1)})

        doc = any_store.get("trees", "t1")
        assert doc["member_count"] == 2
        assert doc["version"] == 1

    def test_array_union_skips_duplicates(self, any_store):
        """Test union keeps order and uniqueness."""
        any_store.create("trees", {"viewers": ["u1"]}, doc_id="t1")
        any_store.update("trees", "t1", {"viewers": ArrayUnion(["u1", "u2"])})

        assert any_store.get("trees", "t1")["viewers"] == ["u1", "u2"]

    def test_array_remove(self, any_store):
        """Test removal of every matching element."""
        any_store.create("trees", {"viewers": ["u1", "u2", "u1"]}, doc_id="t1")
        any_store.update("trees", "t1", {"viewers": ArrayRemove(["u1", "u9"])})

        assert any_store.get("trees", "t1")["viewers"] == ["u2"]

    def test_server_timestamp(self, any_store):
        """Test timestamps are stored as ISO strings."""
        doc_id = any_store.create("trees", {"created_at": SERVER_TIMESTAMP})

        stamp = any_store.get("trees", doc_id)["created_at"]
        assert isinstance(stamp, str)
        assert datetime.fromisoformat(stamp).tzinfo is not None


class TestVersionPreconditions:
    """Tests for compare-and-swap updates."""

    def test_matching_version_applies(self, any_store):
        """Test an update at the expected version."""
        any_store.create("members", {"name": "a", "version": 1}, doc_id="m1")
        any_store.update("members", "m1", {"name": "b", "version": Increment(1)}, expected_version=1)

        doc = any_store.get("members", "m1")
        assert doc["name"] == "b"
        assert doc["version"] == 2

    def test_stale_version_rejected(self, any_store):
        """Test a stale update leaves the document untouched."""
        any_store.create("members", {"name": "a", "version": 2}, doc_id="m1")

        with pytest.raises(PreconditionFailed) as exc_info:
            any_store.update("members", "m1", {"name": "b"}, expected_version=1)

        assert exc_info.value.expected == 1
        assert exc_info.value.actual == 2
        assert any_store.get("members", "m1")["name"] == "a"


class TestBatchCommit:
    """Tests for all-or-nothing batches."""

    def test_batch_applies_all(self, any_store):
        """Test a mixed batch."""
        any_store.create("people", {"name": "old"}, doc_id="p0")
        any_store.commit([
            SetWrite("people", "p1", {"name": "Venkat"}),
            UpdateWrite("people", "p1", {"city": "Pune"}),
            DeleteWrite("people", "p0"),
        ])

        assert any_store.get("people", "p1") == {"id": "p1", "name": "Venkat", "city": "Pune"}
        assert any_store.get("people", "p0") is None

    def test_failed_precondition_discards_whole_batch(self, any_store):
        """Test that nothing from a rejected batch is visible."""
        with pytest.raises(DocumentMissing):
            any_store.commit([
                SetWrite("people", "p1", {"name": "Venkat"}),
                UpdateWrite("people", "missing", {"name": "x"}),
            ])

        assert any_store.get("people", "p1") is None

    def test_batch_size_limit(self, any_store):
        """Test batches above the store limit are refused."""
        writes = [SetWrite("people", f"p{i}", {"n": i}) for i in range(any_store.max_batch_size + 1)]

        with pytest.raises(BatchTooLarge):
            any_store.commit(writes)
        assert any_store.query("people") == []

    def test_empty_batch_is_noop(self, any_store):
        """Test committing nothing."""
        any_store.commit([])
        assert any_store.query("people") == []


class TestQuery:
    """Tests for filtered, ordered queries."""

    @pytest.fixture
    def people(self, any_store):
        rows = [
            ("p1", {"name": "Venkat", "generation": 0, "tree": "t1", "tags": ["root"]}),
            ("p2", {"name": "Arjun", "generation": 1, "tree": "t1", "tags": []}),
            ("p3", {"name": "Lakshmi", "generation": 0, "tree": "t1", "tags": ["spouse"]}),
            ("p4", {"name": "Ravi", "generation": -1, "tree": "t2", "tags": []}),
        ]
        for doc_id, fields in rows:
            any_store.create("people", fields, doc_id=doc_id)
        return any_store

    def test_equality_filter(self, people):
        """Test == filter keeps insertion order."""
        docs = people.query("people", [FieldFilter("tree", "==", "t1")])
        assert [d["id"] for d in docs] == ["p1", "p2", "p3"]

    def test_stable_ordering(self, people):
        """Test ties keep insertion order."""
        docs = people.query("people", order_by=[OrderBy("generation")])
        assert [d["id"] for d in docs] == ["p4", "p1", "p3", "p2"]

    def test_descending_with_limit(self, people):
        """Test descending order and limit."""
        docs = people.query("people", order_by=[OrderBy("generation", descending=True)], limit=2)
        assert [d["id"] for d in docs][0] == "p2"
        assert len(docs) == 2

    def test_in_and_array_contains(self, people):
        """Test membership operators."""
        assert [d["id"] for d in people.query("people", [FieldFilter("name", "in", ["Ravi", "Arjun"])])] == ["p2", "p4"]
        assert [d["id"] for d in people.query("people", [FieldFilter("tags", "array_contains", "spouse")])] == ["p3"]

    def test_range_filter_skips_missing_fields(self, people):
        """Test comparisons ignore documents without the field."""
        people.create("people", {"name": "NoGen"}, doc_id="p5")
        docs = people.query("people", [FieldFilter("generation", ">=", 0)])
        assert [d["id"] for d in docs] == ["p1", "p2", "p3"]

    def test_unknown_operator(self):
        """Test unsupported operators are rejected up front."""
        with pytest.raises(ValueError):
            FieldFilter("name", "like", "V%")


class TestInMemoryDocumentStore:
    """Backend-specific behaviour of the in-memory store."""

    def test_fault_mid_batch_leaves_nothing(self):
        """Test a write fault after the first document is applied."""
        store = FailingMemoryStore(fail_on=2)

        with pytest.raises(StoreError):
            store.commit([
                SetWrite("trees", "t1", {"name": "Rao Family"}),
                SetWrite("members", "m1", {"name": "Venkat"}),
            ])

        assert store.get("trees", "t1") is None
        assert store.count("members") == 0

    def test_returned_documents_are_copies(self):
        """Test callers cannot mutate stored state."""
        store = InMemoryDocumentStore()
        store.create("trees", {"viewers": ["u1"]}, doc_id="t1")

        store.get("trees", "t1")["viewers"].append("u2")
        assert store.get("trees", "t1")["viewers"] == ["u1"]

    def test_closed_store_refuses_access(self):
        """Test operations after close."""
        store = InMemoryDocumentStore()
        store.close()
        with pytest.raises(StoreError):
            store.get("trees", "t1")


class TestSQLiteDocumentStore:
    """Backend-specific behaviour of the SQLite store."""

    def test_persists_across_instances(self, tmp_path):
        """Test durability."""
        db = tmp_path / "nested" / "docs.db"
        SQLiteDocumentStore(db).create("trees", {"name": "Rao Family"}, doc_id="t1")

        assert SQLiteDocumentStore(db).get("trees", "t1")["name"] == "Rao Family"

    def test_update_keeps_insertion_position(self, tmp_path):
        """Test that rewriting a document does not move it in query order."""
        store = SQLiteDocumentStore(tmp_path / "docs.db")
        store.create("people", {"n": 1}, doc_id="a")
        store.create("people", {"n": 2}, doc_id="b")
        store.update("people", "a", {"n": 3})

        assert [d["id"] for d in store.query("people")] == ["a", "b"]

    def test_fault_mid_batch_rolls_back(self, tmp_path):
        """Test a database error during a batch rolls the transaction back."""

        class FlakySQLiteStore(SQLiteDocumentStore):
            calls = 0

            def _write_document(self, conn, collection, doc_id, doc):
                FlakySQLiteStore.calls += 1
                if FlakySQLiteStore.calls == 2:
                    raise sqlite3.OperationalError("disk I/O error")
                super()._write_document(conn, collection, doc_id, doc)

        store = FlakySQLiteStore(tmp_path / "docs.db")
        with pytest.raises(StoreError):
            store.commit([
                SetWrite("trees", "t1", {"name": "Rao Family"}),
                SetWrite("members", "m1", {"name": "Venkat"}),
            ])

        assert store.get("trees", "t1") is None
        assert store.get("members", "m1") is None
