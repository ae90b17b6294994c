"""Shared fixtures for family graph tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from family_graph.models import FamilyMember, FamilyRelation, RelationType
from family_graph.repository import FamilyRepository
from family_graph.store import InMemoryDocumentStore, SQLiteDocumentStore, StoreError


class FailingMemoryStore(InMemoryDocumentStore):
    """In-memory store whose Nth document write fails.

    Writes are counted across commits, so ``fail_on`` can target a write in
    any later batch.
    """

    def __init__(self, fail_on: int | None = None, max_batch_size: int = 500) -> None:
        super().__init__(max_batch_size=max_batch_size)
        self.fail_on = fail_on
        self.writes_seen = 0

    def _write_document(self, table, doc_id, doc):
        self.writes_seen += 1
        if self.fail_on is not None and self.writes_seen == self.fail_on:
            raise StoreError("simulated write fault")
        super()._write_document(table, doc_id, doc)


def make_member(first: str, last: str = "Rao", member_id: str | None = None, **kwargs) -> FamilyMember:
    kwargs.setdefault("created_by", "user-1")
    kwargs.setdefault("last_name", last)
    return FamilyMember(id=member_id, first_name=first, **kwargs)


def make_relation(
    from_id: str,
    to_id: str,
    relation_type: RelationType,
    relation_id: str | None = None,
    tree_id: str = "tree-1",
) -> FamilyRelation:
    return FamilyRelation(
        id=relation_id or f"{from_id}-{relation_type.value}-{to_id}",
        family_tree_id=tree_id,
        from_member_id=from_id,
        to_member_id=to_id,
        relation_type=relation_type,
        created_by="user-1",
    )


@pytest.fixture
def memory_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def repository(memory_store: InMemoryDocumentStore) -> FamilyRepository:
    return FamilyRepository(memory_store)


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path: Path):
    """Each document store backend in turn."""
    if request.param == "memory":
        store = InMemoryDocumentStore(max_batch_size=10)
    else:
        store = SQLiteDocumentStore(tmp_path / "docs.db", max_batch_size=10)
    yield store
    store.close()
