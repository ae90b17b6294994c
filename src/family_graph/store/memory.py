"""In-memory document store for tests, demos and embedding."""
from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Sequence
from typing import Any

from .base import DocumentStore, StoreError, Write

logger = logging.getLogger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store.

    Layout: ``collection -> doc_id -> document`` with insertion order kept.
    A commit stages every write first, applies the results to copies of the
    touched collections and swaps them in only when all writes succeeded, so
    readers never observe half a batch.
    """

    def __init__(self, max_batch_size: int = 500) -> None:
        self.max_batch_size = max_batch_size
        self._data: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._closed = False

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._lock:
            self._check_open()
            doc = self._data.get(collection, {}).get(doc_id)
            if doc is None:
                return None
            return {"id": doc_id, **copy.deepcopy(doc)}

    def commit(self, writes: Sequence[Write]) -> None:
        if not writes:
            return
        with self._lock:
            self._check_open()
            staged = self._stage(writes, self._load)

            touched = {collection for collection, _, _ in staged}
            working = {name: dict(self._data.get(name, {})) for name in touched}
            for collection, doc_id, doc in staged:
                self._write_document(working[collection], doc_id, doc)

            self._data.update(working)
            logger.debug("Committed %d writes across %s", len(writes), sorted(touched))

    def _load(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        doc = self._data.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def _load_collection(self, collection: str) -> list[dict[str, Any]]:
        with self._lock:
            self._check_open()
            return [
                {"id": doc_id, **copy.deepcopy(doc)}
                for doc_id, doc in self._data.get(collection, {}).items()
            ]

    def _write_document(self, table: dict[str, dict[str, Any]], doc_id: str, doc: dict[str, Any] | None) -> None:
        if doc is None:
            table.pop(doc_id, None)
        else:
            table[doc_id] = doc

    def _check_open(self) -> None:
        if self._closed:
            raise StoreError("store is closed")

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._data.get(collection, {}))

    def close(self) -> None:
        with self._lock:
            self._closed = True
