"""SQLite-backed document store."""
from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from .base import DocumentStore, StoreError, Write

logger = logging.getLogger(__name__)


class SQLiteDocumentStore(DocumentStore):
    """Documents stored as JSON bodies in a single SQLite table.

    Each commit runs inside one ``BEGIN IMMEDIATE`` transaction, so version
    preconditions are checked and applied without another writer slipping
    in between.
    """

    def __init__(self, db_path: str | Path, max_batch_size: int = 500) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.max_batch_size = max_batch_size
        self._init_schema()

    @contextmanager
    def _get_conn(self):
        try:
            conn = sqlite3.connect(self.db_path, isolation_level=None)
        except sqlite3.Error as e:
            raise StoreError(f"cannot open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        # Enforce PRAGMAs per-connection
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA busy_timeout=5000;")
        try:
            yield conn
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._get_conn() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    UNIQUE (collection, doc_id)
                );

                CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection, seq);
                """
            )

    # --------------------------- Reads ---------------------------

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._get_conn() as conn:
            doc = self._fetch(conn, collection, doc_id)
        return {"id": doc_id, **doc} if doc is not None else None

    def _fetch(self, conn: sqlite3.Connection, collection: str, doc_id: str) -> dict[str, Any] | None:
        try:
            row = conn.execute(
                "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        return json.loads(row["data"]) if row else None

    def _load_collection(self, collection: str) -> list[dict[str, Any]]:
        with self._get_conn() as conn:
            try:
                rows = conn.execute(
                    "SELECT doc_id, data FROM documents WHERE collection = ? ORDER BY seq",
                    (collection,),
                ).fetchall()
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e
        return [{"id": row["doc_id"], **json.loads(row["data"])} for row in rows]

    # --------------------------- Writes ---------------------------

    def commit(self, writes: Sequence[Write]) -> None:
        if not writes:
            return
        with self._get_conn() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e
            try:
                staged = self._stage(writes, lambda c, d: self._fetch(conn, c, d))
                for collection, doc_id, doc in staged:
                    self._write_document(conn, collection, doc_id, doc)
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                conn.execute("ROLLBACK")
                raise StoreError(str(e)) from e
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        logger.debug("Committed %d writes to %s", len(writes), self.db_path)

    def _write_document(
        self,
        conn: sqlite3.Connection,
        collection: str,
        doc_id: str,
        doc: dict[str, Any] | None,
    ) -> None:
        if doc is None:
            conn.execute(
                "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            )
            return
        conn.execute(
            """
            INSERT INTO documents (collection, doc_id, data) VALUES (?, ?, ?)
            ON CONFLICT(collection, doc_id) DO UPDATE SET data = excluded.data
            """,
            (collection, doc_id, json.dumps(doc)),
        )

    def close(self) -> None:
        # Connections are opened per operation
        pass
