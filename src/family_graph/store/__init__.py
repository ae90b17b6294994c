"""Document store backends.

- ``DocumentStore``: collection-scoped CRUD with atomic batch commits
- ``InMemoryDocumentStore``: dict-backed, for tests and embedding
- ``SQLiteDocumentStore``: durable single-file store used by the CLI
"""
from .base import (
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    BatchTooLarge,
    DeleteWrite,
    DocumentMissing,
    DocumentStore,
    FieldFilter,
    Increment,
    OrderBy,
    PreconditionFailed,
    SetWrite,
    StoreError,
    UpdateWrite,
    Write,
)
from .memory import InMemoryDocumentStore
from .sqlite import SQLiteDocumentStore

__all__ = [
    # Interface
    "DocumentStore",
    "FieldFilter",
    "OrderBy",
    # Writes and transforms
    "Write",
    "SetWrite",
    "UpdateWrite",
    "DeleteWrite",
    "Increment",
    "ArrayUnion",
    "ArrayRemove",
    "SERVER_TIMESTAMP",
    # Errors
    "StoreError",
    "DocumentMissing",
    "PreconditionFailed",
    "BatchTooLarge",
    # Backends
    "InMemoryDocumentStore",
    "SQLiteDocumentStore",
]
