"""Document store abstraction consumed by the family graph engine.

A store holds named collections of JSON-compatible documents keyed by id.
Every mutation goes through ``commit``, which applies a batch of writes
all-or-nothing. Field values inside writes may be transforms
(``Increment``, ``ArrayUnion``, ``ArrayRemove``, ``SERVER_TIMESTAMP``) that
are resolved against the stored document at commit time.
"""
from __future__ import annotations

import copy
import operator
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4


# =============================================================================
# Errors
# =============================================================================


class StoreError(Exception):
    """The store could not complete an operation."""


class DocumentMissing(StoreError):
    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"{collection}/{doc_id} does not exist")
        self.collection = collection
        self.doc_id = doc_id


class PreconditionFailed(StoreError):
    def __init__(self, collection: str, doc_id: str, expected: int, actual: Any) -> None:
        super().__init__(
            f"{collection}/{doc_id} is at version {actual}, expected {expected}"
        )
        self.collection = collection
        self.doc_id = doc_id
        self.expected = expected
        self.actual = actual


class BatchTooLarge(StoreError):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"batch of {size} writes exceeds limit of {limit}")
        self.size = size
        self.limit = limit


# =============================================================================
# Field transforms
# =============================================================================


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Increment:
    amount: int | float = 1


@dataclass(frozen=True)
class ArrayUnion:
    values: list[Any]


@dataclass(frozen=True)
class ArrayRemove:
    values: list[Any]


def resolve_value(existing: Any, value: Any, now: str) -> Any:
    """Resolve a (possibly transform) field value against the stored one."""
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, Increment):
        return (existing or 0) + value.amount
    if isinstance(value, ArrayUnion):
        merged = list(existing or [])
        for item in value.values:
            if item not in merged:
                merged.append(item)
        return merged
    if isinstance(value, ArrayRemove):
        return [item for item in existing or [] if item not in value.values]
    return copy.deepcopy(value)


def apply_fields(current: dict[str, Any] | None, fields: dict[str, Any], now: str) -> dict[str, Any]:
    doc = copy.deepcopy(current) if current else {}
    for key, value in fields.items():
        doc[key] = resolve_value(doc.get(key), value, now)
    return doc


# =============================================================================
# Writes
# =============================================================================


@dataclass
class SetWrite:
    """Create or overwrite a whole document."""
    collection: str
    doc_id: str
    fields: dict[str, Any]


@dataclass
class UpdateWrite:
    """Patch fields of an existing document.

    With ``expected_version`` set, the write only applies while the stored
    document's ``version`` field still equals it.
    """
    collection: str
    doc_id: str
    fields: dict[str, Any]
    expected_version: int | None = None


@dataclass
class DeleteWrite:
    collection: str
    doc_id: str


Write = SetWrite | UpdateWrite | DeleteWrite

# (collection, doc_id, resulting document or None when deleted)
StagedWrite = tuple[str, str, dict[str, Any] | None]


# =============================================================================
# Queries
# =============================================================================

_COMPARATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _COMPARATORS and self.op not in ("in", "array_contains"):
            raise ValueError(f"unsupported filter operator: {self.op}")

    def matches(self, doc: dict[str, Any]) -> bool:
        actual = doc.get(self.field)
        if self.op == "in":
            return actual in self.value
        if self.op == "array_contains":
            return isinstance(actual, list) and self.value in actual
        if self.op in ("==", "!="):
            return _COMPARATORS[self.op](actual, self.value)
        if actual is None:
            return False
        try:
            return _COMPARATORS[self.op](actual, self.value)
        except TypeError:
            return False


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


def sort_documents(docs: list[dict[str, Any]], order_by: Sequence[OrderBy]) -> list[dict[str, Any]]:
    """Stable multi-key sort; missing values order before present ones."""
    result = list(docs)
    for order in reversed(order_by):
        result.sort(
            key=lambda d, f=order.field: (d.get(f) is not None, d.get(f)),
            reverse=order.descending,
        )
    return result


# =============================================================================
# Store interface
# =============================================================================


class DocumentStore(ABC):
    """Abstract base class for document storage.

    Concrete stores supply document loading and the atomic application of a
    staged batch; create/update/delete and querying are built on top.
    """

    max_batch_size: int = 500

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Get a document by id, with its id under the ``"id"`` key."""
        ...

    @abstractmethod
    def commit(self, writes: Sequence[Write]) -> None:
        """Apply every write or none of them."""
        ...

    @abstractmethod
    def _load_collection(self, collection: str) -> list[dict[str, Any]]:
        """All documents of a collection in insertion order."""
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    def new_id(self, collection: str) -> str:
        return uuid4().hex

    def create(self, collection: str, fields: dict[str, Any], doc_id: str | None = None) -> str:
        doc_id = doc_id or self.new_id(collection)
        self.commit([SetWrite(collection, doc_id, fields)])
        return doc_id

    def update(
        self,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> None:
        self.commit([UpdateWrite(collection, doc_id, fields, expected_version)])

    def delete(self, collection: str, doc_id: str) -> None:
        self.commit([DeleteWrite(collection, doc_id)])

    def query(
        self,
        collection: str,
        filters: Iterable[FieldFilter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        filters = list(filters)
        docs = [d for d in self._load_collection(collection) if all(f.matches(d) for f in filters)]
        if order_by:
            docs = sort_documents(docs, order_by)
        if limit is not None:
            docs = docs[:limit]
        return docs

    # ------------------------------------------------------------------

    def _stage(
        self,
        writes: Sequence[Write],
        load: Callable[[str, str], dict[str, Any] | None],
    ) -> list[StagedWrite]:
        """Compute the resulting documents of a batch without applying it.

        Later writes in the batch see the results of earlier ones.
        """
        if len(writes) > self.max_batch_size:
            raise BatchTooLarge(len(writes), self.max_batch_size)

        now = datetime.now(UTC).isoformat(timespec="microseconds")
        overlay: dict[tuple[str, str], dict[str, Any] | None] = {}

        def current(collection: str, doc_id: str) -> dict[str, Any] | None:
            key = (collection, doc_id)
            if key in overlay:
                return overlay[key]
            return load(collection, doc_id)

        for write in writes:
            key = (write.collection, write.doc_id)
            if isinstance(write, SetWrite):
                overlay[key] = apply_fields(None, strip_id(write.fields), now)
            elif isinstance(write, UpdateWrite):
                existing = current(write.collection, write.doc_id)
                if existing is None:
                    raise DocumentMissing(write.collection, write.doc_id)
                if write.expected_version is not None and existing.get("version") != write.expected_version:
                    raise PreconditionFailed(
                        write.collection, write.doc_id, write.expected_version, existing.get("version")
                    )
                overlay[key] = apply_fields(existing, strip_id(write.fields), now)
            elif isinstance(write, DeleteWrite):
                overlay[key] = None
            else:
                raise StoreError(f"unknown write type: {type(write).__name__}")

        return [(collection, doc_id, doc) for (collection, doc_id), doc in overlay.items()]


def strip_id(doc: dict[str, Any] | None) -> dict[str, Any] | None:
    if doc is None:
        return None
    return {k: v for k, v in doc.items() if k != "id"}

