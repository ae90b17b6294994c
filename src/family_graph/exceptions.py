from __future__ import annotations


class FamilyGraphError(Exception):
    """Base class for engine failures."""


# --------------------------- Not found ---------------------------


class NotFoundError(FamilyGraphError):
    """A requested record has no document."""

    kind = "record"

    def __init__(self, record_id: str, message: str | None = None) -> None:
        super().__init__(message or f"{self.kind} not found: {record_id}")
        self.record_id = record_id


class TreeNotFoundError(NotFoundError):
    kind = "family tree"


class MemberNotFoundError(NotFoundError):
    kind = "family member"


class RelationNotFoundError(NotFoundError):
    kind = "family relation"


class EventNotFoundError(NotFoundError):
    kind = "family event"


class RootNotFoundError(NotFoundError):
    """The root member id is absent from the supplied member list."""

    kind = "root member"


# --------------------------- Writes ---------------------------


class WriteFailedError(FamilyGraphError):
    """The store rejected a write; nothing from the failing batch was committed."""

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{operation} failed{detail}")
        self.operation = operation
        self.cause = cause


class ReadFailedError(FamilyGraphError):
    """The store could not serve a read."""

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{operation} failed{detail}")
        self.operation = operation
        self.cause = cause


class ConcurrentModificationError(FamilyGraphError):
    """The record changed since the caller read it."""

    def __init__(self, record_id: str, expected_version: int) -> None:
        super().__init__(
            f"stale write to {record_id}: expected version {expected_version}"
        )
        self.record_id = record_id
        self.expected_version = expected_version


# --------------------------- Input ---------------------------


class MalformedInputError(FamilyGraphError):
    """The request is inconsistent with the stored tree."""


class MemberNotInTreeError(MalformedInputError, NotFoundError):
    """A member id used in a graph query is not part of the tree."""

    kind = "tree member"

    def __init__(self, member_id: str, tree_id: str | None = None) -> None:
        where = f" in tree {tree_id}" if tree_id else ""
        NotFoundError.__init__(self, member_id, f"member {member_id} not found{where}")
        self.tree_id = tree_id


class CycleDetectedError(MalformedInputError):
    """Child edges loop back onto a member already on the descent path."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__("child relation cycle: " + " -> ".join(cycle))
        self.cycle = cycle
