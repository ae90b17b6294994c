"""Member & relation store: maps engine operations onto the document store.

Every multi-record change (tree + root member, member + relation + tree
counters, cascading deletes) goes out as a single batch so a reader never
sees half of it. Store faults are re-raised as engine exceptions with the
original error chained.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from .exceptions import (
    ConcurrentModificationError,
    EventNotFoundError,
    MalformedInputError,
    MemberNotFoundError,
    MemberNotInTreeError,
    NotFoundError,
    ReadFailedError,
    RelationNotFoundError,
    TreeNotFoundError,
    WriteFailedError,
)
from .models import (
    FamilyEvent,
    FamilyMember,
    FamilyRelation,
    FamilyTree,
    RelationType,
)
from .store.base import (
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
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

logger = structlog.get_logger(__name__)

TREES = "family_trees"
MEMBERS = "family_members"
RELATIONS = "family_relations"
EVENTS = "family_events"

_NOT_FOUND: dict[str, type[NotFoundError]] = {
    TREES: TreeNotFoundError,
    MEMBERS: MemberNotFoundError,
    RELATIONS: RelationNotFoundError,
    EVENTS: EventNotFoundError,
}

# Fields callers may not patch directly
_PROTECTED = {"id", "version", "created_at", "updated_at", "created_by", "family_tree_id"}

M = TypeVar("M", bound=BaseModel)


def _document(model: BaseModel) -> dict[str, Any]:
    """Serialize a record for insertion, letting the store stamp times."""
    fields = model.model_dump(mode="json", exclude={"id", "created_at", "updated_at"})
    fields["created_at"] = SERVER_TIMESTAMP
    if "updated_at" in type(model).model_fields:
        fields["updated_at"] = SERVER_TIMESTAMP
    return fields


def generation_span(members: Iterable[FamilyMember]) -> int:
    """Generation rows counted as ``max(|generation|) + 1`` (0 when empty)."""
    generations = [abs(m.generation) for m in members]
    return max(generations) + 1 if generations else 0


class FamilyRepository:
    """CRUD over trees, members, relations and events.

    Example:
        >>> repo = FamilyRepository(InMemoryDocumentStore())
        >>> tree_id = repo.create_tree("Rao Family", None, root, owner_id="u1")
        >>> repo.list_tree_members(tree_id)
    """

    def __init__(self, store: DocumentStore) -> None:
        """Initialize the repository.

        Args:
            store: Document store to read and write; its lifecycle belongs
                to the caller.
        """
        self.store = store

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    def _commit(self, operation: str, writes: Sequence[Write]) -> None:
        try:
            self.store.commit(writes)
        except PreconditionFailed as e:
            raise ConcurrentModificationError(e.doc_id, e.expected) from e
        except DocumentMissing as e:
            raise _NOT_FOUND.get(e.collection, NotFoundError)(e.doc_id) from e
        except StoreError as e:
            logger.error("store.write_failed", operation=operation, error=str(e))
            raise WriteFailedError(operation, e) from e

    def _get(self, collection: str, doc_id: str, model: type[M]) -> M:
        try:
            doc = self.store.get(collection, doc_id)
        except StoreError as e:
            raise ReadFailedError(f"get {collection}/{doc_id}", e) from e
        if doc is None:
            raise _NOT_FOUND[collection](doc_id)
        return model.model_validate(doc)

    def _query(
        self,
        collection: str,
        model: type[M],
        filters: Iterable[FieldFilter] = (),
        order_by: Sequence[OrderBy] = (),
    ) -> list[M]:
        try:
            docs = self.store.query(collection, filters, order_by)
        except StoreError as e:
            raise ReadFailedError(f"query {collection}", e) from e
        return [model.model_validate(doc) for doc in docs]

    @staticmethod
    def _patch(current: M, patch: dict[str, Any]) -> dict[str, Any]:
        """Validate ``patch`` against ``current`` and return the update fields.

        The merged record must still satisfy the model, so a bad value never
        reaches the store.
        """
        model = type(current)
        unknown = set(patch) - set(model.model_fields)
        protected = set(patch) & _PROTECTED
        if unknown or protected:
            raise MalformedInputError(
                f"cannot patch {model.__name__} fields: {sorted(unknown | protected)}"
            )
        try:
            merged = model.model_validate({**current.model_dump(), **patch})
        except ValidationError as e:
            raise MalformedInputError(f"invalid {model.__name__} patch: {e}") from e
        fields = merged.model_dump(mode="json", include=set(patch))
        fields["updated_at"] = SERVER_TIMESTAMP
        fields["version"] = Increment(1)
        return fields

    # ------------------------------------------------------------------
    # Trees
    # ------------------------------------------------------------------

    def create_tree(
        self,
        name: str,
        description: str | None,
        root_member: FamilyMember,
        owner_id: str,
        is_public: bool = False,
        village_id: str | None = None,
    ) -> str:
        """Create a tree together with its root member in one batch.

        The root member is always stored at generation 0.

        Returns:
            The new tree id
        """
        tree_id = self.store.new_id(TREES)
        member_id = self.store.new_id(MEMBERS)

        tree = FamilyTree(
            name=name,
            description=description,
            root_member_id=member_id,
            owner_id=owner_id,
            village_id=village_id,
            is_public=is_public,
            member_count=1,
            generation_count=1,
        )
        root = root_member.model_copy(update={"family_tree_id": tree_id, "generation": 0, "version": 1})

        self._commit(
            "create tree",
            [
                SetWrite(TREES, tree_id, _document(tree)),
                SetWrite(MEMBERS, member_id, _document(root)),
            ],
        )
        logger.info("tree.created", tree_id=tree_id, root_member_id=member_id, owner_id=owner_id)
        return tree_id

    def get_tree(self, tree_id: str) -> FamilyTree:
        return self._get(TREES, tree_id, FamilyTree)

    def list_user_trees(self, owner_id: str) -> list[FamilyTree]:
        """Trees owned by a user, most recently updated first."""
        return self._query(
            TREES,
            FamilyTree,
            [FieldFilter("owner_id", "==", owner_id)],
            [OrderBy("updated_at", descending=True)],
        )

    def list_public_trees(self) -> list[FamilyTree]:
        return self._query(
            TREES,
            FamilyTree,
            [FieldFilter("is_public", "==", True)],
            [OrderBy("updated_at", descending=True)],
        )

    def update_tree(self, tree_id: str, patch: dict[str, Any], expected_version: int | None = None) -> None:
        """Patch tree fields, optionally only if the tree is still at ``expected_version``."""
        if "root_member_id" in patch:
            raise MalformedInputError("the root member of a tree cannot be reassigned")
        tree = self.get_tree(tree_id)
        self._commit(
            "update tree",
            [UpdateWrite(TREES, tree_id, self._patch(tree, patch), expected_version)],
        )

    def add_collaborator(self, tree_id: str, user_id: str) -> None:
        self._update_access(tree_id, "collaborators", ArrayUnion([user_id]))

    def remove_collaborator(self, tree_id: str, user_id: str) -> None:
        self._update_access(tree_id, "collaborators", ArrayRemove([user_id]))

    def add_viewer(self, tree_id: str, user_id: str) -> None:
        self._update_access(tree_id, "viewers", ArrayUnion([user_id]))

    def remove_viewer(self, tree_id: str, user_id: str) -> None:
        self._update_access(tree_id, "viewers", ArrayRemove([user_id]))

    def _update_access(self, tree_id: str, field: str, change: ArrayUnion | ArrayRemove) -> None:
        self._commit(
            f"update {field}",
            [UpdateWrite(TREES, tree_id, {field: change, "updated_at": SERVER_TIMESTAMP})],
        )

    def delete_tree(self, tree_id: str) -> None:
        """Delete a tree with all its members, relations and events.

        Fits in one batch unless the store's batch limit is smaller than the
        number of records; then the records go out in chunks with the tree
        document in the last one, so a failed delete can simply be retried.
        """
        self.get_tree(tree_id)
        in_tree = [FieldFilter("family_tree_id", "==", tree_id)]

        writes: list[Write] = []
        for collection in (MEMBERS, RELATIONS, EVENTS):
            try:
                docs = self.store.query(collection, in_tree)
            except StoreError as e:
                raise ReadFailedError(f"query {collection}", e) from e
            writes.extend(DeleteWrite(collection, doc["id"]) for doc in docs)
        writes.append(DeleteWrite(TREES, tree_id))

        limit = self.store.max_batch_size
        if len(writes) <= limit:
            self._commit("delete tree", writes)
        else:
            chunks = [writes[i:i + limit] for i in range(0, len(writes), limit)]
            logger.warning("tree.delete_chunked", tree_id=tree_id, writes=len(writes), batches=len(chunks))
            for n, chunk in enumerate(chunks, start=1):
                self._commit(f"delete tree (batch {n}/{len(chunks)})", chunk)

        logger.info("tree.deleted", tree_id=tree_id, records=len(writes))

    def refresh_tree_counts(self, tree_id: str) -> FamilyTree:
        """Recompute ``member_count`` and ``generation_count`` from the members."""
        tree = self.get_tree(tree_id)
        members = self.list_tree_members(tree_id)
        self._commit(
            "refresh tree counts",
            [
                UpdateWrite(
                    TREES,
                    tree_id,
                    {
                        "member_count": len(members),
                        "generation_count": generation_span(members),
                        "updated_at": SERVER_TIMESTAMP,
                        "version": Increment(1),
                    },
                    expected_version=tree.version,
                )
            ],
        )
        return self.get_tree(tree_id)

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def add_member(
        self,
        member: FamilyMember,
        parent_id: str | None = None,
        relation_type: RelationType | None = None,
    ) -> str:
        """Add a member, optionally linked from a parent, in one batch.

        Args:
            member: Member draft; ``family_tree_id`` must name an existing tree
            parent_id: Member the new relation edge starts from
            relation_type: Type of that edge; required together with ``parent_id``

        Returns:
            The new member id
        """
        if (parent_id is None) != (relation_type is None):
            raise MalformedInputError("parent_id and relation_type must be given together")

        tree = self.get_tree(member.family_tree_id)
        if parent_id is not None:
            parent = self.get_member(parent_id)
            if parent.family_tree_id != tree.id:
                raise MemberNotInTreeError(parent_id, tree.id)

        member_id = self.store.new_id(MEMBERS)
        writes: list[Write] = [
            SetWrite(MEMBERS, member_id, _document(member.model_copy(update={"version": 1})))
        ]

        relation_id = None
        if parent_id is not None:
            relation_id = self.store.new_id(RELATIONS)
            relation = FamilyRelation(
                family_tree_id=tree.id,
                from_member_id=parent_id,
                to_member_id=member_id,
                relation_type=relation_type,
                created_by=member.created_by,
            )
            writes.append(SetWrite(RELATIONS, relation_id, _document(relation)))

        tree_fields: dict[str, Any] = {
            "member_count": Increment(1),
            "updated_at": SERVER_TIMESTAMP,
            "version": Increment(1),
        }
        span = abs(member.generation) + 1
        if span > tree.generation_count:
            tree_fields["generation_count"] = span
        writes.append(UpdateWrite(TREES, tree.id, tree_fields))

        self._commit("add member", writes)
        logger.info(
            "member.added",
            tree_id=tree.id,
            member_id=member_id,
            parent_id=parent_id,
            relation_id=relation_id,
        )
        return member_id

    def get_member(self, member_id: str) -> FamilyMember:
        return self._get(MEMBERS, member_id, FamilyMember)

    def list_tree_members(self, tree_id: str) -> list[FamilyMember]:
        """Members of a tree, generation ascending, insertion order within a generation."""
        return self._query(
            MEMBERS,
            FamilyMember,
            [FieldFilter("family_tree_id", "==", tree_id)],
            [OrderBy("generation")],
        )

    def search_members(self, tree_id: str, term: str) -> list[FamilyMember]:
        """Case-insensitive substring match on first, last or display name."""
        needle = term.strip().lower()
        return [
            m
            for m in self.list_tree_members(tree_id)
            if needle in m.first_name.lower()
            or needle in m.last_name.lower()
            or needle in m.display_name.lower()
        ]

    def update_member(self, member_id: str, patch: dict[str, Any], expected_version: int | None = None) -> None:
        """Patch member fields.

        A display name that was derived from the first and last name follows
        a rename. A generation change rewrites the tree's generation count in
        the same batch; the root member stays at generation 0.

        Raises:
            ConcurrentModificationError: ``expected_version`` no longer matches
            MalformedInputError: The patch names unknown or protected fields,
                or leaves the member invalid
        """
        member = self.get_member(member_id)
        patch = dict(patch)

        renamed = {"first_name", "last_name"} & set(patch)
        derived = f"{member.first_name} {member.last_name}".strip()
        if renamed and "display_name" not in patch and member.display_name == derived:
            # empty display name is re-derived on validation
            patch["display_name"] = ""

        fields = self._patch(member, patch)
        writes: list[Write] = [UpdateWrite(MEMBERS, member_id, fields, expected_version)]

        if "generation" in fields and fields["generation"] != member.generation:
            tree = self.get_tree(member.family_tree_id)
            if tree.root_member_id == member_id:
                raise MalformedInputError("the root member must stay at generation 0")
            members = [
                m.model_copy(update={"generation": fields["generation"]}) if m.id == member_id else m
                for m in self.list_tree_members(tree.id)
            ]
            writes.append(
                UpdateWrite(
                    TREES,
                    tree.id,
                    {
                        "generation_count": generation_span(members),
                        "updated_at": SERVER_TIMESTAMP,
                        "version": Increment(1),
                    },
                )
            )

        self._commit("update member", writes)
        logger.info("member.updated", member_id=member_id, fields=sorted(patch))

    def delete_member(self, member_id: str) -> None:
        """Delete a member and every relation touching it, in one batch.

        Spouse shortcuts and event tags pointing at the member are cleared and
        the tree counters are recomputed in the same batch.
        """
        member = self.get_member(member_id)
        tree_id = member.family_tree_id
        tree = self.get_tree(tree_id)
        if tree.root_member_id == member_id:
            raise MalformedInputError("the root member cannot be deleted; delete the tree instead")

        relations = self.list_member_relations(member_id)
        remaining = [m for m in self.list_tree_members(tree_id) if m.id != member_id]
        events = self._query(
            EVENTS,
            FamilyEvent,
            [
                FieldFilter("family_tree_id", "==", tree_id),
                FieldFilter("member_ids", "array_contains", member_id),
            ],
        )

        writes: list[Write] = [DeleteWrite(MEMBERS, member_id)]
        writes.extend(DeleteWrite(RELATIONS, r.id) for r in relations)
        writes.extend(
            UpdateWrite(MEMBERS, m.id, {"spouse_id": None, "updated_at": SERVER_TIMESTAMP, "version": Increment(1)})
            for m in remaining
            if m.spouse_id == member_id
        )
        writes.extend(UpdateWrite(EVENTS, e.id, {"member_ids": ArrayRemove([member_id])}) for e in events)
        writes.append(
            UpdateWrite(
                TREES,
                tree_id,
                {
                    "member_count": Increment(-1),
                    "generation_count": generation_span(remaining),
                    "updated_at": SERVER_TIMESTAMP,
                    "version": Increment(1),
                },
            )
        )

        self._commit("delete member", writes)
        logger.info("member.deleted", tree_id=tree_id, member_id=member_id, relations=len(relations))

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    def create_relation(
        self,
        tree_id: str,
        from_member_id: str,
        to_member_id: str,
        relation_type: RelationType,
        created_by: str,
    ) -> str:
        """Create a relation edge between two members of the same tree."""
        if from_member_id == to_member_id:
            raise MalformedInputError("a member cannot be related to itself")
        for endpoint in (from_member_id, to_member_id):
            if self.get_member(endpoint).family_tree_id != tree_id:
                raise MemberNotInTreeError(endpoint, tree_id)

        relation_id = self.store.new_id(RELATIONS)
        relation = FamilyRelation(
            family_tree_id=tree_id,
            from_member_id=from_member_id,
            to_member_id=to_member_id,
            relation_type=relation_type,
            created_by=created_by,
        )
        self._commit("create relation", [SetWrite(RELATIONS, relation_id, _document(relation))])
        logger.info(
            "relation.created",
            tree_id=tree_id,
            relation_id=relation_id,
            relation_type=relation_type.value,
        )
        return relation_id

    def get_relation(self, relation_id: str) -> FamilyRelation:
        return self._get(RELATIONS, relation_id, FamilyRelation)

    def list_tree_relations(self, tree_id: str) -> list[FamilyRelation]:
        return self._query(RELATIONS, FamilyRelation, [FieldFilter("family_tree_id", "==", tree_id)])

    def list_member_relations(self, member_id: str) -> list[FamilyRelation]:
        """Relations where the member is either endpoint, outgoing first."""
        outgoing = self._query(RELATIONS, FamilyRelation, [FieldFilter("from_member_id", "==", member_id)])
        incoming = self._query(RELATIONS, FamilyRelation, [FieldFilter("to_member_id", "==", member_id)])
        seen = {r.id for r in outgoing}
        return outgoing + [r for r in incoming if r.id not in seen]

    def delete_relation(self, relation_id: str) -> None:
        self.get_relation(relation_id)
        self._commit("delete relation", [DeleteWrite(RELATIONS, relation_id)])
        logger.info("relation.deleted", relation_id=relation_id)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def create_event(self, event: FamilyEvent) -> str:
        self.get_tree(event.family_tree_id)
        event_id = self.store.new_id(EVENTS)
        self._commit("create event", [SetWrite(EVENTS, event_id, _document(event))])
        logger.info("event.created", tree_id=event.family_tree_id, event_id=event_id)
        return event_id

    def get_event(self, event_id: str) -> FamilyEvent:
        return self._get(EVENTS, event_id, FamilyEvent)

    def list_tree_events(self, tree_id: str) -> list[FamilyEvent]:
        """Events of a tree, latest date first."""
        return self._query(
            EVENTS,
            FamilyEvent,
            [FieldFilter("family_tree_id", "==", tree_id)],
            [OrderBy("date", descending=True)],
        )

    def delete_event(self, event_id: str) -> None:
        self.get_event(event_id)
        self._commit("delete event", [DeleteWrite(EVENTS, event_id)])
