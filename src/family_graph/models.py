"""Pydantic data layer for the family relationship graph.

Trees, members, relations and events map one-to-one onto documents in the
backing document store. ``FamilyTreeNode`` is derived and never persisted.
"""
from __future__ import annotations

import datetime as dt
from collections.abc import Iterator
from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator


# =============================================================================
# Enumerations
# =============================================================================

class Gender(str, Enum):
    """Gender recorded for a member."""
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class RelationType(str, Enum):
    """Kinship kinds a relation edge can carry.

    Parent/child edges always point parent -> child: ``FATHER``/``MOTHER``
    name the role of the from-endpoint, ``SON``/``DAUGHTER`` the role of the
    to-endpoint.
    """
    SPOUSE = "spouse"
    FATHER = "father"
    MOTHER = "mother"
    SON = "son"
    DAUGHTER = "daughter"
    BROTHER = "brother"
    SISTER = "sister"

    # Extended family
    GRANDFATHER = "grandfather"
    GRANDMOTHER = "grandmother"
    GRANDSON = "grandson"
    GRANDDAUGHTER = "granddaughter"
    UNCLE = "uncle"
    AUNT = "aunt"
    NEPHEW = "nephew"
    NIECE = "niece"
    COUSIN = "cousin"

    # In-laws
    FATHER_IN_LAW = "father_in_law"
    MOTHER_IN_LAW = "mother_in_law"
    SON_IN_LAW = "son_in_law"
    DAUGHTER_IN_LAW = "daughter_in_law"
    BROTHER_IN_LAW = "brother_in_law"
    SISTER_IN_LAW = "sister_in_law"

    @property
    def role(self) -> RelationRole:
        return RELATION_ROLES[self]


class RelationRole(str, Enum):
    """Structural category of a relation type, used by tree assembly."""
    PARENT = "parent"
    CHILD = "child"
    SPOUSE = "spouse"
    SIBLING = "sibling"
    EXTENDED = "extended"


RELATION_ROLES: dict[RelationType, RelationRole] = {
    RelationType.SPOUSE: RelationRole.SPOUSE,
    RelationType.FATHER: RelationRole.PARENT,
    RelationType.MOTHER: RelationRole.PARENT,
    RelationType.SON: RelationRole.CHILD,
    RelationType.DAUGHTER: RelationRole.CHILD,
    RelationType.BROTHER: RelationRole.SIBLING,
    RelationType.SISTER: RelationRole.SIBLING,
    RelationType.GRANDFATHER: RelationRole.EXTENDED,
    RelationType.GRANDMOTHER: RelationRole.EXTENDED,
    RelationType.GRANDSON: RelationRole.EXTENDED,
    RelationType.GRANDDAUGHTER: RelationRole.EXTENDED,
    RelationType.UNCLE: RelationRole.EXTENDED,
    RelationType.AUNT: RelationRole.EXTENDED,
    RelationType.NEPHEW: RelationRole.EXTENDED,
    RelationType.NIECE: RelationRole.EXTENDED,
    RelationType.COUSIN: RelationRole.EXTENDED,
    RelationType.FATHER_IN_LAW: RelationRole.EXTENDED,
    RelationType.MOTHER_IN_LAW: RelationRole.EXTENDED,
    RelationType.SON_IN_LAW: RelationRole.EXTENDED,
    RelationType.DAUGHTER_IN_LAW: RelationRole.EXTENDED,
    RelationType.BROTHER_IN_LAW: RelationRole.EXTENDED,
    RelationType.SISTER_IN_LAW: RelationRole.EXTENDED,
}

# Label shown to the to-endpoint of a relation
INVERSE_LABELS: dict[RelationType, str] = {
    RelationType.FATHER: "child",
    RelationType.MOTHER: "child",
    RelationType.SON: "parent",
    RelationType.DAUGHTER: "parent",
    RelationType.BROTHER: "sibling",
    RelationType.SISTER: "sibling",
    RelationType.SPOUSE: "spouse",
    RelationType.GRANDFATHER: "grandchild",
    RelationType.GRANDMOTHER: "grandchild",
    RelationType.GRANDSON: "grandparent",
    RelationType.GRANDDAUGHTER: "grandparent",
}


class EventType(str, Enum):
    """Kinds of family milestones."""
    BIRTH = "birth"
    DEATH = "death"
    MARRIAGE = "marriage"
    ANNIVERSARY = "anniversary"
    REUNION = "reunion"
    OTHER = "other"


# =============================================================================
# Persisted records
# =============================================================================

class FamilyTree(BaseModel):
    """A named lineage owning a set of members, relations and events."""
    id: str | None = None
    name: str
    description: str | None = None
    root_member_id: str
    owner_id: str
    collaborators: list[str] = Field(default_factory=list)
    viewers: list[str] = Field(default_factory=list)
    village_id: str | None = None  # linked community
    is_public: bool = False
    member_count: int = 0
    generation_count: int = 0
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None


class FamilyMember(BaseModel):
    """A person node in a family tree.

    ``generation`` is a signed offset from the tree's root: 0 for the root,
    positive for descendants, negative for ancestors. It is supplied by the
    caller and not checked against the relation edges.
    """
    id: str | None = None
    family_tree_id: str = ""  # assigned on insert when empty
    user_id: str | None = None
    first_name: str
    last_name: str
    display_name: str = ""
    gender: Gender = Gender.MALE
    date_of_birth: date | None = None
    date_of_death: date | None = None
    is_alive: bool = True
    photo_url: str | None = None
    email: str | None = None
    phone: str | None = None
    occupation: str | None = None
    bio: str | None = None
    spouse_id: str | None = None
    generation: int = 0
    created_by: str
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def default_display_name(self) -> FamilyMember:
        if not self.display_name:
            self.display_name = f"{self.first_name} {self.last_name}".strip()
        return self


class FamilyRelation(BaseModel):
    """A typed, directed kinship edge between two members of one tree."""
    id: str | None = None
    family_tree_id: str
    from_member_id: str
    to_member_id: str
    relation_type: RelationType
    created_by: str
    created_at: datetime | None = None

    @property
    def role(self) -> RelationRole:
        return self.relation_type.role

    def touches(self, member_id: str) -> bool:
        return member_id in (self.from_member_id, self.to_member_id)

    def other_end(self, member_id: str) -> str:
        """Return the endpoint opposite ``member_id``."""
        if self.from_member_id == member_id:
            return self.to_member_id
        return self.from_member_id


class FamilyEvent(BaseModel):
    """A dated milestone attached to a tree and optionally to members."""
    id: str | None = None
    family_tree_id: str
    title: str
    description: str | None = None
    event_type: EventType = EventType.OTHER
    date: dt.date
    location: str | None = None
    member_ids: list[str] = Field(default_factory=list)
    photos: list[str] = Field(default_factory=list)
    created_by: str
    created_at: datetime | None = None


# =============================================================================
# Derived structures
# =============================================================================

class FamilyTreeNode(BaseModel):
    """One member of an assembled tree with its resolved kin."""
    member: FamilyMember
    spouse: FamilyMember | None = None
    children: list[FamilyTreeNode] = Field(default_factory=list)
    parents: list[FamilyMember] = Field(default_factory=list)
    siblings: list[FamilyMember] = Field(default_factory=list)
    relations: list[FamilyRelation] = Field(default_factory=list)

    def iter_members(self) -> Iterator[FamilyMember]:
        """Yield this node's member and every descendant, pre-order."""
        yield self.member
        for child in self.children:
            yield from child.iter_members()

    @property
    def depth(self) -> int:
        """Number of generation levels below and including this node."""
        if not self.children:
            return 1
        return 1 + max(child.depth for child in self.children)


class TreeStatistics(BaseModel):
    """Dashboard figures for one tree."""
    total_members: int = 0
    living_members: int = 0
    generations: int = 0
    marriages: int = 0
    average_age: int = 0


def relation_label(relation: FamilyRelation, viewer_id: str) -> str:
    """Describe ``relation`` as seen from the member ``viewer_id``.

    The from-endpoint sees the relation type itself; the to-endpoint sees
    the inverse role where one is defined.
    """
    plain = relation.relation_type.value.replace("_", " ")
    if relation.from_member_id == viewer_id:
        return plain
    return INVERSE_LABELS.get(relation.relation_type, plain)
