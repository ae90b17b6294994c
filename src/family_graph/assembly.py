"""Tree assembly: nest a flat member/relation set into ``FamilyTreeNode``s.

Relations are interpreted through the role table in ``models`` rather than
per-type checks. Edges whose endpoints are not in the member list are
skipped, which tolerates partially loaded or stale data.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence

import structlog

from .exceptions import CycleDetectedError, RootNotFoundError
from .models import FamilyMember, FamilyRelation, FamilyTreeNode, RelationRole

logger = structlog.get_logger(__name__)


class TreeAssembler:
    """Builds nested nodes over one member/relation snapshot.

    Indexes are built once so each node costs a scan of its own relations
    rather than of the whole relation list.
    """

    def __init__(self, members: Iterable[FamilyMember], relations: Sequence[FamilyRelation]) -> None:
        self.members: dict[str, FamilyMember] = {}
        for member in members:
            if member.id is not None:
                self.members.setdefault(member.id, member)

        self.touching: dict[str, list[FamilyRelation]] = {}
        for relation in relations:
            self.touching.setdefault(relation.from_member_id, []).append(relation)
            if relation.to_member_id != relation.from_member_id:
                self.touching.setdefault(relation.to_member_id, []).append(relation)

    def build(self, root_member_id: str) -> FamilyTreeNode:
        if root_member_id not in self.members:
            raise RootNotFoundError(root_member_id)
        return self._node(self.members[root_member_id], [root_member_id])

    def _node(self, member: FamilyMember, path: list[str]) -> FamilyTreeNode:
        member_id = member.id
        relations = self.touching.get(member_id, [])

        spouse = None
        children: list[FamilyMember] = []
        parents: list[FamilyMember] = []
        siblings: list[FamilyMember] = []

        for relation in relations:
            role = relation.role
            other = self.members.get(relation.other_end(member_id))
            if other is None:
                continue
            if role is RelationRole.SPOUSE:
                if spouse is None:
                    spouse = other
            elif role is RelationRole.CHILD:
                if relation.from_member_id == member_id:
                    children.append(other)
            elif role is RelationRole.PARENT:
                if relation.to_member_id == member_id:
                    parents.append(other)
            elif role is RelationRole.SIBLING:
                siblings.append(other)

        # sorted() is stable: equal generations keep relation order
        children.sort(key=lambda m: m.generation)

        child_nodes = []
        for child in children:
            if child.id in path:
                cycle = path[path.index(child.id):] + [child.id]
                logger.warning("assembly.cycle_detected", cycle=cycle)
                raise CycleDetectedError(cycle)
            child_nodes.append(self._node(child, path + [child.id]))

        return FamilyTreeNode(
            member=member,
            spouse=spouse,
            children=child_nodes,
            parents=parents,
            siblings=siblings,
            relations=list(relations),
        )


def build_tree_node(
    root_member_id: str,
    members: Iterable[FamilyMember],
    relations: Sequence[FamilyRelation],
) -> FamilyTreeNode:
    """Assemble the tree hanging below ``root_member_id``.

    Args:
        root_member_id: Member the tree starts from
        members: Every member of the tree
        relations: Every relation of the tree, in store order

    Returns:
        The root node, with children expanded recursively

    Raises:
        RootNotFoundError: The root id is not among ``members``
        CycleDetectedError: Child edges lead back to a member on its own
            descent path
    """
    return TreeAssembler(members, relations).build(root_member_id)
