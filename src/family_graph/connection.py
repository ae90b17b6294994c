"""Shortest relational path between two members."""
from __future__ import annotations

from collections import deque
from collections.abc import Iterable

import structlog

from .exceptions import MemberNotInTreeError
from .models import FamilyMember, FamilyRelation

logger = structlog.get_logger(__name__)


def build_adjacency(
    member_ids: Iterable[str],
    relations: Iterable[FamilyRelation],
) -> dict[str, list[str]]:
    """Undirected adjacency over known members, neighbors in relation order."""
    adjacency: dict[str, list[str]] = {member_id: [] for member_id in member_ids}
    for relation in relations:
        a, b = relation.from_member_id, relation.to_member_id
        if a == b or a not in adjacency or b not in adjacency:
            continue
        adjacency[a].append(b)
        adjacency[b].append(a)
    return adjacency


def find_connection(
    source_id: str,
    target_id: str,
    members: Iterable[FamilyMember],
    relations: Iterable[FamilyRelation],
) -> list[FamilyMember]:
    """Find the shortest path between two members, ignoring edge types.

    Every relation counts as one undirected hop.

    Returns:
        Members along the path from source to target inclusive, or an empty
        list when the two are not connected

    Raises:
        MemberNotInTreeError: Either id is not among ``members``
    """
    by_id = {m.id: m for m in members if m.id is not None}
    for member_id in (source_id, target_id):
        if member_id not in by_id:
            raise MemberNotInTreeError(member_id)

    if source_id == target_id:
        return [by_id[source_id]]

    adjacency = build_adjacency(by_id, relations)

    visited = {source_id}
    queue: deque[tuple[str, list[str]]] = deque()
    queue.append((source_id, [source_id]))

    while queue:
        current_id, path = queue.popleft()
        if current_id == target_id:
            logger.debug("connection.found", source=source_id, target=target_id, hops=len(path) - 1)
            return [by_id[member_id] for member_id in path]

        for neighbor in adjacency[current_id]:
            if neighbor in visited:
                continue
            visited.add(neighbor)
            queue.append((neighbor, path + [neighbor]))

    logger.debug("connection.none", source=source_id, target=target_id)
    return []
