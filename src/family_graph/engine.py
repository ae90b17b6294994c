"""Async facade over the repository and the graph algorithms.

The repository is synchronous; reads run off the event loop through
``asyncio.to_thread`` and the member and relation lists of a tree are
fetched concurrently.
"""
from __future__ import annotations

import asyncio
from datetime import date

import structlog

from .assembly import build_tree_node
from .connection import find_connection
from .models import (
    FamilyMember,
    FamilyRelation,
    FamilyTree,
    FamilyTreeNode,
    TreeStatistics,
)
from .repository import FamilyRepository
from .statistics import compute_statistics

logger = structlog.get_logger(__name__)


class FamilyGraphEngine:
    """Graph queries over stored family trees.

    Example:
        >>> engine = FamilyGraphEngine(FamilyRepository(store))
        >>> node = await engine.build_family_tree(tree_id)
        >>> path = await engine.find_connection(tree_id, a_id, b_id)
    """

    def __init__(self, repository: FamilyRepository) -> None:
        """Initialize the engine.

        Args:
            repository: Repository bound to the host application's store
        """
        self.repository = repository

    async def _load_graph(self, tree_id: str) -> tuple[list[FamilyMember], list[FamilyRelation]]:
        members, relations = await asyncio.gather(
            asyncio.to_thread(self.repository.list_tree_members, tree_id),
            asyncio.to_thread(self.repository.list_tree_relations, tree_id),
        )
        return members, relations

    async def build_family_tree(self, tree_id: str) -> FamilyTreeNode:
        """Assemble the tree below the tree's root member.

        Raises:
            TreeNotFoundError: No such tree
            RootNotFoundError: The root member record is gone
            CycleDetectedError: Child edges form a loop
        """
        tree = await asyncio.to_thread(self.repository.get_tree, tree_id)
        members, relations = await self._load_graph(tree_id)
        node = build_tree_node(tree.root_member_id, members, relations)
        logger.info("tree.assembled", tree_id=tree_id, members=len(members), depth=node.depth)
        return node

    async def find_connection(self, tree_id: str, member_a: str, member_b: str) -> list[FamilyMember]:
        """Shortest path of members between ``member_a`` and ``member_b``.

        Returns an empty list when both belong to the tree but are not
        connected.

        Raises:
            TreeNotFoundError: No such tree
            MemberNotInTreeError: Either member is not part of the tree
        """
        await asyncio.to_thread(self.repository.get_tree, tree_id)
        if member_a == member_b:
            members = await asyncio.to_thread(self.repository.list_tree_members, tree_id)
            return find_connection(member_a, member_b, members, [])

        members, relations = await self._load_graph(tree_id)
        path = find_connection(member_a, member_b, members, relations)
        logger.info("connection.searched", tree_id=tree_id, found=bool(path), length=len(path))
        return path

    async def get_tree_statistics(self, tree_id: str, today: date | None = None) -> TreeStatistics:
        """Aggregate counts for one tree.

        Raises:
            TreeNotFoundError: No such tree
        """
        await asyncio.to_thread(self.repository.get_tree, tree_id)
        members, relations = await self._load_graph(tree_id)
        return compute_statistics(members, relations, today=today)

    async def refresh_tree_counts(self, tree_id: str) -> FamilyTree:
        """Rewrite the stored counters from the current member list."""
        tree = await asyncio.to_thread(self.repository.refresh_tree_counts, tree_id)
        logger.info(
            "tree.counts_refreshed",
            tree_id=tree_id,
            member_count=tree.member_count,
            generation_count=tree.generation_count,
        )
        return tree
