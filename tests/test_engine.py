"""End-to-end tests for FamilyGraphEngine over both store backends."""
from __future__ import annotations

from datetime import date

import pytest

from family_graph.engine import FamilyGraphEngine
from family_graph.exceptions import (
    CycleDetectedError,
    MemberNotInTreeError,
    RootNotFoundError,
    TreeNotFoundError,
)
from family_graph.models import RelationType
from family_graph.repository import MEMBERS, FamilyRepository
from family_graph.store import DeleteWrite

from conftest import make_member


@pytest.fixture
def rao_family(any_store):
    """The Rao Family: Venkat, his wife Lakshmi and their son Arjun."""
    repository = FamilyRepository(any_store)
    tree_id = repository.create_tree(
        "Rao Family",
        None,
        make_member("Venkat", date_of_birth=date(1960, 1, 1)),
        owner_id="user-1",
    )
    venkat = repository.get_tree(tree_id).root_member_id
    lakshmi = repository.add_member(
        make_member("Lakshmi", family_tree_id=tree_id, date_of_birth=date(1964, 1, 1)),
        parent_id=venkat,
        relation_type=RelationType.SPOUSE,
    )
    arjun = repository.add_member(
        make_member("Arjun", family_tree_id=tree_id, generation=1),
        parent_id=venkat,
        relation_type=RelationType.SON,
    )
    return {
        "engine": FamilyGraphEngine(repository),
        "repository": repository,
        "store": any_store,
        "tree_id": tree_id,
        "venkat": venkat,
        "lakshmi": lakshmi,
        "arjun": arjun,
    }


class TestRaoFamily:
    """The reference scenario: one couple and a son."""

    @pytest.mark.asyncio
    async def test_build_family_tree(self, rao_family):
        """Test the assembled tree around Venkat."""
        node = await rao_family["engine"].build_family_tree(rao_family["tree_id"])

        assert node.member.id == rao_family["venkat"]
        assert node.spouse.display_name == "Lakshmi Rao"
        assert [c.member.id for c in node.children] == [rao_family["arjun"]]
        assert node.children[0].member.display_name == "Arjun Rao"

    @pytest.mark.asyncio
    async def test_statistics(self, rao_family):
        """Test the tree figures."""
        stats = await rao_family["engine"].get_tree_statistics(rao_family["tree_id"], today=date(2026, 1, 1))

        assert stats.total_members == 3
        assert stats.generations == 2
        assert stats.marriages == 1
        assert stats.living_members == 3
        assert stats.average_age == 64

    @pytest.mark.asyncio
    async def test_connection_through_spouse_and_son(self, rao_family):
        """Test Lakshmi reaches Arjun via Venkat."""
        path = await rao_family["engine"].find_connection(
            rao_family["tree_id"], rao_family["lakshmi"], rao_family["arjun"]
        )

        assert [m.id for m in path] == [rao_family["lakshmi"], rao_family["venkat"], rao_family["arjun"]]

    @pytest.mark.asyncio
    async def test_connection_to_self(self, rao_family):
        """Test the single-member path."""
        path = await rao_family["engine"].find_connection(
            rao_family["tree_id"], rao_family["arjun"], rao_family["arjun"]
        )

        assert [m.display_name for m in path] == ["Arjun Rao"]

    @pytest.mark.asyncio
    async def test_connection_to_member_of_other_tree(self, rao_family):
        """Test members outside the tree are rejected."""
        repository = rao_family["repository"]
        other = repository.create_tree("Iyer Family", None, make_member("Meera", last_name="Iyer"), owner_id="user-2")
        meera = repository.get_tree(other).root_member_id

        with pytest.raises(MemberNotInTreeError):
            await rao_family["engine"].find_connection(rao_family["tree_id"], rao_family["venkat"], meera)

    @pytest.mark.asyncio
    async def test_connection_after_member_deleted(self, rao_family):
        """Test a deleted member no longer links the others."""
        rao_family["repository"].delete_member(rao_family["lakshmi"])
        path = await rao_family["engine"].find_connection(
            rao_family["tree_id"], rao_family["venkat"], rao_family["arjun"]
        )

        assert len(path) == 2

    @pytest.mark.asyncio
    async def test_refresh_tree_counts(self, rao_family):
        """Test counters recomputed from stored members."""
        tree = await rao_family["engine"].refresh_tree_counts(rao_family["tree_id"])

        assert tree.member_count == 3
        assert tree.generation_count == 2


class TestEngineErrors:
    """Failure paths of the engine."""

    @pytest.mark.asyncio
    async def test_unknown_tree(self, repository):
        """Test building a missing tree."""
        with pytest.raises(TreeNotFoundError):
            await FamilyGraphEngine(repository).build_family_tree("nope")

    @pytest.mark.asyncio
    async def test_unknown_tree_statistics(self, repository):
        """Test statistics for a missing tree."""
        with pytest.raises(TreeNotFoundError):
            await FamilyGraphEngine(repository).get_tree_statistics("nope")

    @pytest.mark.asyncio
    async def test_unknown_tree_connection(self, repository):
        """Test connection search in a missing tree."""
        engine = FamilyGraphEngine(repository)
        with pytest.raises(TreeNotFoundError):
            await engine.find_connection("nope", "a", "b")
        with pytest.raises(TreeNotFoundError):
            await engine.find_connection("nope", "a", "a")

    @pytest.mark.asyncio
    async def test_root_record_missing(self, rao_family):
        """Test a tree whose root document vanished."""
        rao_family["store"].commit([DeleteWrite(MEMBERS, rao_family["venkat"])])

        with pytest.raises(RootNotFoundError):
            await rao_family["engine"].build_family_tree(rao_family["tree_id"])

    @pytest.mark.asyncio
    async def test_cycle_surfaces(self, rao_family):
        """Test a child-edge cycle written by hand is reported."""
        repository = rao_family["repository"]
        repository.create_relation(
            rao_family["tree_id"], rao_family["arjun"], rao_family["venkat"], RelationType.SON, "user-1"
        )

        with pytest.raises(CycleDetectedError):
            await rao_family["engine"].build_family_tree(rao_family["tree_id"])
