"""Family Graph - lineage modelling over a document store.

Members joined by typed, directed relations; nested tree assembly, shortest
connections and tree statistics on top of a pluggable document store.
"""

__version__ = "0.1.0"

from family_graph.assembly import build_tree_node
from family_graph.connection import find_connection
from family_graph.engine import FamilyGraphEngine
from family_graph.models import (
    EventType,
    FamilyEvent,
    FamilyMember,
    FamilyRelation,
    FamilyTree,
    FamilyTreeNode,
    Gender,
    RelationRole,
    RelationType,
    TreeStatistics,
    relation_label,
)
from family_graph.repository import FamilyRepository
from family_graph.statistics import compute_statistics

__all__ = [
    "EventType",
    "FamilyEvent",
    "FamilyGraphEngine",
    "FamilyMember",
    "FamilyRelation",
    "FamilyRepository",
    "FamilyTree",
    "FamilyTreeNode",
    "Gender",
    "RelationRole",
    "RelationType",
    "TreeStatistics",
    "build_tree_node",
    "compute_statistics",
    "find_connection",
    "relation_label",
]
