from __future__ import annotations

from family_graph.models import FamilyTreeNode


def export_json(node: FamilyTreeNode, indent: int = 2) -> str:
    """Serialize an assembled tree, nested children included."""
    return node.model_dump_json(indent=indent)
