from __future__ import annotations

from family_graph.models import FamilyMember, FamilyTreeNode


def export_mermaid(node: FamilyTreeNode) -> str:
    """Render an assembled tree as a mermaid flowchart (TD).

    Parents point to children with ``-->``; spouses are joined with ``---``.
    A member reached through two parents is declared once.
    """
    names: dict[str, str] = {}
    edges: list[str] = []

    def declare(member: FamilyMember) -> str:
        nid = _node_id(member.id or member.display_name)
        names.setdefault(nid, member.display_name)
        return nid

    def walk(current: FamilyTreeNode) -> None:
        parent = declare(current.member)
        if current.spouse is not None:
            _add(edges, f"  {parent} --- {declare(current.spouse)}")
        for child in current.children:
            _add(edges, f"  {parent} --> {declare(child.member)}")
            walk(child)

    walk(node)

    lines = ["flowchart TD"]
    for nid, name in names.items():
        label = name.replace('"', "'")
        lines.append(f"  {nid}[\"{label}\"]")
    lines.extend(edges)
    return "\n".join(lines)


def _add(edges: list[str], line: str) -> None:
    if line not in edges:
        edges.append(line)


def _node_id(key: str) -> str:
    # Generate a mermaid-safe identifier
    return "N_" + "".join(ch if ch.isalnum() else "_" for ch in key)[:60]
