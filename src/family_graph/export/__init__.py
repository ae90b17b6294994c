"""Renderers for assembled family trees."""
from .json_export import export_json
from .mermaid import export_mermaid

__all__ = ["export_json", "export_mermaid"]
