from __future__ import annotations

import os
from dataclasses import dataclass

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _s(name: str, default: str) -> str:
    return os.getenv(name) or default


def _i(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class EngineConfig:
    db_path: str = "./data/family_graph.db"
    # Writes per atomic batch; larger tree deletions are split
    batch_limit: int = 500
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> EngineConfig:
        level = _s("FAMILY_GRAPH_LOG_LEVEL", cls.log_level).upper()
        return cls(
            db_path=_s("FAMILY_GRAPH_DB_PATH", cls.db_path),
            batch_limit=max(1, _i("FAMILY_GRAPH_BATCH_LIMIT", cls.batch_limit)),
            log_level=level if level in _LOG_LEVELS else cls.log_level,
        )
