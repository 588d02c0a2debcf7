from __future__ import annotations

from dataclasses import dataclass
from typing import Any

FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        "graph_asset_unavailable",
        "graph_asset_invalid",
        "graph_dangling_node_ref",
        "graph_degenerate_way",
        "graph_duplicate_id",
        "graph_coordinate_out_of_range",
        "road_position_invalid",
        "node_budget_invalid",
    }
)


@dataclass
class GraphDataError(ValueError):
    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


def normalize_reason_code(reason_code: str, *, default: str = "graph_asset_invalid") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default
