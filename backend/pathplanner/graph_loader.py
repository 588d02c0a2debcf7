from __future__ import annotations

import logging
import time
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

import ijson

from .graph_errors import GraphDataError
from .logging_utils import log_event
from .road_graph import Node, RoadGraph, Way
from .settings import settings


def _graph_asset_path() -> Path:
    return Path(settings.graph_asset_path)


def _as_int(raw: object, *, field: str, index: int, kind: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str, Decimal)):
        raise GraphDataError(
            reason_code="graph_asset_invalid",
            message=f"{kind} {index} has non-numeric {field!r}",
            details={"kind": kind, "index": index, "field": field},
        )
    try:
        value = Decimal(str(raw))
    except ArithmeticError as exc:
        raise GraphDataError(
            reason_code="graph_asset_invalid",
            message=f"{kind} {index} has non-numeric {field!r}",
            details={"kind": kind, "index": index, "field": field},
        ) from exc
    if value != value.to_integral_value():
        raise GraphDataError(
            reason_code="graph_asset_invalid",
            message=f"{kind} {index} has fractional {field!r}",
            details={"kind": kind, "index": index, "field": field},
        )
    return int(value)


def _parse_node(raw: object, index: int) -> Node:
    """Nodes are ``{"lat": <e7>, "long": <e7>}``; ``lon`` and ``id`` are optional aliases."""
    if not isinstance(raw, dict):
        raise GraphDataError(
            reason_code="graph_asset_invalid",
            message=f"node {index} is not an object",
            details={"kind": "node", "index": index},
        )
    lon_raw = raw.get("long", raw.get("lon"))
    lat_raw = raw.get("lat")
    if lon_raw is None or lat_raw is None:
        raise GraphDataError(
            reason_code="graph_asset_invalid",
            message=f"node {index} is missing lat/long",
            details={"kind": "node", "index": index},
        )
    node_id = _as_int(raw.get("id", index), field="id", index=index, kind="node")
    return Node(
        id=node_id,
        lon_e7=_as_int(lon_raw, field="long", index=index, kind="node"),
        lat_e7=_as_int(lat_raw, field="lat", index=index, kind="node"),
    )


def _parse_way(raw: object, index: int) -> Way:
    if not isinstance(raw, dict):
        raise GraphDataError(
            reason_code="graph_asset_invalid",
            message=f"way {index} is not an object",
            details={"kind": "way", "index": index},
        )
    node_refs = raw.get("nodes")
    if not isinstance(node_refs, list):
        raise GraphDataError(
            reason_code="graph_asset_invalid",
            message=f"way {index} has no node list",
            details={"kind": "way", "index": index},
        )
    tags_raw = raw.get("tags") or []
    if not isinstance(tags_raw, list):
        raise GraphDataError(
            reason_code="graph_asset_invalid",
            message=f"way {index} tags must be a list",
            details={"kind": "way", "index": index},
        )
    return Way(
        id=_as_int(raw.get("id", index), field="id", index=index, kind="way"),
        nodes=tuple(_as_int(ref, field="nodes", index=index, kind="way") for ref in node_refs),
        tags=tuple(str(tag) for tag in tags_raw),
    )


def _stream_items(path: Path, prefix: str) -> list[object]:
    try:
        with path.open("rb") as fh:
            return list(ijson.items(fh, prefix))
    except ijson.JSONError as exc:
        raise GraphDataError(
            reason_code="graph_asset_invalid",
            message=f"graph asset is not valid JSON: {exc}",
            details={"graph_path": str(path), "section": prefix},
        ) from exc


def load_road_graph_from_path(path: Path) -> RoadGraph:
    if not path.exists():
        raise GraphDataError(
            reason_code="graph_asset_unavailable",
            message=f"graph asset not found: {path}",
            details={"graph_path": str(path)},
        )
    started = time.monotonic()
    nodes = [_parse_node(raw, index) for index, raw in enumerate(_stream_items(path, "nodes.item"))]
    if not nodes:
        raise GraphDataError(
            reason_code="graph_asset_invalid",
            message="graph asset contains no nodes",
            details={"graph_path": str(path)},
        )
    ways = [_parse_way(raw, index) for index, raw in enumerate(_stream_items(path, "ways.item"))]
    graph = RoadGraph.build(nodes, ways)
    log_event(
        "road_graph_loaded",
        graph_path=str(path),
        elapsed_ms=round((time.monotonic() - started) * 1000.0, 2),
        **graph.stats(),
    )
    return graph


@lru_cache(maxsize=1)
def load_road_graph() -> RoadGraph:
    path = _graph_asset_path()
    try:
        return load_road_graph_from_path(path)
    except GraphDataError as exc:
        log_event(
            "road_graph_load_failed",
            level=logging.WARNING,
            graph_path=str(path),
            reason_code=exc.reason_code,
            error=exc.message,
        )
        raise


def road_graph_status() -> tuple[bool, str]:
    try:
        load_road_graph()
    except GraphDataError as exc:
        return False, exc.reason_code
    return True, "ok"

