from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Sequence

from pathplanner.graph_loader import load_road_graph_from_path
from pathplanner.locator import LocateRequest, locate
from pathplanner.planner import PlanMode, plan
from pathplanner.road_graph import GeoCoord, RoadPosition
from pathplanner.settings import settings
from pathplanner.way_oracle import GridWayOracle


def _parse_lon_lat(raw: str) -> GeoCoord:
    parts = [part.strip() for part in raw.split(",")]
    if len(parts) != 2:
        raise argparse.ArgumentTypeError(f"expected LON,LAT, got {raw!r}")
    try:
        lon, lat = float(parts[0]), float(parts[1])
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected LON,LAT, got {raw!r}") from exc
    if not (-180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0):
        raise argparse.ArgumentTypeError(f"coordinate out of range: {raw!r}")
    return GeoCoord(lon=lon, lat=lat)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Snap two coordinates to the road graph and plan a route between them."
    )
    parser.add_argument("--graph", default=settings.graph_asset_path)
    parser.add_argument("--start", type=_parse_lon_lat, required=True, help="LON,LAT")
    parser.add_argument("--end", type=_parse_lon_lat, required=True, help="LON,LAT")
    parser.add_argument("--mode", choices=[mode.value for mode in PlanMode], default=PlanMode.SHORTEST.value)
    parser.add_argument("--node-budget", type=int, default=settings.planner_default_node_budget)
    parser.add_argument("--initial-scale", type=float, default=settings.locator_initial_scale)
    parser.add_argument("--output", default=None)
    return parser


def run_plan_route(args: argparse.Namespace) -> dict[str, Any]:
    graph = load_road_graph_from_path(Path(args.graph))
    oracle = GridWayOracle.from_graph(
        graph,
        bucket_deg=float(settings.locator_grid_bucket_deg),
        line_width_px=float(settings.locator_line_width_px),
    )
    request = LocateRequest.from_settings(initial_scale=args.initial_scale)
    start = locate(graph, args.start, oracle=oracle, request=request)
    end = locate(graph, args.end, oracle=oracle, request=request)
    summary: dict[str, Any] = {
        "graph": str(args.graph),
        "mode": args.mode,
        "node_budget": int(args.node_budget),
        "start_position": None if start is None else _position_payload(start),
        "end_position": None if end is None else _position_payload(end),
    }
    if start is None or end is None:
        summary["status"] = "unlocated"
        summary["coordinates"] = None
        return summary

    result = plan(graph, start, end, mode=PlanMode(args.mode), node_budget=int(args.node_budget))
    summary.update(
        {
            "status": result.status.value,
            "cost_m": result.cost_m,
            "expanded_nodes": result.expanded_nodes,
            "scored_nodes": result.scored_nodes,
            "coordinates": (
                None
                if result.coordinates is None
                else [[coord.lon, coord.lat] for coord in result.coordinates]
            ),
        }
    )
    return summary


def _position_payload(position: RoadPosition) -> dict[str, Any]:
    return {
        "way_id": position.way_id,
        "segment_index": position.segment_index,
        "factor": position.factor,
    }


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    summary = run_plan_route(args)
    payload = json.dumps(summary, indent=2)
    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(payload + "\n", encoding="utf-8")
    else:
        print(payload)
    return 1 if summary["status"] == "unlocated" else 0


if __name__ == "__main__":
    sys.exit(main())
