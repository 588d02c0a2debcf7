from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from .logging_utils import log_event
from .road_graph import DECIMICRO_PER_DEGREE, GeoCoord, RoadGraph, RoadPosition, coord_distance
from .settings import settings
from .way_oracle import WayOracle

# Each segment is sampled at factor 0.0, 0.1, ..., 1.0.
SEGMENT_SAMPLE_STEPS = 10


@dataclass(frozen=True)
class LocateRequest:
    window_size: int = 11
    initial_scale: float = 200_000.0
    scale_floor: float = 50.0

    @classmethod
    def from_settings(cls, *, initial_scale: float | None = None) -> "LocateRequest":
        return cls(
            window_size=int(settings.locator_window_size),
            initial_scale=float(initial_scale if initial_scale is not None else settings.locator_initial_scale),
            scale_floor=float(settings.locator_scale_floor),
        )


def find_closest_way_id_to_center(pixels: Sequence[Sequence[int | None]]) -> int | None:
    """Scan concentric square rings outward from the centre sample.

    Within ring ``dist`` the scan walks ``i`` from the low edge to the high
    edge, checking the top row, bottom row, left column and right column at
    ``i`` in that order. The first way id found wins.
    """
    size = len(pixels)
    if size == 0:
        return None
    center = size // 2
    for dist in range(center + 1):
        lower = center - dist
        higher = center + dist
        for i in range(lower, higher + 1):
            for x, y in ((i, lower), (i, higher), (lower, i), (higher, i)):
                way_id = pixels[y][x]
                if way_id is not None:
                    return way_id
    return None


def refine_way_position(graph: RoadGraph, way_id: int, point: GeoCoord) -> RoadPosition | None:
    # Walk the way in 10% chunks and keep the closest sample.
    way = graph.ways.get(way_id)
    if way is None or len(way.nodes) < 2:
        return None

    best_dist = math.inf
    best_segment = 0
    best_factor = 0.0
    for segment_index, (n1_id, n2_id) in enumerate(zip(way.nodes, way.nodes[1:])):
        n1 = graph.node(n1_id)
        n2 = graph.node(n2_id)
        for step in range(SEGMENT_SAMPLE_STEPS + 1):
            factor = step / SEGMENT_SAMPLE_STEPS
            sample = GeoCoord(
                lon=((n2.lon_e7 - n1.lon_e7) * factor + n1.lon_e7) / DECIMICRO_PER_DEGREE,
                lat=((n2.lat_e7 - n1.lat_e7) * factor + n1.lat_e7) / DECIMICRO_PER_DEGREE,
            )
            dist = coord_distance(sample, point)
            if dist < best_dist:
                best_dist = dist
                best_segment = segment_index
                best_factor = factor
    return RoadPosition(way_id=way_id, segment_index=best_segment, factor=best_factor)


def locate_with_stats(
    graph: RoadGraph,
    point: GeoCoord,
    *,
    oracle: WayOracle,
    request: LocateRequest,
) -> tuple[RoadPosition | None, int]:
    scale = float(request.initial_scale)
    queries = 0
    position: RoadPosition | None = None
    # NOTE: the farther we zoom out, the less accurate the candidate way becomes.
    while scale > request.scale_floor:
        pixels = oracle.query(request.window_size, point, scale)
        queries += 1
        way_id = find_closest_way_id_to_center(pixels)
        if way_id is not None:
            position = refine_way_position(graph, way_id, point)
            if position is not None:
                break
        scale /= 2.0
    log_event(
        "locate_completed",
        lon=point.lon,
        lat=point.lat,
        oracle_queries=queries,
        found=position is not None,
        final_scale=scale,
    )
    return position, queries


def locate(
    graph: RoadGraph,
    point: GeoCoord,
    *,
    oracle: WayOracle,
    request: LocateRequest,
) -> RoadPosition | None:
    position, _queries = locate_with_stats(graph, point, oracle=oracle, request=request)
    return position
