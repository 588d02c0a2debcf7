from __future__ import annotations

import math
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from .graph_errors import GraphDataError
from .logging_utils import log_event

EARTH_RADIUS_M = 6_371_000.0
METERS_PER_DEGREE = EARTH_RADIUS_M * math.pi / 180.0

# Coordinates are stored in decimicro-degrees (1 unit = 1e-7 degree).
DECIMICRO_PER_DEGREE = 10_000_000
_MAX_LON_E7 = 180 * DECIMICRO_PER_DEGREE
_MAX_LAT_E7 = 90 * DECIMICRO_PER_DEGREE


@dataclass(frozen=True)
class GeoCoord:
    lon: float
    lat: float


@dataclass(frozen=True)
class Node:
    id: int
    lon_e7: int
    lat_e7: int

    @classmethod
    def from_degrees(cls, node_id: int, *, lon: float, lat: float) -> "Node":
        return cls(id=node_id, lon_e7=decimicro_from_degrees(lon), lat_e7=decimicro_from_degrees(lat))

    @property
    def coord(self) -> GeoCoord:
        return GeoCoord(lon=self.lon_e7 / DECIMICRO_PER_DEGREE, lat=self.lat_e7 / DECIMICRO_PER_DEGREE)


@dataclass(frozen=True)
class Way:
    id: int
    nodes: tuple[int, ...]
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class RoadPosition:
    """A point on a way: ``factor`` interpolates between ``nodes[segment_index]`` and the next node."""

    way_id: int
    segment_index: int
    factor: float


def decimicro_from_degrees(value: float) -> int:
    return int(round(float(value) * DECIMICRO_PER_DEGREE))


def distance(a: Node, b: Node) -> float:
    """Planar distance in metres between two nodes.

    The longitude delta is scaled by cos of the mean latitude before taking the
    Euclidean norm. Fine for regional road networks, wrong near the poles and
    over long distances.
    """
    mean_lat_rad = math.radians((a.lat_e7 + b.lat_e7) / 2.0 / DECIMICRO_PER_DEGREE)
    lon_deg = (b.lon_e7 - a.lon_e7) / DECIMICRO_PER_DEGREE * math.cos(mean_lat_rad)
    lat_deg = (b.lat_e7 - a.lat_e7) / DECIMICRO_PER_DEGREE
    return math.hypot(lon_deg, lat_deg) * METERS_PER_DEGREE


def coord_distance(a: GeoCoord, b: GeoCoord) -> float:
    mean_lat_rad = math.radians((a.lat + b.lat) / 2.0)
    lon_deg = (b.lon - a.lon) * math.cos(mean_lat_rad)
    return math.hypot(lon_deg, b.lat - a.lat) * METERS_PER_DEGREE


class RoadGraph:
    """Read-only road network: nodes, ways and the node -> (way, position) index."""

    def __init__(
        self,
        nodes: dict[int, Node],
        ways: dict[int, Way],
        adjacency: dict[int, tuple[tuple[int, int], ...]],
    ) -> None:
        self._nodes = nodes
        self._ways = ways
        self._adjacency = adjacency

    @classmethod
    def build(cls, nodes: Iterable[Node], ways: Iterable[Way]) -> "RoadGraph":
        node_map: dict[int, Node] = {}
        for node in nodes:
            if node.id in node_map:
                raise GraphDataError(
                    reason_code="graph_duplicate_id",
                    message=f"duplicate node id {node.id}",
                    details={"node_id": node.id},
                )
            if abs(node.lon_e7) > _MAX_LON_E7 or abs(node.lat_e7) > _MAX_LAT_E7:
                raise GraphDataError(
                    reason_code="graph_coordinate_out_of_range",
                    message=f"node {node.id} has coordinate outside the valid range",
                    details={"node_id": node.id, "lon_e7": node.lon_e7, "lat_e7": node.lat_e7},
                )
            node_map[node.id] = node

        way_map: dict[int, Way] = {}
        adjacency_mut: dict[int, list[tuple[int, int]]] = {}
        for way in ways:
            if way.id in way_map:
                raise GraphDataError(
                    reason_code="graph_duplicate_id",
                    message=f"duplicate way id {way.id}",
                    details={"way_id": way.id},
                )
            if len(way.nodes) < 2:
                raise GraphDataError(
                    reason_code="graph_degenerate_way",
                    message=f"way {way.id} has {len(way.nodes)} node(s), need at least 2",
                    details={"way_id": way.id, "node_count": len(way.nodes)},
                )
            for position, node_id in enumerate(way.nodes):
                if node_id not in node_map:
                    raise GraphDataError(
                        reason_code="graph_dangling_node_ref",
                        message=f"way {way.id} references missing node {node_id}",
                        details={"way_id": way.id, "node_id": node_id, "position": position},
                    )
                adjacency_mut.setdefault(node_id, []).append((way.id, position))
            way_map[way.id] = way

        graph = cls(
            nodes=node_map,
            ways=way_map,
            adjacency={node_id: tuple(entries) for node_id, entries in adjacency_mut.items()},
        )
        log_event("road_graph_built", **graph.stats())
        return graph

    # -- read accessors ---------------------------------------------------

    @property
    def nodes(self) -> dict[int, Node]:
        return self._nodes

    @property
    def ways(self) -> dict[int, Way]:
        return self._ways

    def node(self, node_id: int) -> Node:
        return self._nodes[node_id]

    def way(self, way_id: int) -> Way:
        return self._ways[way_id]

    def node_coordinate(self, node_id: int) -> GeoCoord:
        return self._nodes[node_id].coord

    def way_tags(self, way_id: int) -> tuple[str, ...]:
        way = self._ways.get(way_id)
        return way.tags if way is not None else ()

    def way_coordinates(self, way_id: int) -> tuple[GeoCoord, ...]:
        return tuple(self._nodes[node_id].coord for node_id in self._ways[way_id].nodes)

    def adjacency(self, node_id: int) -> tuple[tuple[int, int], ...]:
        return self._adjacency.get(node_id, ())

    def ways_matching(self, pattern: str) -> tuple[int, ...]:
        regex = re.compile(pattern)
        return tuple(
            way_id
            for way_id, way in self._ways.items()
            if any(regex.search(tag) for tag in way.tags)
        )

    def stats(self) -> dict[str, Any]:
        return {
            "node_count": len(self._nodes),
            "way_count": len(self._ways),
            "indexed_nodes": len(self._adjacency),
        }

    # -- topology ---------------------------------------------------------

    def iter_neighbors(self, node_id: int) -> Iterator[int]:
        # Next node then previous node for each occurrence; duplicates dropped.
        seen: set[int] = set()
        for way_id, position in self._adjacency.get(node_id, ()):
            way_nodes = self._ways[way_id].nodes
            if position + 1 < len(way_nodes):
                nxt = way_nodes[position + 1]
                if nxt not in seen:
                    seen.add(nxt)
                    yield nxt
            if position > 0:
                prev = way_nodes[position - 1]
                if prev not in seen:
                    seen.add(prev)
                    yield prev

    def neighbors(self, node_id: int) -> frozenset[int]:
        return frozenset(self.iter_neighbors(node_id))

    def node_distance(self, a: int, b: int) -> float:
        return distance(self._nodes[a], self._nodes[b])

    # -- road positions ---------------------------------------------------

    def validate_position(self, position: RoadPosition) -> None:
        way = self._ways.get(position.way_id)
        if way is None:
            raise GraphDataError(
                reason_code="road_position_invalid",
                message=f"unknown way id {position.way_id}",
                details={"way_id": position.way_id},
            )
        if not 0 <= position.segment_index < len(way.nodes) - 1:
            raise GraphDataError(
                reason_code="road_position_invalid",
                message=f"segment {position.segment_index} out of range for way {way.id}",
                details={"way_id": way.id, "segment_index": position.segment_index},
            )
        if not 0.0 <= position.factor <= 1.0:
            raise GraphDataError(
                reason_code="road_position_invalid",
                message=f"factor {position.factor} outside [0, 1]",
                details={"factor": position.factor},
            )

    def position_node(self, position: RoadPosition) -> int:
        """Snap a position to the first node of its segment; the factor is discarded."""
        self.validate_position(position)
        return self._ways[position.way_id].nodes[position.segment_index]

    def position_coordinate(self, position: RoadPosition) -> GeoCoord:
        self.validate_position(position)
        way_nodes = self._ways[position.way_id].nodes
        n1 = self._nodes[way_nodes[position.segment_index]]
        n2 = self._nodes[way_nodes[position.segment_index + 1]]
        # Interpolate in decimicro space so factor 0 and 1 land exactly on the nodes.
        lon_e7 = (n2.lon_e7 - n1.lon_e7) * position.factor + n1.lon_e7
        lat_e7 = (n2.lat_e7 - n1.lat_e7) * position.factor + n1.lat_e7
        return GeoCoord(lon=lon_e7 / DECIMICRO_PER_DEGREE, lat=lat_e7 / DECIMICRO_PER_DEGREE)
