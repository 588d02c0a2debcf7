from __future__ import annotations

import pytest

from pathplanner.locator import LocateRequest, find_closest_way_id_to_center, locate, locate_with_stats, refine_way_position
from pathplanner.road_graph import GeoCoord, Node, RoadGraph, RoadPosition, Way
from pathplanner.way_oracle import GridWayOracle


def _graph() -> RoadGraph:
    nodes = [
        Node.from_degrees(0, lon=0.100, lat=52.000),
        Node.from_degrees(1, lon=0.101, lat=52.000),
        Node.from_degrees(2, lon=0.102, lat=52.000),
        Node.from_degrees(3, lon=0.101, lat=52.001),
        Node.from_degrees(4, lon=0.101, lat=51.999),
        Node.from_degrees(5, lon=0.105, lat=52.003),
    ]
    ways = [
        Way(id=0, nodes=(0, 1, 2), tags=("highway/residential",)),
        Way(id=1, nodes=(4, 1, 3), tags=("highway/cycleway",)),
        Way(id=2, nodes=(3, 5), tags=("highway/path",)),
    ]
    return RoadGraph.build(nodes, ways)


def _oracle(graph: RoadGraph) -> GridWayOracle:
    return GridWayOracle.from_graph(graph, bucket_deg=0.01, line_width_px=1.0)


def _empty_window(size: int = 11) -> list[list[int | None]]:
    return [[None] * size for _ in range(size)]


class ScaleGatedOracle:
    """Reports ``way_id`` everywhere once the scale has dropped to ``visible_below``."""

    def __init__(self, way_id: int, visible_below: float) -> None:
        self.way_id = way_id
        self.visible_below = visible_below
        self.scales: list[float] = []

    def query(self, window_size: int, center: GeoCoord, scale: float) -> list[list[int | None]]:
        self.scales.append(scale)
        value = self.way_id if scale <= self.visible_below else None
        return [[value] * window_size for _ in range(window_size)]


def test_ring_scan_prefers_center_then_nearest_ring() -> None:
    pixels = _empty_window()
    pixels[0][0] = 8
    pixels[5][7] = 4
    assert find_closest_way_id_to_center(pixels) == 4

    pixels[5][5] = 2
    assert find_closest_way_id_to_center(pixels) == 2
    assert find_closest_way_id_to_center(_empty_window()) is None
    assert find_closest_way_id_to_center([]) is None


def test_ring_scan_tie_order_within_ring() -> None:
    pixels = _empty_window()
    # Both sit on ring 1; at i=4 the bottom row (x=4, y=6) is checked before the right column (x=6, y=4).
    pixels[4][6] = 7
    pixels[6][4] = 9
    assert find_closest_way_id_to_center(pixels) == 9

    pixels[4][4] = 3
    assert find_closest_way_id_to_center(pixels) == 3


def test_refine_picks_closest_tenth_along_segment() -> None:
    graph = _graph()

    position = refine_way_position(graph, 0, GeoCoord(lon=0.1013, lat=52.00002))

    assert position is not None
    assert position.way_id == 0
    assert position.segment_index == 1
    assert position.factor == pytest.approx(0.3)
    assert refine_way_position(graph, 42, GeoCoord(lon=0.1, lat=52.0)) is None


def test_locate_on_node_round_trips_to_node_coordinate() -> None:
    graph = _graph()
    oracle = _oracle(graph)
    request = LocateRequest()

    for node_id in graph.nodes:
        coord = graph.node_coordinate(node_id)
        position = locate(graph, coord, oracle=oracle, request=request)
        assert position is not None
        assert graph.position_coordinate(position) == coord


def test_locate_zooms_out_until_a_way_is_visible() -> None:
    graph = _graph()
    # Roughly 400 m south of the network, so the first windows are empty.
    point = GeoCoord(lon=0.102, lat=51.9955)

    position, queries = locate_with_stats(graph, point, oracle=_oracle(graph), request=LocateRequest())

    assert position is not None
    assert queries > 1
    assert position.way_id in {0, 1}


def test_locate_halves_scale_and_stops_at_floor() -> None:
    graph = _graph()
    oracle = ScaleGatedOracle(way_id=2, visible_below=0.0)

    position, queries = locate_with_stats(
        graph,
        GeoCoord(lon=10.0, lat=10.0),
        oracle=oracle,
        request=LocateRequest(window_size=11, initial_scale=800.0, scale_floor=50.0),
    )

    assert position is None
    assert queries == 4
    assert oracle.scales == [800.0, 400.0, 200.0, 100.0]


def test_locate_refines_way_reported_by_oracle() -> None:
    graph = _graph()
    oracle = ScaleGatedOracle(way_id=2, visible_below=200.0)

    position = locate(
        graph,
        graph.node_coordinate(5),
        oracle=oracle,
        request=LocateRequest(window_size=11, initial_scale=800.0, scale_floor=50.0),
    )

    assert position == RoadPosition(way_id=2, segment_index=0, factor=1.0)
    assert oracle.scales == [800.0, 400.0, 200.0]


def test_grid_oracle_window_shape_and_center_sample() -> None:
    graph = _graph()
    oracle = _oracle(graph)

    window = oracle.query(11, graph.node_coordinate(0), 200_000.0)

    assert len(window) == 11
    assert all(len(row) == 11 for row in window)
    assert window[5][5] == 0
    # A far-away point sees nothing at high zoom.
    assert all(v is None for row in oracle.query(11, GeoCoord(lon=1.0, lat=50.0), 200_000.0) for v in row)


def test_grid_oracle_resolves_overlap_to_lowest_way_id() -> None:
    nodes = [Node.from_degrees(0, lon=0.1, lat=52.0), Node.from_degrees(1, lon=0.101, lat=52.0)]
    graph = RoadGraph.build(nodes, [Way(id=7, nodes=(0, 1)), Way(id=3, nodes=(1, 0))])

    window = _oracle(graph).query(11, graph.node_coordinate(0), 200_000.0)

    assert window[5][5] == 3


def test_grid_oracle_rejects_bad_parameters() -> None:
    oracle = _oracle(_graph())

    with pytest.raises(ValueError):
        oracle.query(0, GeoCoord(lon=0.1, lat=52.0), 100.0)
    with pytest.raises(ValueError):
        oracle.query(11, GeoCoord(lon=0.1, lat=52.0), 0.0)
    assert oracle.segment_count == 5
