from __future__ import annotations

import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

import pathplanner.graph_loader as graph_loader
import pathplanner.main as main_module
from pathplanner.graph_loader import load_road_graph
from pathplanner.main import app, build_road_network, road_network
from pathplanner.road_graph import Node, RoadGraph, Way


def _graph() -> RoadGraph:
    nodes = [
        Node.from_degrees(0, lon=0.100, lat=52.000),
        Node.from_degrees(1, lon=0.101, lat=52.000),
        Node.from_degrees(2, lon=0.102, lat=52.000),
        Node.from_degrees(3, lon=0.102, lat=52.001),
        Node.from_degrees(4, lon=0.200, lat=52.100),
        Node.from_degrees(5, lon=0.201, lat=52.100),
    ]
    ways = [
        Way(id=0, nodes=(0, 1, 2), tags=("highway/residential",)),
        Way(id=1, nodes=(3, 2), tags=("highway/cycleway", "bicycle/designated")),
        Way(id=2, nodes=(4, 5), tags=("highway/footway",)),
    ]
    return RoadGraph.build(nodes, ways)


@pytest.fixture
def client():
    network = build_road_network(_graph())
    app.dependency_overrides[road_network] = lambda: network
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _position(way_id: int, segment_index: int, factor: float = 0.0) -> dict[str, object]:
    return {"way_id": way_id, "segment_index": segment_index, "factor": factor}


def test_health_and_root(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/").json()["docs"] == "/docs"


def test_locate_returns_position_coordinate_and_tags(client: TestClient) -> None:
    resp = client.post("/locate", json={"point": {"lon": 0.102, "lat": 52.001}})

    assert resp.status_code == 200
    body = resp.json()
    assert body["position"] == _position(1, 0, 0.0)
    assert body["coordinate"] == {"lon": 0.102, "lat": 52.001}
    assert body["tags"] == ["highway/cycleway", "bicycle/designated"]
    assert body["oracle_queries"] == 1


def test_locate_far_from_network_is_not_an_error(client: TestClient) -> None:
    resp = client.post("/locate", json={"point": {"lon": 20.0, "lat": -30.0}, "initial_scale": 1000.0})

    assert resp.status_code == 200
    body = resp.json()
    assert body["position"] is None
    assert body["oracle_queries"] == 5


def test_route_between_positions(client: TestClient) -> None:
    resp = client.post("/route", json={"start": _position(0, 0), "end": _position(1, 0), "node_budget": 100})

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "found"
    # Target first, start last.
    assert body["coordinates"][0] == [0.102, 52.001]
    assert body["coordinates"][-1] == [0.1, 52.0]
    assert len(body["coordinates"]) == 4
    assert body["cost_m"] > 0


def test_route_frontier_and_no_path(client: TestClient) -> None:
    frontier = client.post("/route", json={"start": _position(0, 0), "end": _position(2, 0), "mode": "frontier"}).json()
    shortest = client.post("/route", json={"start": _position(0, 0), "end": _position(2, 0)}).json()

    assert frontier["status"] == "no_path"
    assert len(frontier["coordinates"]) == 4
    assert shortest["status"] == "no_path"
    assert shortest["coordinates"] is None


def test_route_budget_exceeded_and_limits(client: TestClient, monkeypatch) -> None:
    resp = client.post("/route", json={"start": _position(0, 0), "end": _position(1, 0), "node_budget": 1})
    assert resp.json()["status"] == "budget_exceeded"

    monkeypatch.setattr(main_module.settings, "planner_max_node_budget", 10)
    too_big = client.post("/route", json={"start": _position(0, 0), "end": _position(1, 0), "node_budget": 11})
    assert too_big.status_code == 422
    assert too_big.json()["detail"]["reason_code"] == "node_budget_invalid"

    assert client.post("/route", json={"start": _position(0, 0), "end": _position(1, 0), "node_budget": 0}).status_code == 422


def test_route_rejects_unknown_position(client: TestClient) -> None:
    resp = client.post("/route", json={"start": _position(0, 5), "end": _position(1, 0)})

    assert resp.status_code == 422
    assert resp.json()["detail"]["reason_code"] == "road_position_invalid"


def test_route_points_locates_then_plans(client: TestClient) -> None:
    resp = client.post(
        "/route/points",
        json={"start": {"lon": 0.1, "lat": 52.0}, "end": {"lon": 0.102, "lat": 52.001}, "node_budget": 100},
    )

    body = resp.json()
    assert body["status"] == "found"
    assert body["start"] == _position(0, 0, 0.0)
    assert body["end"] == _position(1, 0, 0.0)


def test_route_points_reports_point_far_from_every_way(client: TestClient) -> None:
    resp = client.post(
        "/route/points",
        json={"start": {"lon": 0.1, "lat": 52.0}, "end": {"lon": 120.0, "lat": -40.0}, "initial_scale": 1000.0},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "unlocated"
    assert body["coordinates"] is None
    assert body["start"] == _position(0, 0, 0.0)
    assert body["end"] is None
    assert body["expanded_nodes"] == 0


def test_way_lookup_and_search(client: TestClient) -> None:
    way = client.get("/ways/1").json()
    assert way["tags"] == ["highway/cycleway", "bicycle/designated"]
    assert way["coordinates"] == [[0.102, 52.001], [0.102, 52.0]]
    assert client.get("/ways/99").status_code == 404

    assert client.get("/ways", params={"pattern": "^highway/(cycle|foot)way$"}).json()["way_ids"] == [1, 2]
    assert client.get("/ways", params={"pattern": "("}).status_code == 422


def test_endpoints_report_unloaded_graph() -> None:
    client = TestClient(app)

    assert client.post("/locate", json={"point": {"lon": 0.1, "lat": 52.0}}).status_code == 503
    status = client.get("/graph/status").json()
    assert status["ok"] is False


def test_lifespan_loads_configured_graph(monkeypatch, tmp_path: Path) -> None:
    asset = tmp_path / "data.json"
    asset.write_text(
        json.dumps(
            {
                "nodes": [{"lat": 520000000, "long": 1000000}, {"lat": 520000000, "long": 1010000}],
                "ways": [{"tags": ["highway/primary"], "nodes": [0, 1]}],
            }
        ),
        encoding="utf-8",
    )
    monkeypatch.setattr(graph_loader.settings, "graph_asset_path", str(asset))
    load_road_graph.cache_clear()
    try:
        with TestClient(app) as client:
            status = client.get("/graph/status").json()
            assert status == {"ok": True, "reason": "ok", "node_count": 2, "way_count": 1}
            assert client.get("/ways/0").json()["tags"] == ["highway/primary"]
    finally:
        app.state.network = None
        app.state.graph_error = None
        load_road_graph.cache_clear()


def test_lifespan_reports_missing_asset(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(graph_loader.settings, "graph_asset_path", str(tmp_path / "missing.json"))
    load_road_graph.cache_clear()
    try:
        with TestClient(app) as client:
            assert client.get("/graph/status").json() == {
                "ok": False,
                "reason": "graph_asset_unavailable",
                "node_count": 0,
                "way_count": 0,
            }
            assert client.get("/health").json() == {"status": "ok"}
            assert client.post("/route", json={"start": _position(0, 0), "end": _position(1, 0)}).status_code == 503
    finally:
        app.state.network = None
        app.state.graph_error = None
        load_road_graph.cache_clear()
