from __future__ import annotations

import re
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from .graph_errors import GraphDataError
from .graph_loader import load_road_graph, road_graph_status
from .locator import LocateRequest, locate_with_stats
from .logging_utils import log_event
from .models import (
    GraphStatusResponse,
    LocateRequestBody,
    LocateResponse,
    LonLat,
    PointRouteRequest,
    RoadPositionModel,
    RouteRequest,
    RouteResponse,
    WayResponse,
    WaySearchResponse,
)
from .planner import PlanMode, plan
from .road_graph import RoadGraph
from .settings import settings
from .way_oracle import GridWayOracle, WayOracle


@dataclass(frozen=True)
class RoadNetwork:
    graph: RoadGraph
    oracle: WayOracle


def build_road_network(graph: RoadGraph) -> RoadNetwork:
    oracle = GridWayOracle.from_graph(
        graph,
        bucket_deg=float(settings.locator_grid_bucket_deg),
        line_width_px=float(settings.locator_line_width_px),
    )
    return RoadNetwork(graph=graph, oracle=oracle)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.network = None
    # /health and /graph/status stay up when the asset is missing or broken.
    loaded, reason = road_graph_status()
    app.state.graph_error = None if loaded else reason
    if loaded:
        app.state.network = build_road_network(load_road_graph())
    log_event("api_startup", graph_loaded=loaded, graph_error=app.state.graph_error)
    yield


app = FastAPI(title="Road Path Planner", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def road_network(request: Request) -> RoadNetwork:
    network: RoadNetwork | None = getattr(request.app.state, "network", None)
    if network is None:
        raise HTTPException(status_code=503, detail="road graph not loaded")
    return network


NetworkDep = Annotated[RoadNetwork, Depends(road_network)]


def _graph_error_response(exc: GraphDataError) -> HTTPException:
    return HTTPException(status_code=422, detail={"reason_code": exc.reason_code, "message": exc.message})


def _resolve_budget(node_budget: int | None) -> int:
    budget = int(node_budget) if node_budget is not None else int(settings.planner_default_node_budget)
    if budget > int(settings.planner_max_node_budget):
        raise HTTPException(
            status_code=422,
            detail={
                "reason_code": "node_budget_invalid",
                "message": f"node_budget exceeds the maximum of {settings.planner_max_node_budget}",
            },
        )
    return budget


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "Path planner is running. Visit /docs for the API UI.", "docs": "/docs"}


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/graph/status", response_model=GraphStatusResponse)
async def graph_status(request: Request) -> GraphStatusResponse:
    network: RoadNetwork | None = getattr(request.app.state, "network", None)
    if network is None:
        reason = getattr(request.app.state, "graph_error", None) or "graph_asset_unavailable"
        return GraphStatusResponse(ok=False, reason=reason)
    stats = network.graph.stats()
    return GraphStatusResponse(ok=True, reason="ok", node_count=stats["node_count"], way_count=stats["way_count"])


@app.post("/locate", response_model=LocateResponse)
def locate_point(body: LocateRequestBody, network: NetworkDep) -> LocateResponse:
    position, queries = locate_with_stats(
        network.graph,
        body.point.to_coord(),
        oracle=network.oracle,
        request=LocateRequest.from_settings(initial_scale=body.initial_scale),
    )
    if position is None:
        return LocateResponse(oracle_queries=queries)
    return LocateResponse(
        position=RoadPositionModel.from_position(position),
        coordinate=LonLat.from_coord(network.graph.position_coordinate(position)),
        tags=list(network.graph.way_tags(position.way_id)),
        oracle_queries=queries,
    )


@app.post("/route", response_model=RouteResponse)
def route(body: RouteRequest, network: NetworkDep) -> RouteResponse:
    start = body.start.to_position()
    end = body.end.to_position()
    try:
        result = plan(
            network.graph,
            start,
            end,
            mode=PlanMode(body.mode),
            node_budget=_resolve_budget(body.node_budget),
        )
    except GraphDataError as exc:
        raise _graph_error_response(exc) from exc
    return RouteResponse.from_result(result, start=start, end=end)


@app.post("/route/points", response_model=RouteResponse)
def route_points(body: PointRouteRequest, network: NetworkDep) -> RouteResponse:
    request = LocateRequest.from_settings(initial_scale=body.initial_scale)
    start, _ = locate_with_stats(network.graph, body.start.to_coord(), oracle=network.oracle, request=request)
    end, _ = locate_with_stats(network.graph, body.end.to_coord(), oracle=network.oracle, request=request)
    if start is None or end is None:
        return RouteResponse(
            status="unlocated",
            mode=body.mode,
            start=RoadPositionModel.from_position(start) if start is not None else None,
            end=RoadPositionModel.from_position(end) if end is not None else None,
        )
    try:
        result = plan(
            network.graph,
            start,
            end,
            mode=PlanMode(body.mode),
            node_budget=_resolve_budget(body.node_budget),
        )
    except GraphDataError as exc:
        raise _graph_error_response(exc) from exc
    return RouteResponse.from_result(result, start=start, end=end)


@app.get("/ways", response_model=WaySearchResponse)
def search_ways(network: NetworkDep, pattern: Annotated[str, Query(min_length=1)]) -> WaySearchResponse:
    try:
        way_ids = network.graph.ways_matching(pattern)
    except re.error as exc:
        raise HTTPException(status_code=422, detail=f"invalid pattern: {exc}") from exc
    return WaySearchResponse(pattern=pattern, way_ids=list(way_ids))


@app.get("/ways/{way_id}", response_model=WayResponse)
def get_way(way_id: int, network: NetworkDep) -> WayResponse:
    if way_id not in network.graph.ways:
        raise HTTPException(status_code=404, detail=f"unknown way id {way_id}")
    return WayResponse(
        way_id=way_id,
        tags=list(network.graph.way_tags(way_id)),
        coordinates=[(coord.lon, coord.lat) for coord in network.graph.way_coordinates(way_id)],
    )
