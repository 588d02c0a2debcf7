from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from .planner import PlanResult
from .road_graph import GeoCoord, RoadPosition


class LonLat(BaseModel):
    lon: float = Field(..., ge=-180, le=180)
    lat: float = Field(..., ge=-90, le=90)

    def to_coord(self) -> GeoCoord:
        return GeoCoord(lon=self.lon, lat=self.lat)

    @classmethod
    def from_coord(cls, coord: GeoCoord) -> "LonLat":
        return cls(lon=coord.lon, lat=coord.lat)


class RoadPositionModel(BaseModel):
    way_id: int = Field(..., ge=0)
    segment_index: int = Field(..., ge=0)
    factor: float = Field(..., ge=0.0, le=1.0)

    def to_position(self) -> RoadPosition:
        return RoadPosition(way_id=self.way_id, segment_index=self.segment_index, factor=self.factor)

    @classmethod
    def from_position(cls, position: RoadPosition) -> "RoadPositionModel":
        return cls(way_id=position.way_id, segment_index=position.segment_index, factor=position.factor)


PlanModeName = Literal["shortest", "frontier"]


class LocateRequestBody(BaseModel):
    point: LonLat
    # Map scale of the caller's view; larger is more zoomed in.
    initial_scale: float | None = Field(default=None, gt=0)


class LocateResponse(BaseModel):
    position: RoadPositionModel | None = None
    coordinate: LonLat | None = None
    tags: list[str] = Field(default_factory=list)
    oracle_queries: int = 0


class RouteRequest(BaseModel):
    start: RoadPositionModel
    end: RoadPositionModel
    mode: PlanModeName = "shortest"
    node_budget: int | None = Field(default=None, ge=1)


class PointRouteRequest(BaseModel):
    start: LonLat
    end: LonLat
    mode: PlanModeName = "shortest"
    node_budget: int | None = Field(default=None, ge=1)
    initial_scale: float | None = Field(default=None, gt=0)


class RouteResponse(BaseModel):
    """Route or frontier. ``coordinates`` run target -> start for a found path."""

    # "unlocated": one of the points is not near any way, so no search ran.
    status: Literal["found", "no_path", "budget_exceeded", "unlocated"]
    mode: PlanModeName
    coordinates: list[tuple[float, float]] | None = None
    cost_m: float | None = None
    expanded_nodes: int = 0
    scored_nodes: int = 0
    start: RoadPositionModel | None = None
    end: RoadPositionModel | None = None

    @classmethod
    def from_result(
        cls,
        result: PlanResult,
        *,
        start: RoadPosition | None = None,
        end: RoadPosition | None = None,
    ) -> "RouteResponse":
        return cls(
            status=result.status.value,
            mode=result.mode.value,
            coordinates=(
                None
                if result.coordinates is None
                else [(coord.lon, coord.lat) for coord in result.coordinates]
            ),
            cost_m=result.cost_m,
            expanded_nodes=result.expanded_nodes,
            scored_nodes=result.scored_nodes,
            start=RoadPositionModel.from_position(start) if start is not None else None,
            end=RoadPositionModel.from_position(end) if end is not None else None,
        )


class WayResponse(BaseModel):
    way_id: int
    tags: list[str]
    coordinates: list[tuple[float, float]]


class WaySearchResponse(BaseModel):
    pattern: str
    way_ids: list[int]


class GraphStatusResponse(BaseModel):
    ok: bool
    reason: str
    node_count: int = 0
    way_count: int = 0
