from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol

from .road_graph import DECIMICRO_PER_DEGREE, GeoCoord, RoadGraph

WayWindow = list[list[int | None]]


class WayOracle(Protocol):
    """Reports, per sample of a square window, which way (if any) is drawn there."""

    def query(self, window_size: int, center: GeoCoord, scale: float) -> WayWindow: ...


@dataclass(frozen=True)
class _Segment:
    way_id: int
    lon1: float
    lat1: float
    lon2: float
    lat2: float


def _grid_key(lat: float, lon: float, bucket_deg: float) -> tuple[int, int]:
    return (int(math.floor(lat / bucket_deg)), int(math.floor(lon / bucket_deg)))


def _point_segment_distance(px: float, py: float, ax: float, ay: float, bx: float, by: float) -> float:
    dx = bx - ax
    dy = by - ay
    length_2 = dx * dx + dy * dy
    if length_2 <= 0.0:
        return math.hypot(px - ax, py - ay)
    t = max(0.0, min(1.0, ((px - ax) * dx + (py - ay) * dy) / length_2))
    return math.hypot(px - (ax + t * dx), py - (ay + t * dy))


class GridWayOracle:
    """CPU stand-in for rendering way ids into a tiny off-screen window.

    Segments are bucketed by their bounding box into a uniform lat/lon grid.
    A query projects the window the same way the map shader does
    (``(coord - center) * scale``, longitude scaled by ``cos(lat)``) and marks a
    sample with a way id when the sample centre lies within half a line width
    of one of that way's segments. Overlapping ways resolve to the nearest
    segment, then the lowest way id.

    The index is immutable once built, so queries need no serialization.
    """

    def __init__(
        self,
        segments: list[_Segment],
        grid: dict[tuple[int, int], tuple[int, ...]],
        *,
        bucket_deg: float,
        line_width_px: float,
    ) -> None:
        self._segments = segments
        self._grid = grid
        self._bucket_deg = bucket_deg
        self._line_width_px = line_width_px

    @classmethod
    def from_graph(cls, graph: RoadGraph, *, bucket_deg: float, line_width_px: float = 1.0) -> "GridWayOracle":
        segments: list[_Segment] = []
        grid_mut: dict[tuple[int, int], list[int]] = {}
        for way_id, way in graph.ways.items():
            for n1_id, n2_id in zip(way.nodes, way.nodes[1:]):
                n1 = graph.node(n1_id)
                n2 = graph.node(n2_id)
                segment = _Segment(
                    way_id=way_id,
                    lon1=n1.lon_e7 / DECIMICRO_PER_DEGREE,
                    lat1=n1.lat_e7 / DECIMICRO_PER_DEGREE,
                    lon2=n2.lon_e7 / DECIMICRO_PER_DEGREE,
                    lat2=n2.lat_e7 / DECIMICRO_PER_DEGREE,
                )
                index = len(segments)
                segments.append(segment)
                lat_lo, lon_lo = _grid_key(min(segment.lat1, segment.lat2), min(segment.lon1, segment.lon2), bucket_deg)
                lat_hi, lon_hi = _grid_key(max(segment.lat1, segment.lat2), max(segment.lon1, segment.lon2), bucket_deg)
                for lat_key in range(lat_lo, lat_hi + 1):
                    for lon_key in range(lon_lo, lon_hi + 1):
                        grid_mut.setdefault((lat_key, lon_key), []).append(index)
        return cls(
            segments,
            {key: tuple(values) for key, values in grid_mut.items()},
            bucket_deg=bucket_deg,
            line_width_px=line_width_px,
        )

    @property
    def segment_count(self) -> int:
        return len(self._segments)

    def _candidate_segments(self, *, lat_lo: float, lat_hi: float, lon_lo: float, lon_hi: float) -> list[int]:
        key_lo = _grid_key(lat_lo, lon_lo, self._bucket_deg)
        key_hi = _grid_key(lat_hi, lon_hi, self._bucket_deg)
        cell_count = (key_hi[0] - key_lo[0] + 1) * (key_hi[1] - key_lo[1] + 1)
        found: set[int] = set()
        if cell_count > len(self._grid):
            # Window covers more cells than are populated; walk the populated ones instead.
            for (lat_key, lon_key), indices in self._grid.items():
                if key_lo[0] <= lat_key <= key_hi[0] and key_lo[1] <= lon_key <= key_hi[1]:
                    found.update(indices)
        else:
            for lat_key in range(key_lo[0], key_hi[0] + 1):
                for lon_key in range(key_lo[1], key_hi[1] + 1):
                    found.update(self._grid.get((lat_key, lon_key), ()))
        return sorted(found)

    def query(self, window_size: int, center: GeoCoord, scale: float) -> WayWindow:
        if window_size < 1:
            raise ValueError("window_size must be positive")
        if scale <= 0.0:
            raise ValueError("scale must be positive")
        cos_lat = max(1e-9, math.cos(math.radians(center.lat)))
        px_per_deg_lat = scale * window_size / 2.0
        px_per_deg_lon = px_per_deg_lat * cos_lat
        half_window_px = window_size / 2.0
        reach_px = self._line_width_px / 2.0

        margin_px = half_window_px + reach_px
        candidates = self._candidate_segments(
            lat_lo=center.lat - margin_px / px_per_deg_lat,
            lat_hi=center.lat + margin_px / px_per_deg_lat,
            lon_lo=center.lon - margin_px / px_per_deg_lon,
            lon_hi=center.lon + margin_px / px_per_deg_lon,
        )
        projected = []
        for index in candidates:
            seg = self._segments[index]
            projected.append(
                (
                    seg.way_id,
                    (seg.lon1 - center.lon) * px_per_deg_lon,
                    (seg.lat1 - center.lat) * px_per_deg_lat,
                    (seg.lon2 - center.lon) * px_per_deg_lon,
                    (seg.lat2 - center.lat) * px_per_deg_lat,
                )
            )

        window: WayWindow = []
        for row in range(window_size):
            # Row 0 is the northern edge of the window.
            sample_y = half_window_px - (row + 0.5)
            out_row: list[int | None] = []
            for col in range(window_size):
                sample_x = (col + 0.5) - half_window_px
                best: tuple[float, int] | None = None
                for way_id, ax, ay, bx, by in projected:
                    dist = _point_segment_distance(sample_x, sample_y, ax, ay, bx, by)
                    if dist > reach_px:
                        continue
                    if best is None or (dist, way_id) < best:
                        best = (dist, way_id)
                out_row.append(best[1] if best is not None else None)
            window.append(out_row)
        return window
