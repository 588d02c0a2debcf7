from __future__ import annotations

import heapq
import itertools
import time
from dataclasses import dataclass
from enum import Enum
from math import inf

from .graph_errors import GraphDataError
from .logging_utils import log_event
from .road_graph import GeoCoord, RoadGraph, RoadPosition


class PlanMode(str, Enum):
    SHORTEST = "shortest"
    # Debug mode: report every node that received an f-score instead of a path.
    FRONTIER = "frontier"


class PlanStatus(str, Enum):
    FOUND = "found"
    NO_PATH = "no_path"
    BUDGET_EXCEEDED = "budget_exceeded"


@dataclass(frozen=True)
class PlanResult:
    """Outcome of one search.

    In SHORTEST mode ``coordinates`` is the path in target -> start order and is
    None unless the target was reached. In FRONTIER mode it is always the
    explored region, whatever the status.
    """

    status: PlanStatus
    mode: PlanMode
    coordinates: tuple[GeoCoord, ...] | None
    node_ids: tuple[int, ...] = ()
    cost_m: float | None = None
    expanded_nodes: int = 0
    scored_nodes: int = 0

    @property
    def found(self) -> bool:
        return self.status is PlanStatus.FOUND


class OpenSet:
    """Priority queue of node ids ordered by ascending f-score.

    Among equal scores the most recently inserted node pops first. Re-inserting
    a node supersedes its previous entry; superseded entries are dropped lazily.
    """

    def __init__(self) -> None:
        self._heap: list[tuple[float, int, int]] = []
        self._latest: dict[int, int] = {}
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._latest)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._latest

    def push(self, node_id: int, f_score: float) -> None:
        seq = next(self._counter)
        self._latest[node_id] = seq
        heapq.heappush(self._heap, (f_score, -seq, node_id))

    def pop(self) -> int:
        while self._heap:
            _f_score, neg_seq, node_id = heapq.heappop(self._heap)
            if self._latest.get(node_id) == -neg_seq:
                del self._latest[node_id]
                return node_id
        raise IndexError("pop from empty open set")


def _reconstruct_path(came_from: dict[int, int], current: int) -> tuple[int, ...]:
    total_path = [current]
    while current in came_from:
        current = came_from[current]
        total_path.append(current)
    return tuple(total_path)


def plan(
    graph: RoadGraph,
    start: RoadPosition,
    end: RoadPosition,
    *,
    mode: PlanMode,
    node_budget: int,
) -> PlanResult:
    """A* from ``start`` to ``end``, each snapped to the first node of its segment.

    ``node_budget`` caps the number of expansions and has no default: an
    unbounded search on a disconnected graph would walk the whole component.
    """
    if not isinstance(node_budget, int) or isinstance(node_budget, bool) or node_budget < 1:
        raise GraphDataError(
            reason_code="node_budget_invalid",
            message=f"node_budget must be an integer >= 1, got {node_budget!r}",
            details={"node_budget": node_budget},
        )
    mode = PlanMode(mode)
    start_node = graph.position_node(start)
    end_node = graph.position_node(end)
    started = time.monotonic()

    open_set = OpenSet()
    came_from: dict[int, int] = {}
    g_score: dict[int, float] = {start_node: 0.0}
    f_score: dict[int, float] = {start_node: graph.node_distance(start_node, end_node)}
    open_set.push(start_node, f_score[start_node])

    status = PlanStatus.NO_PATH
    expanded = 0
    path_nodes: tuple[int, ...] = ()
    while open_set:
        if expanded >= node_budget:
            status = PlanStatus.BUDGET_EXCEEDED
            break
        current = open_set.pop()
        expanded += 1

        if current == end_node:
            status = PlanStatus.FOUND
            if mode is PlanMode.SHORTEST:
                path_nodes = _reconstruct_path(came_from, current)
            break

        for neighbor in graph.iter_neighbors(current):
            tentative_g_score = g_score[current] + graph.node_distance(current, neighbor)
            if tentative_g_score < g_score.get(neighbor, inf):
                came_from[neighbor] = current
                g_score[neighbor] = tentative_g_score
                f_score[neighbor] = tentative_g_score + graph.node_distance(neighbor, end_node)
                open_set.push(neighbor, f_score[neighbor])

    if mode is PlanMode.FRONTIER:
        coordinates: tuple[GeoCoord, ...] | None = tuple(graph.node_coordinate(node_id) for node_id in f_score)
        node_ids = tuple(f_score)
    elif status is PlanStatus.FOUND:
        coordinates = tuple(graph.node_coordinate(node_id) for node_id in path_nodes)
        node_ids = path_nodes
    else:
        coordinates = None
        node_ids = ()

    result = PlanResult(
        status=status,
        mode=mode,
        coordinates=coordinates,
        node_ids=node_ids,
        cost_m=g_score[end_node] if status is PlanStatus.FOUND else None,
        expanded_nodes=expanded,
        scored_nodes=len(f_score),
    )
    log_event(
        "plan_completed",
        mode=mode.value,
        status=status.value,
        start_node=start_node,
        end_node=end_node,
        node_budget=node_budget,
        expanded_nodes=expanded,
        scored_nodes=len(f_score),
        cost_m=result.cost_m,
        elapsed_ms=round((time.monotonic() - started) * 1000.0, 2),
    )
    return result
