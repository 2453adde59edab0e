from __future__ import annotations

import heapq
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from .cost_model import EMPTY_CONTEXT, Impact, Profile, RoutingContext, edge_cost, explain_edge, normalize_profile
from .geo import (
    SNAP_NODE_MAX_DISTANCE_M,
    SNAP_SAMPLE_MAX_DISTANCE_M,
    Coordinate,
    SnapResult,
    haversine_m,
    polyline_length_m,
    snap_to_graph,
)
from .logging_utils import log_warning
from .route_errors import RouteErrorCode
from .routing_graph import CampusGraph, GraphEdge
from .settings import settings
from .weather_adapter import NullWeatherProvider, WeatherProvider

DEFAULT_MAX_ITERATIONS = 10_000
MAX_SUMMARY_POSITIVES = 5
MAX_SUMMARY_NEGATIVES = 3


class RouteState(str, Enum):
    SNAPPING = "snapping"
    SEARCHING = "searching"
    FOUND = "found"
    FAILED = "failed"


@dataclass(frozen=True)
class FactorTally:
    count: int
    impact: Impact
    description: str


@dataclass(frozen=True)
class RouteReasoning:
    summary: str
    factors: dict[str, FactorTally]
    positive_count: int
    negative_count: int


@dataclass(frozen=True)
class RouteResult:
    ok: bool
    profile: Profile
    coords: tuple[Coordinate, ...] | None = None
    length_m: float | None = None
    reasoning: RouteReasoning | None = None
    error: RouteErrorCode | None = None
    state: RouteState = RouteState.FAILED
    start_node: int | None = None
    end_node: int | None = None
    edge_ids: tuple[str, ...] = ()
    cost: float | None = None
    iterations: int = 0

    @classmethod
    def failed(
        cls,
        error: RouteErrorCode,
        *,
        profile: Profile,
        start_node: int | None = None,
        end_node: int | None = None,
        iterations: int = 0,
    ) -> RouteResult:
        return cls(
            ok=False,
            profile=profile,
            error=error,
            reasoning=None,
            state=RouteState.FAILED,
            start_node=start_node,
            end_node=end_node,
            iterations=iterations,
        )


@dataclass
class _SearchOutcome:
    found: bool
    iterations: int
    came_from: dict[int, tuple[int, int]] = field(default_factory=dict)
    cost: float = math.inf


def summarize_reasons(
    edges: Sequence[GraphEdge],
    profile: Profile,
    context: RoutingContext = EMPTY_CONTEXT,
) -> RouteReasoning:
    """Tally the per-edge reasons of a path into counts and a one-line summary.

    The first description seen for a factor is the one displayed.
    """
    tallies: dict[str, FactorTally] = {}
    for edge in edges:
        for reason in explain_edge(edge, profile, context):
            prior = tallies.get(reason.factor)
            if prior is None:
                tallies[reason.factor] = FactorTally(count=1, impact=reason.impact, description=reason.description)
            else:
                tallies[reason.factor] = FactorTally(
                    count=prior.count + 1,
                    impact=prior.impact,
                    description=prior.description,
                )

    positives = [f"{t.description} ({t.count} segments)" for t in tallies.values() if t.impact == "positive"]
    negatives = [f"{t.description} ({t.count} segments)" for t in tallies.values() if t.impact == "negative"]
    parts: list[str] = []
    if positives:
        parts.append(f"✓ Benefits: {', '.join(positives[:MAX_SUMMARY_POSITIVES])}")
    if negatives:
        parts.append(f"⚠ Challenges: {', '.join(negatives[:MAX_SUMMARY_NEGATIVES])}")
    return RouteReasoning(
        summary=" | ".join(parts),
        factors=tallies,
        positive_count=len(positives),
        negative_count=len(negatives),
    )


class RouteEngine:
    """A* router over one read-only campus graph.

    The engine owns its graph handle for its whole lifetime and keeps no
    per-request state, so one instance can serve concurrent requests.
    """

    def __init__(
        self,
        graph: CampusGraph,
        *,
        weather: WeatherProvider | None = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        snap_sample_max_distance_m: float = SNAP_SAMPLE_MAX_DISTANCE_M,
        max_snap_distance_m: float = SNAP_NODE_MAX_DISTANCE_M,
    ) -> None:
        self._graph = graph
        self._weather: WeatherProvider = weather if weather is not None else NullWeatherProvider()
        self._max_iterations = max(1, int(max_iterations))
        self._snap_sample_max_distance_m = float(snap_sample_max_distance_m)
        self._max_snap_distance_m = float(max_snap_distance_m)

    @classmethod
    def from_settings(cls, graph: CampusGraph, *, weather: WeatherProvider | None = None) -> RouteEngine:
        return cls(
            graph,
            weather=weather,
            max_iterations=settings.route_max_iterations,
            snap_sample_max_distance_m=settings.route_snap_sample_max_distance_m,
            max_snap_distance_m=settings.route_snap_max_distance_m,
        )

    @property
    def graph(self) -> CampusGraph:
        return self._graph

    @property
    def weather(self) -> WeatherProvider:
        return self._weather

    def snap(self, point: Sequence[float]) -> SnapResult:
        return snap_to_graph(
            point,
            self._graph.edges,
            max_sample_distance_m=self._snap_sample_max_distance_m,
            max_node_distance_m=self._max_snap_distance_m,
        )

    def route(
        self,
        start: Sequence[float],
        end: Sequence[float],
        profile: Profile | str | None = Profile.DEFAULT,
    ) -> RouteResult:
        resolved = normalize_profile(profile)

        start_snap = self.snap(start)
        if start_snap.node_id is None or start_snap.distance_m > self._max_snap_distance_m:
            log_warning("route_snap_failed", endpoint="start", distance_m=_rounded(start_snap.distance_m))
            return RouteResult.failed(RouteErrorCode.START_POINT_TOO_FAR, profile=resolved)
        end_snap = self.snap(end)
        if end_snap.node_id is None or end_snap.distance_m > self._max_snap_distance_m:
            log_warning("route_snap_failed", endpoint="end", distance_m=_rounded(end_snap.distance_m))
            return RouteResult.failed(RouteErrorCode.END_POINT_TOO_FAR, profile=resolved)

        start_node = start_snap.node_id
        end_node = end_snap.node_id
        if start_node == end_node:
            return RouteResult.failed(
                RouteErrorCode.SAME_START_END,
                profile=resolved,
                start_node=start_node,
                end_node=end_node,
            )
        if not self._graph.edge_indices(start_node):
            log_warning("route_node_disconnected", endpoint="start", node_id=start_node)
            return RouteResult.failed(
                RouteErrorCode.START_NODE_DISCONNECTED,
                profile=resolved,
                start_node=start_node,
                end_node=end_node,
            )
        if not self._graph.edge_indices(end_node):
            log_warning("route_node_disconnected", endpoint="end", node_id=end_node)
            return RouteResult.failed(
                RouteErrorCode.END_NODE_DISCONNECTED,
                profile=resolved,
                start_node=start_node,
                end_node=end_node,
            )

        context = self._weather.current_context()
        outcome = self._search(start_node, end_node, resolved, context)
        if not outcome.found:
            if outcome.iterations >= self._max_iterations:
                log_warning(
                    "route_search_iteration_cap",
                    profile=resolved.value,
                    start_node=start_node,
                    end_node=end_node,
                    iterations=outcome.iterations,
                )
            else:
                log_warning(
                    "route_search_exhausted",
                    profile=resolved.value,
                    start_node=start_node,
                    end_node=end_node,
                    iterations=outcome.iterations,
                )
            return RouteResult.failed(
                RouteErrorCode.NO_PATH,
                profile=resolved,
                start_node=start_node,
                end_node=end_node,
                iterations=outcome.iterations,
            )

        path_nodes, path_edges = self._reconstruct(outcome.came_from, end_node)
        coords = tuple(self._graph.coord_of(node_id) for node_id in path_nodes)
        return RouteResult(
            ok=True,
            profile=resolved,
            coords=coords,
            length_m=polyline_length_m(coords),
            reasoning=summarize_reasons(path_edges, resolved, context),
            error=None,
            state=RouteState.FOUND,
            start_node=start_node,
            end_node=end_node,
            edge_ids=tuple(edge.id for edge in path_edges),
            cost=outcome.cost,
            iterations=outcome.iterations,
        )

    def _search(self, start: int, goal: int, profile: Profile, context: RoutingContext) -> _SearchOutcome:
        # Frontier entries are (f, node id); equal f-scores expand the lowest node id first.
        goal_coord = self._graph.coord_of(goal)
        heuristic: dict[int, float] = {}

        def h(node_id: int) -> float:
            value = heuristic.get(node_id)
            if value is None:
                value = haversine_m(self._graph.coord_of(node_id), goal_coord)
                heuristic[node_id] = value
            return value

        g_score: dict[int, float] = {start: 0.0}
        f_score: dict[int, float] = {start: h(start)}
        came_from: dict[int, tuple[int, int]] = {}
        open_set: set[int] = {start}
        frontier: list[tuple[float, int]] = [(f_score[start], start)]
        iterations = 0

        while frontier and iterations < self._max_iterations:
            f_value, current = heapq.heappop(frontier)
            if current not in open_set or f_value != f_score.get(current):
                continue
            iterations += 1
            if current == goal:
                return _SearchOutcome(found=True, iterations=iterations, came_from=came_from, cost=g_score[goal])
            open_set.discard(current)

            base_g = g_score[current]
            for ei in self._graph.edge_indices(current):
                edge = self._graph.edges[ei]
                neighbor = edge.other_end(current)
                tentative = base_g + edge_cost(edge, profile, context)
                if tentative < g_score.get(neighbor, math.inf):
                    came_from[neighbor] = (current, ei)
                    g_score[neighbor] = tentative
                    f_score[neighbor] = tentative + h(neighbor)
                    open_set.add(neighbor)
                    heapq.heappush(frontier, (f_score[neighbor], neighbor))

        return _SearchOutcome(found=False, iterations=iterations)

    def _reconstruct(
        self,
        came_from: dict[int, tuple[int, int]],
        goal: int,
    ) -> tuple[list[int], list[GraphEdge]]:
        # Each step remembers the arena index of the edge that relaxed it, so
        # parallel edges between the same two nodes are narrated correctly.
        nodes = [goal]
        edges: list[GraphEdge] = []
        while nodes[-1] in came_from:
            prev, ei = came_from[nodes[-1]]
            edges.append(self._graph.edges[ei])
            nodes.append(prev)
        nodes.reverse()
        edges.reverse()
        return nodes, edges


def _rounded(value: float) -> float | None:
    return round(value, 1) if math.isfinite(value) else None
