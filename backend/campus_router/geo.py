from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .routing_graph import GraphEdge

EARTH_RADIUS_M = 6_371_000.0
SNAP_SAMPLE_MAX_DISTANCE_M = 500.0
SNAP_NODE_MAX_DISTANCE_M = 1_000.0

# (lon, lat) in WGS84 degrees.
Coordinate = tuple[float, float]


@dataclass(frozen=True)
class SnapResult:
    nearest_edge: GraphEdge | None
    distance_m: float
    nearest_coord: Coordinate
    node_id: int | None


def haversine_m(a: Sequence[float], b: Sequence[float]) -> float:
    lon1, lat1 = float(a[0]), float(a[1])
    lon2, lat2 = float(b[0]), float(b[1])
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)
    h = (
        math.sin(dphi / 2.0) ** 2
        + (math.cos(phi1) * math.cos(phi2) * (math.sin(dlambda / 2.0) ** 2))
    )
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(max(0.0, h))))


def polyline_length_m(coords: Sequence[Sequence[float]]) -> float:
    total = 0.0
    for idx in range(1, len(coords)):
        total += haversine_m(coords[idx - 1], coords[idx])
    return total


def _sample_node(edge: GraphEdge, idx: int, coord: Coordinate) -> int:
    last = len(edge.coords) - 1
    if idx == 0:
        return edge.from_node
    if idx == last:
        return edge.to_node
    to_from = haversine_m(coord, edge.coords[0])
    to_to = haversine_m(coord, edge.coords[last])
    return edge.from_node if to_from < to_to else edge.to_node


def snap_to_graph(
    point: Sequence[float],
    edges: Iterable[GraphEdge],
    *,
    max_sample_distance_m: float = SNAP_SAMPLE_MAX_DISTANCE_M,
    max_node_distance_m: float = SNAP_NODE_MAX_DISTANCE_M,
) -> SnapResult:
    """Locate the graph node an arbitrary point should be routed from.

    Every polyline sample of every edge is scanned, not just endpoints. Interior
    samples are credited to whichever endpoint of their edge is nearer. When the
    closest sample is further than ``max_sample_distance_m`` the nearest endpoint
    node of the whole dataset is used instead, but only if it lies within
    ``max_node_distance_m``; otherwise the sample candidate is kept and the
    caller decides whether it is usable.
    """
    origin: Coordinate = (float(point[0]), float(point[1]))
    best = SnapResult(nearest_edge=None, distance_m=math.inf, nearest_coord=origin, node_id=None)
    if not (math.isfinite(origin[0]) and math.isfinite(origin[1])):
        return best
    node_coords: dict[int, Coordinate] = {}

    for edge in edges:
        if not edge.coords:
            continue
        node_coords.setdefault(edge.from_node, edge.coords[0])
        node_coords.setdefault(edge.to_node, edge.coords[-1])
        for idx, coord in enumerate(edge.coords):
            dist = haversine_m(origin, coord)
            if dist < best.distance_m:
                best = SnapResult(
                    nearest_edge=edge,
                    distance_m=dist,
                    nearest_coord=coord,
                    node_id=_sample_node(edge, idx, coord),
                )

    if best.distance_m <= max_sample_distance_m:
        return best

    nearest_node: int | None = None
    nearest_dist = math.inf
    for node_id, coord in node_coords.items():
        dist = haversine_m(origin, coord)
        if dist < nearest_dist:
            nearest_dist = dist
            nearest_node = node_id
    if nearest_node is not None and nearest_dist < max_node_distance_m:
        return SnapResult(
            nearest_edge=None,
            distance_m=nearest_dist,
            nearest_coord=node_coords[nearest_node],
            node_id=nearest_node,
        )
    return best
