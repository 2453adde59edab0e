from __future__ import annotations

import argparse
import json
import math
import sys
from collections import Counter
from pathlib import Path
from typing import Any

import numpy as np
from scipy.spatial import cKDTree

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from campus_router.geo import haversine_m
from campus_router.route_errors import GraphDataError
from campus_router.routing_graph import CampusGraph, component_sizes, read_campus_graph
from campus_router.settings import settings

# Well-known campus destinations, (lon, lat).
CAMPUS_LANDMARKS: dict[str, tuple[float, float]] = {
    "TFDL - Taylor Family Digital Library": (-114.13152, 51.07893),
    "ICT - Information and Communications Tech": (-114.12977, 51.07973),
    "EEEL - Energy, Environment and Experiential Learning": (-114.13169, 51.07696),
    "MSC - MacEwan Student Centre": (-114.13343, 51.07933),
    "Kinesiology (KNA)": (-114.13349, 51.07597),
}

ENDPOINT_TOLERANCE_M = 1.0


def _load_landmarks(path: Path | None) -> dict[str, tuple[float, float]]:
    if path is None:
        return dict(CAMPUS_LANDMARKS)
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise RuntimeError("Landmark file must map names to [lon, lat].")
    out: dict[str, tuple[float, float]] = {}
    for name, coord in payload.items():
        if not isinstance(coord, (list, tuple)) or len(coord) < 2:
            raise RuntimeError(f"Landmark {name!r} needs a [lon, lat] pair.")
        out[str(name)] = (float(coord[0]), float(coord[1]))
    return out


def _to_xy_m(points: list[tuple[float, float]]) -> np.ndarray:
    """Equirectangular projection of (lon, lat) points; fine at campus scale."""
    if not points:
        return np.zeros((0, 2), dtype=np.float64)
    arr = np.asarray(points, dtype=np.float64)
    lon_rad = np.radians(arr[:, 0])
    lat_rad = np.radians(arr[:, 1])
    mean_lat = float(np.mean(lat_rad))
    r = 6_371_000.0
    x = lon_rad * (r * math.cos(mean_lat))
    y = lat_rad * r
    return np.column_stack((x, y))


def _endpoint_mismatches(graph: CampusGraph) -> list[str]:
    bad: list[str] = []
    for edge in graph.edges:
        head = haversine_m(edge.coords[0], graph.coord_of(edge.from_node))
        tail = haversine_m(edge.coords[-1], graph.coord_of(edge.to_node))
        if head > ENDPOINT_TOLERANCE_M or tail > ENDPOINT_TOLERANCE_M:
            bad.append(edge.id)
    return bad


def _landmark_distances(graph: CampusGraph, landmarks: dict[str, tuple[float, float]]) -> dict[str, float]:
    node_points = [node.coord for node in graph.nodes]
    graph_xy = _to_xy_m(node_points + list(landmarks.values()))
    if graph_xy.shape[0] == 0 or not node_points:
        return {name: math.inf for name in landmarks}
    tree = cKDTree(graph_xy[: len(node_points)])
    _distances, indices = tree.query(graph_xy[len(node_points):], k=1)
    out: dict[str, float] = {}
    for (name, coord), idx in zip(landmarks.items(), np.atleast_1d(indices), strict=True):
        # Re-measure the chosen node on the sphere so the report is in true metres.
        out[name] = round(haversine_m(coord, node_points[int(idx)]), 3)
    return out


def validate(
    *,
    graph_path: Path,
    min_nodes: int,
    min_edges: int,
    max_landmark_dist_m: float,
    landmarks: dict[str, tuple[float, float]] | None = None,
    require_connected: bool = False,
    check_landmarks: bool = True,
) -> dict[str, Any]:
    try:
        graph = read_campus_graph(graph_path, strict=True)
    except GraphDataError as exc:
        raise RuntimeError(f"{exc.reason_code}: {exc}") from exc

    if len(graph.nodes) < min_nodes:
        raise RuntimeError(f"Graph node count too low: {len(graph.nodes)} < {min_nodes}")
    if len(graph.edges) < min_edges:
        raise RuntimeError(f"Graph edge count too low: {len(graph.edges)} < {min_edges}")

    id_counts = Counter(e.id for e in graph.edges)
    duplicate_ids = sorted(edge_id for edge_id, n in id_counts.items() if n > 1)
    if duplicate_ids:
        raise RuntimeError(f"Duplicate edge ids: {', '.join(duplicate_ids[:10])}")

    mismatched = _endpoint_mismatches(graph)
    if mismatched:
        raise RuntimeError(f"Edge geometry does not start/end on its nodes: {', '.join(mismatched[:10])}")

    sizes = component_sizes(graph)
    if require_connected and len(sizes) > 1:
        raise RuntimeError(f"Graph is split into {len(sizes)} components (largest {sizes[0]} nodes).")

    distances: dict[str, float] = {}
    if check_landmarks:
        distances = _landmark_distances(graph, landmarks if landmarks is not None else dict(CAMPUS_LANDMARKS))
    too_far = {name: d for name, d in distances.items() if d > max_landmark_dist_m}
    if too_far:
        worst = max(too_far, key=lambda name: too_far[name])
        raise RuntimeError(
            f"Landmark coverage check failed: {worst!r} is {too_far[worst]:.2f}m from the nearest node "
            f"(threshold {max_landmark_dist_m:.2f}m)"
        )

    isolated = sum(1 for node in graph.nodes if not graph.edge_indices(node.id))
    return {
        "graph_path": str(graph_path),
        "source": graph.source,
        "version": graph.version,
        "nodes": len(graph.nodes),
        "edges": len(graph.edges),
        "closed_edges": sum(1 for e in graph.edges if e.closed),
        "isolated_nodes": isolated,
        "component_count": len(sizes),
        "largest_component_nodes": sizes[0] if sizes else 0,
        "landmarks_checked": check_landmarks,
        "landmark_nearest_node_m": distances,
        "coverage_passed": True,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Validate a campus routing graph dataset before deployment.")
    parser.add_argument(
        "--graph",
        type=Path,
        default=Path(settings.campus_graph_asset_path),
        help="Graph dataset JSON path.",
    )
    parser.add_argument("--landmarks", type=Path, default=None, help="Optional JSON {name: [lon, lat]} file.")
    parser.add_argument("--min-nodes", type=int, default=3)
    parser.add_argument("--min-edges", type=int, default=2)
    parser.add_argument(
        "--max-landmark-dist-m",
        type=float,
        default=float(settings.route_snap_max_distance_m),
        help="Maximum allowed distance from a landmark to its nearest graph node.",
    )
    parser.add_argument("--require-connected", action="store_true")
    parser.add_argument(
        "--skip-landmarks",
        action="store_true",
        help="Skip the landmark coverage check (e.g. for a partial or off-campus dataset).",
    )
    args = parser.parse_args()
    report = validate(
        graph_path=args.graph,
        min_nodes=max(1, int(args.min_nodes)),
        min_edges=max(1, int(args.min_edges)),
        max_landmark_dist_m=max(1.0, float(args.max_landmark_dist_m)),
        landmarks=None if args.skip_landmarks else _load_landmarks(args.landmarks),
        require_connected=bool(args.require_connected),
        check_landmarks=not args.skip_landmarks,
    )
    print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
