from __future__ import annotations

import json
import math
import threading
from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .geo import Coordinate
from .logging_utils import log_event, log_warning
from .route_errors import GraphDataError
from .settings import settings

PLACEHOLDER_SOURCE = "placeholder"

_BOOL_ATTRS: tuple[str, ...] = (
    "is_stairs",
    "lighting",
    "consistent_lighting",
    "has_curb_ramp",
    "tactile_paving",
    "transit_nearby",
    "indoor",
    "has_elevator",
    "has_handrail",
    "audio_beacon",
    "high_contrast",
    "obstacle_free",
)
_NUMBER_ATTRS: tuple[str, ...] = ("width", "min_width", "incline_pct", "turn_complexity")
_TEXT_ATTRS: tuple[str, ...] = ("surface", "smoothness", "footway", "highway", "crossing")


@dataclass(frozen=True)
class GraphNode:
    id: int
    coord: Coordinate


@dataclass(frozen=True)
class GraphEdge:
    id: str
    from_node: int
    to_node: int
    coords: tuple[Coordinate, ...]
    length_m: float | None = None
    closed: bool = False

    is_stairs: bool | None = None
    surface: str | None = None
    smoothness: str | None = None
    lighting: bool | None = None
    consistent_lighting: bool | None = None
    width: float | None = None
    min_width: float | None = None
    footway: str | None = None
    highway: str | None = None
    crossing: str | None = None
    incline_pct: float | None = None
    turn_complexity: float | None = None
    has_curb_ramp: bool | None = None
    tactile_paving: bool | None = None
    transit_nearby: bool | None = None
    indoor: bool | None = None
    has_elevator: bool | None = None
    has_handrail: bool | None = None
    audio_beacon: bool | None = None
    high_contrast: bool | None = None
    obstacle_free: bool | None = None

    def other_end(self, node_id: int) -> int:
        return self.to_node if self.from_node == node_id else self.from_node

    def connects(self, a: int, b: int) -> bool:
        return (self.from_node == a and self.to_node == b) or (self.from_node == b and self.to_node == a)


@dataclass(frozen=True)
class CampusGraph:
    nodes: tuple[GraphNode, ...]
    edges: tuple[GraphEdge, ...]
    index: dict[int, tuple[int, ...]]
    node_coords: dict[int, Coordinate]
    source: str = ""
    version: str = "unknown"
    placeholder: bool = False
    skipped_nodes: int = 0
    skipped_edges: int = 0
    loaded_at_utc: str = field(default_factory=lambda: _iso_utc_now())

    def edge_indices(self, node_id: int) -> tuple[int, ...]:
        return self.index.get(node_id, ())

    def coord_of(self, node_id: int) -> Coordinate:
        return self.node_coords[node_id]


def _iso_utc_now() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _as_number(raw: object) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    if not isinstance(raw, (int, float, str)):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def _as_bool(raw: object) -> bool | None:
    if raw is None:
        return None
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return bool(raw)
    text = str(raw).strip().lower()
    if text in {"true", "yes", "1"}:
        return True
    if text in {"false", "no", "0"}:
        return False
    return None


def _as_text(raw: object) -> str | None:
    if raw is None or isinstance(raw, (dict, list)):
        return None
    text = str(raw).strip()
    return text or None


def _as_node_id(raw: object) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw >= 0 else None
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    if isinstance(raw, float) and raw.is_integer() and raw >= 0:
        return int(raw)
    return None


def _parse_coord(raw: object) -> Coordinate | None:
    if not isinstance(raw, (list, tuple)) or len(raw) < 2:
        return None
    lon = _as_number(raw[0])
    lat = _as_number(raw[1])
    if lon is None or lat is None:
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        return None
    return (lon, lat)


def _parse_node(raw: object) -> GraphNode | None:
    if not isinstance(raw, dict):
        return None
    node_id = _as_node_id(raw.get("id"))
    if node_id is None:
        return None
    coord = _parse_coord(raw.get("coord"))
    if coord is None and "lon" in raw and "lat" in raw:
        coord = _parse_coord((raw.get("lon"), raw.get("lat")))
    if coord is None:
        return None
    return GraphNode(id=node_id, coord=coord)


def _parse_edge(raw: object, *, position: int, closed_edge_ids: frozenset[str]) -> GraphEdge | None:
    if not isinstance(raw, dict):
        return None
    from_node = _as_node_id(raw.get("from"))
    to_node = _as_node_id(raw.get("to"))
    if from_node is None or to_node is None:
        return None
    coords_raw = raw.get("coords")
    if not isinstance(coords_raw, list):
        return None
    coords = tuple(c for c in (_parse_coord(item) for item in coords_raw) if c is not None)
    if len(coords) < 2 or len(coords) != len(coords_raw):
        return None
    edge_id = _as_text(raw.get("id")) or f"e{position}"
    length_m = _as_number(raw.get("length"))
    if length_m is not None and length_m < 0.0:
        length_m = None

    attrs: dict[str, Any] = {}
    for name in _BOOL_ATTRS:
        attrs[name] = _as_bool(raw.get(name))
    for name in _NUMBER_ATTRS:
        attrs[name] = _as_number(raw.get(name))
    for name in _TEXT_ATTRS:
        attrs[name] = _as_text(raw.get(name))

    closed = bool(_as_bool(raw.get("closed"))) or edge_id in closed_edge_ids
    return GraphEdge(
        id=edge_id,
        from_node=from_node,
        to_node=to_node,
        coords=coords,
        length_m=length_m,
        closed=closed,
        **attrs,
    )


def build_edge_index(edges: Iterable[GraphEdge]) -> dict[int, tuple[int, ...]]:
    """Node id -> arena indices of every edge touching it, in edge order."""
    index_mut: dict[int, list[int]] = {}
    for i, edge in enumerate(edges):
        index_mut.setdefault(edge.from_node, []).append(i)
        bucket = index_mut.setdefault(edge.to_node, [])
        if not bucket or bucket[-1] != i:
            bucket.append(i)
    return {node_id: tuple(values) for node_id, values in index_mut.items()}


def _parse_index(raw: object, *, edge_count: int) -> dict[int, tuple[int, ...]] | None:
    if not isinstance(raw, Mapping):
        return None
    out: dict[int, tuple[int, ...]] = {}
    for key, values in raw.items():
        node_id = _as_node_id(key)
        if node_id is None or not isinstance(values, list):
            return None
        indices: list[int] = []
        for value in values:
            if isinstance(value, bool) or not isinstance(value, int) or not (0 <= value < edge_count):
                return None
            indices.append(value)
        out[node_id] = tuple(indices)
    return out


def index_is_consistent(edges: tuple[GraphEdge, ...], index: Mapping[int, tuple[int, ...]]) -> bool:
    for i, edge in enumerate(edges):
        if i not in index.get(edge.from_node, ()) or i not in index.get(edge.to_node, ()):
            return False
    return True


def parse_campus_graph(
    payload: object,
    *,
    source: str = "",
    closed_edge_ids: Iterable[str] = (),
    strict: bool = False,
) -> CampusGraph:
    """Build a graph from the ingestion dataset.

    Lenient mode skips malformed records and rebuilds the index whenever the
    stored one cannot be trusted. Strict mode raises ``GraphDataError`` on the
    first problem; the dataset validator uses it.
    """
    if not isinstance(payload, dict):
        raise GraphDataError("campus_graph_invalid", "Campus graph payload is not a JSON object.")
    raw_nodes = payload.get("nodes")
    raw_edges = payload.get("edges")
    if not isinstance(raw_nodes, list) or not isinstance(raw_edges, list):
        raise GraphDataError("campus_graph_invalid", "Campus graph payload needs 'nodes' and 'edges' lists.")
    closures = frozenset(str(v) for v in closed_edge_ids)

    nodes: list[GraphNode] = []
    node_coords: dict[int, Coordinate] = {}
    skipped_nodes = 0
    for position, raw in enumerate(raw_nodes):
        node = _parse_node(raw)
        if node is None or node.id in node_coords:
            if strict:
                reason = "campus_graph_invalid" if node is None else "campus_graph_duplicate_node"
                raise GraphDataError(reason, f"Bad node record at position {position}.", {"position": position})
            skipped_nodes += 1
            continue
        nodes.append(node)
        node_coords[node.id] = node.coord

    edges: list[GraphEdge] = []
    skipped_edges = 0
    for position, raw in enumerate(raw_edges):
        edge = _parse_edge(raw, position=position, closed_edge_ids=closures)
        reason = "campus_graph_invalid"
        if edge is not None and (edge.from_node not in node_coords or edge.to_node not in node_coords):
            reason = "campus_graph_unknown_node"
            edge = None
        if edge is None:
            if strict:
                raise GraphDataError(reason, f"Bad edge record at position {position}.", {"position": position})
            skipped_edges += 1
            continue
        edges.append(edge)

    edges_t = tuple(edges)
    index: dict[int, tuple[int, ...]] | None = None
    if "index" in payload and skipped_edges == 0:
        index = _parse_index(payload.get("index"), edge_count=len(edges_t))
        if index is not None and not index_is_consistent(edges_t, index):
            if strict:
                raise GraphDataError("campus_graph_index_mismatch", "Stored adjacency index disagrees with edges.")
            index = None
        elif index is None and strict:
            raise GraphDataError("campus_graph_index_mismatch", "Stored adjacency index is malformed.")
    if index is None:
        index = build_edge_index(edges_t)

    if skipped_nodes or skipped_edges:
        log_warning(
            "campus_graph_records_skipped",
            source=source,
            skipped_nodes=skipped_nodes,
            skipped_edges=skipped_edges,
        )
    return CampusGraph(
        nodes=tuple(nodes),
        edges=edges_t,
        index=index,
        node_coords=node_coords,
        source=str(payload.get("source") or source),
        version=str(payload.get("version") or "unknown"),
        placeholder=False,
        skipped_nodes=skipped_nodes,
        skipped_edges=skipped_edges,
    )


def placeholder_graph() -> CampusGraph:
    """Minimal three-node walk near the campus library, used when no dataset exists."""
    nodes = (
        GraphNode(id=0, coord=(-114.1319, 51.0789)),
        GraphNode(id=1, coord=(-114.1310, 51.0787)),
        GraphNode(id=2, coord=(-114.1302, 51.0789)),
    )
    edges = (
        GraphEdge(id="e0", from_node=0, to_node=1, coords=(nodes[0].coord, nodes[1].coord)),
        GraphEdge(id="e1", from_node=1, to_node=2, coords=(nodes[1].coord, nodes[2].coord)),
    )
    return CampusGraph(
        nodes=nodes,
        edges=edges,
        index={0: (0,), 1: (0, 1), 2: (1,)},
        node_coords={node.id: node.coord for node in nodes},
        source=PLACEHOLDER_SOURCE,
        version="placeholder",
        placeholder=True,
    )


def component_sizes(graph: CampusGraph) -> list[int]:
    """Sizes of the connected components, largest first."""
    seen: set[int] = set()
    sizes: list[int] = []
    for node in graph.nodes:
        if node.id in seen:
            continue
        q: deque[int] = deque([node.id])
        seen.add(node.id)
        size = 0
        while q:
            current = q.popleft()
            size += 1
            for ei in graph.edge_indices(current):
                nxt = graph.edges[ei].other_end(current)
                if nxt not in seen:
                    seen.add(nxt)
                    q.append(nxt)
        sizes.append(size)
    return sorted(sizes, reverse=True)


def read_campus_graph(path: Path, *, closed_edge_ids: Iterable[str] = (), strict: bool = False) -> CampusGraph:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise GraphDataError("campus_graph_missing", f"Campus graph not found at {path}.") from exc
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise GraphDataError(
            "campus_graph_unreadable",
            f"Campus graph at {path} could not be read.",
            {"error": str(exc).strip() or type(exc).__name__},
        ) from exc
    return parse_campus_graph(payload, source=str(path), closed_edge_ids=closed_edge_ids, strict=strict)


class GraphStore:
    """Load-once, read-only handle on the campus graph.

    The first ``load()`` reads the dataset; concurrent first callers block on the
    lock and then observe the same cached graph. A missing or broken dataset is
    replaced by ``placeholder_graph()`` so routing keeps working in a degraded
    mode.
    """

    def __init__(self, asset_path: str | Path, *, closed_edge_ids: Iterable[str] = ()) -> None:
        self._asset_path = Path(asset_path)
        self._closed_edge_ids = frozenset(str(v) for v in closed_edge_ids)
        self._lock = threading.Lock()
        self._graph: CampusGraph | None = None
        self._fallback_reason: str | None = None

    @property
    def asset_path(self) -> Path:
        return self._asset_path

    def load(self) -> CampusGraph:
        graph = self._graph
        if graph is not None:
            return graph
        with self._lock:
            if self._graph is None:
                self._graph = self._read()
            return self._graph

    def reset(self) -> None:
        with self._lock:
            self._graph = None
            self._fallback_reason = None

    def _read(self) -> CampusGraph:
        try:
            graph = read_campus_graph(self._asset_path, closed_edge_ids=self._closed_edge_ids)
        except GraphDataError as exc:
            return self._placeholder(exc.reason_code, detail=str(exc))
        if not graph.edges:
            return self._placeholder("campus_graph_empty", detail="dataset has no usable edges")
        log_event(
            "campus_graph_loaded",
            asset_path=str(self._asset_path),
            source=graph.source,
            version=graph.version,
            node_count=len(graph.nodes),
            edge_count=len(graph.edges),
            closed_edge_count=sum(1 for e in graph.edges if e.closed),
        )
        return graph

    def _placeholder(self, reason: str, *, detail: str) -> CampusGraph:
        self._fallback_reason = reason
        log_warning(
            "campus_graph_placeholder",
            reason=reason,
            detail=detail,
            asset_path=str(self._asset_path),
        )
        return placeholder_graph()

    def status(self) -> dict[str, Any]:
        graph = self.load()
        sizes = component_sizes(graph)
        return {
            "asset_path": str(self._asset_path),
            "source": graph.source,
            "version": graph.version,
            "placeholder": bool(graph.placeholder),
            "fallback_reason": self._fallback_reason,
            "loaded_at_utc": graph.loaded_at_utc,
            "node_count": len(graph.nodes),
            "edge_count": len(graph.edges),
            "closed_edge_count": sum(1 for e in graph.edges if e.closed),
            "component_count": len(sizes),
            "largest_component_nodes": sizes[0] if sizes else 0,
            "skipped_nodes": graph.skipped_nodes,
            "skipped_edges": graph.skipped_edges,
        }


def graph_store_from_settings() -> GraphStore:
    return GraphStore(
        settings.campus_graph_asset_path,
        closed_edge_ids=settings.closed_edge_ids(),
    )
