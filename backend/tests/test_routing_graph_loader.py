from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from typing import Any

import pytest

import campus_router.routing_graph as routing_graph
from campus_router.route_errors import GraphDataError
from campus_router.routing_graph import (
    CampusGraph,
    GraphStore,
    build_edge_index,
    component_sizes,
    parse_campus_graph,
    placeholder_graph,
    read_campus_graph,
)

A = (-114.1319, 51.0789)
B = (-114.1310, 51.0787)
C = (-114.1302, 51.0789)


def _payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "version": "pytest",
        "nodes": [
            {"id": 0, "coord": list(A)},
            {"id": 1, "lon": B[0], "lat": B[1]},
            {"id": 2, "coord": list(C)},
        ],
        "edges": [
            {"id": "ab", "from": 0, "to": 1, "coords": [list(A), list(B)], "length": 70.0, "indoor": True},
            {"id": "bc", "from": 1, "to": 2, "coords": [list(B), list(C)], "surface": "asphalt"},
        ],
    }
    payload.update(overrides)
    return payload


def _write(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_parse_builds_index_when_missing() -> None:
    graph = parse_campus_graph(_payload())

    assert graph.index == {0: (0,), 1: (0, 1), 2: (1,)}
    assert graph.version == "pytest"
    assert graph.edges[0].length_m == 70.0
    assert graph.edges[0].indoor is True
    assert graph.edges[1].length_m is None
    assert graph.edges[1].surface == "asphalt"
    assert graph.node_coords[1] == B


def test_parse_keeps_consistent_stored_index_and_rebuilds_wrong_one() -> None:
    stored = {"0": [0], "1": [1, 0], "2": [1]}
    graph = parse_campus_graph(_payload(index=stored))
    assert graph.index[1] == (1, 0)

    wrong = {"0": [0], "1": [0], "2": [1]}
    rebuilt = parse_campus_graph(_payload(index=wrong))
    assert rebuilt.index == {0: (0,), 1: (0, 1), 2: (1,)}

    with pytest.raises(GraphDataError) as excinfo:
        parse_campus_graph(_payload(index=wrong), strict=True)
    assert excinfo.value.reason_code == "campus_graph_index_mismatch"


def test_every_edge_is_reachable_from_both_endpoints() -> None:
    graph = parse_campus_graph(_payload())
    for i, edge in enumerate(graph.edges):
        assert i in graph.edge_indices(edge.from_node)
        assert i in graph.edge_indices(edge.to_node)


def test_self_loop_is_indexed_once() -> None:
    loop = routing_graph.GraphEdge(id="loop", from_node=4, to_node=4, coords=(A, A))
    assert build_edge_index([loop]) == {4: (0,)}


def test_lenient_parse_skips_malformed_records_and_reindexes() -> None:
    payload = _payload()
    payload["nodes"].append({"id": "bogus"})
    payload["nodes"].append({"id": 0, "coord": list(C)})
    payload["edges"].append({"id": "dangling", "from": 2, "to": 99, "coords": [list(C), list(A)]})
    payload["edges"].append({"id": "short", "from": 0, "to": 2, "coords": [list(A)]})
    payload["index"] = {"0": [0], "1": [0, 1], "2": [1, 2]}

    graph = parse_campus_graph(payload)

    assert graph.skipped_nodes == 2
    assert graph.skipped_edges == 2
    assert [e.id for e in graph.edges] == ["ab", "bc"]
    assert graph.index == {0: (0,), 1: (0, 1), 2: (1,)}


@pytest.mark.parametrize(
    ("mutate", "reason"),
    [
        (lambda p: p["nodes"].append({"id": 0, "coord": list(C)}), "campus_graph_duplicate_node"),
        (lambda p: p["nodes"].append({"id": 5, "coord": [500.0, 0.0]}), "campus_graph_invalid"),
        (
            lambda p: p["edges"].append({"from": 0, "to": 9, "coords": [list(A), list(C)]}),
            "campus_graph_unknown_node",
        ),
    ],
)
def test_strict_parse_reports_reason_codes(mutate, reason: str) -> None:
    payload = _payload()
    mutate(payload)
    with pytest.raises(GraphDataError) as excinfo:
        parse_campus_graph(payload, strict=True)
    assert excinfo.value.reason_code == reason


def test_closures_from_dataset_and_from_configuration() -> None:
    payload = _payload()
    payload["edges"][1]["closed"] = True
    graph = parse_campus_graph(payload)
    assert [e.closed for e in graph.edges] == [False, True]

    graph = parse_campus_graph(_payload(), closed_edge_ids={"ab"})
    assert [e.closed for e in graph.edges] == [True, False]


def test_edge_id_defaults_to_position() -> None:
    payload = _payload()
    del payload["edges"][1]["id"]
    graph = parse_campus_graph(payload)
    assert graph.edges[1].id == "e1"


def test_read_maps_file_problems_to_reason_codes(tmp_path: Path) -> None:
    with pytest.raises(GraphDataError) as missing:
        read_campus_graph(tmp_path / "absent.json")
    assert missing.value.reason_code == "campus_graph_missing"

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(GraphDataError) as unreadable:
        read_campus_graph(broken)
    assert unreadable.value.reason_code == "campus_graph_unreadable"

    with pytest.raises(GraphDataError) as invalid:
        read_campus_graph(_write(tmp_path / "list.json", [1, 2, 3]))
    assert invalid.value.reason_code == "campus_graph_invalid"


def test_placeholder_graph_shape() -> None:
    graph = placeholder_graph()
    assert graph.placeholder is True
    assert [n.id for n in graph.nodes] == [0, 1, 2]
    assert [e.id for e in graph.edges] == ["e0", "e1"]
    assert graph.index == {0: (0,), 1: (0, 1), 2: (1,)}
    assert graph.index == build_edge_index(graph.edges)
    assert component_sizes(graph) == [3]


def test_store_falls_back_to_placeholder_when_dataset_missing(tmp_path: Path) -> None:
    store = GraphStore(tmp_path / "graph.json")

    graph = store.load()

    assert graph.placeholder is True
    status = store.status()
    assert status["placeholder"] is True
    assert status["fallback_reason"] == "campus_graph_missing"
    assert status["node_count"] == 3
    assert status["edge_count"] == 2


def test_store_treats_edgeless_dataset_as_missing(tmp_path: Path) -> None:
    path = _write(tmp_path / "graph.json", {"nodes": [{"id": 0, "coord": list(A)}], "edges": []})
    store = GraphStore(path)
    assert store.load().placeholder is True
    assert store.status()["fallback_reason"] == "campus_graph_empty"


def test_store_loads_dataset_once_and_applies_closures(tmp_path: Path) -> None:
    path = _write(tmp_path / "graph.json", _payload())
    store = GraphStore(path, closed_edge_ids=["bc"])

    first = store.load()
    second = store.load()

    assert first is second
    assert first.placeholder is False
    assert [e.closed for e in first.edges] == [False, True]
    status = store.status()
    assert status["closed_edge_count"] == 1
    assert status["component_count"] == 1
    assert status["fallback_reason"] is None


def test_store_concurrent_first_load_reads_once(monkeypatch, tmp_path: Path) -> None:
    calls: list[Path] = []
    expected = parse_campus_graph(_payload())

    def _slow_read(path: Path, **_kwargs: Any) -> CampusGraph:
        calls.append(path)
        time.sleep(0.05)
        return expected

    monkeypatch.setattr(routing_graph, "read_campus_graph", _slow_read)
    store = GraphStore(tmp_path / "graph.json")
    barrier = threading.Barrier(8)
    results: list[CampusGraph] = []
    results_lock = threading.Lock()

    def _worker() -> None:
        barrier.wait()
        graph = store.load()
        with results_lock:
            results.append(graph)

    threads = [threading.Thread(target=_worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert len(calls) == 1
    assert len(results) == 8
    assert all(graph is expected for graph in results)


def test_store_reset_reloads(tmp_path: Path) -> None:
    path = tmp_path / "graph.json"
    store = GraphStore(path)
    assert store.load().placeholder is True

    _write(path, _payload())
    assert store.load().placeholder is True
    store.reset()
    assert store.load().placeholder is False


def test_store_from_settings_reads_configured_path(monkeypatch, tmp_path: Path) -> None:
    path = _write(tmp_path / "graph.json", _payload())
    monkeypatch.setattr(routing_graph.settings, "campus_graph_asset_path", str(path))
    monkeypatch.setattr(routing_graph.settings, "campus_graph_closed_edge_ids", " ab , ")

    store = routing_graph.graph_store_from_settings()

    assert store.asset_path == path
    assert [e.closed for e in store.load().edges] == [True, False]
