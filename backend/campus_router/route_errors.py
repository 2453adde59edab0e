from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class RouteErrorCode(str, Enum):
    START_POINT_TOO_FAR = "start_point_too_far"
    END_POINT_TOO_FAR = "end_point_too_far"
    SAME_START_END = "same_start_end"
    START_NODE_DISCONNECTED = "start_node_disconnected"
    END_NODE_DISCONNECTED = "end_node_disconnected"
    NO_PATH = "no_path"


ROUTE_ERROR_CODES: frozenset[str] = frozenset(code.value for code in RouteErrorCode)

GRAPH_REASON_CODES: frozenset[str] = frozenset(
    {
        "campus_graph_missing",
        "campus_graph_unreadable",
        "campus_graph_invalid",
        "campus_graph_duplicate_node",
        "campus_graph_unknown_node",
        "campus_graph_index_mismatch",
        "campus_graph_empty",
    }
)


@dataclass
class GraphDataError(ValueError):
    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        # Fallback status reports only ever carry a known dataset reason.
        if self.reason_code not in GRAPH_REASON_CODES:
            self.reason_code = "campus_graph_invalid"

    def __str__(self) -> str:
        return self.message


def normalize_error_code(code: str, *, default: str = RouteErrorCode.NO_PATH.value) -> str:
    value = str(code.value if isinstance(code, RouteErrorCode) else code or "").strip()
    if value in ROUTE_ERROR_CODES:
        return value
    return default
