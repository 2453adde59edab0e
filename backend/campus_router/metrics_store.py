from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from threading import Lock

from .route_errors import normalize_error_code


@dataclass
class ProfileStats:
    request_count: int = 0
    found_count: int = 0
    total_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    total_length_m: float = 0.0
    errors: dict[str, int] = field(default_factory=dict)


class RouteMetricsStore:
    def __init__(self) -> None:
        self._lock = Lock()
        self._created_at = datetime.now(UTC).isoformat()
        self._profiles: dict[str, ProfileStats] = {}

    def record(
        self,
        profile: str,
        *,
        duration_ms: float,
        error: str | None = None,
        length_m: float | None = None,
    ) -> None:
        name = profile.strip() or "default"
        d_ms = max(float(duration_ms), 0.0)

        with self._lock:
            stats = self._profiles.setdefault(name, ProfileStats())
            stats.request_count += 1
            if error:
                error = normalize_error_code(error)
                stats.errors[error] = stats.errors.get(error, 0) + 1
            else:
                stats.found_count += 1
                stats.total_length_m += max(float(length_m or 0.0), 0.0)
            stats.total_duration_ms += d_ms
            if d_ms > stats.max_duration_ms:
                stats.max_duration_ms = d_ms

    def snapshot(self) -> dict[str, object]:
        with self._lock:
            profiles: dict[str, dict[str, object]] = {}
            total_requests = 0
            total_errors = 0

            for name in sorted(self._profiles):
                stats = self._profiles[name]
                error_count = sum(stats.errors.values())
                total_requests += stats.request_count
                total_errors += error_count
                avg_duration_ms = (
                    stats.total_duration_ms / stats.request_count if stats.request_count else 0.0
                )
                avg_length_m = stats.total_length_m / stats.found_count if stats.found_count else 0.0
                profiles[name] = {
                    "request_count": stats.request_count,
                    "found_count": stats.found_count,
                    "error_count": error_count,
                    "errors": dict(sorted(stats.errors.items())),
                    "avg_duration_ms": round(avg_duration_ms, 3),
                    "max_duration_ms": round(stats.max_duration_ms, 3),
                    "avg_length_m": round(avg_length_m, 1),
                }

            return {
                "created_at": self._created_at,
                "total_requests": total_requests,
                "total_errors": total_errors,
                "profiles": profiles,
            }

    def reset(self) -> None:
        with self._lock:
            self._created_at = datetime.now(UTC).isoformat()
            self._profiles.clear()


METRICS = RouteMetricsStore()


def record_route(profile: str, *, duration_ms: float, error: str | None = None, length_m: float | None = None) -> None:
    METRICS.record(profile, duration_ms=duration_ms, error=error, length_m=length_m)


def metrics_snapshot() -> dict[str, object]:
    return METRICS.snapshot()


def reset_metrics() -> None:
    METRICS.reset()
