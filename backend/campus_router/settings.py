from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_graph_asset_path() -> str:
    # The ingestion job drops its output next to the package, under backend/data.
    return str(Path(__file__).resolve().parents[1] / "data" / "graph.json")


def _default_out_dir() -> str:
    return str(Path(__file__).resolve().parents[1] / "out")


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping config out of code for easy extension."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    out_dir: str = Field(default_factory=_default_out_dir, alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    cors_allow_origins: str = Field(default="*", alias="CORS_ALLOW_ORIGINS")

    campus_graph_asset_path: str = Field(
        default_factory=_default_graph_asset_path,
        alias="CAMPUS_GRAPH_ASSET_PATH",
    )
    # Maintenance / incident closures, as a comma-separated list of edge ids.
    campus_graph_closed_edge_ids: str = Field(default="", alias="CAMPUS_GRAPH_CLOSED_EDGE_IDS")

    route_max_iterations: int = Field(default=10_000, ge=1, le=1_000_000, alias="ROUTE_MAX_ITERATIONS")
    route_snap_sample_max_distance_m: float = Field(
        default=500.0,
        gt=0.0,
        le=50_000.0,
        alias="ROUTE_SNAP_SAMPLE_MAX_DISTANCE_M",
    )
    route_snap_max_distance_m: float = Field(
        default=1_000.0,
        gt=0.0,
        le=50_000.0,
        alias="ROUTE_SNAP_MAX_DISTANCE_M",
    )

    weather_icy: bool = Field(default=False, alias="WEATHER_ICY")
    weather_low_visibility: bool = Field(default=False, alias="WEATHER_LOW_VISIBILITY")

    @model_validator(mode="after")
    def _order_snap_thresholds(self) -> "Settings":
        # The fallback tier must never be tighter than the sample tier.
        if self.route_snap_max_distance_m < self.route_snap_sample_max_distance_m:
            self.route_snap_max_distance_m = self.route_snap_sample_max_distance_m
        self.log_level = str(self.log_level or "INFO").strip().upper() or "INFO"
        return self

    def closed_edge_ids(self) -> frozenset[str]:
        raw = str(self.campus_graph_closed_edge_ids or "")
        return frozenset(part.strip() for part in raw.split(",") if part.strip())

    def cors_origins(self) -> list[str]:
        raw = str(self.cors_allow_origins or "")
        origins = [part.strip() for part in raw.split(",") if part.strip()]
        return origins or ["*"]


settings = Settings()
