from __future__ import annotations

import math
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from .path_engine import RouteResult


class RouteRequest(BaseModel):
    """Raw coordinates are ``[lon, lat]``; range problems surface as routing errors, not 422s."""

    start: tuple[float, float]
    end: tuple[float, float]
    profile: str | None = "default"

    @field_validator("profile", mode="before")
    @classmethod
    def coerce_profile(cls, v: object) -> str | None:
        if v is None:
            return None
        return str(v)


class FactorTallyModel(BaseModel):
    count: int = Field(..., ge=0)
    impact: Literal["positive", "negative"]
    description: str


class RouteReasoningModel(BaseModel):
    summary: str
    factors: dict[str, FactorTallyModel]
    positive_count: int = Field(..., ge=0)
    negative_count: int = Field(..., ge=0)


class RouteResponse(BaseModel):
    ok: bool
    profile: str
    coords: list[tuple[float, float]] | None = None
    length_m: float | None = None
    reasoning: RouteReasoningModel | None = None
    error: str | None = None
    start_node: int | None = None
    end_node: int | None = None
    edge_ids: list[str] = Field(default_factory=list)
    iterations: int = 0

    @classmethod
    def from_result(cls, result: RouteResult) -> RouteResponse:
        reasoning = None
        if result.reasoning is not None:
            reasoning = RouteReasoningModel(
                summary=result.reasoning.summary,
                factors={
                    name: FactorTallyModel(count=t.count, impact=t.impact, description=t.description)
                    for name, t in result.reasoning.factors.items()
                },
                positive_count=result.reasoning.positive_count,
                negative_count=result.reasoning.negative_count,
            )
        length_m = result.length_m
        if length_m is not None and math.isfinite(length_m):
            length_m = round(length_m, 2)
        return cls(
            ok=result.ok,
            profile=result.profile.value,
            coords=[(lon, lat) for lon, lat in result.coords] if result.coords is not None else None,
            length_m=length_m,
            reasoning=reasoning,
            error=result.error.value if result.error is not None else None,
            start_node=result.start_node,
            end_node=result.end_node,
            edge_ids=list(result.edge_ids),
            iterations=result.iterations,
        )


class ProfileListResponse(BaseModel):
    profiles: list[str]
    default: str = "default"
