from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from .cost_model import Profile
from .logging_utils import bind_request, log_event, reset_request
from .metrics_store import metrics_snapshot, record_route
from .models import ProfileListResponse, RouteRequest, RouteResponse
from .path_engine import RouteEngine
from .route_errors import normalize_error_code
from .routing_graph import GraphStore, graph_store_from_settings
from .settings import settings
from .weather_adapter import weather_provider_from_settings, weather_summary


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = graph_store_from_settings()
    graph = await run_in_threadpool(store.load)
    app.state.graph_store = store
    app.state.engine = RouteEngine.from_settings(graph, weather=weather_provider_from_settings())
    yield


app = FastAPI(title="Campus Access Router", version="0.3.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def route_engine(request: Request) -> RouteEngine:
    engine: RouteEngine | None = getattr(request.app.state, "engine", None)  # type: ignore[attr-defined]
    if engine is None:
        raise HTTPException(status_code=503, detail="Route engine not initialised")
    return engine


def graph_store(request: Request) -> GraphStore:
    store: GraphStore | None = getattr(request.app.state, "graph_store", None)  # type: ignore[attr-defined]
    if store is None:
        raise HTTPException(status_code=503, detail="Campus graph not initialised")
    return store


EngineDep = Annotated[RouteEngine, Depends(route_engine)]
GraphStoreDep = Annotated[GraphStore, Depends(graph_store)]


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "Backend is running. Visit /docs for the API UI.", "docs": "/docs"}


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/profiles", response_model=ProfileListResponse)
async def list_profiles() -> ProfileListResponse:
    return ProfileListResponse(profiles=[p.value for p in Profile], default=Profile.DEFAULT.value)


@app.get("/graph/status")
async def graph_status(store: GraphStoreDep, engine: EngineDep) -> dict[str, Any]:
    status = await run_in_threadpool(store.status)
    status["weather"] = weather_summary(engine.weather)
    return status


@app.get("/metrics")
async def metrics() -> dict[str, object]:
    return metrics_snapshot()


@app.post("/route", response_model=RouteResponse)
async def compute_route(req: RouteRequest, engine: EngineDep) -> RouteResponse:
    token = bind_request(str(uuid.uuid4()), requested_profile=req.profile)
    try:
        t0 = time.perf_counter()
        # CPU-bound search; keep it off the event loop.
        result = await run_in_threadpool(engine.route, req.start, req.end, req.profile)
        duration_ms = round((time.perf_counter() - t0) * 1000, 2)
        error = normalize_error_code(result.error) if result.error is not None else None
        record_route(result.profile.value, duration_ms=duration_ms, error=error, length_m=result.length_m)
        log_event(
            "route_request",
            profile=result.profile.value,
            start=list(req.start),
            end=list(req.end),
            ok=result.ok,
            error=error,
            start_node=result.start_node,
            end_node=result.end_node,
            segment_count=len(result.edge_ids),
            length_m=round(result.length_m, 2) if result.length_m is not None else None,
            iterations=result.iterations,
            graph_placeholder=engine.graph.placeholder,
            duration_ms=duration_ms,
        )
    finally:
        reset_request(token)
    return RouteResponse.from_result(result)
