"""
FastAPI server fronting the triage workflow.

Endpoints:
- POST /: Start a synchronous execution (alias: POST /executions)
- PUT /records, GET /records/{key}: Write and read records in the in-memory store
- GET /workflow: The workflow graph being executed
- GET /health: Component health with config hash and uptime
- GET /metrics: Prometheus exposition of probe metrics

Usage:
    $ uvicorn sentiflow.api.server:app --host 0.0.0.0 --port 8000

    $ curl -X POST http://localhost:8000/ \
      -H 'Content-Type: application/json' \
      -d '{"age": "34"}'
    {
      "execution_id": "5b0c...",
      "status": "SUCCEEDED",
      "output": {"age": "34", "text": "I hate this", "emotion": "NEGATIVE"},
      "error": null,
      ...
    }

Execution outcomes are always returned with HTTP 200; the body's `status`
(`SUCCEEDED`, `FAILED`, `TIMED_OUT`) and `error.cause` tell them apart.
"""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field

from .. import __version__
from ..config.container import Container, setup_container
from ..config.settings import get_settings
from ..core.determinism import freeze_config_and_hash, get_config_hash
from ..core.orchestrator import Orchestrator
from ..observability.logging import get_logger, get_trace_id
from ..observability.metrics import get_metrics_collector
from ..observability.probe import REGISTRY

logger = get_logger(__name__)


# Global state, populated by the lifespan handler
orchestrator: Orchestrator | None = None
container: Container | None = None


def _reset_globals_for_tests() -> None:
    """Reset global state for test isolation."""
    global orchestrator, container
    orchestrator = None
    container = None


class ExecutionErrorBody(BaseModel):
    cause: str
    state: str | None = None
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class ExecutionResponse(BaseModel):
    """Response model for the execution endpoint."""

    execution_id: str
    workflow: str
    status: str
    output: dict[str, Any] | None = None
    error: ExecutionErrorBody | None = None
    state_history: list[str] = []
    duration: float = 0.0
    timings_ms: dict[str, float] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Response model for health endpoint."""

    status: str
    version: str
    workflow: str | None
    config_hash: str
    uptime_seconds: float
    components: dict[str, str]


def create_app(app_container: Container | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = app_container.settings if app_container else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        global container, orchestrator

        logger.info("Starting sentiflow API server...")

        container = app_container or setup_container(settings)
        orchestrator = container.get_orchestrator()

        app.state.startup_time = time.time()
        app.state.config_hash = freeze_config_and_hash(container.settings)

        logger.info("sentiflow API server ready", workflow=orchestrator.definition.name)

        yield

        logger.info("Shutting down sentiflow API server...")
        await container.cleanup()
        _reset_globals_for_tests()

    app = FastAPI(
        title="sentiflow",
        description="Record triage workflow: fetch, classify, notify on negative sentiment",
        version=__version__,
        docs_url="/docs" if settings.api.enable_docs else None,
        redoc_url="/redoc" if settings.api.enable_docs else None,
        lifespan=lifespan,
    )

    if settings.api.enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.api.cors_origins,
            allow_credentials=settings.api.allow_credentials,
            allow_methods=settings.api.cors_methods,
            allow_headers=settings.api.cors_headers,
        )

    def _require_orchestrator() -> Orchestrator:
        if orchestrator is None:
            raise HTTPException(status_code=503, detail="Orchestrator not initialized")
        return orchestrator

    async def start_execution_endpoint(
        payload: dict[str, Any] = Body(..., description="Execution input"),
    ) -> ExecutionResponse:
        """Run the workflow synchronously for the posted payload."""
        current = _require_orchestrator()

        lookup_key = settings.workflow.lookup_key
        if lookup_key not in payload:
            raise HTTPException(
                status_code=422, detail=f"Payload must contain the '{lookup_key}' lookup key"
            )

        result = await current.start_execution(payload)
        return ExecutionResponse.model_validate(result.to_dict())

    app.add_api_route(
        "/", start_execution_endpoint, methods=["POST"], response_model=ExecutionResponse
    )
    app.add_api_route(
        "/executions",
        start_execution_endpoint,
        methods=["POST"],
        response_model=ExecutionResponse,
    )

    def _local_record_store():
        if container is None:
            raise HTTPException(status_code=503, detail="Container not initialized")
        store = container.get("record_store")
        if not hasattr(store, "put"):
            raise HTTPException(status_code=501, detail="Record store does not accept writes")
        return store

    @app.put("/records")
    async def put_record_endpoint(
        record: dict[str, Any] = Body(..., description="Record to insert or replace"),
    ) -> dict[str, Any]:
        """Write a record keyed by the lookup key."""
        store = _local_record_store()

        lookup_key = settings.workflow.lookup_key
        if lookup_key not in record:
            raise HTTPException(
                status_code=422, detail=f"Record must contain the '{lookup_key}' lookup key"
            )

        store.put(record)
        logger.info("Record written", key=str(record[lookup_key]))
        return {"key": str(record[lookup_key]), "record": record}

    @app.get("/records/{key}")
    async def get_record_endpoint(key: str) -> dict[str, Any]:
        record = _local_record_store().get(key)
        if record is None:
            raise HTTPException(status_code=404, detail=f"No record with key {key!r}")
        return record

    @app.get("/workflow")
    async def workflow_endpoint() -> dict[str, Any]:
        current = _require_orchestrator()
        return {**current.definition.describe(), "timeout_seconds": current.timeout}

    @app.get("/health", response_model=HealthResponse)
    async def health_check_endpoint() -> HealthResponse:
        startup_time = getattr(app.state, "startup_time", time.time())
        components = {"config": "healthy"}

        if orchestrator is None:
            components["orchestrator"] = "not_initialized"
        else:
            components["orchestrator"] = "healthy"
            try:
                for name, healthy in (await orchestrator.health_check()).items():
                    components[f"capability:{name}"] = "healthy" if healthy else "unhealthy"
            except Exception as e:
                logger.warning(f"Capability health check failed: {e}")
                components["capabilities"] = "error"

        return HealthResponse(
            status="healthy" if all(v == "healthy" for v in components.values()) else "unhealthy",
            version=__version__,
            workflow=orchestrator.definition.name if orchestrator else None,
            config_hash=getattr(app.state, "config_hash", None) or get_config_hash() or "unknown",
            uptime_seconds=max(0.0, time.time() - startup_time),
            components=components,
        )

    @app.get("/metrics")
    async def metrics_endpoint() -> Response:
        """Probe metrics in Prometheus text format."""
        return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)

    @app.get("/metrics/summary")
    async def metrics_summary_endpoint() -> dict[str, Any]:
        return get_metrics_collector().get_summary()

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled API exception at {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": str(exc) if settings.is_development() else "An unexpected error occurred",
                "trace_id": get_trace_id() or "unknown",
            },
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "sentiflow.api.server:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.api.reload,
        workers=settings.api.workers if not settings.api.reload else 1,
    )
