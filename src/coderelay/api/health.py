from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from opentelemetry import trace

from coderelay.config import settings

router = APIRouter(prefix="/health", tags=["health"])
log = structlog.get_logger()
tracer = trace.get_tracer(__name__)


@router.get("")
async def health() -> JSONResponse:
    return JSONResponse(
        content={
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "version": settings.app_version,
        }
    )


@router.get("/live")
async def liveness() -> JSONResponse:
    """Liveness probe; always 200 while the process is running."""
    return JSONResponse(content={"status": "alive"})


@router.get("/ready")
async def readiness(request: Request) -> JSONResponse:
    """Readiness probe; 200 once the gateway exists and the model catalog has loaded."""
    checks: dict[str, str] = {}
    errors: dict[str, str] = {}

    with tracer.start_as_current_span("health.readiness"):
        if getattr(request.app.state, "gateway", None) is None:
            errors["gateway"] = "not initialised"
        else:
            checks["gateway"] = "ok"

        catalog = getattr(request.app.state, "catalog", None)
        if catalog is None:
            errors["catalog"] = "not initialised"
        elif catalog.refreshed_at is None:
            errors["catalog"] = "not loaded"
        else:
            checks["catalog"] = "ok"
            checks["models"] = str(len(catalog.models))

    if errors:
        log.warning("readiness_check_failed", errors=errors)
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "checks": checks, "errors": errors},
        )

    return JSONResponse(content={"status": "ready", "checks": checks})
