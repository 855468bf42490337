"""Health check API router."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text

from replyhub.api.utils import get_services
from replyhub.factory import Services
from replyhub.infra.database import get_db_session
from replyhub.infra.metrics import get_metrics_response

router = APIRouter()


@router.get("/health", tags=["Health"])
async def health_check(services: Services = Depends(get_services)):
    """Combined health check endpoint, including the model endpoint circuit."""
    snapshot = services.model_client.circuit_breaker.snapshot()
    return {
        "status": "ok",
        "service": "replyhub",
        "version": "1.0.0",
        "model_endpoint": {
            "circuit": services.model_client.circuit_breaker.name,
            "state": snapshot.state.value,
            "failure_count": snapshot.failure_count,
        },
    }


@router.get("/health/ready", tags=["Health"])
async def readiness_probe():
    """Readiness probe - checks database connectivity."""
    try:
        with get_db_session() as session:
            session.execute(text("SELECT 1"))
        return {"status": "ready"}
    except Exception:
        return JSONResponse(status_code=503, content={"status": "not_ready"})


@router.get("/metrics", tags=["Health"])
async def metrics():
    """Prometheus metrics endpoint."""
    return get_metrics_response()
