"""
Health Check Routes

FastAPI endpoints for service health and readiness checks.
"""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", status_code=status.HTTP_200_OK)
async def health() -> JSONResponse:
    """
    Liveness plus a core database readiness check.

    Returns:
        200 OK when the core database answers
        503 Service Unavailable otherwise
    """
    from askdata.api.main import app_state

    checks: dict[str, bool] = {}
    try:
        store = app_state.get("store")
        checks["core_database"] = bool(store is not None and await store.ping())
    except Exception as e:
        logger.warning(f"Core database check: FAILED ({e})")
        checks["core_database"] = False

    checks["pipeline"] = app_state.get("pipeline") is not None
    healthy = checks["core_database"]

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if healthy else "degraded",
            "version": "0.1.0",
            "timestamp": datetime.now(UTC).isoformat(),
            "checks": checks,
        },
    )
