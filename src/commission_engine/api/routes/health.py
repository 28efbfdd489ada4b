"""Health check endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from commission_engine.api.dependencies import DbSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    database: str
    settings: str
    engine_version: str


class ReadinessResponse(BaseModel):
    """Readiness check response; each check is healthy or unhealthy."""

    status: str
    checks: dict[str, str]


def _check_database(db: Session) -> str:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Database health check failed", exc_info=True)
        return UNHEALTHY
    return HEALTHY


def _check_settings(request: Request) -> str:
    """Commission rates must be loadable before payments can be processed."""
    try:
        request.app.state.settings_provider.get_settings()
    except (SQLAlchemyError, ValueError, ArithmeticError):
        logger.warning("Commission settings could not be loaded", exc_info=True)
        return UNHEALTHY
    return HEALTHY


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
def health_check(request: Request, db: DbSession) -> HealthResponse:
    """Report database and commission settings health."""
    checks = {"database": _check_database(db), "settings": _check_settings(request)}
    overall = HEALTHY if all(v == HEALTHY for v in checks.values()) else "degraded"

    return HealthResponse(
        status=overall,
        timestamp=datetime.now(timezone.utc),
        engine_version=request.app.state.engine_version,
        **checks,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
def readiness_check(request: Request, response: Response, db: DbSession) -> ReadinessResponse:
    """Ready once the ledger database answers and commission rates load."""
    checks = {"database": _check_database(db), "settings": _check_settings(request)}
    if any(v != HEALTHY for v in checks.values()):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ReadinessResponse(status="not_ready", checks=checks)
    return ReadinessResponse(status="ready", checks=checks)


@router.get("/live", status_code=status.HTTP_200_OK)
def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
