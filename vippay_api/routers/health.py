"""Health check endpoints."""

import logging

from fastapi import APIRouter, Response, status
from sqlalchemy import text

from vippay_api import __version__
from vippay_api.config.env import load_payment_config
from vippay_api.db.session import engine
from vippay_api.errors import ConfigurationMissing
from vippay_api.schemas import HealthResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def check_database() -> str:
    """Check database connectivity.

    Returns:
        str: "up" if healthy, error message otherwise
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return "up"
    except Exception as e:
        logger.error(f"Database health check failed: {type(e).__name__}")
        return f"down: {type(e).__name__}"


def check_payment_config() -> str:
    """Check that the payment configuration is complete (names only, never values)."""
    try:
        load_payment_config()
        return "up"
    except ConfigurationMissing as e:
        return f"down: missing {', '.join(e.missing)}"


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Always returns 200 OK (use /readyz for dependency checks).
    """
    return HealthResponse(
        status="healthy",
        version=__version__,
        services={
            "database": check_database(),
            "payment_config": check_payment_config(),
        },
    )


@router.get("/readyz", response_model=HealthResponse)
async def readiness_check(response: Response) -> HealthResponse:
    """Readiness check: 503 if any dependency is down."""
    services = {
        "database": check_database(),
        "payment_config": check_payment_config(),
    }

    if any(svc_status.startswith("down") for svc_status in services.values()):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", version=__version__, services=services)

    return HealthResponse(status="ready", version=__version__, services=services)
