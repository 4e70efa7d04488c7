"""Health check endpoints.

``/live`` only says the process is up. ``/ready`` and ``/health`` also
query the database, so an instance that lost its connection is taken out
of rotation.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_engine.api.dependencies import DbSession, Identity

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Component status report."""

    status: str
    timestamp: datetime
    database: str
    identity_provider: str


async def _database_reachable(db: AsyncSession) -> bool:
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        return False
    return True


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession, identity: Identity) -> HealthResponse:
    """Report database reachability and the configured identity provider."""
    healthy = await _database_reachable(db)
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        timestamp=datetime.now(timezone.utc),
        database="healthy" if healthy else "unhealthy",
        identity_provider=identity.provider_name,
    )


@router.get(
    "/ready",
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "Database unreachable"}},
)
async def readiness_check(db: DbSession, response: Response) -> dict[str, str]:
    """Ready only while the database answers."""
    if not await _database_reachable(db):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unavailable"}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
