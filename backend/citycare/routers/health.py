"""Health and readiness endpoints."""

import logging
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from citycare.database import get_db
from citycare.models import Issue, User

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


class CollectionStatus(BaseModel):
    """Document count of one collection."""

    record_count: int
    newest_record: datetime | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    database: str
    users: CollectionStatus | None = None
    issues: CollectionStatus | None = None


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> HealthResponse:
    """
    Health check endpoint with store status.

    Reports ``degraded`` instead of failing when the store is unreachable.
    """
    try:
        users_count = await db.scalar(select(func.count(User.id))) or 0
        users_newest = await db.scalar(select(func.max(User.created_at)))
        issues_count = await db.scalar(select(func.count(Issue.id))) or 0
        issues_newest = await db.scalar(select(func.max(Issue.created_at)))
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Health check could not reach the database: {e}")
        return HealthResponse(
            status="degraded",
            timestamp=datetime.now(UTC),
            database="unavailable",
        )

    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        database="connected",
        users=CollectionStatus(record_count=users_count, newest_record=users_newest),
        issues=CollectionStatus(record_count=issues_count, newest_record=issues_newest),
    )


@router.get("/ready")
async def readiness_check() -> dict:
    """Simple readiness probe for container orchestration."""
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> dict:
    """Simple liveness probe for container orchestration."""
    return {"status": "alive"}
