"""User stats aggregator: recompute cached per-user issue counts."""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from citycare.exceptions import NotFoundError
from citycare.models import Issue, User
from citycare.models.base import utcnow
from citycare.models.enums import IssueStatus

logger = logging.getLogger(__name__)


class UserStatsAggregator:
    """
    Recompute and persist ``{totalReports, resolvedReports, pendingReports}``.

    Nothing keeps the cache in sync automatically: every call site that
    creates, deletes or changes the status of an issue calls ``recompute``.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def counts_by_status(self, user_id: str) -> dict[str, int]:
        """Count a user's issues grouped by status."""
        result = await self.db.execute(
            select(Issue.status, func.count(Issue.id))
            .where(Issue.user_id == user_id)
            .group_by(Issue.status)
        )
        return {status: count for status, count in result.all()}

    async def recompute(self, user_id: str, commit: bool = True) -> User:
        """Rebuild the stats cache of one user and persist it."""
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")

        counts = await self.counts_by_status(user_id)
        user.total_reports = sum(counts.values())
        user.resolved_reports = counts.get(IssueStatus.RESOLVED, 0)
        user.pending_reports = counts.get(IssueStatus.PENDING, 0)
        user.updated_at = utcnow()

        if commit:
            await self.db.commit()
        else:
            await self.db.flush()

        logger.debug(f"Stats for user {user_id}: {user.stats}")
        return user
