"""Issue lifecycle: creation, status changes, update history and queries."""

import logging
import math
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified

from citycare.exceptions import NotFoundError, ValidationError
from citycare.models import Issue, User
from citycare.models.base import new_id, utcnow
from citycare.models.enums import IssueStatus, NotificationType, priority_for
from citycare.schemas.common import Pagination, parse_payload
from citycare.schemas.issue import (
    DashboardStats,
    IssueCreate,
    IssueEdit,
    IssueLocationOut,
    StatusCount,
)
from citycare.services.notifications import NotificationService
from citycare.services.stats import UserStatsAggregator

logger = logging.getLogger(__name__)

# Status transitions are deliberately unguarded: any status may follow any other.
NOTIFICATION_TYPE_FOR_STATUS = {
    IssueStatus.RESOLVED: NotificationType.RESOLVED,
    IssueStatus.REJECTED: NotificationType.REJECTED,
}


class IssueService:
    """
    Service owning the Issue document and its status state machine.

    Features:
    - Priority derived from urgency on every urgency write
    - Append-only update log; every status change produces an entry
    - Owner stats recompute and notification after each lifecycle change
    """

    def __init__(
        self,
        db: AsyncSession,
        stats: UserStatsAggregator | None = None,
        notifications: NotificationService | None = None,
    ):
        self.db = db
        self.stats = stats or UserStatsAggregator(db)
        self.notifications = notifications or NotificationService(db)

    # ---------------------- Lookups ----------------------

    async def get(self, issue_id: str) -> Issue:
        """Fetch one issue or raise NotFoundError."""
        result = await self.db.execute(select(Issue).where(Issue.id == issue_id))
        issue = result.scalar_one_or_none()
        if issue is None:
            raise NotFoundError("Issue not found")
        return issue

    async def reporters_for(self, issues: list[Issue]) -> dict[str, User]:
        """Load the owners of the given issues, keyed by user id."""
        user_ids = {issue.user_id for issue in issues if issue.user_id}
        if not user_ids:
            return {}
        result = await self.db.execute(select(User).where(User.id.in_(user_ids)))
        return {user.id: user for user in result.scalars().all()}

    async def _get_owner(self, clerk_id: str) -> User:
        result = await self.db.execute(select(User).where(User.clerk_id == clerk_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found. Please create a profile first.")
        return user

    # ---------------------- Lifecycle ----------------------

    async def create(
        self,
        fields: IssueCreate | dict[str, Any],
        images: list[dict] | None = None,
        videos: list[dict] | None = None,
    ) -> Issue:
        """Create a pending issue for an existing user."""
        payload = parse_payload(IssueCreate, fields)
        user = await self._get_owner(payload.clerk_id)

        coordinates = payload.coordinates
        issue = Issue(
            id=new_id(),
            user_id=user.id,
            clerk_id=payload.clerk_id,
            title=payload.title,
            description=payload.description,
            category=str(payload.category),
            address=payload.location,
            latitude=coordinates.latitude if coordinates else None,
            longitude=coordinates.longitude if coordinates else None,
            urgency=str(payload.urgency),
            priority=priority_for(payload.urgency),
            status=str(IssueStatus.PENDING),
            images=images or [],
            videos=videos or [],
            updates=[],
        )
        self.db.add(issue)
        await self.db.flush()

        await self.stats.recompute(user.id, commit=False)
        await self.db.commit()

        logger.info(f"Issue {issue.id} created by {payload.clerk_id}: {issue.title}")
        return issue

    async def apply_update(
        self,
        issue_id: str,
        message: str | None,
        updated_by: str | None,
        new_status: str | None = None,
        commit: bool = True,
    ) -> Issue:
        """
        Append an update entry, optionally moving the issue to a new status.

        The entry records ``new_status`` or, when absent, the current status.
        Entering ``resolved`` or ``rejected`` stamps ``resolvedAt`` /
        ``rejectedAt``; those stamps are never cleared afterwards.
        """
        if not message or not message.strip() or not updated_by or not updated_by.strip():
            raise ValidationError("Message and updatedBy are required")
        if new_status is not None:
            try:
                new_status = IssueStatus(new_status)
            except ValueError:
                raise ValidationError(f"Invalid status: {new_status}") from None

        issue = await self.get(issue_id)
        now = utcnow()
        previous_status = issue.status

        entry = {
            "id": new_id(),
            "message": message.strip(),
            "updatedBy": updated_by.strip(),
            "status": str(new_status or previous_status),
            "createdAt": now.isoformat(),
        }
        issue.updates = [*(issue.updates or []), entry]
        flag_modified(issue, "updates")

        status_changed = new_status is not None and new_status != previous_status
        if status_changed:
            self._transition(issue, new_status, now, reason=entry["message"])
        issue.updated_at = now
        await self.db.flush()

        if issue.user_id:
            await self._fan_out(issue, entry["message"], status_changed)

        if commit:
            await self.db.commit()
        return issue

    def _transition(
        self, issue: Issue, new_status: IssueStatus, now: datetime, reason: str
    ) -> None:
        logger.info(f"Issue {issue.id}: {issue.status} -> {new_status}")
        issue.status = str(new_status)
        if new_status == IssueStatus.RESOLVED:
            issue.resolved_at = now
        elif new_status == IssueStatus.REJECTED:
            issue.rejected_at = now
            issue.rejection_reason = reason

    async def _fan_out(self, issue: Issue, message: str, status_changed: bool) -> None:
        """Refresh the owner's stats and notify them about the change."""
        if status_changed:
            notification_type = NOTIFICATION_TYPE_FOR_STATUS.get(
                issue.status, NotificationType.STATUS_UPDATE
            )
            text = f'Your issue "{issue.title}" is now {issue.status}: {message}'
        else:
            notification_type = NotificationType.COMMENT
            text = f'New update on your issue "{issue.title}": {message}'

        try:
            if status_changed:
                await self.stats.recompute(issue.user_id, commit=False)
            await self.notifications.notify(
                issue.user_id, issue.id, text, notification_type, commit=False
            )
        except NotFoundError:
            logger.warning(f"Owner {issue.user_id} of issue {issue.id} no longer exists")

    async def edit_fields(self, issue_id: str, changes: IssueEdit | dict[str, Any]) -> Issue:
        """
        Overwrite only the supplied fields.

        A status change is recorded through ``apply_update`` so it shows up
        in the update log and notifies the owner like any other transition.
        """
        edit = parse_payload(IssueEdit, changes)
        fields = edit.model_dump(exclude_unset=True, exclude_none=True)
        issue = await self.get(issue_id)

        for name in ("title", "description", "category"):
            if name in fields:
                setattr(issue, name, str(fields[name]))
        if "location" in fields:
            issue.address = fields["location"]
        if "urgency" in fields:
            issue.urgency = str(fields["urgency"])
            issue.priority = priority_for(fields["urgency"])
        issue.updated_at = utcnow()

        new_status = fields.get("status")
        if new_status is not None and new_status != issue.status:
            await self.apply_update(
                issue.id,
                f"Status changed to {new_status}",
                fields.get("updated_by") or "system",
                new_status,
                commit=False,
            )

        await self.db.commit()
        logger.info(f"Issue {issue.id} edited: {sorted(fields)}")
        return issue

    async def delete(self, issue_id: str) -> None:
        """Remove an issue permanently and refresh the former owner's stats."""
        issue = await self.get(issue_id)
        owner_id = issue.user_id

        await self.db.delete(issue)
        await self.db.flush()

        if owner_id:
            try:
                await self.stats.recompute(owner_id, commit=False)
            except NotFoundError:
                logger.warning(f"Owner {owner_id} of deleted issue {issue_id} no longer exists")

        await self.db.commit()
        logger.info(f"Issue {issue_id} deleted")

    # ---------------------- Queries ----------------------

    @staticmethod
    def _filters(
        status: str | None = None,
        category: str | None = None,
        urgency: str | None = None,
    ) -> list:
        filters = []
        if status:
            filters.append(Issue.status == status)
        if category:
            filters.append(Issue.category == category)
        if urgency:
            filters.append(Issue.urgency == urgency)
        return filters

    async def list_issues(
        self,
        status: str | None = None,
        category: str | None = None,
        urgency: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[Issue], Pagination]:
        """List issues newest first with offset pagination."""
        filters = self._filters(status, category, urgency)

        query = (
            select(Issue)
            .where(*filters)
            .order_by(Issue.created_at.desc(), Issue.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.db.execute(query)
        issues = list(result.scalars().all())

        total = await self.db.scalar(select(func.count(Issue.id)).where(*filters)) or 0
        pagination = Pagination(
            total=total,
            page=page,
            pages=math.ceil(total / limit) if limit else 0,
            limit=limit,
        )
        return issues, pagination

    async def list_locations(
        self,
        status: str | None = None,
        category: str | None = None,
        urgency: str | None = None,
        page: int = 1,
        limit: int = 1000,
    ) -> list[IssueLocationOut]:
        """Map markers: only issues whose coordinates are usable."""
        query = (
            select(Issue)
            .where(*self._filters(status, category, urgency))
            .order_by(Issue.created_at.desc(), Issue.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self.db.execute(query)

        locations = []
        for issue in result.scalars().all():
            out = IssueLocationOut.from_issue(issue)
            coordinates = out.location.coordinates
            if coordinates is not None and coordinates.is_valid:
                locations.append(out)
        return locations

    async def list_for_user(self, clerk_id: str, status: str | None = None) -> list[Issue]:
        """All issues reported by one user, newest first."""
        result = await self.db.execute(
            select(Issue)
            .where(Issue.clerk_id == clerk_id, *self._filters(status))
            .order_by(Issue.created_at.desc(), Issue.id.desc())
        )
        return list(result.scalars().all())

    async def dashboard_stats(self) -> DashboardStats:
        """
        Issue counts by status plus the number of users.

        Returns zeroed counts when the store is unreachable so the dashboard
        still renders during startup or an outage.
        """
        try:
            result = await self.db.execute(
                select(Issue.status, func.count(Issue.id)).group_by(Issue.status)
            )
            counts = {status: count for status, count in result.all()}
            total_users = await self.db.scalar(select(func.count(User.id))) or 0
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Dashboard stats unavailable, returning zeros: {e}")
            return DashboardStats()

        return DashboardStats(
            total_issues=sum(counts.values()),
            total_users=total_users,
            pending_issues=counts.get(IssueStatus.PENDING, 0),
            in_progress_issues=counts.get(IssueStatus.IN_PROGRESS, 0),
            resolved_issues=counts.get(IssueStatus.RESOLVED, 0),
            rejected_issues=counts.get(IssueStatus.REJECTED, 0),
            breakdown=[
                StatusCount(status=status, count=count)
                for status, count in sorted(counts.items())
            ],
        )
