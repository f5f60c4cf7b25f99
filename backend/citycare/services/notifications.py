"""Notification fan-out: bounded, newest-first notifications per user."""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified

from citycare.config import get_settings
from citycare.exceptions import NotFoundError, ValidationError
from citycare.models import Issue, User
from citycare.models.base import new_id, utcnow
from citycare.models.enums import NotificationType

logger = logging.getLogger(__name__)


@dataclass
class NotificationPage:
    """A slice of a user's notifications plus the overall unread count."""

    notifications: list[dict]
    unread_count: int


class NotificationService:
    """
    Record and read per-user notifications about their own issues.

    Notifications are embedded in the user document. Every write is a
    read-modify-write of that list; concurrent writers for the same user
    are last-write-wins.
    """

    def __init__(self, db: AsyncSession, limit: int | None = None):
        self.db = db
        self.limit = limit or get_settings().notification_limit

    async def _get_user(self, user_id: str) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def _get_user_by_clerk_id(self, clerk_id: str) -> User:
        result = await self.db.execute(select(User).where(User.clerk_id == clerk_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found")
        return user

    def _store(self, user: User, notifications: list[dict]) -> None:
        user.notifications = notifications
        # JSON columns are not mutation-tracked
        flag_modified(user, "notifications")

    async def notify(
        self,
        user_id: str,
        issue_id: str,
        message: str,
        type: str = NotificationType.STATUS_UPDATE,
        commit: bool = True,
    ) -> dict:
        """Prepend a notification and evict entries beyond the cap."""
        try:
            notification_type = NotificationType(type)
        except ValueError:
            raise ValidationError(f"Invalid notification type: {type}") from None

        user = await self._get_user(user_id)
        entry = {
            "id": new_id(),
            "issueId": issue_id,
            "message": message,
            "type": str(notification_type),
            "isRead": False,
            "createdAt": utcnow().isoformat(),
        }
        self._store(user, [entry, *(user.notifications or [])][: self.limit])

        if commit:
            await self.db.commit()
        else:
            await self.db.flush()

        logger.info(f"Notified user {user_id} about issue {issue_id} ({notification_type})")
        return entry

    async def list_notifications(
        self,
        clerk_id: str,
        unread_only: bool = False,
        limit: int = 20,
    ) -> NotificationPage:
        """Return up to ``limit`` notifications, newest first."""
        user = await self._get_user_by_clerk_id(clerk_id)
        notifications = list(user.notifications or [])
        unread_count = sum(1 for n in notifications if not n.get("isRead"))

        if unread_only:
            notifications = [n for n in notifications if not n.get("isRead")]
        page = notifications[:limit]

        return NotificationPage(
            notifications=await self._attach_issues(page),
            unread_count=unread_count,
        )

    async def _attach_issues(self, notifications: list[dict]) -> list[dict]:
        """Add a title/status/category summary of each referenced issue."""
        issue_ids = {n["issueId"] for n in notifications if n.get("issueId")}
        if not issue_ids:
            return notifications

        result = await self.db.execute(
            select(Issue.id, Issue.title, Issue.status, Issue.category).where(
                Issue.id.in_(issue_ids)
            )
        )
        issues = {
            row.id: {
                "id": row.id,
                "title": row.title,
                "status": row.status,
                "category": row.category,
            }
            for row in result.all()
        }
        return [{**n, "issue": issues.get(n.get("issueId"))} for n in notifications]

    async def mark_read(self, clerk_id: str, notification_id: str) -> dict:
        """Mark a single notification as read."""
        user = await self._get_user_by_clerk_id(clerk_id)

        notifications = [dict(n) for n in user.notifications or []]
        match = next((n for n in notifications if n.get("id") == notification_id), None)
        if match is None:
            raise NotFoundError("Notification not found")

        match["isRead"] = True
        self._store(user, notifications)
        await self.db.commit()
        return match

    async def mark_all_read(self, clerk_id: str) -> int:
        """Mark every notification as read; returns how many changed."""
        user = await self._get_user_by_clerk_id(clerk_id)

        notifications = [dict(n) for n in user.notifications or []]
        changed = 0
        for notification in notifications:
            if not notification.get("isRead"):
                notification["isRead"] = True
                changed += 1

        self._store(user, notifications)
        await self.db.commit()
        logger.info(f"Marked {changed} notifications read for {clerk_id}")
        return changed
