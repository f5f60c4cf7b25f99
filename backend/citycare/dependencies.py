"""FastAPI dependencies: services bound to the request session and admin checks."""

import logging
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from citycare.config import Settings, get_settings
from citycare.database import get_db
from citycare.exceptions import ForbiddenError
from citycare.services.issues import IssueService
from citycare.services.media import MediaStorage
from citycare.services.notifications import NotificationService
from citycare.services.users import UserService, is_admin

logger = logging.getLogger(__name__)

DbSession = Annotated[AsyncSession, Depends(get_db)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


def get_issue_service(db: DbSession, settings: SettingsDep) -> IssueService:
    return IssueService(
        db, notifications=NotificationService(db, limit=settings.notification_limit)
    )


def get_user_service(db: DbSession) -> UserService:
    return UserService(db)


def get_notification_service(db: DbSession, settings: SettingsDep) -> NotificationService:
    return NotificationService(db, limit=settings.notification_limit)


def get_media_storage(settings: SettingsDep) -> MediaStorage:
    return MediaStorage(settings.upload_dir, max_bytes=settings.max_upload_bytes)


class StatusChangeGuard:
    """
    Authorize status changes on the server.

    Disabled unless ``enforce_admin_role`` is set. When enabled the caller
    names themselves with the ``X-Clerk-User-Id`` header and must be an
    admin by role or by the email allow-list.
    """

    def __init__(self, users: UserService, settings: Settings, clerk_user_id: str | None):
        self.users = users
        self.settings = settings
        self.clerk_user_id = clerk_user_id

    async def check(self) -> None:
        if not self.settings.enforce_admin_role:
            return
        if not self.clerk_user_id:
            raise ForbiddenError("Admin access required")

        user = await self.users.find_by_clerk_id(self.clerk_user_id)
        if user is None or not is_admin(user, self.settings):
            logger.warning(f"Rejected status change by {self.clerk_user_id}")
            raise ForbiddenError("Admin access required")


def get_status_change_guard(
    users: Annotated[UserService, Depends(get_user_service)],
    settings: SettingsDep,
    x_clerk_user_id: Annotated[str | None, Header()] = None,
) -> StatusChangeGuard:
    return StatusChangeGuard(users, settings, x_clerk_user_id)


IssueServiceDep = Annotated[IssueService, Depends(get_issue_service)]
UserServiceDep = Annotated[UserService, Depends(get_user_service)]
NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]
MediaStorageDep = Annotated[MediaStorage, Depends(get_media_storage)]
StatusChangeGuardDep = Annotated[StatusChangeGuard, Depends(get_status_change_guard)]
