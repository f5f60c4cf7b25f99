"""Pydantic schemas for user profiles and notifications."""

from datetime import datetime

from pydantic import ConfigDict, EmailStr, Field, field_validator

from citycare.models.enums import IssueCategory, IssueStatus, NotificationType, UserRole
from citycare.schemas.common import ApiResponse, CamelModel


class Address(CamelModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None


class UserProfileIn(CamelModel):
    """Upsert payload keyed by the identity-provider id."""

    model_config = ConfigDict(str_strip_whitespace=True)

    clerk_id: str = Field(..., min_length=1)
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    image_url: str | None = None
    phone: str | None = None
    address: Address | None = None

    @field_validator("email")
    @classmethod
    def _lowercase_email(cls, value: str) -> str:
        return value.strip().lower()


class UserStats(CamelModel):
    total_reports: int = 0
    resolved_reports: int = 0
    pending_reports: int = 0


class UserOut(CamelModel):
    """User profile response schema."""

    id: str
    clerk_id: str
    email: str
    first_name: str
    last_name: str | None = None
    full_name: str
    image_url: str | None = None
    phone: str | None = None
    address: Address | None = None
    role: UserRole
    is_active: bool
    stats: UserStats
    created_at: datetime
    updated_at: datetime


class NotificationIssue(CamelModel):
    """Summary of the issue a notification refers to."""

    id: str
    title: str
    status: IssueStatus
    category: IssueCategory


class NotificationOut(CamelModel):
    id: str
    issue_id: str
    message: str
    type: NotificationType
    is_read: bool = False
    created_at: datetime
    issue: NotificationIssue | None = None


class NotificationListResponse(ApiResponse[list[NotificationOut]]):
    """Notification page plus the unread count over the whole list."""

    unread_count: int = 0
