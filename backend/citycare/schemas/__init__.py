"""Pydantic schemas for API request/response validation."""

from citycare.schemas.common import ApiResponse, ErrorResponse, Pagination
from citycare.schemas.issue import (
    Coordinates,
    DashboardStats,
    IssueCreate,
    IssueEdit,
    IssueLocationOut,
    IssueOut,
    IssueUpdateCreate,
    MediaItem,
)
from citycare.schemas.user import (
    Address,
    NotificationListResponse,
    NotificationOut,
    UserOut,
    UserProfileIn,
    UserStats,
)

__all__ = [
    "Address",
    "ApiResponse",
    "Coordinates",
    "DashboardStats",
    "ErrorResponse",
    "IssueCreate",
    "IssueEdit",
    "IssueLocationOut",
    "IssueOut",
    "IssueUpdateCreate",
    "MediaItem",
    "NotificationListResponse",
    "NotificationOut",
    "Pagination",
    "UserOut",
    "UserProfileIn",
    "UserStats",
]
