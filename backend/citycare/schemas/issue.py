"""Pydantic schemas for issues."""

import json
import logging
import math
from datetime import datetime
from typing import Any

from pydantic import ConfigDict, Field, field_validator

from citycare.models import Issue, User
from citycare.models.enums import IssueCategory, IssueStatus, Urgency
from citycare.schemas.common import CamelModel

logger = logging.getLogger(__name__)


def _to_float(value: Any) -> float | None:
    """Coerce numbers and numeric strings; anything else becomes None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_coordinates(value: Any) -> dict[str, float | None] | None:
    """
    Normalize submitted coordinates.

    Accepts ``{lat, lng}`` or ``{latitude, longitude}``, either as a mapping
    or as a JSON string (multipart forms send strings). Unparsable input is
    dropped rather than rejected.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            logger.warning(f"Failed to parse coordinates: {value!r}")
            return None
    if isinstance(value, Coordinates):
        return value.model_dump()
    if not isinstance(value, dict):
        logger.warning(f"Ignoring coordinates of type {type(value).__name__}")
        return None

    latitude = value.get("latitude", value.get("lat"))
    longitude = value.get("longitude", value.get("lng"))
    return {"latitude": _to_float(latitude), "longitude": _to_float(longitude)}


class Coordinates(CamelModel):
    """Geographic coordinates; either part may be unknown."""

    latitude: float | None = None
    longitude: float | None = None

    @property
    def is_valid(self) -> bool:
        return (
            self.latitude is not None
            and self.longitude is not None
            and -90 <= self.latitude <= 90
            and -180 <= self.longitude <= 180
        )


class Location(CamelModel):
    address: str
    coordinates: Coordinates | None = None


class MediaItem(CamelModel):
    url: str
    filename: str
    uploaded_at: datetime | None = None


class Media(CamelModel):
    images: list[MediaItem] = Field(default_factory=list)
    videos: list[MediaItem] = Field(default_factory=list)


class UpdateEntry(CamelModel):
    """One entry of an issue's update log."""

    id: str | None = None
    message: str
    updated_by: str
    status: IssueStatus | None = None
    created_at: datetime


class Reporter(CamelModel):
    """Summary of the user who reported an issue."""

    id: str
    first_name: str
    last_name: str | None = None
    email: str
    image_url: str | None = None
    phone: str | None = None


# ---------------------- Requests ----------------------


class IssueCreate(CamelModel):
    """Submission payload for a new issue (JSON body or form fields)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    clerk_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    category: IssueCategory
    location: str = Field(..., min_length=1, description="Street address")
    urgency: Urgency = Urgency.MEDIUM
    coordinates: Coordinates | None = None

    @field_validator("coordinates", mode="before")
    @classmethod
    def _normalize_coordinates(cls, value: Any) -> dict[str, float | None] | None:
        return parse_coordinates(value)


class IssueEdit(CamelModel):
    """Partial field edit; only supplied fields are written."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, min_length=1, max_length=2000)
    category: IssueCategory | None = None
    location: str | None = Field(None, min_length=1)
    urgency: Urgency | None = None
    status: IssueStatus | None = None
    updated_by: str | None = Field(None, min_length=1)


class IssueUpdateCreate(CamelModel):
    """Update-log entry, optionally changing the status."""

    model_config = ConfigDict(str_strip_whitespace=True)

    message: str = Field(..., min_length=1)
    updated_by: str = Field(..., min_length=1)
    status: IssueStatus | None = None


# ---------------------- Responses ----------------------


class IssueOut(CamelModel):
    """Issue response schema."""

    id: str
    user_id: str | None = None
    clerk_id: str
    title: str
    description: str
    category: IssueCategory
    location: Location
    urgency: Urgency
    priority: int
    status: IssueStatus
    media: Media
    updates: list[UpdateEntry] = Field(default_factory=list)
    assigned_to: str | None = None
    resolved_at: datetime | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime
    updated_at: datetime
    reporter: Reporter | None = None

    @classmethod
    def from_issue(cls, issue: Issue, reporter: User | None = None) -> "IssueOut":
        return cls(
            id=issue.id,
            user_id=issue.user_id,
            clerk_id=issue.clerk_id,
            title=issue.title,
            description=issue.description,
            category=issue.category,
            location=_location(issue),
            urgency=issue.urgency,
            priority=issue.priority,
            status=issue.status,
            media=Media(images=issue.images or [], videos=issue.videos or []),
            updates=issue.updates or [],
            assigned_to=issue.assigned_to,
            resolved_at=issue.resolved_at,
            rejected_at=issue.rejected_at,
            rejection_reason=issue.rejection_reason,
            created_at=issue.created_at,
            updated_at=issue.updated_at,
            reporter=Reporter.model_validate(reporter) if reporter is not None else None,
        )


class IssueLocationOut(CamelModel):
    """Lightweight issue projection for map markers."""

    id: str
    title: str
    category: IssueCategory
    status: IssueStatus
    urgency: Urgency
    location: Location

    @classmethod
    def from_issue(cls, issue: Issue) -> "IssueLocationOut":
        return cls(
            id=issue.id,
            title=issue.title,
            category=issue.category,
            status=issue.status,
            urgency=issue.urgency,
            location=_location(issue),
        )


class StatusCount(CamelModel):
    status: IssueStatus
    count: int


class DashboardStats(CamelModel):
    """Aggregate counts for the admin dashboard."""

    total_issues: int = 0
    total_users: int = 0
    pending_issues: int = 0
    in_progress_issues: int = 0
    resolved_issues: int = 0
    rejected_issues: int = 0
    breakdown: list[StatusCount] = Field(default_factory=list)


def _location(issue: Issue) -> Location:
    coordinates = None
    if issue.latitude is not None or issue.longitude is not None:
        coordinates = Coordinates(latitude=issue.latitude, longitude=issue.longitude)
    return Location(address=issue.address, coordinates=coordinates)
