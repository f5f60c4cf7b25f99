"""Enumerations shared by models, schemas and services."""

from enum import StrEnum


class IssueCategory(StrEnum):
    POTHOLES = "Potholes"
    STREET_LIGHTS = "Street Lights"
    GARBAGE_COLLECTION = "Garbage Collection"
    WATER_SUPPLY = "Water Supply"
    DRAINAGE = "Drainage"
    PUBLIC_PROPERTY_DAMAGE = "Public Property Damage"
    OTHER = "Other"


class Urgency(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IssueStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class UserRole(StrEnum):
    USER = "user"
    ADMIN = "admin"
    MODERATOR = "moderator"


class NotificationType(StrEnum):
    STATUS_UPDATE = "status_update"
    COMMENT = "comment"
    RESOLVED = "resolved"
    REJECTED = "rejected"


URGENCY_PRIORITY: dict[Urgency, int] = {
    Urgency.LOW: 1,
    Urgency.MEDIUM: 2,
    Urgency.HIGH: 3,
    Urgency.CRITICAL: 4,
}


def priority_for(urgency: str) -> int:
    """Map an urgency level onto its fixed 1-4 priority."""
    return URGENCY_PRIORITY[Urgency(urgency)]
