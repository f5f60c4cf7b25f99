"""Database models."""

from citycare.models.issue import Issue
from citycare.models.user import User

__all__ = ["Issue", "User"]
