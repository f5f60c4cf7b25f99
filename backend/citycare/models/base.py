"""Column default helpers shared by the models."""

from datetime import UTC, datetime
from uuid import uuid4


def new_id() -> str:
    """Generate a document id (32 hex chars)."""
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(UTC)
