"""Issue model: a reported civic problem and its lifecycle."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from citycare.database import Base
from citycare.models.base import new_id, utcnow
from citycare.models.enums import IssueStatus, Urgency


class Issue(Base):
    """
    Civic issue submitted by a user.

    ``priority`` is always derived from ``urgency``. ``updates`` is an
    append-only log of ``{id, message, updatedBy, status, createdAt}``
    entries; ``images``/``videos`` hold ``{url, filename, uploadedAt}``.
    """

    __tablename__ = "issues"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)

    # Owner
    user_id: Mapped[str | None] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="SET NULL")
    )
    clerk_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Content
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)

    # Location
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)

    # Lifecycle
    urgency: Mapped[str] = mapped_column(String(20), default=Urgency.MEDIUM, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=2, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=IssueStatus.PENDING, nullable=False)
    assigned_to: Mapped[str | None] = mapped_column(String(255))
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    # Embedded lists
    images: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    videos: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    updates: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("idx_issues_user_created", "user_id", created_at.desc()),
        Index("idx_issues_status_created", "status", created_at.desc()),
        Index("ix_issues_category", "category"),
        Index("ix_issues_urgency", "urgency"),
    )

    def __repr__(self) -> str:
        return f"<Issue {self.id}: {self.title} ({self.status})>"
