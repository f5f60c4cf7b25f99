"""User model: profile, cached issue stats and embedded notifications."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from citycare.database import Base
from citycare.models.base import new_id, utcnow
from citycare.models.enums import UserRole


class User(Base):
    """
    A citizen (or administrator) known by their identity-provider id.

    ``stats_*`` columns are a cache over the issues table and are only as
    fresh as the last recompute. ``notifications`` holds at most
    ``notification_limit`` entries, newest first.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    clerk_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)

    # Profile
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str | None] = mapped_column(String(100))
    image_url: Mapped[str | None] = mapped_column(String(1024))
    phone: Mapped[str | None] = mapped_column(String(50))
    address: Mapped[dict | None] = mapped_column(JSON)

    role: Mapped[str] = mapped_column(String(20), default=UserRole.USER, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Cached aggregate over issues.user_id
    total_reports: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    resolved_reports: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    pending_reports: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    notifications: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (Index("idx_users_created_at", created_at.desc()),)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()

    @property
    def stats(self) -> dict[str, int]:
        return {
            "total_reports": self.total_reports or 0,
            "resolved_reports": self.resolved_reports or 0,
            "pending_reports": self.pending_reports or 0,
        }

    def __repr__(self) -> str:
        return f"<User {self.clerk_id}: {self.email}>"
