"""User profiles keyed by the external identity-provider id."""

import logging
from enum import StrEnum
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified

from citycare.config import Settings, get_settings
from citycare.exceptions import DuplicateKeyError, NotFoundError
from citycare.models import User
from citycare.models.base import new_id, utcnow
from citycare.models.enums import UserRole
from citycare.schemas.common import parse_payload
from citycare.schemas.user import Address, UserProfileIn
from citycare.services.stats import UserStatsAggregator

logger = logging.getLogger(__name__)


class UpsertOutcome(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    EXISTS = "exists"


class UserService:
    """Create, read, update and delete user documents."""

    def __init__(self, db: AsyncSession, stats: UserStatsAggregator | None = None):
        self.db = db
        self.stats = stats or UserStatsAggregator(db)

    async def find_by_clerk_id(self, clerk_id: str) -> User | None:
        result = await self.db.execute(select(User).where(User.clerk_id == clerk_id))
        return result.scalar_one_or_none()

    async def get_by_clerk_id(self, clerk_id: str) -> User:
        user = await self.find_by_clerk_id(clerk_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def _ensure_email_free(self, email: str, clerk_id: str) -> None:
        result = await self.db.execute(
            select(User.id).where(User.email == email, User.clerk_id != clerk_id)
        )
        if result.first() is not None:
            logger.warning(f"Duplicate email {email} for {clerk_id}")
            raise DuplicateKeyError("email")

    async def upsert(
        self, profile: UserProfileIn | dict[str, Any]
    ) -> tuple[User, UpsertOutcome]:
        """
        Create or update a user by ``clerkId``.

        Returns the user and whether it was created, updated or already
        created by a concurrent request. Optional profile fields are only
        overwritten when supplied.
        """
        payload = parse_payload(UserProfileIn, profile)
        address = payload.address.model_dump(by_alias=True) if payload.address else None

        await self._ensure_email_free(payload.email, payload.clerk_id)

        user = await self.find_by_clerk_id(payload.clerk_id)
        if user is not None:
            user.email = payload.email
            user.first_name = payload.first_name
            user.last_name = payload.last_name or user.last_name
            user.image_url = payload.image_url or user.image_url
            user.phone = payload.phone or user.phone
            if address is not None:
                user.address = address
                flag_modified(user, "address")
            user.updated_at = utcnow()
            await self.db.commit()
            logger.info(f"Updated user {user.id} ({payload.clerk_id})")
            return user, UpsertOutcome.UPDATED

        now = utcnow()
        user = User(
            id=new_id(),
            clerk_id=payload.clerk_id,
            email=payload.email,
            first_name=payload.first_name,
            last_name=payload.last_name,
            image_url=payload.image_url,
            phone=payload.phone,
            address=address,
            role=str(UserRole.USER),
            is_active=True,
            total_reports=0,
            resolved_reports=0,
            pending_reports=0,
            notifications=[],
            created_at=now,
            updated_at=now,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            existing = await self.find_by_clerk_id(payload.clerk_id)
            if existing is not None:
                # Lost a race with a concurrent create for the same clerkId
                logger.info(f"User {payload.clerk_id} already exists, returning it")
                return existing, UpsertOutcome.EXISTS
            field = "email" if "email" in str(e.orig).lower() else "clerkId"
            raise DuplicateKeyError(field) from e

        logger.info(f"Created user {user.id} ({payload.clerk_id})")
        return user, UpsertOutcome.CREATED

    async def refresh_stats(self, clerk_id: str) -> User:
        """Recompute the stats cache before it is read."""
        user = await self.get_by_clerk_id(clerk_id)
        return await self.stats.recompute(user.id)

    async def update_address(self, clerk_id: str, changes: Address | dict[str, Any]) -> User:
        """Merge the supplied address parts into the stored address."""
        patch = parse_payload(Address, changes).model_dump(by_alias=True, exclude_none=True)
        user = await self.get_by_clerk_id(clerk_id)

        current = dict(user.address or {})
        merged = {
            key: patch.get(key) or current.get(key)
            for key in ("street", "city", "state", "zipCode")
        }
        user.address = merged
        flag_modified(user, "address")
        user.updated_at = utcnow()
        await self.db.commit()
        return user

    async def delete(self, clerk_id: str) -> None:
        user = await self.get_by_clerk_id(clerk_id)
        await self.db.delete(user)
        await self.db.commit()
        logger.info(f"Deleted user {clerk_id}")


def is_admin(user: User, settings: Settings | None = None) -> bool:
    """Server-side admin check: admin role or an allow-listed email."""
    settings = settings or get_settings()
    return user.role == UserRole.ADMIN or user.email.lower() in settings.admin_emails
