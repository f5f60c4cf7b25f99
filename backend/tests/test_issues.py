"""Tests for the issue service."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from citycare.exceptions import NotFoundError, ValidationError
from citycare.models import User
from citycare.models.base import new_id
from citycare.schemas.issue import parse_coordinates
from citycare.services import IssueService, UserStatsAggregator


class TestCreateIssue:
    """Tests for IssueService.create."""

    @pytest.mark.asyncio
    async def test_create_defaults(self, db_session, citizen, issue_payload):
        """New issues start pending with medium urgency."""
        issue = await IssueService(db_session).create(issue_payload)

        assert len(issue.id) == 32
        assert issue.user_id == citizen.id
        assert issue.clerk_id == "u1"
        assert issue.status == "pending"
        assert issue.urgency == "medium"
        assert issue.priority == 2
        assert issue.updates == []
        assert issue.images == []
        assert issue.videos == []
        assert issue.created_at is not None

    @pytest.mark.parametrize(
        "urgency,priority",
        [("low", 1), ("medium", 2), ("high", 3), ("critical", 4)],
    )
    @pytest.mark.asyncio
    async def test_priority_follows_urgency(
        self, db_session, citizen, issue_payload, urgency, priority
    ):
        issue = await IssueService(db_session).create({**issue_payload, "urgency": urgency})

        assert issue.priority == priority

    @pytest.mark.asyncio
    async def test_create_refreshes_owner_stats(self, db_session, citizen, issue_payload):
        service = IssueService(db_session)
        await service.create(issue_payload)
        await service.create({**issue_payload, "title": "Broken lamp"})

        user = await db_session.get(User, citizen.id)
        assert user.total_reports == 2
        assert user.pending_reports == 2
        assert user.resolved_reports == 0

    @pytest.mark.asyncio
    async def test_create_missing_field(self, db_session, citizen, issue_payload):
        payload = {k: v for k, v in issue_payload.items() if k != "title"}

        with pytest.raises(ValidationError) as exc_info:
            await IssueService(db_session).create(payload)

        assert exc_info.value.message == "All required fields must be provided"
        assert any(error.startswith("title") for error in exc_info.value.errors)

    @pytest.mark.asyncio
    async def test_create_rejects_bad_values(self, db_session, citizen, issue_payload):
        service = IssueService(db_session)

        with pytest.raises(ValidationError):
            await service.create({**issue_payload, "category": "Aliens"})
        with pytest.raises(ValidationError):
            await service.create({**issue_payload, "title": "x" * 201})
        with pytest.raises(ValidationError):
            await service.create({**issue_payload, "description": "x" * 2001})
        with pytest.raises(ValidationError):
            await service.create({**issue_payload, "urgency": "whenever"})

    @pytest.mark.asyncio
    async def test_create_unknown_user(self, db_session, issue_payload):
        with pytest.raises(NotFoundError) as exc_info:
            await IssueService(db_session).create({**issue_payload, "clerkId": "ghost"})

        assert exc_info.value.message == "User not found. Please create a profile first."

    @pytest.mark.asyncio
    async def test_create_with_coordinates(self, db_session, citizen, issue_payload):
        issue = await IssueService(db_session).create(
            {**issue_payload, "coordinates": '{"lat": "40.7", "lng": -74}'}
        )

        assert issue.latitude == 40.7
        assert issue.longitude == -74.0

    @pytest.mark.asyncio
    async def test_create_ignores_unparsable_coordinates(
        self, db_session, citizen, issue_payload
    ):
        issue = await IssueService(db_session).create(
            {**issue_payload, "coordinates": "somewhere downtown"}
        )

        assert issue.latitude is None
        assert issue.longitude is None


class TestParseCoordinates:
    """Tests for coordinate normalization."""

    def test_short_keys(self):
        assert parse_coordinates({"lat": 1.5, "lng": 2.5}) == {
            "latitude": 1.5,
            "longitude": 2.5,
        }

    def test_long_keys_from_json(self):
        assert parse_coordinates('{"latitude": 10, "longitude": "20"}') == {
            "latitude": 10.0,
            "longitude": 20.0,
        }

    def test_non_numeric_parts_become_none(self):
        assert parse_coordinates({"lat": "north", "lng": 3}) == {
            "latitude": None,
            "longitude": 3.0,
        }

    def test_garbage(self):
        assert parse_coordinates(None) is None
        assert parse_coordinates("") is None
        assert parse_coordinates("{not json") is None
        assert parse_coordinates([1, 2]) is None


class TestApplyUpdate:
    """Tests for the status state machine and update log."""

    @pytest.mark.asyncio
    async def test_resolve(self, db_session, citizen, issue):
        updated = await IssueService(db_session).apply_update(
            issue.id, "Fixed", "admin", "resolved"
        )

        assert updated.status == "resolved"
        assert updated.resolved_at is not None
        assert len(updated.updates) == 1
        entry = updated.updates[0]
        assert entry["message"] == "Fixed"
        assert entry["updatedBy"] == "admin"
        assert entry["status"] == "resolved"
        assert entry["createdAt"]

        user = await db_session.get(User, citizen.id)
        assert user.resolved_reports == 1
        assert user.pending_reports == 0
        assert user.notifications[0]["type"] == "resolved"
        assert user.notifications[0]["message"] == 'Your issue "Pothole" is now resolved: Fixed'
        assert user.notifications[0]["issueId"] == issue.id
        assert user.notifications[0]["isRead"] is False

    @pytest.mark.asyncio
    async def test_reject_records_reason(self, db_session, citizen, issue):
        updated = await IssueService(db_session).apply_update(
            issue.id, "Duplicate report", "admin", "rejected"
        )

        assert updated.status == "rejected"
        assert updated.rejected_at is not None
        assert updated.rejection_reason == "Duplicate report"

        user = await db_session.get(User, citizen.id)
        assert user.notifications[0]["type"] == "rejected"

    @pytest.mark.asyncio
    async def test_in_progress_is_status_update(self, db_session, citizen, issue):
        await IssueService(db_session).apply_update(
            issue.id, "Crew assigned", "admin", "in-progress"
        )

        user = await db_session.get(User, citizen.id)
        assert user.notifications[0]["type"] == "status_update"
        assert user.pending_reports == 0
        assert user.total_reports == 1

    @pytest.mark.asyncio
    async def test_comment_keeps_status(self, db_session, citizen, issue):
        updated = await IssueService(db_session).apply_update(
            issue.id, "Crew scheduled", "admin"
        )

        assert updated.status == "pending"
        assert updated.updates[0]["status"] == "pending"

        user = await db_session.get(User, citizen.id)
        assert user.notifications[0]["type"] == "comment"
        assert (
            user.notifications[0]["message"]
            == 'New update on your issue "Pothole": Crew scheduled'
        )

    @pytest.mark.asyncio
    async def test_same_status_is_a_comment(self, db_session, citizen, issue):
        updated = await IssueService(db_session).apply_update(
            issue.id, "Still waiting", "admin", "pending"
        )

        assert updated.status == "pending"
        user = await db_session.get(User, citizen.id)
        assert user.notifications[0]["type"] == "comment"

    @pytest.mark.asyncio
    async def test_audit_timestamps_survive_reopen(self, db_session, citizen, issue):
        service = IssueService(db_session)
        await service.apply_update(issue.id, "Fixed", "admin", "resolved")
        await service.apply_update(issue.id, "Not fixed", "admin", "rejected")
        reopened = await service.apply_update(issue.id, "Reopened", "admin", "in-progress")

        assert reopened.status == "in-progress"
        assert reopened.resolved_at is not None
        assert reopened.rejected_at is not None
        assert [u["status"] for u in reopened.updates] == [
            "resolved",
            "rejected",
            "in-progress",
        ]

    @pytest.mark.asyncio
    async def test_update_log_is_append_only(self, db_session, citizen, issue):
        service = IssueService(db_session)
        await service.apply_update(issue.id, "First", "admin")
        updated = await service.apply_update(issue.id, "Second", "admin")

        assert [u["message"] for u in updated.updates] == ["First", "Second"]
        assert updated.updates[0]["id"] != updated.updates[1]["id"]

    @pytest.mark.asyncio
    async def test_requires_message_and_author(self, db_session, citizen, issue):
        service = IssueService(db_session)

        with pytest.raises(ValidationError):
            await service.apply_update(issue.id, "", "admin")
        with pytest.raises(ValidationError):
            await service.apply_update(issue.id, "Fixed", "  ")

    @pytest.mark.asyncio
    async def test_invalid_status(self, db_session, citizen, issue):
        with pytest.raises(ValidationError):
            await IssueService(db_session).apply_update(issue.id, "Done", "admin", "closed")

    @pytest.mark.asyncio
    async def test_unknown_issue(self, db_session):
        with pytest.raises(NotFoundError):
            await IssueService(db_session).apply_update(new_id(), "Done", "admin")


class TestEditFields:
    """Tests for IssueService.edit_fields."""

    @pytest.mark.asyncio
    async def test_only_supplied_fields_change(self, db_session, citizen, issue):
        updated = await IssueService(db_session).edit_fields(
            issue.id, {"description": "Now even larger"}
        )

        assert updated.description == "Now even larger"
        assert updated.title == "Pothole"
        assert updated.address == "Main St"
        assert updated.updates == []

    @pytest.mark.asyncio
    async def test_urgency_recomputes_priority(self, db_session, citizen, issue):
        updated = await IssueService(db_session).edit_fields(issue.id, {"urgency": "critical"})

        assert updated.urgency == "critical"
        assert updated.priority == 4

    @pytest.mark.asyncio
    async def test_status_edit_is_logged(self, db_session, citizen, issue):
        updated = await IssueService(db_session).edit_fields(
            issue.id, {"status": "in-progress", "title": "Deep pothole"}
        )

        assert updated.status == "in-progress"
        assert updated.title == "Deep pothole"
        assert len(updated.updates) == 1
        assert updated.updates[0]["message"] == "Status changed to in-progress"
        assert updated.updates[0]["updatedBy"] == "system"

        user = await db_session.get(User, citizen.id)
        assert user.notifications[0]["type"] == "status_update"
        assert user.pending_reports == 0

    @pytest.mark.asyncio
    async def test_status_edit_author(self, db_session, citizen, issue):
        updated = await IssueService(db_session).edit_fields(
            issue.id, {"status": "resolved", "updatedBy": "crew-7"}
        )

        assert updated.resolved_at is not None
        assert updated.updates[0]["updatedBy"] == "crew-7"

    @pytest.mark.asyncio
    async def test_invalid_edit(self, db_session, citizen, issue):
        with pytest.raises(ValidationError):
            await IssueService(db_session).edit_fields(issue.id, {"urgency": "soon"})


class TestDeleteIssue:
    """Tests for IssueService.delete."""

    @pytest.mark.asyncio
    async def test_delete_refreshes_stats(self, db_session, citizen, issue):
        service = IssueService(db_session)
        await service.delete(issue.id)

        with pytest.raises(NotFoundError):
            await service.get(issue.id)
        user = await db_session.get(User, citizen.id)
        assert user.total_reports == 0
        assert user.pending_reports == 0

    @pytest.mark.asyncio
    async def test_delete_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            await IssueService(db_session).delete(new_id())


class TestQueries:
    """Tests for list, location and dashboard queries."""

    @pytest.mark.asyncio
    async def test_list_with_filters_and_pagination(self, db_session, citizen, issue_payload):
        service = IssueService(db_session)
        for title in ("One", "Two", "Three"):
            await service.create({**issue_payload, "title": title})
        await service.create({**issue_payload, "title": "Lamp", "category": "Street Lights"})

        issues, pagination = await service.list_issues(limit=2)
        assert len(issues) == 2
        assert pagination.total == 4
        assert pagination.pages == 2
        assert pagination.page == 1

        issues, pagination = await service.list_issues(category="Street Lights")
        assert [i.title for i in issues] == ["Lamp"]
        assert pagination.total == 1

    @pytest.mark.asyncio
    async def test_locations_skip_invalid_coordinates(
        self, db_session, citizen, issue_payload
    ):
        service = IssueService(db_session)
        await service.create(
            {**issue_payload, "title": "Mapped", "coordinates": {"lat": 40, "lng": -74}}
        )
        await service.create(
            {**issue_payload, "title": "Off map", "coordinates": {"lat": 95, "lng": 0}}
        )
        await service.create({**issue_payload, "title": "Unmapped"})

        locations = await service.list_locations()

        assert [loc.title for loc in locations] == ["Mapped"]
        assert locations[0].location.coordinates.latitude == 40.0

    @pytest.mark.asyncio
    async def test_list_for_user(self, db_session, citizen, issue, issue_payload):
        service = IssueService(db_session)

        assert [i.id for i in await service.list_for_user("u1")] == [issue.id]
        assert await service.list_for_user("u1", status="resolved") == []
        assert await service.list_for_user("nobody") == []

    @pytest.mark.asyncio
    async def test_dashboard_counts(self, db_session, citizen, issue, issue_payload):
        service = IssueService(db_session)
        second = await service.create({**issue_payload, "title": "Lamp"})
        await service.apply_update(second.id, "Fixed", "admin", "resolved")

        stats = await service.dashboard_stats()

        assert stats.total_issues == 2
        assert stats.total_users == 1
        assert stats.pending_issues == 1
        assert stats.resolved_issues == 1
        assert stats.in_progress_issues == 0
        assert stats.rejected_issues == 0
        assert {(b.status, b.count) for b in stats.breakdown} == {
            ("pending", 1),
            ("resolved", 1),
        }

    @pytest.mark.asyncio
    async def test_dashboard_zeros_when_store_unavailable(self):
        session = MagicMock()
        session.execute = AsyncMock(
            side_effect=OperationalError("SELECT", {}, Exception("down"))
        )
        session.scalar = AsyncMock(
            side_effect=OperationalError("SELECT", {}, Exception("down"))
        )

        stats = await IssueService(session).dashboard_stats()

        assert stats.total_issues == 0
        assert stats.total_users == 0
        assert stats.breakdown == []


class TestUserStatsAggregator:
    """Tests for the per-user stats cache."""

    @pytest.mark.asyncio
    async def test_recompute(self, db_session, citizen, issue):
        citizen.total_reports = 99
        user = await UserStatsAggregator(db_session).recompute(citizen.id)

        assert user.stats == {
            "total_reports": 1,
            "resolved_reports": 0,
            "pending_reports": 1,
        }

    @pytest.mark.asyncio
    async def test_recompute_unknown_user(self, db_session):
        with pytest.raises(NotFoundError):
            await UserStatsAggregator(db_session).recompute(new_id())
