"""API routes for civic issues."""

import logging
from typing import Any

from fastapi import APIRouter, Query, Request
from starlette.datastructures import FormData, UploadFile

from citycare.dependencies import (
    IssueServiceDep,
    MediaStorageDep,
    StatusChangeGuardDep,
)
from citycare.exceptions import ValidationError
from citycare.limiter import limiter, submission_limit
from citycare.models.enums import IssueCategory, IssueStatus, Urgency
from citycare.schemas import (
    ApiResponse,
    DashboardStats,
    ErrorResponse,
    IssueCreate,
    IssueEdit,
    IssueLocationOut,
    IssueOut,
    IssueUpdateCreate,
)
from citycare.schemas.common import parse_payload

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/issues",
    tags=["issues"],
    responses={404: {"model": ErrorResponse}, 400: {"model": ErrorResponse}},
)

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


async def _read_submission(
    request: Request,
) -> tuple[dict[str, Any], list[UploadFile], list[UploadFile], FormData | None]:
    """
    Read an issue submission sent as JSON, urlencoded or multipart.

    For form submissions the parsed form is returned too; the caller closes
    it once the uploads have been stored.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        fields = {
            key: value
            for key, value in form.items()
            if isinstance(value, str) and value != ""
        }
        images = [f for f in form.getlist("images") if isinstance(f, UploadFile)]
        videos = [f for f in form.getlist("videos") if isinstance(f, UploadFile)]
        return fields, images, videos, form

    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Request body must be JSON or form data") from None
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body, [], [], None


@router.post("", status_code=201, response_model=ApiResponse[IssueOut])
@limiter.limit(submission_limit)
async def create_issue(
    request: Request,
    service: IssueServiceDep,
    storage: MediaStorageDep,
) -> ApiResponse[IssueOut]:
    """
    Report a new issue.

    Multipart submissions may attach up to 5 ``images`` and 2 ``videos``.
    The reporting user must already have a profile.
    """
    fields, images, videos, form = await _read_submission(request)
    try:
        payload = parse_payload(IssueCreate, fields)
        stored_images, stored_videos = await storage.save_all(images, videos)
    finally:
        # Spooled upload files are no longer needed once stored on disk
        if form is not None:
            await form.close()

    try:
        issue = await service.create(payload, images=stored_images, videos=stored_videos)
    except Exception:
        storage.discard([*stored_images, *stored_videos])
        raise

    return ApiResponse(message="Issue reported successfully", data=IssueOut.from_issue(issue))


@router.get("", response_model=ApiResponse[list[IssueOut]])
async def list_issues(
    service: IssueServiceDep,
    status: IssueStatus | None = None,
    category: IssueCategory | None = None,
    urgency: Urgency | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=5000),
) -> ApiResponse[list[IssueOut]]:
    """List issues newest first, optionally filtered, with page-based pagination."""
    issues, pagination = await service.list_issues(status, category, urgency, page, limit)
    reporters = await service.reporters_for(issues)
    return ApiResponse(
        data=[
            IssueOut.from_issue(issue, reporter=reporters.get(issue.user_id))
            for issue in issues
        ],
        pagination=pagination,
    )


@router.get("/locations", response_model=ApiResponse[list[IssueLocationOut]])
async def list_issue_locations(
    service: IssueServiceDep,
    status: IssueStatus | None = None,
    category: IssueCategory | None = None,
    urgency: Urgency | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(1000, ge=1, le=5000),
) -> ApiResponse[list[IssueLocationOut]]:
    """Lightweight issue list for map markers; issues without valid coordinates are skipped."""
    locations = await service.list_locations(status, category, urgency, page, limit)
    return ApiResponse(data=locations, count=len(locations))


@router.get("/stats/dashboard", response_model=ApiResponse[DashboardStats])
async def dashboard_stats(service: IssueServiceDep) -> ApiResponse[DashboardStats]:
    """Issue counts by status and the total number of users."""
    return ApiResponse(data=await service.dashboard_stats())


@router.get("/user/{clerk_id}", response_model=ApiResponse[list[IssueOut]])
async def list_user_issues(
    clerk_id: str,
    service: IssueServiceDep,
    status: IssueStatus | None = None,
) -> ApiResponse[list[IssueOut]]:
    """Issues reported by one user."""
    issues = await service.list_for_user(clerk_id, status)
    return ApiResponse(data=[IssueOut.from_issue(issue) for issue in issues], count=len(issues))


@router.get("/{issue_id}", response_model=ApiResponse[IssueOut])
async def get_issue(issue_id: str, service: IssueServiceDep) -> ApiResponse[IssueOut]:
    """Get a single issue with a summary of its reporter."""
    issue = await service.get(issue_id)
    reporters = await service.reporters_for([issue])
    return ApiResponse(data=IssueOut.from_issue(issue, reporter=reporters.get(issue.user_id)))


@router.put("/{issue_id}", response_model=ApiResponse[IssueOut])
async def update_issue(
    issue_id: str,
    body: IssueEdit,
    service: IssueServiceDep,
    guard: StatusChangeGuardDep,
) -> ApiResponse[IssueOut]:
    """Edit the supplied fields of an issue."""
    if body.status is not None:
        await guard.check()
    issue = await service.edit_fields(issue_id, body)
    return ApiResponse(message="Issue updated successfully", data=IssueOut.from_issue(issue))


@router.post("/{issue_id}/updates", response_model=ApiResponse[IssueOut])
async def add_issue_update(
    issue_id: str,
    body: IssueUpdateCreate,
    service: IssueServiceDep,
    guard: StatusChangeGuardDep,
) -> ApiResponse[IssueOut]:
    """Append an entry to the update log, optionally changing the status."""
    if body.status is not None:
        await guard.check()
    issue = await service.apply_update(issue_id, body.message, body.updated_by, body.status)
    return ApiResponse(message="Update added successfully", data=IssueOut.from_issue(issue))


@router.delete("/{issue_id}", response_model=ApiResponse[None])
async def delete_issue(issue_id: str, service: IssueServiceDep) -> ApiResponse[None]:
    """Delete an issue permanently."""
    await service.delete(issue_id)
    return ApiResponse(message="Issue deleted successfully")
