"""API routes for user profiles, stats and notifications."""

import logging

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from citycare.dependencies import NotificationServiceDep, UserServiceDep
from citycare.schemas import (
    Address,
    ApiResponse,
    ErrorResponse,
    NotificationListResponse,
    NotificationOut,
    UserOut,
    UserProfileIn,
    UserStats,
)
from citycare.services.users import UpsertOutcome

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/users",
    tags=["users"],
    responses={404: {"model": ErrorResponse}, 400: {"model": ErrorResponse}},
)

UPSERT_MESSAGES = {
    UpsertOutcome.CREATED: "User profile created successfully",
    UpsertOutcome.UPDATED: "User profile updated successfully",
    UpsertOutcome.EXISTS: "User already exists",
}


@router.post(
    "/profile",
    response_model=ApiResponse[UserOut],
    responses={201: {"model": ApiResponse[UserOut]}, 409: {"model": ErrorResponse}},
)
async def upsert_profile(body: UserProfileIn, service: UserServiceDep) -> JSONResponse:
    """
    Create or update a user profile by ``clerkId``.

    Returns 201 when the user is new and 200 when an existing profile was
    updated (or a concurrent request created it first).
    """
    user, outcome = await service.upsert(body)
    response = ApiResponse(
        message=UPSERT_MESSAGES[outcome],
        data=UserOut.model_validate(user),
    )
    return JSONResponse(
        status_code=201 if outcome == UpsertOutcome.CREATED else 200,
        content=response.model_dump(mode="json", by_alias=True),
    )


@router.get("/profile/{clerk_id}", response_model=ApiResponse[UserOut])
async def get_profile(clerk_id: str, service: UserServiceDep) -> ApiResponse[UserOut]:
    user = await service.get_by_clerk_id(clerk_id)
    return ApiResponse(data=UserOut.model_validate(user))


@router.get("/stats/{clerk_id}", response_model=ApiResponse[UserStats])
async def get_stats(clerk_id: str, service: UserServiceDep) -> ApiResponse[UserStats]:
    """Recompute and return the user's issue counts."""
    user = await service.refresh_stats(clerk_id)
    return ApiResponse(data=UserStats.model_validate(user.stats))


@router.put("/address/{clerk_id}", response_model=ApiResponse[UserOut])
async def update_address(
    clerk_id: str, body: Address, service: UserServiceDep
) -> ApiResponse[UserOut]:
    """Update the supplied parts of the user's address."""
    user = await service.update_address(clerk_id, body)
    return ApiResponse(message="Address updated successfully", data=UserOut.model_validate(user))


@router.delete("/profile/{clerk_id}", response_model=ApiResponse[None])
async def delete_profile(clerk_id: str, service: UserServiceDep) -> ApiResponse[None]:
    await service.delete(clerk_id)
    return ApiResponse(message="User deleted successfully")


@router.get("/notifications/{clerk_id}", response_model=NotificationListResponse)
async def list_notifications(
    clerk_id: str,
    service: NotificationServiceDep,
    unread_only: bool = Query(False, alias="unreadOnly"),
    limit: int = Query(20, ge=1, le=100),
) -> NotificationListResponse:
    """Newest-first notifications plus the unread count across all of them."""
    page = await service.list_notifications(clerk_id, unread_only=unread_only, limit=limit)
    return NotificationListResponse(
        data=[NotificationOut.model_validate(n) for n in page.notifications],
        unread_count=page.unread_count,
    )


@router.put("/notifications/{clerk_id}/read-all", response_model=ApiResponse[None])
async def mark_all_notifications_read(
    clerk_id: str, service: NotificationServiceDep
) -> ApiResponse[None]:
    changed = await service.mark_all_read(clerk_id)
    return ApiResponse(message="All notifications marked as read", count=changed)


@router.put(
    "/notifications/{clerk_id}/{notification_id}/read",
    response_model=ApiResponse[NotificationOut],
)
async def mark_notification_read(
    clerk_id: str, notification_id: str, service: NotificationServiceDep
) -> ApiResponse[NotificationOut]:
    notification = await service.mark_read(clerk_id, notification_id)
    return ApiResponse(
        message="Notification marked as read",
        data=NotificationOut.model_validate(notification),
    )
