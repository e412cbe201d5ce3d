"""
Notification Routes - in-app announcements

GET /notifications - Latest announcements with read state
GET /notifications/unread-count - Unread announcements since sign-up
POST /notifications/{announcement_id}/read - Mark one as read
POST /notifications/read-all - Mark every visible announcement as read

New announcements are also pushed over /events/stream (NEW_NOTIFICATION).
"""

from typing import List

from fastapi import APIRouter, Depends, Query

from niena.core.auth import get_current_user
from niena.services import notification_service
from niena.schemas.schemas import (
    NotificationResponse, UnreadCountResponse, MarkAllReadResponse, MessageResponse
)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationResponse])
async def get_latest(
    limit: int = Query(notification_service.DEFAULT_LIMIT, ge=1, le=notification_service.MAX_LIMIT),
    user: dict = Depends(get_current_user)
):
    return notification_service.get_latest(user["user_id"], limit)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(user: dict = Depends(get_current_user)):
    return UnreadCountResponse(count=notification_service.get_unread_count(user["user_id"]))


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_as_read(user: dict = Depends(get_current_user)):
    return MarkAllReadResponse(count=notification_service.mark_all_as_read(user["user_id"]))


@router.post("/{announcement_id}/read", response_model=MessageResponse)
async def mark_as_read(announcement_id: int, user: dict = Depends(get_current_user)):
    notification_service.mark_as_read(user["user_id"], announcement_id)
    return MessageResponse(message="Notification marked as read")
