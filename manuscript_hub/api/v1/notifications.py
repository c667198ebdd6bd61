"""
Notification endpoints - list, mark read and delete.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Query

from manuscript_hub.api.deps import DbSession, CurrentUser
from manuscript_hub.config import get_settings
from manuscript_hub.engines.collaboration.notifications import NotificationDispatcher
from manuscript_hub.schemas.common import SuccessResponse
from manuscript_hub.schemas.notification import (
    MarkReadRequest,
    MarkReadResponse,
    NotificationListResponse,
    NotificationResponse,
)

router = APIRouter()


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    user: CurrentUser,
    db: DbSession,
    unread_only: bool = False,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1, le=100),
):
    """The caller's notifications, newest first."""
    result = await NotificationDispatcher(db).list_notifications(
        user,
        unread_only=unread_only,
        page=page,
        page_size=page_size or get_settings().notification_page_size,
    )
    return NotificationListResponse.create(
        [NotificationResponse.model_validate(n) for n in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        unread_count=result.unread_count,
    )


@router.post("/mark-read", response_model=MarkReadResponse)
async def mark_read(
    data: MarkReadRequest,
    user: CurrentUser,
    db: DbSession,
):
    """Mark the given notifications, or all of them, as read."""
    dispatcher = NotificationDispatcher(db)
    if data.all:
        updated = await dispatcher.mark_all_read(user)
    else:
        updated = await dispatcher.mark_read(user, data.ids or [])
    return MarkReadResponse(updated=updated, unread_count=await dispatcher.unread_count(user))


@router.delete("/{notification_id}", response_model=SuccessResponse)
async def delete_notification(
    notification_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
):
    await NotificationDispatcher(db).delete(user, notification_id)
    return SuccessResponse(message="Notification deleted")
