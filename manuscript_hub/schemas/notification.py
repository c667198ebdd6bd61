"""
Notification schemas.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, model_validator

from manuscript_hub.kernel.models.notification import NotificationType
from manuscript_hub.schemas.common import PaginatedResponse


class NotificationResponse(BaseModel):
    """Notification record."""

    id: uuid.UUID
    notification_type: NotificationType
    title: str
    message: str
    data: Dict[str, Any] = {}
    manuscript_id: Optional[uuid.UUID] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationListResponse(PaginatedResponse[NotificationResponse]):
    """One page of notifications plus the recipient's unread total."""

    unread_count: int


class MarkReadRequest(BaseModel):
    """Either a list of ids or ``all: true``."""

    ids: Optional[List[uuid.UUID]] = None
    all: bool = False

    @model_validator(mode="after")
    def require_selection(self) -> "MarkReadRequest":
        if not self.all and not self.ids:
            raise ValueError("Provide notification ids or set all to true")
        return self


class MarkReadResponse(BaseModel):
    updated: int
    unread_count: int
