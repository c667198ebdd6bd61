"""
Tracked change schemas.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from manuscript_hub.kernel.models.tracked_change import ChangeStatus, ChangeType


class TrackedChangeCreate(BaseModel):
    """
    Proposed edit. Which fields are required depends on ``change_type``;
    the engine checks that, so a malformed payload is reported as
    ``invalid_payload`` rather than a schema error.
    """

    change_type: ChangeType
    content: Optional[str] = None
    old_content: Optional[str] = None
    format_attributes: Optional[Dict[str, Any]] = None
    position_from: Optional[int] = None
    position_to: Optional[int] = None


class TrackedChangeResolve(BaseModel):
    status: Literal["accepted", "rejected"]


class BulkResolveRequest(BaseModel):
    status: Literal["accepted", "rejected"]


class BulkResolveResponse(BaseModel):
    resolved_count: int
    status: ChangeStatus


class PendingCountResponse(BaseModel):
    manuscript_id: uuid.UUID
    pending_count: int = Field(..., ge=0)


class TrackedChangeResponse(BaseModel):
    """Tracked change record."""

    id: uuid.UUID
    manuscript_id: uuid.UUID
    change_type: ChangeType
    content: Optional[str] = None
    old_content: Optional[str] = None
    format_attributes: Optional[Dict[str, Any]] = None
    position_from: Optional[int] = None
    position_to: Optional[int] = None
    author_id: uuid.UUID
    author_name: Optional[str] = None
    status: ChangeStatus
    created_at: datetime
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[uuid.UUID] = None

    class Config:
        from_attributes = True
