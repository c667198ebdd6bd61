"""
Tracked change (redline) model.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from manuscript_hub.kernel.models.base import Base, generate_uuid, utcnow


class ChangeType(str, Enum):
    """Kind of proposed edit."""
    INSERT = "insert"
    DELETE = "delete"
    REPLACE = "replace"
    FORMAT = "format"


class ChangeStatus(str, Enum):
    """Resolution state. ACCEPTED and REJECTED are terminal."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class TrackedChange(Base):
    """A single proposed edit on a manuscript."""

    __tablename__ = "tracked_changes"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    manuscript_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("manuscripts.id", ondelete="CASCADE"),
        nullable=False,
    )
    change_type: Mapped[ChangeType] = mapped_column(
        String(50),
        nullable=False,
    )

    # Payload
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    old_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    format_attributes: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    position_from: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    position_to: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    author_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    status: Mapped[ChangeStatus] = mapped_column(
        String(50),
        default=ChangeStatus.PENDING,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    resolved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("users.id"),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_tracked_changes_manuscript_status", "manuscript_id", "status"),
        Index("ix_tracked_changes_manuscript_created", "manuscript_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<TrackedChange {self.id} {self.change_type} status={self.status}>"
