"""
Collaboration invitation model.

Invitations are audit records: they move out of PENDING exactly once and are
never deleted.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from manuscript_hub.kernel.models.base import Base, generate_uuid, utcnow
from manuscript_hub.kernel.models.manuscript import CollaboratorRole


class InvitationStatus(str, Enum):
    """Invitation lifecycle. Everything but PENDING is terminal."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class ManuscriptInvitation(Base):
    """Proposed collaborator-to-be."""

    __tablename__ = "manuscript_invitations"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    manuscript_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("manuscripts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    invited_by: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id"),
        nullable=False,
    )

    # Target identity keys (at least one is set)
    invited_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("users.id"),
        nullable=True,
        index=True,
    )
    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )
    orcid_id: Mapped[Optional[str]] = mapped_column(
        String(19),
        nullable=True,
        index=True,
    )

    # Invitee display snapshot
    given_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    family_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    affiliation: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    role: Mapped[CollaboratorRole] = mapped_column(
        String(50),
        nullable=False,
    )
    message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    status: Mapped[InvitationStatus] = mapped_column(
        String(50),
        default=InvitationStatus.PENDING,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    responded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_manuscript_invitations_manuscript_status", "manuscript_id", "status"),
    )

    @property
    def invitee_name(self) -> str:
        name = f"{self.given_name or ''} {self.family_name or ''}".strip()
        return name or self.email or self.orcid_id or "invited researcher"

    def __repr__(self) -> str:
        return f"<ManuscriptInvitation {self.id} status={self.status}>"
