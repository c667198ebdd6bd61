"""
Manuscript and collaborator models.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from manuscript_hub.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow


class DocumentType(str, Enum):
    """Kind of collaborative document."""
    MANUSCRIPT = "manuscript"
    PROPOSAL = "proposal"


class CollaboratorRole(str, Enum):
    """Permission tiers on a manuscript."""
    OWNER = "owner"
    ADMIN = "admin"
    EDITOR = "editor"
    CONTRIBUTOR = "contributor"
    REVIEWER = "reviewer"


class Manuscript(Base, TimestampMixin):
    """The collaborative artifact."""

    __tablename__ = "manuscripts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )
    document_type: Mapped[DocumentType] = mapped_column(
        String(50),
        default=DocumentType.MANUSCRIPT,
        nullable=False,
    )
    created_by: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    @property
    def document_label(self) -> str:
        """Human wording used in notifications."""
        if DocumentType(self.document_type) == DocumentType.PROPOSAL:
            return "research proposal"
        return "manuscript"

    def __repr__(self) -> str:
        return f"<Manuscript {self.id} {self.title!r}>"


class ManuscriptCollaborator(Base):
    """
    Durable role grant of a user on a manuscript.

    At most one row per (manuscript, user); the unique constraint is the
    final guard against two concurrent grants.
    """

    __tablename__ = "manuscript_collaborators"

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
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    role: Mapped[CollaboratorRole] = mapped_column(
        String(50),
        nullable=False,
    )

    # Capability flags, derived from role when the row is created
    can_edit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_invite: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_delete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    invited_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("users.id"),
        nullable=True,
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("manuscript_id", "user_id", name="uq_manuscript_collaborator"),
    )

    def __repr__(self) -> str:
        return f"<ManuscriptCollaborator manuscript={self.manuscript_id} user={self.user_id} role={self.role}>"
