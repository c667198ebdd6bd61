"""
User model: the verified person behind a request.

Accounts are created by the external identity provider; this service only
reads them.
"""

import uuid
from typing import Optional

from sqlalchemy import Boolean, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from manuscript_hub.kernel.models.base import Base, TimestampMixin, generate_uuid


class User(Base, TimestampMixin):
    """User account model."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    # External researcher identifier (ORCID iD)
    orcid_id: Mapped[Optional[str]] = mapped_column(
        String(19),
        unique=True,
        index=True,
        nullable=True,
    )
    given_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    family_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    affiliation: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    @property
    def display_name(self) -> str:
        name = f"{self.given_name or ''} {self.family_name or ''}".strip()
        return name or self.email

    def __repr__(self) -> str:
        return f"<User {self.email}>"
