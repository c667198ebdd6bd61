"""
Invitation schemas.
"""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from manuscript_hub.kernel.models.invitation import InvitationStatus
from manuscript_hub.kernel.models.manuscript import CollaboratorRole

ORCID_PATTERN = r"^\d{4}-\d{4}-\d{4}-\d{3}[\dXx]$"


class InvitationCreate(BaseModel):
    """
    Invitation request.

    At least one of ``user_id``, ``email`` or ``orcid_id`` identifies the
    invitee; the invitee does not need an account yet.
    """

    manuscript_id: uuid.UUID
    role: CollaboratorRole
    user_id: Optional[uuid.UUID] = None
    email: Optional[EmailStr] = None
    orcid_id: Optional[str] = Field(None, pattern=ORCID_PATTERN)
    given_name: Optional[str] = Field(None, max_length=255)
    family_name: Optional[str] = Field(None, max_length=255)
    affiliation: Optional[str] = Field(None, max_length=500)
    message: Optional[str] = Field(None, max_length=2000)

    @field_validator("orcid_id", mode="before")
    @classmethod
    def strip_orcid(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @model_validator(mode="after")
    def require_target(self) -> "InvitationCreate":
        if self.user_id is None and not self.email and not self.orcid_id:
            raise ValueError("Provide an email, ORCID iD or user id for the invitee")
        return self


class InvitationRespond(BaseModel):
    """Accept or decline."""

    action: Literal["accept", "decline"]

    @property
    def accept(self) -> bool:
        return self.action == "accept"


class InvitationResponse(BaseModel):
    """Invitation record."""

    id: uuid.UUID
    manuscript_id: uuid.UUID
    invited_by: uuid.UUID
    invited_user_id: Optional[uuid.UUID] = None
    email: Optional[str] = None
    orcid_id: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    affiliation: Optional[str] = None
    invitee_name: str
    role: CollaboratorRole
    message: Optional[str] = None
    status: InvitationStatus
    created_at: datetime
    expires_at: datetime
    responded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InvitationRespondResult(BaseModel):
    """Result of a respond call; collaborator fields are set on accept."""

    invitation: InvitationResponse
    status: InvitationStatus
    manuscript_id: uuid.UUID
    role: Optional[CollaboratorRole] = None
    can_edit: Optional[bool] = None
    can_invite: Optional[bool] = None
    can_delete: Optional[bool] = None
    already_collaborator: bool = False
