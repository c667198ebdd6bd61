"""
Manuscript and collaborator schemas.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from manuscript_hub.kernel.models.manuscript import CollaboratorRole, DocumentType
from manuscript_hub.schemas.invitation import InvitationResponse


class ManuscriptCreate(BaseModel):
    """Manuscript creation request."""

    title: str = Field(..., min_length=1, max_length=500)
    document_type: DocumentType = DocumentType.MANUSCRIPT


class ManuscriptResponse(BaseModel):
    """Manuscript with the caller's access."""

    id: uuid.UUID
    title: str
    document_type: DocumentType
    created_by: uuid.UUID
    created_at: datetime
    updated_at: datetime
    my_role: Optional[CollaboratorRole] = None
    can_edit: bool = False
    can_invite: bool = False
    can_delete: bool = False

    class Config:
        from_attributes = True


class CollaboratorResponse(BaseModel):
    """One collaborator on a manuscript."""

    user_id: uuid.UUID
    email: str
    name: str
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    orcid_id: Optional[str] = None
    affiliation: Optional[str] = None
    role: CollaboratorRole
    can_edit: bool
    can_invite: bool
    can_delete: bool
    is_creator: bool = False
    joined_at: Optional[datetime] = None


class CollaboratorListResponse(BaseModel):
    """Collaborators plus invitations still awaiting an answer."""

    collaborators: List[CollaboratorResponse]
    pending_invitations: List[InvitationResponse]
