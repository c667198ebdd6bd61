"""
Manuscript endpoints - creation, access and the collaborator roster.
"""

import uuid

from fastapi import APIRouter, Request, status

from manuscript_hub.api.deps import DbSession, CurrentUser, get_client_ip
from manuscript_hub.engines.collaboration.manuscripts import ManuscriptService, RosterEntry
from manuscript_hub.kernel.permissions.permission_service import Access
from manuscript_hub.schemas.invitation import InvitationResponse
from manuscript_hub.schemas.manuscript import (
    CollaboratorListResponse,
    CollaboratorResponse,
    ManuscriptCreate,
    ManuscriptResponse,
)

router = APIRouter()


def _manuscript_response(access: Access) -> ManuscriptResponse:
    manuscript = access.manuscript
    return ManuscriptResponse(
        id=manuscript.id,
        title=manuscript.title,
        document_type=manuscript.document_type,
        created_by=manuscript.created_by,
        created_at=manuscript.created_at,
        updated_at=manuscript.updated_at,
        my_role=access.role,
        can_edit=access.capabilities.can_edit,
        can_invite=access.capabilities.can_invite,
        can_delete=access.capabilities.can_delete,
    )


def _collaborator_response(entry: RosterEntry) -> CollaboratorResponse:
    return CollaboratorResponse(
        user_id=entry.user.id,
        email=entry.user.email,
        name=entry.user.display_name,
        given_name=entry.user.given_name,
        family_name=entry.user.family_name,
        orcid_id=entry.user.orcid_id,
        affiliation=entry.user.affiliation,
        role=entry.role,
        can_edit=entry.can_edit,
        can_invite=entry.can_invite,
        can_delete=entry.can_delete,
        is_creator=entry.is_creator,
        joined_at=entry.joined_at,
    )


@router.post("", response_model=ManuscriptResponse, status_code=status.HTTP_201_CREATED)
async def create_manuscript(
    request: Request,
    data: ManuscriptCreate,
    user: CurrentUser,
    db: DbSession,
):
    """Create a manuscript; the caller becomes its owner."""
    service = ManuscriptService(db)
    manuscript = await service.create(
        user,
        title=data.title,
        document_type=data.document_type,
        ip_address=get_client_ip(request),
    )
    return _manuscript_response(await service.get(user, manuscript.id))


@router.get("/{manuscript_id}", response_model=ManuscriptResponse)
async def get_manuscript(
    manuscript_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
):
    """Get a manuscript and the caller's role on it."""
    access = await ManuscriptService(db).get(user, manuscript_id)
    return _manuscript_response(access)


@router.get("/{manuscript_id}/collaborators", response_model=CollaboratorListResponse)
async def list_collaborators(
    manuscript_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
):
    """Collaborators, creator first, plus pending invitations."""
    roster = await ManuscriptService(db).roster(user, manuscript_id)
    return CollaboratorListResponse(
        collaborators=[_collaborator_response(entry) for entry in roster.collaborators],
        pending_invitations=[
            InvitationResponse.model_validate(invitation)
            for invitation in roster.pending_invitations
        ],
    )
