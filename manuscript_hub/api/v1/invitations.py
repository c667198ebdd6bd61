"""
Invitation endpoints - invite, list and respond.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Query, Request, status

from manuscript_hub.api.deps import DbSession, CurrentUser, get_client_ip
from manuscript_hub.engines.collaboration.invitations import InvitationService
from manuscript_hub.kernel.models.invitation import InvitationStatus
from manuscript_hub.kernel.permissions.permission_service import capabilities_for_role
from manuscript_hub.schemas.invitation import (
    InvitationCreate,
    InvitationRespond,
    InvitationRespondResult,
    InvitationResponse,
)

router = APIRouter()


@router.post("/invitations", response_model=InvitationResponse, status_code=status.HTTP_201_CREATED)
async def create_invitation(
    request: Request,
    data: InvitationCreate,
    user: CurrentUser,
    db: DbSession,
):
    """Invite a person to collaborate on a manuscript."""
    invitation = await InvitationService(db).create(
        user,
        manuscript_id=data.manuscript_id,
        role=data.role,
        user_id=data.user_id,
        email=data.email,
        orcid_id=data.orcid_id,
        given_name=data.given_name,
        family_name=data.family_name,
        affiliation=data.affiliation,
        message=data.message,
        ip_address=get_client_ip(request),
    )
    return InvitationResponse.model_validate(invitation)


@router.get("/invitations/pending", response_model=List[InvitationResponse])
async def list_my_pending_invitations(
    user: CurrentUser,
    db: DbSession,
):
    """Pending invitations addressed to the caller's email, ORCID iD or account."""
    invitations = await InvitationService(db).pending_for_user(user)
    return [InvitationResponse.model_validate(invitation) for invitation in invitations]


@router.get("/manuscripts/{manuscript_id}/invitations", response_model=List[InvitationResponse])
async def list_manuscript_invitations(
    manuscript_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    status_filter: Optional[InvitationStatus] = Query(None, alias="status"),
):
    """All invitations of a manuscript, newest first."""
    invitations = await InvitationService(db).list_for_manuscript(
        user, manuscript_id, status=status_filter
    )
    return [InvitationResponse.model_validate(invitation) for invitation in invitations]


@router.post("/invitations/{invitation_id}/respond", response_model=InvitationRespondResult)
async def respond_to_invitation(
    request: Request,
    invitation_id: uuid.UUID,
    data: InvitationRespond,
    user: CurrentUser,
    db: DbSession,
):
    """Accept or decline an invitation addressed to the caller."""
    outcome = await InvitationService(db).respond(
        invitation_id,
        user,
        accept=data.accept,
        ip_address=get_client_ip(request),
    )
    invitation = outcome.invitation
    result = InvitationRespondResult(
        invitation=InvitationResponse.model_validate(invitation),
        status=invitation.status,
        manuscript_id=invitation.manuscript_id,
        already_collaborator=outcome.already_collaborator,
    )
    if outcome.collaborator is not None:
        result.role = outcome.collaborator.role
        result.can_edit = outcome.collaborator.can_edit
        result.can_invite = outcome.collaborator.can_invite
        result.can_delete = outcome.collaborator.can_delete
    elif invitation.status == InvitationStatus.ACCEPTED:
        caps = capabilities_for_role(invitation.role)
        result.role = invitation.role
        result.can_edit = caps.can_edit
        result.can_invite = caps.can_invite
        result.can_delete = caps.can_delete
    return result
