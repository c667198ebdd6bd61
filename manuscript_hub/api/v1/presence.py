"""
Presence endpoints - heartbeat, query and leave.

Presence never fails the request: an unavailable store yields an empty
online set with ``available: false``.
"""

import uuid

from fastapi import APIRouter

from manuscript_hub.api.deps import CurrentUser, Presence
from manuscript_hub.engines.collaboration.presence import PresenceSnapshot
from manuscript_hub.schemas.common import SuccessResponse
from manuscript_hub.schemas.presence import OnlineUserResponse, PresenceResponse

router = APIRouter()


def _presence_response(snapshot: PresenceSnapshot) -> PresenceResponse:
    return PresenceResponse(
        manuscript_id=snapshot.manuscript_id,
        online_users=[
            OnlineUserResponse(
                user_id=online.entry.user_id,
                name=online.entry.name,
                given_name=online.entry.given_name,
                family_name=online.entry.family_name,
                email=online.entry.email,
                last_seen=online.entry.last_seen,
                is_current_user=online.is_current_user,
            )
            for online in snapshot.online_users
        ],
        online_count=snapshot.online_count,
        available=snapshot.available,
    )


@router.post("/manuscripts/{manuscript_id}/presence", response_model=PresenceResponse)
async def heartbeat(
    manuscript_id: uuid.UUID,
    user: CurrentUser,
    tracker: Presence,
):
    """Mark the caller online and return who else is here."""
    return _presence_response(tracker.heartbeat(manuscript_id, user))


@router.get("/manuscripts/{manuscript_id}/presence", response_model=PresenceResponse)
async def get_presence(
    manuscript_id: uuid.UUID,
    user: CurrentUser,
    tracker: Presence,
):
    """Who is currently online on the manuscript."""
    return _presence_response(tracker.query(manuscript_id, user.id))


@router.delete("/manuscripts/{manuscript_id}/presence", response_model=SuccessResponse)
async def leave(
    manuscript_id: uuid.UUID,
    user: CurrentUser,
    tracker: Presence,
):
    """Remove the caller from the online set."""
    tracker.leave(manuscript_id, user.id)
    return SuccessResponse(message="Left manuscript")
