"""
Tracked change endpoints - propose, list, resolve and bulk-resolve.
"""

import uuid
from typing import List, Literal, Optional

from fastapi import APIRouter, Query, Request, status

from manuscript_hub.api.deps import DbSession, CurrentUser, get_client_ip
from manuscript_hub.engines.collaboration.tracked_changes import TrackedChangeService
from manuscript_hub.kernel.identity.identity_resolver import IdentityResolver
from manuscript_hub.kernel.models.tracked_change import ChangeStatus, TrackedChange
from manuscript_hub.schemas.tracked_change import (
    BulkResolveRequest,
    BulkResolveResponse,
    PendingCountResponse,
    TrackedChangeCreate,
    TrackedChangeResolve,
    TrackedChangeResponse,
)

router = APIRouter()


async def _with_author_names(db, changes: List[TrackedChange]) -> List[TrackedChangeResponse]:
    resolver = IdentityResolver(db)
    names = {}
    responses = []
    for change in changes:
        if change.author_id not in names:
            author = await resolver.get_user_by_id(change.author_id)
            names[change.author_id] = author.display_name if author else None
        response = TrackedChangeResponse.model_validate(change)
        response.author_name = names[change.author_id]
        responses.append(response)
    return responses


@router.post("", response_model=TrackedChangeResponse, status_code=status.HTTP_201_CREATED)
async def propose_change(
    request: Request,
    manuscript_id: uuid.UUID,
    data: TrackedChangeCreate,
    user: CurrentUser,
    db: DbSession,
):
    """Propose an edit. The manuscript body is not modified."""
    change = await TrackedChangeService(db).propose(
        user,
        manuscript_id,
        change_type=data.change_type,
        content=data.content,
        old_content=data.old_content,
        format_attributes=data.format_attributes,
        position_from=data.position_from,
        position_to=data.position_to,
        ip_address=get_client_ip(request),
    )
    response = TrackedChangeResponse.model_validate(change)
    response.author_name = user.display_name
    return response


@router.get("", response_model=List[TrackedChangeResponse])
async def list_changes(
    manuscript_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    status_filter: Optional[ChangeStatus] = Query(None, alias="status"),
    author_id: Optional[uuid.UUID] = None,
    order: Literal["asc", "desc"] = "desc",
):
    """Changes of a manuscript, newest first unless ``order=asc``."""
    changes = await TrackedChangeService(db).list_changes(
        user,
        manuscript_id,
        status=status_filter,
        author_id=author_id,
        ascending=order == "asc",
    )
    return await _with_author_names(db, changes)


@router.get("/pending-count", response_model=PendingCountResponse)
async def pending_count(
    manuscript_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
):
    count = await TrackedChangeService(db).pending_count(user, manuscript_id)
    return PendingCountResponse(manuscript_id=manuscript_id, pending_count=count)


@router.patch("/{change_id}", response_model=TrackedChangeResponse)
async def resolve_change(
    request: Request,
    manuscript_id: uuid.UUID,
    change_id: uuid.UUID,
    data: TrackedChangeResolve,
    user: CurrentUser,
    db: DbSession,
):
    """Accept or reject one pending change."""
    change = await TrackedChangeService(db).resolve(
        change_id,
        user,
        ChangeStatus(data.status),
        manuscript_id=manuscript_id,
        ip_address=get_client_ip(request),
    )
    return (await _with_author_names(db, [change]))[0]


@router.post("/bulk-resolve", response_model=BulkResolveResponse)
async def bulk_resolve(
    request: Request,
    manuscript_id: uuid.UUID,
    data: BulkResolveRequest,
    user: CurrentUser,
    db: DbSession,
):
    """Accept or reject every pending change at once."""
    result = await TrackedChangeService(db).bulk_resolve(
        manuscript_id,
        user,
        ChangeStatus(data.status),
        ip_address=get_client_ip(request),
    )
    return BulkResolveResponse(resolved_count=result.resolved_count, status=result.outcome)
