"""
FastAPI dependencies for authentication, database sessions and presence.
"""

import uuid
from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from manuscript_hub.config import get_settings
from manuscript_hub.database import get_db
from manuscript_hub.engines.collaboration.presence import (
    InMemoryPresenceStore,
    PresenceStore,
    PresenceTracker,
)
from manuscript_hub.kernel.errors import Unauthenticated
from manuscript_hub.kernel.identity.identity_resolver import IdentityResolver
from manuscript_hub.kernel.identity.jwt import verify_access_token
from manuscript_hub.kernel.models.user import User
from manuscript_hub.logging_config import bind_user


# Security scheme
security = HTTPBearer(auto_error=False)


# Function scope: the commit finishes before the response is sent
DbSession = Annotated[AsyncSession, Depends(get_db, scope="function")]


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: DbSession,
) -> User:
    """Resolve the verified caller or raise Unauthenticated."""
    if not credentials:
        raise Unauthenticated("Not authenticated")

    payload = verify_access_token(credentials.credentials)
    if not payload:
        raise Unauthenticated("Invalid or expired token")

    try:
        user_id = uuid.UUID(payload.sub)
    except ValueError:
        raise Unauthenticated("Invalid token subject") from None

    user = await IdentityResolver(db).get_user_by_id(user_id)
    if not user or not user.is_active:
        raise Unauthenticated("User not found or inactive")

    bind_user(user.id)
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def get_presence_store(request: Request) -> PresenceStore:
    """The process-wide presence store, created on first use."""
    store = getattr(request.app.state, "presence_store", None)
    if store is None:
        store = InMemoryPresenceStore()
        request.app.state.presence_store = store
    return store


def get_presence_tracker(
    store: Annotated[PresenceStore, Depends(get_presence_store)],
) -> PresenceTracker:
    return PresenceTracker(store, ttl_seconds=get_settings().presence_ttl_seconds)


Presence = Annotated[PresenceTracker, Depends(get_presence_tracker)]


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
