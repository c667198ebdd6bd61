"""
API v1 routes.
"""

from fastapi import APIRouter

from manuscript_hub.api.v1 import manuscripts, presence, invitations, changes, notifications

router = APIRouter()

router.include_router(manuscripts.router, prefix="/manuscripts", tags=["Manuscripts"])
router.include_router(presence.router, tags=["Presence"])
router.include_router(invitations.router, tags=["Invitations"])
router.include_router(changes.router, prefix="/manuscripts/{manuscript_id}/changes", tags=["Tracked Changes"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
