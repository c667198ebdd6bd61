"""
Pydantic schemas for API request/response validation.
"""

from manuscript_hub.schemas.common import (
    ErrorResponse,
    HealthResponse,
    PaginatedResponse,
    SuccessResponse,
)
from manuscript_hub.schemas.invitation import (
    InvitationCreate,
    InvitationRespond,
    InvitationResponse,
    InvitationRespondResult,
)
from manuscript_hub.schemas.manuscript import (
    ManuscriptCreate,
    ManuscriptResponse,
    CollaboratorResponse,
    CollaboratorListResponse,
)
from manuscript_hub.schemas.tracked_change import (
    TrackedChangeCreate,
    TrackedChangeResolve,
    TrackedChangeResponse,
    BulkResolveRequest,
    BulkResolveResponse,
    PendingCountResponse,
)
from manuscript_hub.schemas.notification import (
    NotificationResponse,
    NotificationListResponse,
    MarkReadRequest,
    MarkReadResponse,
)
from manuscript_hub.schemas.presence import OnlineUserResponse, PresenceResponse

__all__ = [
    # Common
    "ErrorResponse",
    "HealthResponse",
    "PaginatedResponse",
    "SuccessResponse",
    # Invitations
    "InvitationCreate",
    "InvitationRespond",
    "InvitationResponse",
    "InvitationRespondResult",
    # Manuscripts
    "ManuscriptCreate",
    "ManuscriptResponse",
    "CollaboratorResponse",
    "CollaboratorListResponse",
    # Tracked changes
    "TrackedChangeCreate",
    "TrackedChangeResolve",
    "TrackedChangeResponse",
    "BulkResolveRequest",
    "BulkResolveResponse",
    "PendingCountResponse",
    # Notifications
    "NotificationResponse",
    "NotificationListResponse",
    "MarkReadRequest",
    "MarkReadResponse",
    # Presence
    "OnlineUserResponse",
    "PresenceResponse",
]
