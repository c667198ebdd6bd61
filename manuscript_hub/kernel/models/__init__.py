"""
Kernel Data Models

Core SQLAlchemy models for manuscripts, collaborators, invitations,
tracked changes, notifications and the audit log.
"""

from manuscript_hub.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow, as_utc, jsonable
from manuscript_hub.kernel.models.user import User
from manuscript_hub.kernel.models.manuscript import (
    Manuscript,
    ManuscriptCollaborator,
    CollaboratorRole,
    DocumentType,
)
from manuscript_hub.kernel.models.invitation import ManuscriptInvitation, InvitationStatus
from manuscript_hub.kernel.models.tracked_change import TrackedChange, ChangeType, ChangeStatus
from manuscript_hub.kernel.models.notification import Notification, NotificationType
from manuscript_hub.kernel.models.event_log import EventLog, EventType

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_uuid",
    "utcnow",
    "as_utc",
    "jsonable",
    # Identity
    "User",
    # Manuscripts
    "Manuscript",
    "ManuscriptCollaborator",
    "CollaboratorRole",
    "DocumentType",
    # Invitations
    "ManuscriptInvitation",
    "InvitationStatus",
    # Tracked changes
    "TrackedChange",
    "ChangeType",
    "ChangeStatus",
    # Notifications
    "Notification",
    "NotificationType",
    # Event Log
    "EventLog",
    "EventType",
]
