"""
Stable Kernel Layer

Foundational components shared by the collaboration engines:
- Data models (manuscripts, collaborators, invitations, changes, notifications)
- Immutable Event Log (all mutations logged)
- Identity Core (bearer verification, multi-key identity resolution)
- Permission Core (manuscript roles and capabilities)
- Error taxonomy

Architectural Invariants:
- All state changes logged before commit; logs immutable
- At most one collaborator row per (manuscript, user)
- Invitations and tracked changes leave PENDING exactly once
"""

from manuscript_hub.kernel.models import (
    User,
    Manuscript,
    ManuscriptCollaborator,
    CollaboratorRole,
    ManuscriptInvitation,
    InvitationStatus,
    TrackedChange,
    ChangeType,
    ChangeStatus,
    Notification,
    NotificationType,
    EventLog,
    EventType,
)

__all__ = [
    "User",
    "Manuscript",
    "ManuscriptCollaborator",
    "CollaboratorRole",
    "ManuscriptInvitation",
    "InvitationStatus",
    "TrackedChange",
    "ChangeType",
    "ChangeStatus",
    "Notification",
    "NotificationType",
    "EventLog",
    "EventType",
]
