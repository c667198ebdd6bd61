"""
Collaboration Engine - shared work on one manuscript.

Components:
- Presence: heartbeat-derived "who is here now", TTL evicted, never persisted
- Invitations: PENDING -> ACCEPTED | DECLINED | EXPIRED, accept creates the role grant
- Tracked changes: independently resolvable redlines, single and bulk
- Notifications: in-app side effects of the transitions above
- Maintenance: periodic presence sweep and invitation expiry
"""

from manuscript_hub.engines.collaboration.presence import (
    InMemoryPresenceStore,
    OnlineUser,
    PresenceEntry,
    PresenceSnapshot,
    PresenceStore,
    PresenceStoreError,
    PresenceTracker,
)
from manuscript_hub.engines.collaboration.notifications import (
    NotificationDispatcher,
    NotificationPage,
)
from manuscript_hub.engines.collaboration.invitations import (
    InvitationResponse,
    InvitationService,
)
from manuscript_hub.engines.collaboration.tracked_changes import (
    BulkResolveResult,
    TrackedChangeService,
    validate_change_payload,
)
from manuscript_hub.engines.collaboration.maintenance import (
    MaintenanceReport,
    maintenance_loop,
    run_maintenance,
)
from manuscript_hub.engines.collaboration.manuscripts import (
    ManuscriptService,
    Roster,
    RosterEntry,
)

__all__ = [
    "InMemoryPresenceStore",
    "OnlineUser",
    "PresenceEntry",
    "PresenceSnapshot",
    "PresenceStore",
    "PresenceStoreError",
    "PresenceTracker",
    "NotificationDispatcher",
    "NotificationPage",
    "InvitationResponse",
    "InvitationService",
    "BulkResolveResult",
    "TrackedChangeService",
    "validate_change_payload",
    "MaintenanceReport",
    "maintenance_loop",
    "run_maintenance",
    "ManuscriptService",
    "Roster",
    "RosterEntry",
]
