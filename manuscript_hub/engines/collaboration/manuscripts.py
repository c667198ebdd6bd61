"""
Manuscript registry: creation and the collaborator roster.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from manuscript_hub.kernel.events.event_store import EventStore
from manuscript_hub.kernel.models.base import utcnow
from manuscript_hub.kernel.models.event_log import EventType
from manuscript_hub.kernel.models.invitation import InvitationStatus, ManuscriptInvitation
from manuscript_hub.kernel.models.manuscript import (
    CollaboratorRole,
    DocumentType,
    Manuscript,
    ManuscriptCollaborator,
)
from manuscript_hub.kernel.models.user import User
from manuscript_hub.kernel.permissions.permission_service import (
    Access,
    PermissionService,
    capabilities_for_role,
    new_collaborator,
)


@dataclass
class RosterEntry:
    """One person on a manuscript's collaborator list."""

    user: User
    role: CollaboratorRole
    can_edit: bool
    can_invite: bool
    can_delete: bool
    joined_at: Optional[datetime]
    is_creator: bool = False


@dataclass
class Roster:
    collaborators: List[RosterEntry]
    pending_invitations: List[ManuscriptInvitation]


class ManuscriptService:
    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock
        self.permissions = PermissionService(session)
        self.event_store = EventStore(session)

    async def create(
        self,
        creator: User,
        title: str,
        document_type: DocumentType = DocumentType.MANUSCRIPT,
        ip_address: Optional[str] = None,
    ) -> Manuscript:
        """Create a manuscript with its creator enrolled as OWNER."""
        now = self.clock()
        manuscript = Manuscript(
            title=title,
            document_type=DocumentType(document_type),
            created_by=creator.id,
            created_at=now,
            updated_at=now,
        )
        self.session.add(manuscript)
        await self.session.flush()

        owner = new_collaborator(manuscript.id, creator.id, CollaboratorRole.OWNER)
        owner.joined_at = now
        self.session.add(owner)
        await self.session.flush()

        await self.event_store.log(
            event_type=EventType.MANUSCRIPT_CREATED,
            entity_type="manuscript",
            entity_id=manuscript.id,
            user_id=creator.id,
            payload={"title": title, "document_type": manuscript.document_type},
            ip_address=ip_address,
        )
        return manuscript

    async def get(self, user: User, manuscript_id: uuid.UUID) -> Access:
        """The manuscript together with the caller's access to it."""
        return await self.permissions.require_member(user, manuscript_id)

    async def roster(self, user: User, manuscript_id: uuid.UUID) -> Roster:
        """
        Collaborators (creator first, even without a collaborator row) and
        pending invitations.
        """
        access = await self.permissions.require_member(user, manuscript_id)
        manuscript = access.manuscript

        rows = await self.permissions.get_manuscript_collaborators(manuscript_id)
        entries = [
            _entry(collaborator, member, manuscript)
            for collaborator, member in rows
        ]

        if not any(entry.is_creator for entry in entries):
            creator = await self.session.get(User, manuscript.created_by)
            if creator is not None:
                caps = capabilities_for_role(CollaboratorRole.OWNER)
                entries.insert(
                    0,
                    RosterEntry(
                        user=creator,
                        role=CollaboratorRole.OWNER,
                        can_edit=caps.can_edit,
                        can_invite=caps.can_invite,
                        can_delete=caps.can_delete,
                        joined_at=manuscript.created_at,
                        is_creator=True,
                    ),
                )
        else:
            entries.sort(key=lambda entry: not entry.is_creator)

        result = await self.session.execute(
            select(ManuscriptInvitation)
            .where(
                ManuscriptInvitation.manuscript_id == manuscript_id,
                ManuscriptInvitation.status == InvitationStatus.PENDING,
            )
            .order_by(ManuscriptInvitation.created_at.desc())
        )
        return Roster(collaborators=entries, pending_invitations=list(result.scalars().all()))


def _entry(collaborator: ManuscriptCollaborator, member: User, manuscript: Manuscript) -> RosterEntry:
    return RosterEntry(
        user=member,
        role=CollaboratorRole(collaborator.role),
        can_edit=collaborator.can_edit,
        can_invite=collaborator.can_invite,
        can_delete=collaborator.can_delete,
        joined_at=collaborator.joined_at,
        is_creator=member.id == manuscript.created_by,
    )
