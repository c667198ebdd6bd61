"""
Role and capability checks for manuscripts.

The collaborator table is the single source of truth. The manuscript creator
holds owner capabilities whether or not they have a collaborator row.
"""

import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from manuscript_hub.kernel.errors import NotAuthorized, NotFound
from manuscript_hub.kernel.models.manuscript import (
    CollaboratorRole,
    Manuscript,
    ManuscriptCollaborator,
)
from manuscript_hub.kernel.models.user import User


@dataclass(frozen=True)
class Capabilities:
    """Boolean abilities implied by a role."""

    can_edit: bool = False
    can_invite: bool = False
    can_delete: bool = False


NO_ACCESS = Capabilities()

ROLE_CAPABILITIES: Dict[CollaboratorRole, Capabilities] = {
    CollaboratorRole.OWNER: Capabilities(can_edit=True, can_invite=True, can_delete=True),
    CollaboratorRole.ADMIN: Capabilities(can_invite=True),
    CollaboratorRole.EDITOR: Capabilities(can_edit=True),
    CollaboratorRole.CONTRIBUTOR: Capabilities(can_edit=True),
    CollaboratorRole.REVIEWER: Capabilities(),
}


def capabilities_for_role(role: CollaboratorRole) -> Capabilities:
    """Deterministic role -> capability mapping."""
    return ROLE_CAPABILITIES[CollaboratorRole(role)]


@dataclass(frozen=True)
class Access:
    """What a user may do on one manuscript."""

    manuscript: Manuscript
    role: Optional[CollaboratorRole]
    capabilities: Capabilities
    is_creator: bool = False

    @property
    def is_member(self) -> bool:
        return self.is_creator or self.role is not None


class PermissionService:
    """
    Service for checking manuscript permissions.

    Permission sources (in order of precedence):
    1. Manuscript creator - implicit owner
    2. Collaborator row - stored capability flags
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_manuscript(self, manuscript_id: uuid.UUID) -> Manuscript:
        """Load a manuscript or raise NotFound."""
        result = await self.session.execute(
            select(Manuscript).where(Manuscript.id == manuscript_id)
        )
        manuscript = result.scalar_one_or_none()
        if manuscript is None:
            raise NotFound("Manuscript not found", manuscript_id=manuscript_id)
        return manuscript

    async def get_collaborator(
        self,
        manuscript_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Optional[ManuscriptCollaborator]:
        result = await self.session.execute(
            select(ManuscriptCollaborator).where(
                and_(
                    ManuscriptCollaborator.manuscript_id == manuscript_id,
                    ManuscriptCollaborator.user_id == user_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def get_access(self, user: User, manuscript_id: uuid.UUID) -> Access:
        """Resolve the user's role and capabilities on a manuscript."""
        manuscript = await self.get_manuscript(manuscript_id)

        if manuscript.created_by == user.id:
            return Access(
                manuscript=manuscript,
                role=CollaboratorRole.OWNER,
                capabilities=ROLE_CAPABILITIES[CollaboratorRole.OWNER],
                is_creator=True,
            )

        collaborator = await self.get_collaborator(manuscript_id, user.id)
        if collaborator is None:
            return Access(manuscript=manuscript, role=None, capabilities=NO_ACCESS)

        return Access(
            manuscript=manuscript,
            role=CollaboratorRole(collaborator.role),
            capabilities=Capabilities(
                can_edit=collaborator.can_edit,
                can_invite=collaborator.can_invite,
                can_delete=collaborator.can_delete,
            ),
        )

    async def require_member(self, user: User, manuscript_id: uuid.UUID) -> Access:
        """Any role on the manuscript, or raise NotAuthorized."""
        access = await self.get_access(user, manuscript_id)
        if not access.is_member:
            raise NotAuthorized(
                "You are not a collaborator on this manuscript",
                manuscript_id=manuscript_id,
            )
        return access

    async def require_capability(
        self,
        user: User,
        manuscript_id: uuid.UUID,
        capability: str,
    ) -> Access:
        """
        Require one capability flag (``can_edit``, ``can_invite``, ``can_delete``).

        Raises:
            NotFound: Manuscript does not exist
            NotAuthorized: Flag is not set for the user
        """
        access = await self.get_access(user, manuscript_id)
        if not getattr(access.capabilities, capability):
            raise NotAuthorized(
                f"Insufficient permissions. Required: {capability}",
                manuscript_id=manuscript_id,
            )
        return access

    async def get_manuscript_collaborators(
        self,
        manuscript_id: uuid.UUID,
    ) -> List[Tuple[ManuscriptCollaborator, User]]:
        """Collaborator rows joined with their users, oldest first."""
        query = (
            select(ManuscriptCollaborator, User)
            .join(User, ManuscriptCollaborator.user_id == User.id)
            .where(ManuscriptCollaborator.manuscript_id == manuscript_id)
            .order_by(ManuscriptCollaborator.joined_at)
        )
        result = await self.session.execute(query)
        return [(collaborator, user) for collaborator, user in result.all()]


def new_collaborator(
    manuscript_id: uuid.UUID,
    user_id: uuid.UUID,
    role: CollaboratorRole,
    invited_by: Optional[uuid.UUID] = None,
) -> ManuscriptCollaborator:
    """Build a collaborator row with flags derived from its role."""
    caps = capabilities_for_role(role)
    return ManuscriptCollaborator(
        manuscript_id=manuscript_id,
        user_id=user_id,
        role=CollaboratorRole(role),
        can_edit=caps.can_edit,
        can_invite=caps.can_invite,
        can_delete=caps.can_delete,
        invited_by=invited_by,
    )
