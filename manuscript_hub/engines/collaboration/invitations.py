"""
Invitation State Machine.

    PENDING -> ACCEPTED | DECLINED | EXPIRED

Every state is terminal except PENDING. Transitions are compare-and-set
updates (``UPDATE ... WHERE status = 'pending'``) and the affected row count
decides the winner, so two concurrent responders can never both succeed.

Accepting is one unit of work: the collaborator row, the status write and the
inviter notification all go through the caller's session and commit or roll
back together.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from manuscript_hub.config import get_settings
from manuscript_hub.engines.collaboration.notifications import NotificationDispatcher
from manuscript_hub.kernel.errors import (
    AlreadyResolved,
    Conflict,
    Expired,
    InvalidPayload,
    NotAuthorized,
    NotFound,
)
from manuscript_hub.kernel.events.event_store import EventStore
from manuscript_hub.kernel.identity.identity_resolver import (
    IdentityKeyKind,
    IdentityResolver,
    build_keys,
    identity_filter,
    matching_kind,
    normalize_email,
    normalize_orcid,
    person_keys,
)
from manuscript_hub.kernel.models.base import as_utc, utcnow
from manuscript_hub.kernel.models.event_log import EventType
from manuscript_hub.kernel.models.invitation import InvitationStatus, ManuscriptInvitation
from manuscript_hub.kernel.models.manuscript import (
    CollaboratorRole,
    Manuscript,
    ManuscriptCollaborator,
)
from manuscript_hub.kernel.models.notification import NotificationType
from manuscript_hub.kernel.models.user import User
from manuscript_hub.kernel.permissions.permission_service import (
    PermissionService,
    new_collaborator,
)
from manuscript_hub.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class InvitationResponse:
    """Outcome of a successful respond call."""

    invitation: ManuscriptInvitation
    collaborator: Optional[ManuscriptCollaborator] = None
    already_collaborator: bool = False


class InvitationService:
    """Creates invitations and drives their lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] = utcnow,
        expiry_days: Optional[int] = None,
    ):
        self.session = session
        self.clock = clock
        self.expiry_days = (
            expiry_days if expiry_days is not None else get_settings().invitation_expiry_days
        )
        self.permissions = PermissionService(session)
        self.resolver = IdentityResolver(session)
        self.dispatcher = NotificationDispatcher(session, clock=clock)
        self.event_store = EventStore(session)

    async def create(
        self,
        inviter: User,
        manuscript_id: uuid.UUID,
        role: CollaboratorRole,
        user_id: Optional[uuid.UUID] = None,
        email: Optional[str] = None,
        orcid_id: Optional[str] = None,
        given_name: Optional[str] = None,
        family_name: Optional[str] = None,
        affiliation: Optional[str] = None,
        message: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> ManuscriptInvitation:
        """
        Invite a person, who may not have an account yet, onto a manuscript.

        Raises:
            NotFound: Manuscript does not exist
            NotAuthorized: Inviter lacks ``can_invite``
            InvalidPayload: No target key or no role
            Conflict: Target already collaborates, or a pending invitation
                already addresses one of the same keys
        """
        access = await self.permissions.require_capability(inviter, manuscript_id, "can_invite")
        manuscript = access.manuscript

        if role is None:
            raise InvalidPayload("A role is required")
        role = CollaboratorRole(role)

        keys = build_keys(user_id=user_id, email=email, orcid_id=orcid_id)
        if not keys:
            raise InvalidPayload("An email, ORCID iD or user id is required")

        target = await self.resolver.resolve(keys)
        if user_id is not None and target is None:
            raise NotFound("Invited user not found", user_id=user_id)

        if target is not None:
            await self._ensure_not_collaborator(manuscript, target)
            keys = keys | person_keys(target)

        existing = await self.session.execute(
            select(ManuscriptInvitation.id)
            .where(
                and_(
                    ManuscriptInvitation.manuscript_id == manuscript_id,
                    ManuscriptInvitation.status == InvitationStatus.PENDING,
                    identity_filter(
                        ManuscriptInvitation.invited_user_id,
                        ManuscriptInvitation.email,
                        ManuscriptInvitation.orcid_id,
                        keys,
                    ),
                )
            )
            .limit(1)
        )
        if existing.scalar_one_or_none() is not None:
            raise Conflict(
                "A pending invitation already exists for this person",
                manuscript_id=manuscript_id,
            )

        now = self.clock()
        invitation = ManuscriptInvitation(
            manuscript_id=manuscript_id,
            invited_by=inviter.id,
            role=role,
            message=message,
            status=InvitationStatus.PENDING,
            created_at=now,
            expires_at=now + timedelta(days=self.expiry_days),
        )
        if target is not None:
            invitation.invited_user_id = target.id
            invitation.email = target.email
            invitation.orcid_id = target.orcid_id or (normalize_orcid(orcid_id) if orcid_id else None)
            invitation.given_name = target.given_name
            invitation.family_name = target.family_name
            invitation.affiliation = target.affiliation
        else:
            invitation.email = normalize_email(email) if email else None
            invitation.orcid_id = normalize_orcid(orcid_id) if orcid_id else None
            invitation.given_name = given_name
            invitation.family_name = family_name
            invitation.affiliation = affiliation

        self.session.add(invitation)
        await self.session.flush()

        await self.event_store.log(
            event_type=EventType.INVITATION_CREATED,
            entity_type="invitation",
            entity_id=invitation.id,
            user_id=inviter.id,
            payload={
                "manuscript_id": manuscript_id,
                "role": role,
                "invited_user_id": invitation.invited_user_id,
                "email": invitation.email,
                "orcid_id": invitation.orcid_id,
            },
            ip_address=ip_address,
        )

        if target is not None:
            await self.dispatcher.dispatch(
                recipient_id=target.id,
                notification_type=NotificationType.COLLABORATION_INVITATION,
                title="Collaboration Invitation",
                message=(
                    f"{inviter.display_name} has invited you to collaborate on the "
                    f"{manuscript.document_label} \"{manuscript.title}\" as {role.value}"
                ),
                data={
                    "invitation_id": invitation.id,
                    "manuscript_id": manuscript.id,
                    "manuscript_title": manuscript.title,
                    "document_type": manuscript.document_type,
                    "inviter_name": inviter.display_name,
                    "role": role,
                    "action": "pending",
                },
                manuscript_id=manuscript.id,
            )

        logger.info(
            "Invitation created",
            extra={
                "invitation_id": str(invitation.id),
                "manuscript_id": str(manuscript_id),
                "known_invitee": target is not None,
            },
        )
        return invitation

    async def respond(
        self,
        invitation_id: uuid.UUID,
        responder: User,
        accept: bool,
        ip_address: Optional[str] = None,
    ) -> InvitationResponse:
        """
        Accept or decline an invitation.

        The identity check runs before the status check, so a stranger gets
        NotAuthorized whatever state the invitation is in. An overdue
        invitation is moved to EXPIRED and committed before Expired is raised.
        Accepting when the person already collaborates, including when their
        row appears between the read and the insert, still marks the
        invitation ACCEPTED and reports ``already_collaborator``.

        Raises:
            NotFound, NotAuthorized, AlreadyResolved, Expired
        """
        invitation = await self.session.get(ManuscriptInvitation, invitation_id)
        if invitation is None:
            raise NotFound("Invitation not found", invitation_id=invitation_id)

        target_keys = build_keys(
            user_id=invitation.invited_user_id,
            email=invitation.email,
            orcid_id=invitation.orcid_id,
        )
        matched_by = matching_kind(target_keys, person_keys(responder))
        if matched_by is None:
            raise NotAuthorized(
                "This invitation is not addressed to you",
                invitation_id=invitation_id,
            )

        if invitation.status != InvitationStatus.PENDING:
            raise AlreadyResolved(
                f"Invitation has already been {invitation.status}",
                invitation_id=invitation_id,
            )

        now = self.clock()
        if now > as_utc(invitation.expires_at):
            await self._expire(invitation, responder, ip_address)

        if accept:
            return await self._accept(invitation, responder, now, ip_address, matched_by)
        return await self._decline(invitation, responder, now, ip_address, matched_by)

    async def list_for_manuscript(
        self,
        user: User,
        manuscript_id: uuid.UUID,
        status: Optional[InvitationStatus] = None,
    ) -> List[ManuscriptInvitation]:
        """Invitations of a manuscript, newest first. Collaborators only."""
        await self.permissions.require_member(user, manuscript_id)
        query = select(ManuscriptInvitation).where(
            ManuscriptInvitation.manuscript_id == manuscript_id
        )
        if status is not None:
            query = query.where(ManuscriptInvitation.status == status)
        result = await self.session.execute(
            query.order_by(ManuscriptInvitation.created_at.desc())
        )
        return list(result.scalars().all())

    async def pending_for_user(self, user: User) -> List[ManuscriptInvitation]:
        """Pending, not yet overdue invitations addressed to any of the user's keys."""
        result = await self.session.execute(
            select(ManuscriptInvitation)
            .where(
                and_(
                    ManuscriptInvitation.status == InvitationStatus.PENDING,
                    ManuscriptInvitation.expires_at > self.clock(),
                    identity_filter(
                        ManuscriptInvitation.invited_user_id,
                        ManuscriptInvitation.email,
                        ManuscriptInvitation.orcid_id,
                        person_keys(user),
                    ),
                )
            )
            .order_by(ManuscriptInvitation.created_at.desc())
        )
        return list(result.scalars().all())

    async def expire_overdue(self) -> int:
        """Move every overdue PENDING invitation to EXPIRED. Returns the count."""
        now = self.clock()
        result = await self.session.execute(
            update(ManuscriptInvitation)
            .where(
                ManuscriptInvitation.status == InvitationStatus.PENDING,
                ManuscriptInvitation.expires_at < now,
            )
            .values(status=InvitationStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        expired = result.rowcount or 0
        if expired:
            logger.info("Expired overdue invitations", extra={"count": expired})
        return expired

    async def _ensure_not_collaborator(self, manuscript: Manuscript, target: User) -> None:
        if manuscript.created_by == target.id:
            raise Conflict(
                "This person already owns the manuscript",
                manuscript_id=manuscript.id,
            )
        if await self.permissions.get_collaborator(manuscript.id, target.id) is not None:
            raise Conflict(
                "This person is already a collaborator",
                manuscript_id=manuscript.id,
            )

    async def _expire(
        self,
        invitation: ManuscriptInvitation,
        responder: User,
        ip_address: Optional[str],
    ) -> None:
        if await self._compare_and_set(invitation, InvitationStatus.EXPIRED):
            await self.event_store.log(
                event_type=EventType.INVITATION_EXPIRED,
                entity_type="invitation",
                entity_id=invitation.id,
                user_id=responder.id,
                payload={"manuscript_id": invitation.manuscript_id},
                ip_address=ip_address,
            )
            # Persist the expiry even though this request fails
            await self.session.commit()
            logger.info("Invitation expired", extra={"invitation_id": str(invitation.id)})
        elif invitation.status != InvitationStatus.EXPIRED:
            raise AlreadyResolved(
                f"Invitation has already been {invitation.status}",
                invitation_id=invitation.id,
            )
        raise Expired(invitation_id=invitation.id)

    async def _accept(
        self,
        invitation: ManuscriptInvitation,
        responder: User,
        now: datetime,
        ip_address: Optional[str],
        matched_by: IdentityKeyKind,
    ) -> InvitationResponse:
        won = await self._compare_and_set(
            invitation,
            InvitationStatus.ACCEPTED,
            responded_at=now,
            invited_user_id=responder.id,
        )
        if not won:
            raise AlreadyResolved(
                f"Invitation has already been {invitation.status}",
                invitation_id=invitation.id,
            )

        manuscript = await self.permissions.get_manuscript(invitation.manuscript_id)
        existing = await self.permissions.get_collaborator(manuscript.id, responder.id)
        if existing is not None or manuscript.created_by == responder.id:
            return await self._accept_as_member(
                invitation, responder, existing, ip_address, matched_by
            )

        collaborator = new_collaborator(
            manuscript_id=manuscript.id,
            user_id=responder.id,
            role=CollaboratorRole(invitation.role),
            invited_by=invitation.invited_by,
        )
        collaborator.joined_at = now
        try:
            async with self.session.begin_nested():
                self.session.add(collaborator)
                await self.session.flush()
        except IntegrityError:
            # Another invitation for the same person was accepted since the read above
            logger.info(
                "Collaborator row already present, keeping invitation accepted",
                extra={"invitation_id": str(invitation.id), "manuscript_id": str(manuscript.id)},
            )
            await self.session.refresh(invitation)
            existing = await self.permissions.get_collaborator(manuscript.id, responder.id)
            return await self._accept_as_member(
                invitation, responder, existing, ip_address, matched_by
            )

        await self.event_store.log(
            event_type=EventType.COLLABORATOR_ADDED,
            entity_type="manuscript",
            entity_id=manuscript.id,
            user_id=responder.id,
            payload={"role": collaborator.role, "invitation_id": invitation.id},
            ip_address=ip_address,
        )
        await self._log_transition(
            EventType.INVITATION_ACCEPTED, invitation, responder, ip_address, matched_by=matched_by
        )

        await self.dispatcher.dispatch(
            recipient_id=invitation.invited_by,
            notification_type=NotificationType.INVITATION_ACCEPTED,
            title="Invitation Accepted",
            message=(
                f"{responder.display_name} has accepted your invitation to collaborate "
                f"on the {manuscript.document_label} \"{manuscript.title}\""
            ),
            data={
                "invitation_id": invitation.id,
                "manuscript_id": manuscript.id,
                "manuscript_title": manuscript.title,
                "responder_id": responder.id,
                "responder_name": responder.display_name,
                "role": collaborator.role,
                "action": "accepted",
            },
            manuscript_id=manuscript.id,
        )
        return InvitationResponse(invitation=invitation, collaborator=collaborator)

    async def _accept_as_member(
        self,
        invitation: ManuscriptInvitation,
        responder: User,
        existing: Optional[ManuscriptCollaborator],
        ip_address: Optional[str],
        matched_by: IdentityKeyKind,
    ) -> InvitationResponse:
        await self._log_transition(
            EventType.INVITATION_ACCEPTED, invitation, responder, ip_address,
            matched_by=matched_by,
            already_collaborator=True,
        )
        return InvitationResponse(
            invitation=invitation,
            collaborator=existing,
            already_collaborator=True,
        )

    async def _decline(
        self,
        invitation: ManuscriptInvitation,
        responder: User,
        now: datetime,
        ip_address: Optional[str],
        matched_by: IdentityKeyKind,
    ) -> InvitationResponse:
        won = await self._compare_and_set(
            invitation,
            InvitationStatus.DECLINED,
            responded_at=now,
        )
        if not won:
            raise AlreadyResolved(
                f"Invitation has already been {invitation.status}",
                invitation_id=invitation.id,
            )

        manuscript = await self.permissions.get_manuscript(invitation.manuscript_id)
        await self._log_transition(
            EventType.INVITATION_DECLINED, invitation, responder, ip_address, matched_by=matched_by
        )
        await self.dispatcher.dispatch(
            recipient_id=invitation.invited_by,
            notification_type=NotificationType.INVITATION_DECLINED,
            title="Invitation Declined",
            message=(
                f"{responder.display_name} has declined your invitation to collaborate "
                f"on the {manuscript.document_label} \"{manuscript.title}\""
            ),
            data={
                "invitation_id": invitation.id,
                "manuscript_id": manuscript.id,
                "manuscript_title": manuscript.title,
                "responder_id": responder.id,
                "responder_name": responder.display_name,
                "action": "declined",
            },
            manuscript_id=manuscript.id,
        )
        return InvitationResponse(invitation=invitation)

    async def _compare_and_set(
        self,
        invitation: ManuscriptInvitation,
        status: InvitationStatus,
        **values,
    ) -> bool:
        """Move a PENDING invitation to ``status``. False if someone else got there first."""
        result = await self.session.execute(
            update(ManuscriptInvitation)
            .where(
                ManuscriptInvitation.id == invitation.id,
                ManuscriptInvitation.status == InvitationStatus.PENDING,
            )
            .values(status=status, **values)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(invitation)
        return result.rowcount == 1

    async def _log_transition(
        self,
        event_type: EventType,
        invitation: ManuscriptInvitation,
        responder: User,
        ip_address: Optional[str],
        **extra,
    ) -> None:
        await self.event_store.log(
            event_type=event_type,
            entity_type="invitation",
            entity_id=invitation.id,
            user_id=responder.id,
            payload={"manuscript_id": invitation.manuscript_id, **extra},
            ip_address=ip_address,
        )
        logger.info(
            "Invitation %s", InvitationStatus(invitation.status).value,
            extra={
                "invitation_id": str(invitation.id),
                "responder_id": str(responder.id),
            },
        )
