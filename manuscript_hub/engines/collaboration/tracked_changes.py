"""
Tracked-Change Engine - discrete, independently resolvable redlines.

    PENDING -> ACCEPTED | REJECTED

Proposing a change never touches the manuscript body. Resolution is a
compare-and-set on the status column and there is no path back to PENDING.
"""

import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from manuscript_hub.engines.collaboration.notifications import NotificationDispatcher
from manuscript_hub.kernel.errors import AlreadyResolved, InvalidPayload, NotFound
from manuscript_hub.kernel.events.event_store import EventStore
from manuscript_hub.kernel.models.base import utcnow
from manuscript_hub.kernel.models.event_log import EventType
from manuscript_hub.kernel.models.manuscript import Manuscript
from manuscript_hub.kernel.models.notification import NotificationType
from manuscript_hub.kernel.models.tracked_change import ChangeStatus, ChangeType, TrackedChange
from manuscript_hub.kernel.models.user import User
from manuscript_hub.kernel.permissions.permission_service import PermissionService
from manuscript_hub.logging_config import get_logger

logger = get_logger(__name__)

RESOLVED_STATES = (ChangeStatus.ACCEPTED, ChangeStatus.REJECTED)


def validate_change_payload(
    change_type: ChangeType,
    content: Optional[str] = None,
    old_content: Optional[str] = None,
    format_attributes: Optional[Dict[str, Any]] = None,
    position_from: Optional[int] = None,
    position_to: Optional[int] = None,
) -> ChangeType:
    """
    Check that the payload fits the kind of change.

    INSERT and DELETE carry the affected text in ``content``; REPLACE needs
    both ``old_content`` and ``content``; FORMAT needs a non-empty style
    descriptor.

    Raises:
        InvalidPayload: Payload does not fit the kind
    """
    try:
        change_type = ChangeType(change_type)
    except ValueError:
        raise InvalidPayload(f"Unknown change type: {change_type}") from None

    if change_type in (ChangeType.INSERT, ChangeType.DELETE):
        if not content:
            raise InvalidPayload(f"A {change_type.value} change requires content")
    elif change_type == ChangeType.REPLACE:
        if not old_content:
            raise InvalidPayload("A replace change requires old_content")
        if content is None:
            raise InvalidPayload("A replace change requires content")
    elif change_type == ChangeType.FORMAT:
        if not format_attributes or not isinstance(format_attributes, dict):
            raise InvalidPayload("A format change requires format_attributes")

    for name, value in (("position_from", position_from), ("position_to", position_to)):
        if value is not None and value < 0:
            raise InvalidPayload(f"{name} must not be negative")
    if position_from is not None and position_to is not None and position_to < position_from:
        raise InvalidPayload("position_to must not be before position_from")

    return change_type


@dataclass
class BulkResolveResult:
    """Outcome of a bulk resolve."""

    outcome: ChangeStatus
    resolved_count: int = 0
    per_author: Dict[uuid.UUID, int] = field(default_factory=dict)


class TrackedChangeService:
    """Propose, resolve and query tracked changes."""

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock
        self.permissions = PermissionService(session)
        self.dispatcher = NotificationDispatcher(session, clock=clock)
        self.event_store = EventStore(session)

    async def propose(
        self,
        author: User,
        manuscript_id: uuid.UUID,
        change_type: ChangeType,
        content: Optional[str] = None,
        old_content: Optional[str] = None,
        format_attributes: Optional[Dict[str, Any]] = None,
        position_from: Optional[int] = None,
        position_to: Optional[int] = None,
        ip_address: Optional[str] = None,
    ) -> TrackedChange:
        """
        Record a PENDING change authored by ``author``.

        Raises:
            NotFound: Manuscript does not exist
            NotAuthorized: Author lacks ``can_edit``
            InvalidPayload: Payload does not fit the kind
        """
        await self.permissions.require_capability(author, manuscript_id, "can_edit")
        change_type = validate_change_payload(
            change_type, content, old_content, format_attributes, position_from, position_to
        )

        change = TrackedChange(
            manuscript_id=manuscript_id,
            change_type=change_type,
            content=content,
            old_content=old_content,
            format_attributes=format_attributes,
            position_from=position_from,
            position_to=position_to,
            author_id=author.id,
            status=ChangeStatus.PENDING,
            created_at=self.clock(),
        )
        self.session.add(change)
        await self.session.flush()

        await self.event_store.log(
            event_type=EventType.CHANGE_PROPOSED,
            entity_type="tracked_change",
            entity_id=change.id,
            user_id=author.id,
            payload={"manuscript_id": manuscript_id, "change_type": change_type},
            ip_address=ip_address,
        )
        logger.info(
            "Tracked change proposed",
            extra={"change_id": str(change.id), "manuscript_id": str(manuscript_id)},
        )
        return change

    async def resolve(
        self,
        change_id: uuid.UUID,
        resolver: User,
        outcome: ChangeStatus,
        manuscript_id: Optional[uuid.UUID] = None,
        ip_address: Optional[str] = None,
    ) -> TrackedChange:
        """
        Accept or reject one change.

        Raises:
            NotFound: No such change (or it belongs to another manuscript)
            NotAuthorized: Resolver is not a collaborator
            InvalidPayload: Outcome is not ACCEPTED or REJECTED
            AlreadyResolved: Change already left PENDING
        """
        outcome = _resolution(outcome)

        change = await self.session.get(TrackedChange, change_id)
        if change is None or (manuscript_id is not None and change.manuscript_id != manuscript_id):
            raise NotFound("Tracked change not found", change_id=change_id)

        access = await self.permissions.require_member(resolver, change.manuscript_id)

        if change.status != ChangeStatus.PENDING:
            raise AlreadyResolved(
                f"Change has already been {change.status}",
                change_id=change_id,
            )

        now = self.clock()
        result = await self.session.execute(
            update(TrackedChange)
            .where(
                TrackedChange.id == change.id,
                TrackedChange.status == ChangeStatus.PENDING,
            )
            .values(status=outcome, resolved_at=now, resolved_by=resolver.id)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(change)
        if result.rowcount != 1:
            raise AlreadyResolved(
                f"Change has already been {change.status}",
                change_id=change_id,
            )

        await self.event_store.log(
            event_type=(
                EventType.CHANGE_ACCEPTED if outcome == ChangeStatus.ACCEPTED
                else EventType.CHANGE_REJECTED
            ),
            entity_type="tracked_change",
            entity_id=change.id,
            user_id=resolver.id,
            payload={"manuscript_id": change.manuscript_id, "author_id": change.author_id},
            ip_address=ip_address,
        )

        if change.author_id != resolver.id:
            await self._notify_author(
                access.manuscript, change.author_id, resolver, outcome, [change.id]
            )
        return change

    async def bulk_resolve(
        self,
        manuscript_id: uuid.UUID,
        resolver: User,
        outcome: ChangeStatus,
        ip_address: Optional[str] = None,
    ) -> BulkResolveResult:
        """
        Resolve every currently PENDING change of a manuscript in one statement.

        Already-resolved changes are left alone. Each author other than the
        resolver gets a single summary notification.
        """
        outcome = _resolution(outcome)
        access = await self.permissions.require_member(resolver, manuscript_id)

        pending = await self.session.execute(
            select(TrackedChange.id).where(
                TrackedChange.manuscript_id == manuscript_id,
                TrackedChange.status == ChangeStatus.PENDING,
            )
        )
        pending_ids = list(pending.scalars().all())
        result = BulkResolveResult(outcome=outcome)
        if not pending_ids:
            return result

        now = self.clock()
        updated = await self.session.execute(
            update(TrackedChange)
            .where(
                TrackedChange.id.in_(pending_ids),
                TrackedChange.status == ChangeStatus.PENDING,
            )
            .values(status=outcome, resolved_at=now, resolved_by=resolver.id)
            .execution_options(synchronize_session=False)
        )
        result.resolved_count = updated.rowcount or 0

        # Only rows this statement moved carry this resolver and timestamp
        resolved = await self.session.execute(
            select(TrackedChange)
            .where(
                TrackedChange.id.in_(pending_ids),
                TrackedChange.status == outcome,
                TrackedChange.resolved_by == resolver.id,
                TrackedChange.resolved_at == now,
            )
            .execution_options(populate_existing=True)
        )
        changes = list(resolved.scalars().all())
        result.per_author = dict(Counter(change.author_id for change in changes))

        await self.event_store.log(
            event_type=EventType.CHANGES_BULK_RESOLVED,
            entity_type="manuscript",
            entity_id=manuscript_id,
            user_id=resolver.id,
            payload={"outcome": outcome, "count": result.resolved_count},
            ip_address=ip_address,
        )

        for author_id in sorted(result.per_author, key=str):
            if author_id == resolver.id:
                continue
            change_ids = [c.id for c in changes if c.author_id == author_id]
            await self._notify_author(access.manuscript, author_id, resolver, outcome, change_ids)

        logger.info(
            "Tracked changes bulk resolved",
            extra={
                "manuscript_id": str(manuscript_id),
                "outcome": outcome.value,
                "count": result.resolved_count,
            },
        )
        return result

    async def list_changes(
        self,
        user: User,
        manuscript_id: uuid.UUID,
        status: Optional[ChangeStatus] = None,
        author_id: Optional[uuid.UUID] = None,
        ascending: bool = False,
    ) -> List[TrackedChange]:
        """Changes of a manuscript ordered by creation time, newest first by default."""
        await self.permissions.require_member(user, manuscript_id)

        conditions = [TrackedChange.manuscript_id == manuscript_id]
        if status is not None:
            conditions.append(TrackedChange.status == ChangeStatus(status))
        if author_id is not None:
            conditions.append(TrackedChange.author_id == author_id)

        if ascending:
            order = (TrackedChange.created_at.asc(), TrackedChange.id.asc())
        else:
            order = (TrackedChange.created_at.desc(), TrackedChange.id.desc())

        result = await self.session.execute(
            select(TrackedChange).where(and_(*conditions)).order_by(*order)
        )
        return list(result.scalars().all())

    async def pending_count(self, user: User, manuscript_id: uuid.UUID) -> int:
        await self.permissions.require_member(user, manuscript_id)
        result = await self.session.execute(
            select(func.count(TrackedChange.id)).where(
                TrackedChange.manuscript_id == manuscript_id,
                TrackedChange.status == ChangeStatus.PENDING,
            )
        )
        return result.scalar() or 0

    async def _notify_author(
        self,
        manuscript: Manuscript,
        author_id: uuid.UUID,
        resolver: User,
        outcome: ChangeStatus,
        change_ids: List[uuid.UUID],
    ) -> None:
        verb = outcome.value
        count = len(change_ids)
        if count == 1:
            message = (
                f"{resolver.display_name} {verb} your change to "
                f"the {manuscript.document_label} \"{manuscript.title}\""
            )
        else:
            message = (
                f"{resolver.display_name} {verb} {count} of your changes to "
                f"the {manuscript.document_label} \"{manuscript.title}\""
            )
        await self.dispatcher.dispatch(
            recipient_id=author_id,
            notification_type=NotificationType.TRACKED_CHANGE_RESOLVED,
            title=f"Tracked Change {verb.capitalize()}",
            message=message,
            data={
                "manuscript_id": manuscript.id,
                "manuscript_title": manuscript.title,
                "change_ids": [str(change_id) for change_id in change_ids],
                "count": count,
                "outcome": outcome,
                "resolver_id": resolver.id,
                "resolver_name": resolver.display_name,
            },
            manuscript_id=manuscript.id,
        )


def _resolution(outcome: ChangeStatus) -> ChangeStatus:
    try:
        outcome = ChangeStatus(outcome)
    except ValueError:
        raise InvalidPayload(f"Unknown outcome: {outcome}") from None
    if outcome not in RESOLVED_STATES:
        raise InvalidPayload("Outcome must be accepted or rejected")
    return outcome
