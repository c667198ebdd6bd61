"""
Notification Dispatcher - in-app notifications driven by collaboration events.

``dispatch`` writes into the caller's session and never commits, so a
notification exists only if the transition that produced it commits.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from manuscript_hub.kernel.errors import NotAuthorized, NotFound
from manuscript_hub.kernel.models.base import jsonable, utcnow
from manuscript_hub.kernel.models.notification import Notification, NotificationType
from manuscript_hub.kernel.models.user import User
from manuscript_hub.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class NotificationPage:
    """One page of a recipient's notifications."""

    items: List[Notification]
    total: int
    unread_count: int
    page: int
    page_size: int

    @property
    def has_more(self) -> bool:
        return self.page * self.page_size < self.total


class NotificationDispatcher:
    """Creates and manages notifications for one database session."""

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock

    async def dispatch(
        self,
        recipient_id: uuid.UUID,
        notification_type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        manuscript_id: Optional[uuid.UUID] = None,
    ) -> Notification:
        """Create exactly one notification for ``recipient_id``."""
        notification = Notification(
            user_id=recipient_id,
            manuscript_id=manuscript_id,
            notification_type=notification_type,
            title=title,
            message=message,
            data=jsonable(data or {}),
            is_read=False,
            created_at=self.clock(),
        )
        self.session.add(notification)
        await self.session.flush()

        logger.info(
            "Notification dispatched",
            extra={
                "notification_id": str(notification.id),
                "recipient_id": str(recipient_id),
                "notification_type": NotificationType(notification_type).value,
            },
        )
        return notification

    async def list_notifications(
        self,
        user: User,
        unread_only: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> NotificationPage:
        """Newest first, with totals for the filter and the unread badge."""
        conditions = [Notification.user_id == user.id]
        if unread_only:
            conditions.append(Notification.is_read.is_(False))

        total = (
            await self.session.execute(
                select(func.count(Notification.id)).where(and_(*conditions))
            )
        ).scalar() or 0

        unread_count = await self.unread_count(user)

        result = await self.session.execute(
            select(Notification)
            .where(and_(*conditions))
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return NotificationPage(
            items=list(result.scalars().all()),
            total=total,
            unread_count=unread_count,
            page=page,
            page_size=page_size,
        )

    async def unread_count(self, user: User) -> int:
        result = await self.session.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user.id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar() or 0

    async def mark_read(self, user: User, notification_ids: Iterable[uuid.UUID]) -> int:
        """
        Mark the given notifications read.

        Ids that do not exist or belong to someone else are ignored, and
        already-read rows are left untouched, so repeating the call is a no-op.
        """
        ids = list(set(notification_ids))
        if not ids:
            return 0
        return await self._mark(user, Notification.id.in_(ids))

    async def mark_all_read(self, user: User) -> int:
        return await self._mark(user)

    async def delete(self, user: User, notification_id: uuid.UUID) -> None:
        """
        Raises:
            NotFound: No such notification
            NotAuthorized: Notification belongs to another user
        """
        notification = await self.session.get(Notification, notification_id)
        if notification is None:
            raise NotFound("Notification not found", notification_id=notification_id)
        if notification.user_id != user.id:
            raise NotAuthorized(
                "You can only delete your own notifications",
                notification_id=notification_id,
            )
        await self.session.delete(notification)
        await self.session.flush()

    async def _mark(self, user: User, *conditions) -> int:
        stmt = (
            update(Notification)
            .where(
                Notification.user_id == user.id,
                Notification.is_read.is_(False),
                *conditions,
            )
            .values(is_read=True, read_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0
