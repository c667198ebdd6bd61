"""
Periodic housekeeping for the collaboration core.

Presence entries are evicted lazily on every heartbeat and query, and an
overdue invitation is expired when someone responds to it. Manuscripts
nobody looks at and invitations nobody answers are only cleaned up here.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from manuscript_hub.engines.collaboration.invitations import InvitationService
from manuscript_hub.engines.collaboration.presence import PresenceTracker
from manuscript_hub.kernel.models.base import utcnow
from manuscript_hub.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class MaintenanceReport:
    presence_evicted: int = 0
    invitations_expired: int = 0


async def run_maintenance(
    tracker: PresenceTracker,
    session_maker: async_sessionmaker[AsyncSession],
    clock: Callable[[], datetime] = utcnow,
) -> MaintenanceReport:
    """Evict stale presence everywhere and expire every overdue invitation."""
    report = MaintenanceReport(presence_evicted=tracker.sweep())

    async with session_maker() as session:
        report.invitations_expired = await InvitationService(session, clock=clock).expire_overdue()
        await session.commit()

    if report.presence_evicted or report.invitations_expired:
        logger.info(
            "Maintenance pass",
            extra={
                "presence_evicted": report.presence_evicted,
                "invitations_expired": report.invitations_expired,
            },
        )
    return report


async def maintenance_loop(
    tracker: PresenceTracker,
    session_maker: async_sessionmaker[AsyncSession],
    interval_seconds: float,
) -> None:
    """Run a pass every ``interval_seconds`` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await run_maintenance(tracker, session_maker)
        except (SQLAlchemyError, OSError):
            # Retried on the next interval
            logger.exception("Maintenance pass failed")
