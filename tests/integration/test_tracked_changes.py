"""Integration tests for the tracked-change engine against SQLite."""

import uuid

import pytest
from sqlalchemy import func, select

from manuscript_hub.engines.collaboration.tracked_changes import TrackedChangeService
from manuscript_hub.kernel.errors import AlreadyResolved, InvalidPayload, NotAuthorized, NotFound
from manuscript_hub.kernel.models import (
    ChangeStatus,
    ChangeType,
    CollaboratorRole,
    Notification,
    NotificationType,
    TrackedChange,
)
from manuscript_hub.kernel.models.base import as_utc


async def _notifications_for(session, user):
    result = await session.execute(
        select(Notification).where(
            Notification.user_id == user.id,
            Notification.notification_type == NotificationType.TRACKED_CHANGE_RESOLVED,
        )
    )
    return list(result.scalars().all())


class TestProposeChange:

    @pytest.mark.asyncio
    async def test_editor_proposes_pending_change(self, db_session, manuscript, alice, grant_role, clock):
        await grant_role(db_session, manuscript, alice, CollaboratorRole.EDITOR)
        change = await TrackedChangeService(db_session, clock=clock).propose(
            alice,
            manuscript.id,
            ChangeType.REPLACE,
            content="resilient",
            old_content="robust",
            position_from=120,
            position_to=126,
        )
        await db_session.commit()

        assert change.status == ChangeStatus.PENDING
        assert change.author_id == alice.id
        assert change.resolved_at is None
        assert as_utc(change.created_at) == clock.now

    @pytest.mark.asyncio
    async def test_reviewer_cannot_propose(self, db_session, manuscript, alice, grant_role):
        await grant_role(db_session, manuscript, alice, CollaboratorRole.REVIEWER)
        with pytest.raises(NotAuthorized):
            await TrackedChangeService(db_session).propose(
                alice, manuscript.id, ChangeType.INSERT, content="text"
            )

    @pytest.mark.asyncio
    async def test_admin_cannot_propose(self, db_session, manuscript, alice, grant_role):
        await grant_role(db_session, manuscript, alice, CollaboratorRole.ADMIN)
        with pytest.raises(NotAuthorized):
            await TrackedChangeService(db_session).propose(
                alice, manuscript.id, ChangeType.INSERT, content="text"
            )

    @pytest.mark.asyncio
    async def test_malformed_payload(self, db_session, manuscript, owner):
        with pytest.raises(InvalidPayload):
            await TrackedChangeService(db_session).propose(
                owner, manuscript.id, ChangeType.FORMAT, content="not a style"
            )

    @pytest.mark.asyncio
    async def test_unknown_manuscript(self, db_session, owner):
        with pytest.raises(NotFound):
            await TrackedChangeService(db_session).propose(
                owner, uuid.uuid4(), ChangeType.INSERT, content="x"
            )


class TestResolveChange:

    @pytest.mark.asyncio
    async def test_reject_then_second_resolve_fails(self, db_session, manuscript, owner, alice, bob, grant_role, clock):
        await grant_role(db_session, manuscript, alice, CollaboratorRole.CONTRIBUTOR)
        await grant_role(db_session, manuscript, bob, CollaboratorRole.REVIEWER)
        service = TrackedChangeService(db_session, clock=clock)
        change = await service.propose(alice, manuscript.id, ChangeType.INSERT, content="In addition,")
        await db_session.commit()

        clock.advance(minutes=10)
        resolved = await service.resolve(change.id, bob, ChangeStatus.REJECTED)
        await db_session.commit()

        assert resolved.status == ChangeStatus.REJECTED
        assert resolved.resolved_by == bob.id
        assert as_utc(resolved.resolved_at) == clock.now

        with pytest.raises(AlreadyResolved):
            await service.resolve(change.id, bob, ChangeStatus.ACCEPTED)
        with pytest.raises(AlreadyResolved):
            await service.resolve(change.id, owner, ChangeStatus.REJECTED)

        await db_session.refresh(change)
        assert change.status == ChangeStatus.REJECTED

        notes = await _notifications_for(db_session, alice)
        assert len(notes) == 1
        assert notes[0].data["outcome"] == "rejected"
        assert notes[0].data["resolver_name"] == "Bob Baker"

    @pytest.mark.asyncio
    async def test_self_resolve_does_not_notify(self, db_session, manuscript, owner, clock):
        service = TrackedChangeService(db_session, clock=clock)
        change = await service.propose(owner, manuscript.id, ChangeType.DELETE, content="very")
        await service.resolve(change.id, owner, ChangeStatus.ACCEPTED)
        await db_session.commit()

        assert await _notifications_for(db_session, owner) == []

    @pytest.mark.asyncio
    async def test_outsider_cannot_resolve(self, db_session, manuscript, owner, stranger):
        service = TrackedChangeService(db_session)
        change = await service.propose(owner, manuscript.id, ChangeType.INSERT, content="x")
        await db_session.commit()

        with pytest.raises(NotAuthorized):
            await service.resolve(change.id, stranger, ChangeStatus.ACCEPTED)

    @pytest.mark.asyncio
    async def test_pending_is_not_a_resolution(self, db_session, manuscript, owner):
        service = TrackedChangeService(db_session)
        change = await service.propose(owner, manuscript.id, ChangeType.INSERT, content="x")
        with pytest.raises(InvalidPayload):
            await service.resolve(change.id, owner, ChangeStatus.PENDING)

    @pytest.mark.asyncio
    async def test_wrong_manuscript_is_not_found(self, db_session, manuscript, owner):
        service = TrackedChangeService(db_session)
        change = await service.propose(owner, manuscript.id, ChangeType.INSERT, content="x")
        with pytest.raises(NotFound):
            await service.resolve(change.id, owner, ChangeStatus.ACCEPTED, manuscript_id=uuid.uuid4())

    @pytest.mark.asyncio
    async def test_concurrent_resolve_has_one_winner(self, db_session, session_maker, manuscript, owner, alice, grant_role, clock):
        await grant_role(db_session, manuscript, alice, CollaboratorRole.EDITOR)
        change = await TrackedChangeService(db_session, clock=clock).propose(
            alice, manuscript.id, ChangeType.INSERT, content="x"
        )
        await db_session.commit()

        async with session_maker() as first, session_maker() as second:
            await second.get(TrackedChange, change.id)

            await TrackedChangeService(first, clock=clock).resolve(change.id, owner, ChangeStatus.ACCEPTED)
            await first.commit()

            with pytest.raises(AlreadyResolved):
                await TrackedChangeService(second, clock=clock).resolve(
                    change.id, alice, ChangeStatus.REJECTED
                )

        await db_session.refresh(change)
        assert change.status == ChangeStatus.ACCEPTED
        assert change.resolved_by == owner.id


class TestBulkResolve:

    @pytest.mark.asyncio
    async def test_resolves_exactly_the_pending_ones(self, db_session, manuscript, owner, alice, grant_role, clock):
        await grant_role(db_session, manuscript, alice, CollaboratorRole.EDITOR)
        service = TrackedChangeService(db_session, clock=clock)

        for i in range(2):
            change = await service.propose(owner, manuscript.id, ChangeType.INSERT, content=f"kept {i}")
            await service.resolve(change.id, owner, ChangeStatus.ACCEPTED)
        for i in range(3):
            await service.propose(alice, manuscript.id, ChangeType.INSERT, content=f"alice {i}")
        for i in range(2):
            await service.propose(owner, manuscript.id, ChangeType.DELETE, content=f"owner {i}")
        await db_session.commit()

        clock.advance(minutes=5)
        result = await service.bulk_resolve(manuscript.id, owner, ChangeStatus.ACCEPTED)
        await db_session.commit()

        assert result.resolved_count == 5
        assert result.per_author == {alice.id: 3, owner.id: 2}
        assert await service.pending_count(owner, manuscript.id) == 0

        accepted = await service.list_changes(owner, manuscript.id, status=ChangeStatus.ACCEPTED)
        assert len(accepted) == 7

        # One summary for alice, none for the resolver
        notes = await _notifications_for(db_session, alice)
        assert len(notes) == 1
        assert notes[0].data["count"] == 3
        assert await _notifications_for(db_session, owner) == []

    @pytest.mark.asyncio
    async def test_nothing_pending(self, db_session, manuscript, owner):
        result = await TrackedChangeService(db_session).bulk_resolve(
            manuscript.id, owner, ChangeStatus.REJECTED
        )
        assert result.resolved_count == 0

    @pytest.mark.asyncio
    async def test_bulk_reject_leaves_resolved_alone(self, db_session, manuscript, owner, clock):
        service = TrackedChangeService(db_session, clock=clock)
        accepted = await service.propose(owner, manuscript.id, ChangeType.INSERT, content="a")
        await service.resolve(accepted.id, owner, ChangeStatus.ACCEPTED)
        await service.propose(owner, manuscript.id, ChangeType.INSERT, content="b")
        await db_session.commit()

        clock.advance(seconds=1)
        result = await service.bulk_resolve(manuscript.id, owner, ChangeStatus.REJECTED)
        assert result.resolved_count == 1

        await db_session.refresh(accepted)
        assert accepted.status == ChangeStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_outsider_cannot_bulk_resolve(self, db_session, manuscript, stranger):
        with pytest.raises(NotAuthorized):
            await TrackedChangeService(db_session).bulk_resolve(
                manuscript.id, stranger, ChangeStatus.ACCEPTED
            )


class TestQueryChanges:

    @pytest.mark.asyncio
    async def test_ordering_and_filters(self, db_session, manuscript, owner, alice, grant_role, clock):
        await grant_role(db_session, manuscript, alice, CollaboratorRole.EDITOR)
        service = TrackedChangeService(db_session, clock=clock)
        first = await service.propose(owner, manuscript.id, ChangeType.INSERT, content="first")
        clock.advance(seconds=1)
        second = await service.propose(alice, manuscript.id, ChangeType.INSERT, content="second")
        clock.advance(seconds=1)
        third = await service.propose(owner, manuscript.id, ChangeType.INSERT, content="third")
        await service.resolve(third.id, owner, ChangeStatus.REJECTED)
        await db_session.commit()

        newest_first = await service.list_changes(owner, manuscript.id)
        assert [c.id for c in newest_first] == [third.id, second.id, first.id]

        oldest_first = await service.list_changes(owner, manuscript.id, ascending=True)
        assert [c.id for c in oldest_first] == [first.id, second.id, third.id]

        pending = await service.list_changes(owner, manuscript.id, status=ChangeStatus.PENDING)
        assert {c.id for c in pending} == {first.id, second.id}

        by_alice = await service.list_changes(owner, manuscript.id, author_id=alice.id)
        assert [c.id for c in by_alice] == [second.id]

        assert await service.pending_count(alice, manuscript.id) == 2

    @pytest.mark.asyncio
    async def test_outsider_cannot_view(self, db_session, manuscript, stranger):
        with pytest.raises(NotAuthorized):
            await TrackedChangeService(db_session).list_changes(stranger, manuscript.id)
        with pytest.raises(NotAuthorized):
            await TrackedChangeService(db_session).pending_count(stranger, manuscript.id)

    @pytest.mark.asyncio
    async def test_count_ignores_other_manuscripts(self, db_session, manuscript, owner, clock):
        from manuscript_hub.engines.collaboration.manuscripts import ManuscriptService

        other = await ManuscriptService(db_session, clock=clock).create(owner, "Other Paper")
        service = TrackedChangeService(db_session, clock=clock)
        await service.propose(owner, other.id, ChangeType.INSERT, content="elsewhere")
        await db_session.commit()

        assert await service.pending_count(owner, manuscript.id) == 0
        total = await db_session.execute(select(func.count(TrackedChange.id)))
        assert total.scalar() == 1
