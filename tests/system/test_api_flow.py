"""
End-to-end API tests.

Drives the FastAPI app over ASGI with the per-test SQLite database and a
fresh presence store, through invite/accept, tracked changes, presence and
notifications.
"""

from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from manuscript_hub.api.deps import get_presence_store
from manuscript_hub.database import get_db, session_scope
from manuscript_hub.engines.collaboration.invitations import InvitationService
from manuscript_hub.engines.collaboration.presence import InMemoryPresenceStore
from manuscript_hub.kernel.models import (
    CollaboratorRole,
    InvitationStatus,
    ManuscriptCollaborator,
    ManuscriptInvitation,
    utcnow,
)
from manuscript_hub.main import app

API = "/api/v1"


class CommitFailingSession(AsyncSession):
    """Session whose commit is refused by the database."""

    async def commit(self) -> None:
        raise OperationalError("COMMIT", {}, Exception("database is locked"))


@asynccontextmanager
async def serve(maker) -> AsyncGenerator[AsyncClient, None]:
    store = InMemoryPresenceStore()
    app.dependency_overrides[get_db] = session_scope(maker)
    app.dependency_overrides[get_presence_store] = lambda: store
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(session_maker) -> AsyncGenerator[AsyncClient, None]:
    async with serve(session_maker) as ac:
        yield ac


@pytest_asyncio.fixture
async def failing_client(db_engine) -> AsyncGenerator[AsyncClient, None]:
    maker = async_sessionmaker(
        db_engine,
        class_=CommitFailingSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with serve(maker) as ac:
        yield ac


class TestSmoke:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.headers.get("X-Request-ID")

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "trace-123"})
        assert response.headers["X-Request-ID"] == "trace-123"

    @pytest.mark.asyncio
    async def test_missing_token_is_401(self, client, manuscript):
        response = await client.get(f"{API}/manuscripts/{manuscript.id}")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["code"] == "unauthenticated"

    @pytest.mark.asyncio
    async def test_garbage_token_is_401(self, client, manuscript):
        response = await client.get(
            f"{API}/manuscripts/{manuscript.id}",
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401


class TestManuscriptEndpoints:

    @pytest.mark.asyncio
    async def test_create_and_get(self, client, owner, auth_headers):
        headers = auth_headers(owner)
        created = await client.post(
            f"{API}/manuscripts",
            json={"title": "Deep Sea Vents", "document_type": "proposal"},
            headers=headers,
        )
        assert created.status_code == 201
        body = created.json()
        assert body["my_role"] == "owner"
        assert body["can_invite"] is True

        fetched = await client.get(f"{API}/manuscripts/{body['id']}", headers=headers)
        assert fetched.status_code == 200
        assert fetched.json()["title"] == "Deep Sea Vents"

    @pytest.mark.asyncio
    async def test_outsider_gets_403(self, client, manuscript, stranger, auth_headers):
        response = await client.get(
            f"{API}/manuscripts/{manuscript.id}", headers=auth_headers(stranger)
        )
        assert response.status_code == 403
        assert response.json()["code"] == "not_authorized"

    @pytest.mark.asyncio
    async def test_empty_title_is_422(self, client, owner, auth_headers):
        response = await client.post(
            f"{API}/manuscripts", json={"title": ""}, headers=auth_headers(owner)
        )
        assert response.status_code == 422
        assert response.json()["code"] == "invalid_payload"
        body = response.json()
        assert body["detail"] == "Validation error"
        assert [e["field"] for e in body["errors"]] == ["body.title"]
        assert body["request_id"] == response.headers["X-Request-ID"]
        assert "context" not in body

    @pytest.mark.asyncio
    async def test_unknown_manuscript_names_it_in_context(self, client, owner, auth_headers):
        missing = "0b7c6a2e-8f1d-4c3a-9e5b-2d4f6a8c0e1f"
        response = await client.get(f"{API}/manuscripts/{missing}", headers=auth_headers(owner))
        assert response.status_code == 404
        assert response.json() == {
            "detail": "Manuscript not found",
            "code": "not_found",
            "context": {"manuscript_id": missing},
            "request_id": response.headers["X-Request-ID"],
        }


class TestInvitationFlow:

    @pytest.mark.asyncio
    async def test_invite_accept_and_repeat(self, client, manuscript, owner, alice, auth_headers):
        owner_headers = auth_headers(owner)
        alice_headers = auth_headers(alice)

        created = await client.post(
            f"{API}/invitations",
            json={
                "manuscript_id": str(manuscript.id),
                "role": "editor",
                "email": "Alice@Example.org",
                "message": "Could you take the discussion section?",
            },
            headers=owner_headers,
        )
        assert created.status_code == 201
        invitation = created.json()
        assert invitation["status"] == "pending"
        assert invitation["invitee_name"] == "Alice Archer"

        pending = await client.get(f"{API}/invitations/pending", headers=alice_headers)
        assert [i["id"] for i in pending.json()] == [invitation["id"]]

        accepted = await client.post(
            f"{API}/invitations/{invitation['id']}/respond",
            json={"action": "accept"},
            headers=alice_headers,
        )
        assert accepted.status_code == 200
        result = accepted.json()
        assert result["status"] == "accepted"
        assert result["role"] == "editor"
        assert result["can_edit"] is True
        assert result["can_invite"] is False

        again = await client.post(
            f"{API}/invitations/{invitation['id']}/respond",
            json={"action": "decline"},
            headers=alice_headers,
        )
        assert again.status_code == 409
        assert again.json()["code"] == "already_resolved"

        roster = await client.get(
            f"{API}/manuscripts/{manuscript.id}/collaborators", headers=alice_headers
        )
        names = [c["name"] for c in roster.json()["collaborators"]]
        assert names == ["Olivia Owens", "Alice Archer"]

        inbox = await client.get(f"{API}/notifications", headers=owner_headers)
        kinds = [n["notification_type"] for n in inbox.json()["items"]]
        assert kinds == ["invitation_accepted"]

    @pytest.mark.asyncio
    async def test_duplicate_invitation_is_409(self, client, manuscript, owner, bob, auth_headers):
        payload = {"manuscript_id": str(manuscript.id), "role": "reviewer", "email": bob.email}
        first = await client.post(f"{API}/invitations", json=payload, headers=auth_headers(owner))
        assert first.status_code == 201

        by_orcid = {"manuscript_id": str(manuscript.id), "role": "reviewer", "orcid_id": bob.orcid_id}
        second = await client.post(f"{API}/invitations", json=by_orcid, headers=auth_headers(owner))
        assert second.status_code == 409
        assert second.json()["code"] == "conflict"

    @pytest.mark.asyncio
    async def test_invitation_without_target_is_422(self, client, manuscript, owner, auth_headers):
        response = await client.post(
            f"{API}/invitations",
            json={"manuscript_id": str(manuscript.id), "role": "editor"},
            headers=auth_headers(owner),
        )
        assert response.status_code == 422
        assert response.json()["code"] == "invalid_payload"

    @pytest.mark.asyncio
    async def test_wrong_person_and_expired(
        self, client, db_session, manuscript, owner, bob, stranger, auth_headers
    ):
        created = await client.post(
            f"{API}/invitations",
            json={"manuscript_id": str(manuscript.id), "role": "contributor", "email": bob.email},
            headers=auth_headers(owner),
        )
        invitation_id = created.json()["id"]

        intruder = await client.post(
            f"{API}/invitations/{invitation_id}/respond",
            json={"action": "accept"},
            headers=auth_headers(stranger),
        )
        assert intruder.status_code == 403

        await db_session.execute(
            update(ManuscriptInvitation)
            .where(ManuscriptInvitation.manuscript_id == manuscript.id)
            .values(expires_at=utcnow() - timedelta(minutes=1))
        )
        await db_session.commit()

        late = await client.post(
            f"{API}/invitations/{invitation_id}/respond",
            json={"action": "accept"},
            headers=auth_headers(bob),
        )
        assert late.status_code == 410
        assert late.json()["code"] == "expired"

        expired = await client.get(
            f"{API}/manuscripts/{manuscript.id}/invitations",
            params={"status": "expired"},
            headers=auth_headers(owner),
        )
        assert [i["id"] for i in expired.json()] == [invitation_id]

    @pytest.mark.asyncio
    async def test_failed_commit_is_reported_and_nothing_lands(
        self, failing_client, session_maker, db_session, manuscript, owner, alice, auth_headers
    ):
        invitation = await InvitationService(db_session).create(
            owner, manuscript.id, CollaboratorRole.EDITOR, email=alice.email
        )
        await db_session.commit()

        response = await failing_client.post(
            f"{API}/invitations/{invitation.id}/respond",
            json={"action": "accept"},
            headers=auth_headers(alice),
        )
        assert response.status_code == 503
        body = response.json()
        assert body["code"] == "storage_unavailable"
        assert body["request_id"] == response.headers["X-Request-ID"]

        async with session_maker() as check:
            rows = await check.scalar(
                select(func.count()).select_from(ManuscriptCollaborator).where(
                    ManuscriptCollaborator.manuscript_id == manuscript.id,
                    ManuscriptCollaborator.user_id == alice.id,
                )
            )
            status = await check.scalar(
                select(ManuscriptInvitation.status).where(ManuscriptInvitation.id == invitation.id)
            )
        assert rows == 0
        assert status == InvitationStatus.PENDING


class TestTrackedChangeFlow:

    @pytest.mark.asyncio
    async def test_propose_resolve_and_bulk(self, client, manuscript, owner, alice, grant_role, db_session, auth_headers):
        await grant_role(db_session, manuscript, alice, CollaboratorRole.CONTRIBUTOR)
        base = f"{API}/manuscripts/{manuscript.id}/changes"
        owner_headers = auth_headers(owner)
        alice_headers = auth_headers(alice)

        proposed = await client.post(
            base,
            json={"change_type": "insert", "content": "Notably,", "position_from": 10},
            headers=alice_headers,
        )
        assert proposed.status_code == 201
        change = proposed.json()
        assert change["status"] == "pending"
        assert change["author_name"] == "Alice Archer"

        rejected = await client.patch(
            f"{base}/{change['id']}", json={"status": "rejected"}, headers=owner_headers
        )
        assert rejected.status_code == 200
        assert rejected.json()["status"] == "rejected"

        again = await client.patch(
            f"{base}/{change['id']}", json={"status": "accepted"}, headers=owner_headers
        )
        assert again.status_code == 409

        for word in ("alpha", "beta"):
            await client.post(base, json={"change_type": "delete", "content": word}, headers=alice_headers)

        count = await client.get(f"{base}/pending-count", headers=owner_headers)
        assert count.json()["pending_count"] == 2

        bulk = await client.post(f"{base}/bulk-resolve", json={"status": "accepted"}, headers=owner_headers)
        assert bulk.status_code == 200
        assert bulk.json() == {"resolved_count": 2, "status": "accepted"}

        count = await client.get(f"{base}/pending-count", headers=owner_headers)
        assert count.json()["pending_count"] == 0

        listed = await client.get(base, params={"status": "accepted", "order": "asc"}, headers=alice_headers)
        assert [c["content"] for c in listed.json()] == ["alpha", "beta"]

        inbox = await client.get(f"{API}/notifications", headers=alice_headers)
        body = inbox.json()
        assert body["unread_count"] == 2
        assert {n["data"]["count"] for n in body["items"]} == {1, 2}

    @pytest.mark.asyncio
    async def test_bad_payload_is_422(self, client, manuscript, owner, auth_headers):
        response = await client.post(
            f"{API}/manuscripts/{manuscript.id}/changes",
            json={"change_type": "insert"},
            headers=auth_headers(owner),
        )
        assert response.status_code == 422
        assert response.json()["code"] == "invalid_payload"

    @pytest.mark.asyncio
    async def test_unknown_change_is_404(self, client, manuscript, owner, auth_headers):
        response = await client.patch(
            f"{API}/manuscripts/{manuscript.id}/changes/00000000-0000-0000-0000-000000000000",
            json={"status": "accepted"},
            headers=auth_headers(owner),
        )
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"


class TestPresenceEndpoints:

    @pytest.mark.asyncio
    async def test_heartbeat_query_leave(self, client, manuscript, owner, alice, auth_headers):
        url = f"{API}/manuscripts/{manuscript.id}/presence"

        await client.post(url, headers=auth_headers(alice))
        joined = await client.post(url, headers=auth_headers(owner))
        assert joined.status_code == 200
        assert joined.json()["online_count"] == 2

        seen = await client.get(url, headers=auth_headers(owner))
        current = {u["name"]: u["is_current_user"] for u in seen.json()["online_users"]}
        assert current == {"Olivia Owens": True, "Alice Archer": False}

        left = await client.delete(url, headers=auth_headers(alice))
        assert left.status_code == 200

        after = await client.get(url, headers=auth_headers(owner))
        assert after.json()["online_count"] == 1
        assert after.json()["available"] is True


class TestNotificationEndpoints:

    @pytest.mark.asyncio
    async def test_mark_read_and_delete(self, client, manuscript, owner, alice, auth_headers):
        await client.post(
            f"{API}/invitations",
            json={"manuscript_id": str(manuscript.id), "role": "reviewer", "user_id": str(alice.id)},
            headers=auth_headers(owner),
        )
        headers = auth_headers(alice)

        inbox = (await client.get(f"{API}/notifications", headers=headers)).json()
        assert inbox["unread_count"] == 1
        assert (inbox["total"], inbox["page"], inbox["has_more"]) == (1, 1, False)
        notification = inbox["items"][0]
        assert notification["notification_type"] == "collaboration_invitation"
        assert notification["data"]["action"] == "pending"

        marked = await client.post(f"{API}/notifications/mark-read", json={"all": True}, headers=headers)
        assert marked.json() == {"updated": 1, "unread_count": 0}

        repeat = await client.post(
            f"{API}/notifications/mark-read", json={"ids": [notification["id"]]}, headers=headers
        )
        assert repeat.json()["updated"] == 0

        foreign = await client.delete(
            f"{API}/notifications/{notification['id']}", headers=auth_headers(owner)
        )
        assert foreign.status_code == 403

        deleted = await client.delete(f"{API}/notifications/{notification['id']}", headers=headers)
        assert deleted.status_code == 200

        missing = await client.delete(f"{API}/notifications/{notification['id']}", headers=headers)
        assert missing.status_code == 404
