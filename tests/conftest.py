"""
Pytest fixtures for Manuscript Hub tests.

Every test gets its own file-backed SQLite database under ``tmp_path`` so
separate sessions (and the API's per-request sessions) share one database.
"""

import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

# Point the application engine at SQLite before anything imports it
_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp.close()
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_tmp.name}")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-only-0123456789")

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from manuscript_hub.config import get_settings

get_settings.cache_clear()

from manuscript_hub.engines.collaboration.manuscripts import ManuscriptService
from manuscript_hub.kernel.identity.jwt import create_access_token
from manuscript_hub.kernel.models import Base, Manuscript, User
from manuscript_hub.kernel.models.manuscript import CollaboratorRole
from manuscript_hub.kernel.permissions.permission_service import new_collaborator


class FakeClock:
    """Deterministic wall clock; call it for ``now``, ``advance`` to move it."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeMonotonic:
    """Deterministic epoch-seconds clock for presence."""

    def __init__(self, start: float = 1_000_000.0):
        self.start = start
        self.now = start

    def __call__(self) -> float:
        return self.now

    def at(self, offset_seconds: float) -> None:
        self.now = self.start + offset_seconds


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create a fresh SQLite database for one test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'manuscript_hub.db'}",
        echo=False,
        poolclass=NullPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(db_engine) -> async_sessionmaker:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


async def _create_user(
    session: AsyncSession,
    email: str,
    given_name: Optional[str] = None,
    family_name: Optional[str] = None,
    orcid_id: Optional[str] = None,
    affiliation: Optional[str] = None,
) -> User:
    user = User(
        id=uuid.uuid4(),
        email=email,
        given_name=given_name,
        family_name=family_name,
        orcid_id=orcid_id,
        affiliation=affiliation,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def _grant_role(
    session: AsyncSession,
    manuscript: Manuscript,
    user: User,
    role: CollaboratorRole,
) -> None:
    session.add(new_collaborator(manuscript.id, user.id, role, invited_by=manuscript.created_by))
    await session.commit()


@pytest_asyncio.fixture
async def owner(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "owner@example.org", "Olivia", "Owens")


@pytest_asyncio.fixture
async def alice(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "alice@example.org", "Alice", "Archer")


@pytest_asyncio.fixture
async def bob(db_session: AsyncSession) -> User:
    return await _create_user(
        db_session,
        "bob@example.org",
        "Bob",
        "Baker",
        orcid_id="0000-0002-1825-0097",
        affiliation="University of Examples",
    )


@pytest_asyncio.fixture
async def stranger(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "mallory@example.org", "Mallory", "Mason")


@pytest_asyncio.fixture
async def manuscript(db_session: AsyncSession, owner: User, clock: FakeClock) -> Manuscript:
    """A manuscript owned by ``owner``."""
    created = await ManuscriptService(db_session, clock=clock).create(owner, "Coral Reef Resilience")
    await db_session.commit()
    return created


def _auth_headers(user: User) -> dict:
    token, _, _ = create_access_token(user_id=user.id, email=user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user():
    """Factory: ``await make_user(session, email, ...)``."""
    return _create_user


@pytest.fixture
def grant_role():
    """Factory: ``await grant_role(session, manuscript, user, role)``."""
    return _grant_role


@pytest.fixture
def auth_headers():
    """Factory: bearer headers for a user."""
    return _auth_headers


@pytest.fixture
def presence_clock() -> FakeMonotonic:
    return FakeMonotonic()
