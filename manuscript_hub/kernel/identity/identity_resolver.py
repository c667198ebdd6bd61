"""
Multi-key identity resolution.

A person can be addressed by internal account id, email, or external
researcher id (ORCID). Any shared key proves same-person. Keys are plain
tagged values and matching is a pure set intersection; only ``resolve``
touches the database.
"""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from manuscript_hub.kernel.errors import InvalidPayload
from manuscript_hub.kernel.models.user import User


class IdentityKeyKind(str, Enum):
    """Kinds of identity key, in resolution precedence order."""
    ACCOUNT_ID = "account_id"
    EXTERNAL_ID = "external_id"
    EMAIL = "email"


KEY_PRECEDENCE = (
    IdentityKeyKind.ACCOUNT_ID,
    IdentityKeyKind.EXTERNAL_ID,
    IdentityKeyKind.EMAIL,
)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_orcid(orcid_id: str) -> str:
    # Check digit may be 'X'
    return orcid_id.strip().upper()


@dataclass(frozen=True)
class IdentityKey:
    """One normalized identity key."""

    kind: IdentityKeyKind
    value: str

    @classmethod
    def account(cls, user_id: uuid.UUID) -> "IdentityKey":
        return cls(IdentityKeyKind.ACCOUNT_ID, str(user_id))

    @classmethod
    def email(cls, email: str) -> "IdentityKey":
        return cls(IdentityKeyKind.EMAIL, normalize_email(email))

    @classmethod
    def orcid(cls, orcid_id: str) -> "IdentityKey":
        return cls(IdentityKeyKind.EXTERNAL_ID, normalize_orcid(orcid_id))


IdentityKeys = FrozenSet[IdentityKey]


def build_keys(
    user_id: Optional[uuid.UUID] = None,
    email: Optional[str] = None,
    orcid_id: Optional[str] = None,
) -> IdentityKeys:
    """Build a key set from whichever identifiers are present."""
    keys = set()
    if user_id is not None:
        keys.add(IdentityKey.account(user_id))
    if email and email.strip():
        keys.add(IdentityKey.email(email))
    if orcid_id and orcid_id.strip():
        keys.add(IdentityKey.orcid(orcid_id))
    return frozenset(keys)


def person_keys(person: User) -> IdentityKeys:
    """All keys a known person can be addressed by."""
    return build_keys(user_id=person.id, email=person.email, orcid_id=person.orcid_id)


def matching_kind(a: Iterable[IdentityKey], b: Iterable[IdentityKey]) -> Optional[IdentityKeyKind]:
    """The highest-precedence kind of key shared by both sets, if any."""
    shared = {key.kind for key in frozenset(a) & frozenset(b)}
    for kind in KEY_PRECEDENCE:
        if kind in shared:
            return kind
    return None


class IdentityResolver:
    """Looks up the known person, if any, behind a set of candidate keys."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def resolve(self, keys: Iterable[IdentityKey]) -> Optional[User]:
        """
        Resolve candidate keys to an existing user.

        When different keys point at different people, account id wins over
        external id, which wins over email.

        Raises:
            InvalidPayload: If no key is given
        """
        keys = frozenset(keys)
        if not keys:
            raise InvalidPayload("At least one identity key is required")

        for kind in KEY_PRECEDENCE:
            for key in sorted(k.value for k in keys if k.kind == kind):
                user = await self._lookup(kind, key)
                if user is not None:
                    return user
        return None

    async def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        """Get a user by ID."""
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def _lookup(self, kind: IdentityKeyKind, value: str) -> Optional[User]:
        if kind == IdentityKeyKind.ACCOUNT_ID:
            try:
                user_id = uuid.UUID(value)
            except ValueError:
                return None
            return await self.get_user_by_id(user_id)

        if kind == IdentityKeyKind.EXTERNAL_ID:
            query = select(User).where(func.upper(User.orcid_id) == value)
        else:
            query = select(User).where(func.lower(User.email) == value)
        result = await self.session.execute(query.limit(1))
        return result.scalars().first()


def identity_filter(column_user_id, column_email, column_orcid, keys: Iterable[IdentityKey]):
    """
    SQL condition matching rows whose identity columns share any of ``keys``.

    Used to find invitations addressed to a person.
    """
    clauses = []
    for key in frozenset(keys):
        if key.kind == IdentityKeyKind.ACCOUNT_ID:
            clauses.append(column_user_id == uuid.UUID(key.value))
        elif key.kind == IdentityKeyKind.EMAIL:
            clauses.append(func.lower(column_email) == key.value)
        else:
            clauses.append(func.upper(column_orcid) == key.value)
    return or_(*clauses)
