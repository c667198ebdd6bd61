"""
Presence tracking: who is currently looking at a manuscript.

Presence is rebuilt from heartbeats, not from connection state. Entries
older than the TTL are evicted lazily on every heartbeat and query, so a
client that vanishes without a clean leave simply ages out. The store is an
injected object so tests can use a fresh map and a fake clock, and a shared
cache can replace the in-process map without touching callers.
"""

import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional

from manuscript_hub.kernel.models.user import User
from manuscript_hub.logging_config import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]

DEFAULT_PRESENCE_TTL_SECONDS = 30.0


class PresenceStoreError(Exception):
    """The presence backend could not be read or written."""


@dataclass(frozen=True)
class PresenceEntry:
    """Display snapshot of one online user."""

    user_id: uuid.UUID
    name: str
    email: str
    last_seen: float
    given_name: Optional[str] = None
    family_name: Optional[str] = None

    @classmethod
    def for_user(cls, user: User, now: float) -> "PresenceEntry":
        return cls(
            user_id=user.id,
            name=user.display_name,
            email=user.email,
            last_seen=now,
            given_name=user.given_name,
            family_name=user.family_name,
        )


@dataclass(frozen=True)
class OnlineUser:
    """A presence entry as seen by one viewer."""

    entry: PresenceEntry
    is_current_user: bool


@dataclass
class PresenceSnapshot:
    """Online set for a manuscript at one instant."""

    manuscript_id: uuid.UUID
    online_users: List[OnlineUser] = field(default_factory=list)
    available: bool = True

    @property
    def online_count(self) -> int:
        return len(self.online_users)

    def user_ids(self) -> List[uuid.UUID]:
        return [u.entry.user_id for u in self.online_users]


class PresenceStore(ABC):
    """
    Storage for presence entries keyed by (manuscript, user).

    Implementations must drop a manuscript's bucket once it holds no entries,
    and must raise PresenceStoreError for backend failures.
    """

    @abstractmethod
    def upsert(self, manuscript_id: uuid.UUID, entry: PresenceEntry) -> None:
        ...

    @abstractmethod
    def remove(self, manuscript_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        ...

    @abstractmethod
    def evict_older_than(self, manuscript_id: uuid.UUID, cutoff: float) -> int:
        ...

    @abstractmethod
    def entries(self, manuscript_id: uuid.UUID) -> List[PresenceEntry]:
        ...

    @abstractmethod
    def manuscript_ids(self) -> List[uuid.UUID]:
        ...


class InMemoryPresenceStore(PresenceStore):
    """Process-local map: manuscript_id -> {user_id -> PresenceEntry}."""

    def __init__(self) -> None:
        self._buckets: Dict[uuid.UUID, Dict[uuid.UUID, PresenceEntry]] = {}

    def upsert(self, manuscript_id: uuid.UUID, entry: PresenceEntry) -> None:
        self._buckets.setdefault(manuscript_id, {})[entry.user_id] = entry

    def remove(self, manuscript_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        bucket = self._buckets.get(manuscript_id)
        if bucket is None:
            return False
        removed = bucket.pop(user_id, None) is not None
        self._drop_if_empty(manuscript_id)
        return removed

    def evict_older_than(self, manuscript_id: uuid.UUID, cutoff: float) -> int:
        bucket = self._buckets.get(manuscript_id)
        if bucket is None:
            return 0
        stale = [user_id for user_id, entry in bucket.items() if entry.last_seen < cutoff]
        for user_id in stale:
            del bucket[user_id]
        self._drop_if_empty(manuscript_id)
        return len(stale)

    def entries(self, manuscript_id: uuid.UUID) -> List[PresenceEntry]:
        return list(self._buckets.get(manuscript_id, {}).values())

    def manuscript_ids(self) -> List[uuid.UUID]:
        return list(self._buckets.keys())

    def _drop_if_empty(self, manuscript_id: uuid.UUID) -> None:
        if not self._buckets.get(manuscript_id):
            self._buckets.pop(manuscript_id, None)

    def __len__(self) -> int:
        return len(self._buckets)


class PresenceTracker:
    """
    Heartbeat, query and leave over a PresenceStore.

    Presence fails open: if the store raises PresenceStoreError the caller
    gets an empty snapshot flagged ``available=False`` instead of an error.
    """

    def __init__(
        self,
        store: PresenceStore,
        ttl_seconds: float = DEFAULT_PRESENCE_TTL_SECONDS,
        clock: Clock = time.time,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def heartbeat(self, manuscript_id: uuid.UUID, user: User) -> PresenceSnapshot:
        """Mark the user online now and return the fresh online set."""
        now = self.clock()
        try:
            self._evict(manuscript_id, now)
            self.store.upsert(manuscript_id, PresenceEntry.for_user(user, now))
            return self._snapshot(manuscript_id, user.id)
        except PresenceStoreError as exc:
            return self._unavailable(manuscript_id, "heartbeat", exc)

    def query(self, manuscript_id: uuid.UUID, viewer_id: uuid.UUID) -> PresenceSnapshot:
        """Current online set, with the viewer flagged."""
        try:
            self._evict(manuscript_id, self.clock())
            return self._snapshot(manuscript_id, viewer_id)
        except PresenceStoreError as exc:
            return self._unavailable(manuscript_id, "query", exc)

    def leave(self, manuscript_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        """Explicit removal, independent of TTL."""
        try:
            return self.store.remove(manuscript_id, user_id)
        except PresenceStoreError as exc:
            logger.warning(
                "Presence store unavailable on leave: %s", exc,
                extra={"manuscript_id": str(manuscript_id)},
            )
            return False

    def sweep(self) -> int:
        """Evict stale entries across every manuscript. Returns the count evicted."""
        now = self.clock()
        evicted = 0
        try:
            for manuscript_id in self.store.manuscript_ids():
                evicted += self._evict(manuscript_id, now)
        except PresenceStoreError as exc:
            logger.warning("Presence store unavailable on sweep: %s", exc)
        return evicted

    def _evict(self, manuscript_id: uuid.UUID, now: float) -> int:
        # Strictly older than the TTL is stale
        return self.store.evict_older_than(manuscript_id, now - self.ttl_seconds)

    def _snapshot(self, manuscript_id: uuid.UUID, viewer_id: uuid.UUID) -> PresenceSnapshot:
        entries = sorted(self.store.entries(manuscript_id), key=lambda e: e.last_seen, reverse=True)
        return PresenceSnapshot(
            manuscript_id=manuscript_id,
            online_users=[
                OnlineUser(entry=replace(entry), is_current_user=entry.user_id == viewer_id)
                for entry in entries
            ],
        )

    def _unavailable(self, manuscript_id: uuid.UUID, operation: str, exc: Exception) -> PresenceSnapshot:
        logger.warning(
            "Presence store unavailable on %s: %s", operation, exc,
            extra={"manuscript_id": str(manuscript_id)},
        )
        return PresenceSnapshot(manuscript_id=manuscript_id, available=False)
