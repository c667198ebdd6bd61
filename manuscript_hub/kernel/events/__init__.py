"""
Event sourcing infrastructure.

Provides append-only audit logging with immutable events.
"""

from manuscript_hub.kernel.events.event_store import EventStore

__all__ = [
    "EventStore",
]
