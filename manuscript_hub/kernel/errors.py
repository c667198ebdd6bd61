"""
Typed failures raised by the collaboration core.

Every error carries a stable machine-readable ``code`` and the HTTP status
the API maps it to, so clients can tell "this invitation has expired" apart
from a generic failure.
"""

from typing import Any, Dict, Optional


class CollaborationError(Exception):
    """Base class for all collaboration core failures."""

    code: str = "collaboration_error"
    status_code: int = 400
    default_detail: str = "Request could not be completed"

    def __init__(self, detail: Optional[str] = None, **context: Any):
        self.detail = detail or self.default_detail
        self.context: Dict[str, Any] = context
        super().__init__(self.detail)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.detail, "code": self.code}
        if self.context:
            body["context"] = {k: str(v) for k, v in self.context.items()}
        return body


class Unauthenticated(CollaborationError):
    """No resolvable caller identity."""
    code = "unauthenticated"
    status_code = 401
    default_detail = "Authentication required"


class NotAuthorized(CollaborationError):
    """Caller lacks the capability or identity match the operation needs."""
    code = "not_authorized"
    status_code = 403
    default_detail = "You are not authorized to perform this action"


class NotFound(CollaborationError):
    """Referenced manuscript, invitation, change or notification does not exist."""
    code = "not_found"
    status_code = 404
    default_detail = "Resource not found"


class AlreadyResolved(CollaborationError):
    """State transition attempted on an entity that already left PENDING."""
    code = "already_resolved"
    status_code = 409
    default_detail = "This item has already been resolved"


class Expired(CollaborationError):
    """Invitation is past its expiry horizon."""
    code = "expired"
    status_code = 410
    default_detail = "This invitation has expired"


class InvalidPayload(CollaborationError):
    """Malformed change payload or missing required input."""
    code = "invalid_payload"
    status_code = 422
    default_detail = "Invalid payload"


class Conflict(CollaborationError):
    """Duplicate collaborator or invitation."""
    code = "conflict"
    status_code = 409
    default_detail = "Conflicting resource already exists"


class StorageError(CollaborationError):
    """The database refused to persist the request's writes."""
    code = "storage_unavailable"
    status_code = 503
    default_detail = "Changes could not be saved, please retry"
