"""
Presence schemas.
"""

import uuid
from typing import List, Optional

from pydantic import BaseModel


class OnlineUserResponse(BaseModel):
    user_id: uuid.UUID
    name: str
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    email: str
    last_seen: float
    is_current_user: bool


class PresenceResponse(BaseModel):
    """Online set for a manuscript."""

    manuscript_id: uuid.UUID
    online_users: List[OnlineUserResponse]
    online_count: int
    available: bool = True
