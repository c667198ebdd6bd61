"""
Identity Core - caller verification and multi-key identity resolution.
"""

from manuscript_hub.kernel.identity.jwt import (
    JWTManager,
    AccessTokenPayload,
    create_access_token,
    verify_access_token,
)
from manuscript_hub.kernel.identity.identity_resolver import (
    IdentityKey,
    IdentityKeyKind,
    IdentityKeys,
    IdentityResolver,
    build_keys,
    person_keys,
    matching_kind,
)

__all__ = [
    "JWTManager",
    "AccessTokenPayload",
    "create_access_token",
    "verify_access_token",
    "IdentityKey",
    "IdentityKeyKind",
    "IdentityKeys",
    "IdentityResolver",
    "build_keys",
    "person_keys",
    "matching_kind",
]
