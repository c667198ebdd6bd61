"""
Permission Core - manuscript roles and capabilities.
"""

from manuscript_hub.kernel.permissions.permission_service import (
    Access,
    Capabilities,
    PermissionService,
    ROLE_CAPABILITIES,
    capabilities_for_role,
    new_collaborator,
)

__all__ = [
    "Access",
    "Capabilities",
    "PermissionService",
    "ROLE_CAPABILITIES",
    "capabilities_for_role",
    "new_collaborator",
]
