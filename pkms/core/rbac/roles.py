"""Default role definitions for pkms.

Defines the 4 built-in roles and their fixed-vocabulary permissions:
1. Admin - System administrator, every sidebar item and action in all tenants
2. Owner - Tenant owner, manages projects and packages
3. User - Tenant member, works on projects and packages
4. Viewer - Read-only access to projects and packages

Menu (catalog) permissions for these roles come from the catalog seed.
"""

from typing import Dict, List

from .permissions import (
    PACKAGE_OBJECT,
    PROJECT_OBJECT,
    SIDEBAR_OBJECT,
    ResourceAction,
    ScopedPermission,
    SidebarItem,
    get_all_scoped_permissions,
)

ROLE_ADMIN = "admin"
ROLE_OWNER = "owner"
ROLE_USER = "user"
ROLE_VIEWER = "viewer"

# Roles projected into every tenant's domain
TENANT_ROLE_CODES = (ROLE_OWNER, ROLE_USER, ROLE_VIEWER)


def _build_permissions(obj: str, *actions) -> List[ScopedPermission]:
    """Build permissions for one vocabulary object."""
    return [ScopedPermission(obj, getattr(a, "value", a)) for a in actions]


# Admin: every item of every vocabulary
ADMIN_PERMISSIONS = get_all_scoped_permissions()

OWNER_PERMISSIONS = (
    _build_permissions(
        SIDEBAR_OBJECT,
        SidebarItem.DASHBOARD,
        SidebarItem.PROJECTS,
        SidebarItem.UPGRADE,
        SidebarItem.ACCESS_MANAGER,
    )
    + _build_permissions(PROJECT_OBJECT, *ResourceAction)
    + _build_permissions(PACKAGE_OBJECT, *ResourceAction)
)

USER_PERMISSIONS = (
    _build_permissions(
        SIDEBAR_OBJECT,
        SidebarItem.DASHBOARD,
        SidebarItem.PROJECTS,
        SidebarItem.UPGRADE,
        SidebarItem.ACCESS_MANAGER,
    )
    + _build_permissions(PROJECT_OBJECT, ResourceAction.READ, ResourceAction.WRITE)
    + _build_permissions(PACKAGE_OBJECT, ResourceAction.READ, ResourceAction.WRITE)
)

VIEWER_PERMISSIONS = (
    _build_permissions(SIDEBAR_OBJECT, SidebarItem.DASHBOARD, SidebarItem.PROJECTS)
    + _build_permissions(PROJECT_OBJECT, ResourceAction.READ)
    + _build_permissions(PACKAGE_OBJECT, ResourceAction.READ)
)


# Default roles configuration
DEFAULT_ROLES: Dict[str, dict] = {
    ROLE_ADMIN: {
        "name": "Administrator",
        "description": "System administrator with access to every tenant",
        "permissions": ADMIN_PERMISSIONS,
        "is_system": True,
    },
    ROLE_OWNER: {
        "name": "Owner",
        "description": "Tenant owner, manages projects, packages and client access",
        "permissions": OWNER_PERMISSIONS,
        "is_system": True,
    },
    ROLE_USER: {
        "name": "User",
        "description": "Tenant member, publishes projects and packages",
        "permissions": USER_PERMISSIONS,
        "is_system": True,
    },
    ROLE_VIEWER: {
        "name": "Viewer",
        "description": "Read-only access to projects and packages",
        "permissions": VIEWER_PERMISSIONS,
        "is_system": True,
    },
}


def get_default_role_permissions(role_code: str) -> List[ScopedPermission]:
    """Get fixed-vocabulary permissions for a default role."""
    role = DEFAULT_ROLES.get(role_code)
    if not role:
        raise ValueError(f"Unknown default role: {role_code}")
    return list(role["permissions"])


def get_all_default_roles() -> Dict[str, dict]:
    """Get all default role definitions."""
    return DEFAULT_ROLES.copy()
