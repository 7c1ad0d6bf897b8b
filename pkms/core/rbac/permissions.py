"""Fixed permission vocabularies for pkms.

Besides the catalog's menu actions, three small closed vocabularies are
enforced directly as grant facts:

  - sidebar items:   object "sidebar", action = item ("dashboard", "users", ...)
  - project actions: object "project", action in read/write/manage
  - package actions: object "package", action in read/write/manage

Permission string format: "object:action"
Examples:
  - sidebar:dashboard
  - project:write
  - package:manage
"""

from enum import Enum
from typing import Dict, List, NamedTuple, Tuple


# Reserved domain whose grants and role memberships apply in every tenant
WILDCARD_DOMAIN = "*"

# System-wide domain; an ordinary domain key, never a wildcard
GLOBAL_DOMAIN = ""


class SidebarItem(str, Enum):
    """Navigation entries a user may see."""

    DASHBOARD = "dashboard"
    PROJECTS = "projects"
    TENANTS = "tenants"
    USERS = "users"
    PERMISSIONS = "permissions"
    SETTINGS = "settings"
    UPGRADE = "upgrade"
    ACCESS_MANAGER = "access-manager"


class ResourceAction(str, Enum):
    """Actions on projects and packages."""

    READ = "read"
    WRITE = "write"
    MANAGE = "manage"


SIDEBAR_OBJECT = "sidebar"
PROJECT_OBJECT = "project"
PACKAGE_OBJECT = "package"


class ScopedPermission(NamedTuple):
    """An (object, action) pair from one of the fixed vocabularies."""
    object: str
    action: str

    def __str__(self) -> str:
        return f"{self.object}:{self.action}"

    @classmethod
    def from_string(cls, perm_str: str) -> "ScopedPermission":
        """Parse a permission string like 'project:write'."""
        parts = perm_str.split(":")
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"Invalid permission format: {perm_str}")
        perm = cls(parts[0], parts[1])
        if perm not in ALL_SCOPED_PERMISSIONS:
            raise ValueError(f"Unknown permission: {perm_str}")
        return perm


# Vocabulary matrix: object -> its valid actions, in display order
VOCABULARIES: Dict[str, Tuple[str, ...]] = {
    SIDEBAR_OBJECT: tuple(item.value for item in SidebarItem),
    PROJECT_OBJECT: tuple(action.value for action in ResourceAction),
    PACKAGE_OBJECT: tuple(action.value for action in ResourceAction),
}


def _generate_scoped_permissions() -> List[ScopedPermission]:
    return [
        ScopedPermission(obj, action)
        for obj, actions in VOCABULARIES.items()
        for action in actions
    ]


ALL_SCOPED_PERMISSIONS = frozenset(_generate_scoped_permissions())


def get_vocabulary(obj: str) -> List[ScopedPermission]:
    """Get every permission of one vocabulary, in display order."""
    if obj not in VOCABULARIES:
        raise ValueError(f"Unknown vocabulary: {obj}")
    return [ScopedPermission(obj, action) for action in VOCABULARIES[obj]]


def get_all_scoped_permissions() -> List[ScopedPermission]:
    """Get every fixed-vocabulary permission."""
    return _generate_scoped_permissions()
