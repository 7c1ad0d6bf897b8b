"""Permission catalog: roles, menus, menu actions and role assignments."""

from .assignments import AssignmentCatalog
from .roles import RoleCatalog, RolePermission
from .menus import MenuCatalog, MenuNode, build_menu_tree

__all__ = [
    "AssignmentCatalog",
    "RoleCatalog",
    "RolePermission",
    "MenuCatalog",
    "MenuNode",
    "build_menu_tree",
]
