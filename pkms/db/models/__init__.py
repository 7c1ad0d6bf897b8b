"""Database models for pkms."""

from pkms.db.models.role import Role
from pkms.db.models.menu import Menu, MenuAction, role_menus
from pkms.db.models.user_tenant_role import UserTenantRole
from pkms.db.models.policy_rule import PolicyRule

__all__ = [
    "Role",
    "Menu",
    "MenuAction",
    "role_menus",
    "UserTenantRole",
    "PolicyRule",
]
