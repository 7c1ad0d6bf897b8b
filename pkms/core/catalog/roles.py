"""Role catalog.

Roles are either tenant roles (``tenant_id`` set) or system roles
(``tenant_id`` NULL). System roles are shared by every tenant and cannot be
edited or deleted.
"""

from datetime import datetime
from typing import Dict, Iterable, List, NamedTuple, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from pkms.common.logger import get_logger
from pkms.core.rbac.errors import (
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    ProtectedEntityError,
)
from pkms.core.rbac.permissions import WILDCARD_DOMAIN
from pkms.core.rbac.roles import DEFAULT_ROLES
from pkms.db.models import Menu, Role, UserTenantRole

from .assignments import AssignmentCatalog

logger = get_logger("catalog.roles")


class RolePermission(NamedTuple):
    """One catalog permission a role holds through a menu action."""
    role_id: str
    menu_id: str
    permission_key: str
    resource: str
    action: str


def _tenant_filter(column, tenant_id: Optional[str]):
    return column.is_(None) if tenant_id is None else column == tenant_id


class RoleCatalog:
    """
    Role CRUD and role-menu links.

    Methods flush but never commit; the caller owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db
        self.assignments = AssignmentCatalog(db)

    def create_role(
        self,
        code: str,
        name: str,
        tenant_id: Optional[str] = None,
        description: Optional[str] = None,
        is_system: bool = False,
    ) -> Role:
        """
        Create a role.

        Raises:
            InvalidArgumentError: If code or name is empty
            ConflictError: If the code is taken in the tenant
        """
        if not code:
            raise InvalidArgumentError("code")
        if not name:
            raise InvalidArgumentError("name")
        if code == WILDCARD_DOMAIN:
            raise InvalidArgumentError("code", f"Role code '{WILDCARD_DOMAIN}' is reserved")

        existing = self.db.query(Role).filter(
            and_(Role.code == code, _tenant_filter(Role.tenant_id, tenant_id))
        ).first()
        if existing:
            raise ConflictError(
                f"Role code '{code}' already exists in tenant {tenant_id!r} (role {existing.id})",
                "Role",
                code,
            )

        role = Role(
            code=code,
            name=name,
            tenant_id=tenant_id,
            description=description,
            is_system=is_system,
            is_active=True,
        )
        self.db.add(role)
        self.db.flush()
        logger.info(f"Created role {role.code} ({role.id}) in tenant {tenant_id!r}")
        return role

    def get_role(self, role_id: str) -> Role:
        role = self.db.get(Role, role_id)
        if not role:
            raise NotFoundError("Role", role_id)
        return role

    def get_by_code(self, code: str, tenant_id: Optional[str] = None) -> Optional[Role]:
        """Tenant-specific role first, then the system role with that code."""
        query = self.db.query(Role).filter(Role.code == code)
        if tenant_id is not None:
            role = query.filter(Role.tenant_id == tenant_id).first()
            if role:
                return role
        return query.filter(Role.tenant_id.is_(None)).first()

    def list_roles(
        self,
        tenant_id: Optional[str] = None,
        include_system: bool = True,
        active_only: bool = False,
    ) -> List[Role]:
        query = self.db.query(Role)
        if tenant_id is None:
            query = query.filter(Role.tenant_id.is_(None))
        elif include_system:
            query = query.filter(or_(Role.tenant_id == tenant_id, Role.tenant_id.is_(None)))
        else:
            query = query.filter(Role.tenant_id == tenant_id)
        if active_only:
            query = query.filter(Role.is_active.is_(True))
        return query.order_by(Role.code).all()

    def update_role(
        self,
        role_id: str,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Role:
        """
        Update a role's editable fields.

        The caller is responsible for projecting an ``is_active`` change into
        the policy store (see PermissionSynchronizer.set_role_active).

        Raises:
            NotFoundError: If the role does not exist
            ProtectedEntityError: If the role is a system role
        """
        role = self.get_role(role_id)
        if role.is_system:
            raise ProtectedEntityError(
                f"Role {role.id} ({role.code}) is a system role and cannot be modified",
                "Role",
                role.id,
            )
        if name is not None:
            if not name:
                raise InvalidArgumentError("name")
            role.name = name
        if description is not None:
            role.description = description
        if is_active is not None:
            role.is_active = is_active
        role.updated_at = datetime.utcnow()
        self.db.flush()
        return role

    def delete_role(self, role_id: str) -> None:
        """
        Delete a role and its menu links.

        Raises:
            ProtectedEntityError: If the role is a system role or is still
                assigned to users
        """
        role = self.get_role(role_id)
        if role.is_system:
            raise ProtectedEntityError(
                f"Role {role.id} ({role.code}) is a system role and cannot be deleted",
                "Role",
                role.id,
            )
        assigned = self.assignments.count_for_role(role)
        if assigned:
            raise ProtectedEntityError(
                f"Role {role.id} ({role.code}) is still assigned to {assigned} user(s)",
                "Role",
                role.id,
            )
        for menu in list(role.menus):
            menu.roles.remove(role)
        self.db.delete(role)
        self.db.flush()
        logger.info(f"Deleted role {role.code} ({role.id})")

    # ------------------------------------------------------------------
    # Role-menu links
    # ------------------------------------------------------------------

    def _load_menus(self, menu_ids: Iterable[str]) -> List[Menu]:
        menus = []
        for menu_id in dict.fromkeys(menu_ids):
            menu = self.db.get(Menu, menu_id)
            if not menu:
                raise NotFoundError("Menu", menu_id)
            menus.append(menu)
        return menus

    def assign_menus_to_role(self, role_id: str, menu_ids: Iterable[str]) -> int:
        """
        Link menus to a role. Menus already linked are skipped.

        Every menu is validated before any link is added.

        Returns:
            Number of newly linked menus
        """
        role = self.get_role(role_id)
        menus = self._load_menus(menu_ids)
        added = 0
        for menu in menus:
            if menu not in role.menus:
                role.menus.append(menu)
                added += 1
        self.db.flush()
        return added

    def remove_menus_from_role(self, role_id: str, menu_ids: Iterable[str]) -> int:
        """Unlink menus from a role. Returns the number of links removed."""
        role = self.get_role(role_id)
        wanted = set(menu_ids)
        removed = [menu for menu in role.menus if menu.id in wanted]
        for menu in removed:
            role.menus.remove(menu)
        self.db.flush()
        return len(removed)

    def get_menus_by_role(self, role_id: str) -> List[Menu]:
        role = self.get_role(role_id)
        return sorted(role.menus, key=lambda m: (m.sort, m.name))

    def get_role_permissions(self, role_id: str) -> List[RolePermission]:
        """One entry per action of every menu linked to the role."""
        return [
            RolePermission(role_id, menu.id, action.permission_key, action.resource, action.code)
            for menu in self.get_menus_by_role(role_id)
            for action in menu.actions
        ]

    # ------------------------------------------------------------------
    # Built-in roles and role resolution
    # ------------------------------------------------------------------

    def ensure_system_roles(self) -> Dict[str, Role]:
        """
        Create the built-in system roles if missing.

        Returns:
            Dict mapping role code to Role object
        """
        roles = {}
        for code, config in DEFAULT_ROLES.items():
            existing = self.db.query(Role).filter(
                and_(Role.code == code, Role.tenant_id.is_(None))
            ).first()
            if existing:
                roles[code] = existing
                continue
            roles[code] = self.create_role(
                code,
                config["name"],
                description=config["description"],
                is_system=config["is_system"],
            )
        return roles

    def role_for_assignment(self, assignment: UserTenantRole) -> Optional[Role]:
        """Resolve the role an assignment refers to."""
        tenant_id = None if assignment.tenant_id == WILDCARD_DOMAIN else assignment.tenant_id
        return self.get_by_code(assignment.role_code, tenant_id)

    def roles_for_user(self, user_id: str, tenant_id: str) -> List[Role]:
        """Active roles held by the user in the tenant or in the wildcard tenant."""
        rows = self.db.query(UserTenantRole).filter(
            and_(
                UserTenantRole.user_id == user_id,
                UserTenantRole.tenant_id.in_([tenant_id, WILDCARD_DOMAIN]),
            )
        ).all()

        roles: Dict[str, Role] = {}
        for row in rows:
            role = self.role_for_assignment(row)
            if role is not None and role.is_active:
                roles[role.id] = role
        return sorted(roles.values(), key=lambda r: r.code)
