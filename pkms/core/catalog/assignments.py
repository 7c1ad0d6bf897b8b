"""User to tenant role assignments.

An assignment row states that a user holds a role code inside a tenant. The
synchronizer mirrors each row into a grouping fact.
"""

from typing import List, Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from pkms.core.rbac.errors import ConflictError, InvalidArgumentError
from pkms.core.rbac.permissions import WILDCARD_DOMAIN
from pkms.core.rbac.roles import ROLE_ADMIN
from pkms.db.models import Role, UserTenantRole


class AssignmentCatalog:
    """CRUD over UserTenantRole rows. Flushes only; the caller commits."""

    def __init__(self, db: Session):
        self.db = db

    def assign(self, user_id: str, tenant_id: str, role_code: str) -> UserTenantRole:
        """
        Record that ``user_id`` holds ``role_code`` in ``tenant_id``.

        Raises:
            InvalidArgumentError: On empty identifiers, or a non-admin role
                in the wildcard tenant
            ConflictError: If the assignment already exists
        """
        if not user_id:
            raise InvalidArgumentError("user_id")
        if tenant_id is None:
            raise InvalidArgumentError("tenant_id", "Invalid argument: tenant_id must not be None")
        if not role_code:
            raise InvalidArgumentError("role_code")
        if tenant_id == WILDCARD_DOMAIN and role_code != ROLE_ADMIN:
            raise InvalidArgumentError(
                "tenant_id",
                f"Only role '{ROLE_ADMIN}' may be assigned in tenant '{WILDCARD_DOMAIN}', got '{role_code}'",
            )

        if self.get(user_id, tenant_id, role_code):
            raise ConflictError(
                f"User {user_id} already holds role '{role_code}' in tenant '{tenant_id}'",
                "UserTenantRole",
                (user_id, tenant_id, role_code),
            )

        assignment = UserTenantRole(user_id=user_id, tenant_id=tenant_id, role_code=role_code)
        self.db.add(assignment)
        self.db.flush()
        return assignment

    def get(self, user_id: str, tenant_id: str, role_code: str) -> Optional[UserTenantRole]:
        return self.db.query(UserTenantRole).filter(
            and_(
                UserTenantRole.user_id == user_id,
                UserTenantRole.tenant_id == tenant_id,
                UserTenantRole.role_code == role_code,
            )
        ).first()

    def remove(self, user_id: str, tenant_id: str, role_code: str) -> bool:
        """Delete one assignment. Returns False if it did not exist."""
        assignment = self.get(user_id, tenant_id, role_code)
        if not assignment:
            return False
        self.db.delete(assignment)
        self.db.flush()
        return True

    def role_codes_for(self, user_id: str, tenant_id: str) -> List[str]:
        rows = self.db.query(UserTenantRole.role_code).filter(
            and_(
                UserTenantRole.user_id == user_id,
                UserTenantRole.tenant_id == tenant_id,
            )
        ).order_by(UserTenantRole.role_code).all()
        return [row.role_code for row in rows]

    def users_for(self, tenant_id: str, role_code: str) -> List[str]:
        rows = self.db.query(UserTenantRole.user_id).filter(
            and_(
                UserTenantRole.tenant_id == tenant_id,
                UserTenantRole.role_code == role_code,
            )
        ).order_by(UserTenantRole.user_id).all()
        return [row.user_id for row in rows]

    def all_for_user(self, user_id: str) -> List[UserTenantRole]:
        return self.db.query(UserTenantRole).filter(
            UserTenantRole.user_id == user_id
        ).order_by(UserTenantRole.tenant_id, UserTenantRole.role_code).all()

    def remove_all_in_tenant(self, user_id: str, tenant_id: str) -> int:
        """Delete every assignment of ``user_id`` in ``tenant_id``."""
        rows = self.db.query(UserTenantRole).filter(
            and_(
                UserTenantRole.user_id == user_id,
                UserTenantRole.tenant_id == tenant_id,
            )
        ).all()
        for row in rows:
            self.db.delete(row)
        self.db.flush()
        return len(rows)

    def _role_filter(self, role: Role):
        # A tenant role is only held inside its own tenant; a system role
        # code may be held anywhere.
        if role.tenant_id is None:
            return UserTenantRole.role_code == role.code
        return and_(
            UserTenantRole.role_code == role.code,
            UserTenantRole.tenant_id == role.tenant_id,
        )

    def for_role(self, role: Role) -> List[UserTenantRole]:
        """Assignments that resolve to ``role``."""
        return self.db.query(UserTenantRole).filter(
            self._role_filter(role)
        ).order_by(UserTenantRole.tenant_id, UserTenantRole.user_id).all()

    def count_for_role(self, role: Role) -> int:
        return self.db.query(func.count(UserTenantRole.id)).filter(
            self._role_filter(role)
        ).scalar()

    def tenants_for_role(self, role_code: str) -> List[str]:
        rows = self.db.query(UserTenantRole.tenant_id).filter(
            UserTenantRole.role_code == role_code
        ).distinct().order_by(UserTenantRole.tenant_id).all()
        return [row.tenant_id for row in rows]

    def distinct_tenants(self) -> List[str]:
        """Every tenant with at least one assignment, excluding the wildcard tenant."""
        rows = self.db.query(UserTenantRole.tenant_id).filter(
            UserTenantRole.tenant_id != WILDCARD_DOMAIN
        ).distinct().order_by(UserTenantRole.tenant_id).all()
        return [row.tenant_id for row in rows]

    def list_all(self) -> List[UserTenantRole]:
        return self.db.query(UserTenantRole).order_by(
            UserTenantRole.tenant_id, UserTenantRole.user_id, UserTenantRole.role_code
        ).all()
