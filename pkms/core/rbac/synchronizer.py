"""Projection of the permission catalog into the policy store.

The catalog is the source of truth. This module is the only writer of
facts on behalf of catalog changes:

  - a role's menus become grant facts (role code, domain, resource, action)
  - a user's role assignment becomes a grouping fact (user, role code, tenant)
  - the built-in roles additionally receive their fixed-vocabulary grants

Incremental synchronization is additive: facts left over from removed
menus are not revoked. ``rebuild()`` recomputes the exact projection.
"""

from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pkms.common.logger import get_logger
from pkms.core.catalog import AssignmentCatalog, MenuCatalog, RoleCatalog
from pkms.db.models import MenuAction, Role

from .enforcer import Enforcer
from .errors import (
    AuthzError,
    InvalidArgumentError,
    NotFoundError,
    PersistenceError,
    ProtectedEntityError,
    ReferentialError,
)
from .permissions import GLOBAL_DOMAIN, WILDCARD_DOMAIN, get_all_scoped_permissions
from .roles import DEFAULT_ROLES, ROLE_ADMIN, TENANT_ROLE_CODES
from .store import GrantFact, GroupingFact

logger = get_logger("synchronizer")


class PermissionSynchronizer:
    """
    Keeps the policy store in step with the catalog.

    Catalog changes made through this class are committed on the given
    session; facts are written through the enforcer's store.
    """

    def __init__(self, db: Session, enforcer: Enforcer):
        """
        Initialize the synchronizer.

        Args:
            db: Catalog database session
            enforcer: Shared enforcer (see pkms.core.rbac.engine)
        """
        self.db = db
        self.enforcer = enforcer
        self.store = enforcer.store
        self.roles = RoleCatalog(db)
        self.menus = MenuCatalog(db)
        self.assignments = AssignmentCatalog(db)

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Catalog commit failed: {exc}")
            raise PersistenceError(f"Failed to commit catalog changes: {exc}") from exc

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    @staticmethod
    def _default_domain(role: Role) -> str:
        return role.tenant_id if role.tenant_id is not None else GLOBAL_DOMAIN

    @staticmethod
    def _menu_grants(role: Role, domain: str) -> List[GrantFact]:
        return [
            GrantFact(role.code, domain, action.resource, action.code)
            for menu in role.menus
            for action in menu.actions
        ]

    def _role_grants(self, role: Role, domain: str) -> List[GrantFact]:
        """Menu grants plus, for built-in system roles, their vocabulary grants."""
        grants = self._menu_grants(role, domain)
        if role.is_system and role.code in DEFAULT_ROLES:
            grants.extend(
                GrantFact(role.code, domain, perm.object, perm.action)
                for perm in DEFAULT_ROLES[role.code]["permissions"]
            )
        return grants

    def _admin_grants(self) -> List[GrantFact]:
        pairs = {
            (action.resource, action.code)
            for action in self.db.query(MenuAction).all()
        }
        pairs.update((perm.object, perm.action) for perm in get_all_scoped_permissions())
        return [GrantFact(ROLE_ADMIN, WILDCARD_DOMAIN, obj, act) for obj, act in sorted(pairs)]

    def _tenant_grants(self, tenant_id: str) -> List[GrantFact]:
        grants: List[GrantFact] = []
        for code in TENANT_ROLE_CODES:
            role = self.roles.get_by_code(code, tenant_id)
            if role is None or not role.is_active:
                logger.warning(f"Default role {code!r} is missing or inactive for tenant {tenant_id!r}")
                continue
            grants.extend(self._role_grants(role, tenant_id))
        return grants

    def _projection_domains(self, role: Role) -> List[str]:
        """Domains in which the role's grants are materialized."""
        if role.tenant_id is not None:
            return [role.tenant_id]
        domains = [GLOBAL_DOMAIN]
        domains.extend(
            t for t in self.assignments.tenants_for_role(role.code)
            if t not in (GLOBAL_DOMAIN, WILDCARD_DOMAIN)
        )
        return domains

    # ------------------------------------------------------------------
    # Role permissions
    # ------------------------------------------------------------------

    def sync_role_permissions(self, role: Role, domain: Optional[str] = None) -> int:
        """
        Add a grant for every action of every menu linked to the role.

        Additive only: grants for menus the role no longer holds are kept.
        Use rebuild() for an exact projection.

        Args:
            role: Role to project
            domain: Target domain; the role's tenant (or the global domain
                for system roles) when omitted

        Returns:
            Number of new grant facts
        """
        if domain is None:
            domain = self._default_domain(role)
        added = self.store.add_grants(self._menu_grants(role, domain))
        logger.info(f"Synced role {role.code} in domain {domain!r}: {added} new grants")
        return added

    def _sync_everywhere(self, role: Role) -> int:
        added = 0
        for domain in self._projection_domains(role):
            added += self.sync_role_permissions(role, domain)
        return added

    def assign_menus_to_role(self, role_id: str, menu_ids: Iterable[str]) -> int:
        """
        Link menus to a role, commit, then add the resulting grants.

        Returns:
            Number of new grant facts
        """
        self.roles.assign_menus_to_role(role_id, menu_ids)
        self._commit()
        role = self.roles.get_role(role_id)
        if not role.is_active:
            return 0
        return self._sync_everywhere(role)

    def replace_role_menus(self, role_id: str, menu_ids: Iterable[str]) -> int:
        """
        Replace a role's menu set: remove the current links, add the new ones.

        Grants of removed menus stay in the store until rebuild().

        Returns:
            Number of new grant facts
        """
        menu_ids = list(menu_ids)
        role = self.roles.get_role(role_id)
        self.roles.remove_menus_from_role(role_id, [m.id for m in role.menus])
        return self.assign_menus_to_role(role_id, menu_ids)

    # ------------------------------------------------------------------
    # Role assignments
    # ------------------------------------------------------------------

    def assign_role_to_user(self, user_id: str, role_id: str, tenant_id: Optional[str] = None):
        """
        Assign a role to a user in a tenant, in the catalog and the store.

        The assignment row is flushed first, then the grouping fact and, for
        a system role assigned in a tenant, the role's grants projected into
        that tenant. A store failure rolls the session back and drops the
        grouping; a commit failure drops the grouping and the grants this
        call added.

        Args:
            user_id: User to assign
            role_id: Role to assign
            tenant_id: Tenant; the role's own tenant (or the global domain
                for system roles) when omitted

        Returns:
            The created UserTenantRole

        Raises:
            ProtectedEntityError: If the role is inactive
            ReferentialError: If a tenant role is assigned outside its tenant
            ConflictError: If the user already holds the role in the tenant
        """
        role = self.roles.get_role(role_id)
        if not role.is_active:
            raise ProtectedEntityError(
                f"Role {role.id} ({role.code}) is inactive and cannot be assigned",
                "Role",
                role.id,
            )
        domain = tenant_id if tenant_id is not None else self._default_domain(role)
        if role.tenant_id is not None and domain != role.tenant_id:
            raise ReferentialError(
                f"Role {role.id} ({role.code}) belongs to tenant {role.tenant_id!r}, not {domain!r}",
                "Role",
                role.id,
            )

        assignment = self.assignments.assign(user_id, domain, role.code)

        projected: List[GrantFact] = []
        if role.tenant_id is None and domain not in (GLOBAL_DOMAIN, WILDCARD_DOMAIN):
            projected = [
                g for g in dict.fromkeys(self._role_grants(role, domain))
                if not self.store.has_grant(g)
            ]

        added = False
        try:
            added = self.store.add_grouping(user_id, role.code, domain)
            self.store.add_grants(projected)
        except AuthzError:
            self.db.rollback()
            if added:
                self.store.remove_grouping(user_id, role.code, domain)
            raise

        try:
            self._commit()
        except PersistenceError:
            self.store.remove_grants(projected)
            if added:
                self.store.remove_grouping(user_id, role.code, domain)
            raise

        logger.info(f"Assigned role {role.code} to user {user_id} in tenant {domain!r}")
        return assignment

    def assign_role_to_users(
        self, role_id: str, user_ids: Iterable[str], tenant_id: Optional[str] = None
    ) -> int:
        """
        Assign a role to several users. Users already holding it are skipped.

        Returns:
            Number of new assignments
        """
        role = self.roles.get_role(role_id)
        domain = tenant_id if tenant_id is not None else self._default_domain(role)
        assigned = 0
        for user_id in dict.fromkeys(user_ids):
            if self.assignments.get(user_id, domain, role.code):
                continue
            self.assign_role_to_user(user_id, role_id, domain)
            assigned += 1
        return assigned

    def remove_role_from_users(
        self, role_id: str, user_ids: Iterable[str], tenant_id: Optional[str] = None
    ) -> int:
        """
        Remove a role from several users, in the catalog and the store.

        Returns:
            Number of assignments removed
        """
        role = self.roles.get_role(role_id)
        domain = tenant_id if tenant_id is not None else self._default_domain(role)
        removed = 0
        for user_id in dict.fromkeys(user_ids):
            if not self.assignments.remove(user_id, domain, role.code):
                continue
            try:
                dropped = self.store.remove_grouping(user_id, role.code, domain)
            except AuthzError:
                self.db.rollback()
                raise
            try:
                self._commit()
            except PersistenceError:
                if dropped:
                    self.store.add_grouping(user_id, role.code, domain)
                raise
            removed += 1
            logger.info(f"Removed role {role.code} from user {user_id} in tenant {domain!r}")
        return removed

    def remove_user_from_tenant(self, user_id: str, tenant_id: str) -> int:
        """
        Remove every role ``user_id`` holds in ``tenant_id``, in the catalog
        and the store.

        A commit failure writes the dropped groupings back.

        Returns:
            Number of assignments removed
        """
        if not user_id:
            raise InvalidArgumentError("user_id")
        if tenant_id is None:
            raise InvalidArgumentError("tenant_id", "Invalid argument: tenant_id must not be None")

        codes = self.assignments.role_codes_for(user_id, tenant_id)
        removed = self.assignments.remove_all_in_tenant(user_id, tenant_id)
        if not removed:
            return 0

        dropped = [
            fact for fact in (GroupingFact(user_id, code, tenant_id) for code in codes)
            if self.store.has_grouping(fact)
        ]
        try:
            self.store.remove_groupings(dropped)
        except AuthzError:
            self.db.rollback()
            raise
        try:
            self._commit()
        except PersistenceError:
            self.store.add_groupings(dropped)
            raise

        logger.info(f"Removed user {user_id} from tenant {tenant_id!r}: {removed} assignments")
        return removed

    def assign_system_admin(self, user_id: str):
        """Make ``user_id`` a system administrator in every tenant."""
        role = self.roles.get_by_code(ROLE_ADMIN)
        if role is None:
            raise NotFoundError("Role", ROLE_ADMIN)
        return self.assign_role_to_user(user_id, role.id, WILDCARD_DOMAIN)

    # ------------------------------------------------------------------
    # Role lifecycle
    # ------------------------------------------------------------------

    def set_role_active(self, role_id: str, active: bool) -> Role:
        """
        Activate or deactivate a tenant role.

        Deactivation removes the role's grant and grouping facts from every
        domain it is projected into; assignments and menu links are kept.
        Reactivation re-projects grants and restores groupings from the
        kept assignments.
        """
        role = self.roles.update_role(role_id, is_active=active)
        self._commit()
        domains = self._projection_domains(role)
        if not active:
            removed = self.store.remove_facts_for_role(role.code, domains)
            logger.info(f"Deactivated role {role.code}: removed {removed} facts")
            return role

        for domain in domains:
            self.sync_role_permissions(role, domain)
        self.store.add_groupings(
            GroupingFact(a.user_id, role.code, a.tenant_id)
            for a in self.assignments.for_role(role)
        )
        logger.info(f"Reactivated role {role.code}")
        return role

    def delete_role(self, role_id: str) -> None:
        """Delete a role from the catalog, then drop its facts."""
        role = self.roles.get_role(role_id)
        code = role.code
        domains = self._projection_domains(role)
        self.roles.delete_role(role_id)
        self._commit()
        self.store.remove_facts_for_role(code, domains)

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    def initialize_system_admin_permissions(self) -> int:
        """
        Grant role ``admin`` every catalog action and every vocabulary item
        under the wildcard domain. Safe to re-run.

        Returns:
            Number of new grant facts
        """
        added = self.store.add_grants(self._admin_grants())
        logger.info(f"Initialized system admin permissions: {added} new grants")
        return added

    def initialize_role_permissions_for_tenant(self, tenant_id: str) -> int:
        """
        Project the default tenant roles (owner, user, viewer) into one
        tenant's domain. Never writes to the wildcard domain.

        Returns:
            Number of new grant facts
        """
        if not tenant_id:
            raise InvalidArgumentError("tenant_id")
        if tenant_id == WILDCARD_DOMAIN:
            raise InvalidArgumentError(
                "tenant_id", f"Tenant '{WILDCARD_DOMAIN}' is reserved for system administrators"
            )
        added = self.store.add_grants(self._tenant_grants(tenant_id))
        logger.info(f"Initialized role permissions for tenant {tenant_id!r}: {added} new grants")
        return added

    def rebuild(self) -> Tuple[int, int]:
        """
        Recompute every fact from the catalog and replace the store's contents.

        Returns:
            (grant count, grouping count)
        """
        grants: Set[GrantFact] = set(self._admin_grants())
        groupings: Set[GroupingFact] = set()

        tenants = set(self.assignments.distinct_tenants())
        for role in self.db.query(Role).filter(Role.is_active.is_(True)).all():
            grants.update(self._menu_grants(role, self._default_domain(role)))
            if role.tenant_id is not None:
                tenants.add(role.tenant_id)

        for tenant_id in tenants:
            if tenant_id not in (GLOBAL_DOMAIN, WILDCARD_DOMAIN):
                grants.update(self._tenant_grants(tenant_id))

        for assignment in self.assignments.list_all():
            role = self.roles.role_for_assignment(assignment)
            if role is None or not role.is_active:
                continue
            groupings.add(GroupingFact(assignment.user_id, role.code, assignment.tenant_id))
            if role.tenant_id is None and assignment.tenant_id not in (GLOBAL_DOMAIN, WILDCARD_DOMAIN):
                grants.update(self._role_grants(role, assignment.tenant_id))

        result = self.store.replace(grants, groupings)
        logger.info(f"Rebuilt policy: {result[0]} grants, {result[1]} groupings")
        return result
