"""Read-side permission queries.

Two paths answer "may this user use this menu action":

  - the catalog path: does any of the user's roles in the tenant hold the
    action's menu (``check_action_permission``)
  - the engine path: does ``enforce`` allow the action's resource/code
    (``check_action_enforced``)

After a rebuild the two agree; ``find_divergent_keys`` reports where they
do not.
"""

from typing import List

from sqlalchemy.orm import Session

from pkms.common.logger import get_logger
from pkms.core.catalog import MenuCatalog, RoleCatalog
from pkms.db.models import MenuAction

from .enforcer import Enforcer
from .permissions import PACKAGE_OBJECT, PROJECT_OBJECT, SIDEBAR_OBJECT, get_vocabulary

logger = get_logger("resolution")


class PermissionResolver:
    """Answers permission questions for one catalog session."""

    def __init__(self, db: Session, enforcer: Enforcer):
        self.db = db
        self.enforcer = enforcer
        self.roles = RoleCatalog(db)
        self.menus = MenuCatalog(db)

    # ------------------------------------------------------------------
    # Catalog path
    # ------------------------------------------------------------------

    def check_menu_permission(self, user_id: str, tenant_id: str, menu_id: str) -> bool:
        """True if any active role the user holds in the tenant is linked to the menu."""
        for role in self.roles.roles_for_user(user_id, tenant_id):
            if any(menu.id == menu_id for menu in role.menus):
                return True
        return False

    def check_action_permission(self, user_id: str, tenant_id: str, permission_key: str) -> bool:
        """Catalog check by permission key. Unknown keys are denied."""
        action = self.menus.get_by_permission_key(permission_key)
        if action is None:
            logger.debug(f"Unknown permission key {permission_key!r}")
            return False
        return self.check_menu_permission(user_id, tenant_id, action.menu_id)

    def effective_permission_keys(self, user_id: str, tenant_id: str) -> List[str]:
        """Permission keys of every action reachable through the user's roles."""
        keys = set()
        for role in self.roles.roles_for_user(user_id, tenant_id):
            for menu in role.menus:
                keys.update(action.permission_key for action in menu.actions)
        return sorted(keys)

    # ------------------------------------------------------------------
    # Engine path
    # ------------------------------------------------------------------

    def check_action_enforced(self, user_id: str, tenant_id: str, permission_key: str) -> bool:
        """Engine check of the action behind a permission key. Unknown keys are denied."""
        action = self.menus.get_by_permission_key(permission_key)
        if action is None:
            return False
        return self.enforcer.enforce(user_id, tenant_id, action.resource, action.code)

    def effective_permissions(self, user_id: str, tenant_id: str) -> List[List[str]]:
        return self.enforcer.effective_permissions(user_id, tenant_id)

    def _allowed(self, user_id: str, tenant_id: str, obj: str) -> List[str]:
        return [
            perm.action
            for perm in get_vocabulary(obj)
            if self.enforcer.enforce(user_id, tenant_id, perm.object, perm.action)
        ]

    def get_sidebar_permissions(self, user_id: str, tenant_id: str) -> List[str]:
        """Sidebar items the user may see in the tenant."""
        return self._allowed(user_id, tenant_id, SIDEBAR_OBJECT)

    def get_project_permissions(self, user_id: str, tenant_id: str) -> List[str]:
        """Project actions the user may perform in the tenant."""
        return self._allowed(user_id, tenant_id, PROJECT_OBJECT)

    def get_package_permissions(self, user_id: str, tenant_id: str) -> List[str]:
        """Package actions the user may perform in the tenant."""
        return self._allowed(user_id, tenant_id, PACKAGE_OBJECT)

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    def find_divergent_keys(self, user_id: str, tenant_id: str) -> List[str]:
        """Permission keys on which the catalog and the engine disagree."""
        divergent = []
        for action in self.db.query(MenuAction).order_by(MenuAction.permission_key).all():
            by_catalog = self.check_menu_permission(user_id, tenant_id, action.menu_id)
            by_engine = self.enforcer.enforce(user_id, tenant_id, action.resource, action.code)
            if by_catalog != by_engine:
                divergent.append(action.permission_key)
        if divergent:
            logger.warning(
                f"Catalog and engine disagree for user {user_id} in tenant {tenant_id!r}: {divergent}"
            )
        return divergent

