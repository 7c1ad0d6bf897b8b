"""Menu and menu action catalog.

Menus form a tree. Global menus have no tenant; tenant menus may hang under
a global parent or a parent of the same tenant. Each menu action carries a
globally unique permission key, the handle non-RBAC callers check against.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from pkms.common.logger import get_logger
from pkms.core.rbac.errors import (
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    ProtectedEntityError,
    ReferentialError,
)
from pkms.db.models import Menu, MenuAction

from .roles import RoleCatalog

logger = get_logger("catalog.menus")

MENU_FIELDS = frozenset(
    ["name", "path", "icon", "component", "sort", "visible", "parent_id", "description"]
)
MENU_ACTION_FIELDS = frozenset(
    ["name", "code", "resource", "method", "permission_key", "description"]
)


@dataclass
class MenuNode:
    """A menu and the subset of its children included in a tree."""

    menu: Menu
    children: List["MenuNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.menu.id,
            "name": self.menu.name,
            "path": self.menu.path,
            "icon": self.menu.icon,
            "component": self.menu.component,
            "sort": self.menu.sort,
            "children": [child.to_dict() for child in self.children],
        }


def build_menu_tree(menus: Iterable[Menu]) -> List[MenuNode]:
    """
    Arrange menus into a forest.

    A menu whose parent is not in ``menus`` becomes a root, so reachable
    children are never dropped. Siblings are ordered by (sort, name).
    """
    nodes = {menu.id: MenuNode(menu) for menu in menus}
    roots: List[MenuNode] = []
    for node in nodes.values():
        parent = nodes.get(node.menu.parent_id) if node.menu.parent_id else None
        if parent is None:
            roots.append(node)
        else:
            parent.children.append(node)

    def _sort(siblings: List[MenuNode]) -> None:
        siblings.sort(key=lambda n: (n.menu.sort, n.menu.name))
        for sibling in siblings:
            _sort(sibling.children)

    _sort(roots)
    return roots


def _tenant_filter(column, tenant_id: Optional[str]):
    return column.is_(None) if tenant_id is None else column == tenant_id


class MenuCatalog:
    """
    Menu and menu action CRUD plus tree queries.

    Methods flush but never commit; the caller owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Menus
    # ------------------------------------------------------------------

    def _check_parent(self, parent_id: str, tenant_id: Optional[str]) -> Menu:
        parent = self.db.get(Menu, parent_id)
        if not parent:
            raise NotFoundError("Menu", parent_id)
        if parent.tenant_id is not None and parent.tenant_id != tenant_id:
            raise ReferentialError(
                f"Parent menu {parent.id} belongs to tenant {parent.tenant_id!r}, not {tenant_id!r}",
                "Menu",
                parent.id,
            )
        return parent

    def _check_path_free(self, path: str, tenant_id: Optional[str], exclude_id: Optional[str] = None) -> None:
        query = self.db.query(Menu).filter(Menu.path == path)
        if tenant_id is None:
            query = query.filter(Menu.tenant_id.is_(None))
        else:
            # Tenant menus may not shadow a global path either
            query = query.filter(or_(Menu.tenant_id == tenant_id, Menu.tenant_id.is_(None)))
        if exclude_id:
            query = query.filter(Menu.id != exclude_id)
        existing = query.first()
        if existing:
            raise ConflictError(
                f"Menu path '{path}' is already used by menu {existing.id} (tenant {existing.tenant_id!r})",
                "Menu",
                path,
            )

    def _check_name_free(self, name: str, tenant_id: Optional[str], exclude_id: Optional[str] = None) -> None:
        query = self.db.query(Menu).filter(
            and_(Menu.name == name, _tenant_filter(Menu.tenant_id, tenant_id))
        )
        if exclude_id:
            query = query.filter(Menu.id != exclude_id)
        existing = query.first()
        if existing:
            raise ConflictError(
                f"Menu name '{name}' is already used by menu {existing.id} in tenant {tenant_id!r}",
                "Menu",
                name,
            )

    def create_menu(
        self,
        name: str,
        path: Optional[str] = None,
        tenant_id: Optional[str] = None,
        parent_id: Optional[str] = None,
        sort: int = 0,
        visible: bool = True,
        icon: Optional[str] = None,
        component: Optional[str] = None,
        description: Optional[str] = None,
        is_system: bool = False,
    ) -> Menu:
        """
        Create a menu.

        Raises:
            InvalidArgumentError: If name is empty
            NotFoundError: If the parent does not exist
            ReferentialError: If the parent belongs to another tenant
            ConflictError: If the path or name is taken
        """
        if not name:
            raise InvalidArgumentError("name")
        parent = self._check_parent(parent_id, tenant_id) if parent_id else None
        if path:
            self._check_path_free(path, tenant_id)
        self._check_name_free(name, tenant_id)

        menu = Menu(
            name=name,
            path=path or None,
            tenant_id=tenant_id,
            parent=parent,
            sort=sort,
            visible=visible,
            icon=icon,
            component=component,
            description=description,
            is_system=is_system,
        )
        self.db.add(menu)
        self.db.flush()
        logger.info(f"Created menu {menu.name} ({menu.id}) in tenant {tenant_id!r}")
        return menu

    def get_menu(self, menu_id: str) -> Menu:
        menu = self.db.get(Menu, menu_id)
        if not menu:
            raise NotFoundError("Menu", menu_id)
        return menu

    def get_by_path(self, path: str, tenant_id: Optional[str] = None) -> Optional[Menu]:
        """Tenant menu with the path first, then the global one."""
        query = self.db.query(Menu).filter(Menu.path == path)
        if tenant_id is not None:
            menu = query.filter(Menu.tenant_id == tenant_id).first()
            if menu:
                return menu
        return query.filter(Menu.tenant_id.is_(None)).first()

    def list_menus(self, tenant_id: Optional[str] = None) -> List[Menu]:
        """Global menus plus the tenant's own menus."""
        query = self.db.query(Menu)
        if tenant_id is None:
            query = query.filter(Menu.tenant_id.is_(None))
        else:
            query = query.filter(or_(Menu.tenant_id == tenant_id, Menu.tenant_id.is_(None)))
        return query.order_by(Menu.sort, Menu.name).all()

    def _is_descendant(self, menu: Menu, candidate_id: str) -> bool:
        stack = list(menu.children)
        while stack:
            child = stack.pop()
            if child.id == candidate_id:
                return True
            stack.extend(child.children)
        return False

    def update_menu(self, menu_id: str, **fields) -> Menu:
        """
        Update a menu.

        Args:
            menu_id: Menu to update
            **fields: Any of name, path, icon, component, sort, visible,
                parent_id, description

        Raises:
            ProtectedEntityError: If the menu is a system menu
            ReferentialError: If the new parent is invalid
            ConflictError: If the new path or name is taken
        """
        menu = self.get_menu(menu_id)
        unknown = set(fields) - MENU_FIELDS
        if unknown:
            raise InvalidArgumentError(sorted(unknown)[0], f"Unknown menu fields: {sorted(unknown)}")
        if menu.is_system:
            raise ProtectedEntityError(
                f"Menu {menu.id} ({menu.name}) is a system menu and cannot be modified",
                "Menu",
                menu.id,
            )

        if "name" in fields:
            if not fields["name"]:
                raise InvalidArgumentError("name")
            if fields["name"] != menu.name:
                self._check_name_free(fields["name"], menu.tenant_id, exclude_id=menu.id)
        if fields.get("path") and fields["path"] != menu.path:
            self._check_path_free(fields["path"], menu.tenant_id, exclude_id=menu.id)
        if fields.get("parent_id"):
            parent_id = fields["parent_id"]
            if parent_id == menu.id:
                raise ReferentialError(f"Menu {menu.id} cannot be its own parent", "Menu", menu.id)
            self._check_parent(parent_id, menu.tenant_id)
            if self._is_descendant(menu, parent_id):
                raise ReferentialError(
                    f"Menu {parent_id} is a descendant of menu {menu.id} and cannot be its parent",
                    "Menu",
                    menu.id,
                )

        for key, value in fields.items():
            if key == "parent_id":
                menu.parent = self.db.get(Menu, value) if value else None
                continue
            if key == "path":
                value = value or None
            setattr(menu, key, value)
        menu.updated_at = datetime.utcnow()
        self.db.flush()
        return menu

    def delete_menu(self, menu_id: str) -> None:
        """
        Delete a menu together with its actions and role links.

        Raises:
            ProtectedEntityError: If the menu is a system menu or has children
        """
        menu = self.get_menu(menu_id)
        if menu.is_system:
            raise ProtectedEntityError(
                f"Menu {menu.id} ({menu.name}) is a system menu and cannot be deleted",
                "Menu",
                menu.id,
            )
        if menu.children:
            raise ProtectedEntityError(
                f"Menu {menu.id} ({menu.name}) has {len(menu.children)} child menu(s)",
                "Menu",
                menu.id,
            )
        for role in list(menu.roles):
            role.menus.remove(menu)
        if menu.parent is not None:
            menu.parent.children.remove(menu)
        self.db.delete(menu)
        self.db.flush()
        logger.info(f"Deleted menu {menu.name} ({menu.id})")

    def get_menu_tree(self, tenant_id: Optional[str] = None) -> List[MenuNode]:
        return build_menu_tree(self.list_menus(tenant_id))

    def get_user_menu_tree(self, user_id: str, tenant_id: str) -> List[MenuNode]:
        """
        The visible menus reachable through any of the user's roles.

        Menus of all the user's roles are unioned; a permitted menu whose
        parent is not permitted is promoted to a root.
        """
        menus: Dict[str, Menu] = {}
        for role in RoleCatalog(self.db).roles_for_user(user_id, tenant_id):
            for menu in role.menus:
                if not menu.visible:
                    continue
                if menu.tenant_id is not None and menu.tenant_id != tenant_id:
                    continue
                menus[menu.id] = menu
        return build_menu_tree(menus.values())

    # ------------------------------------------------------------------
    # Menu actions
    # ------------------------------------------------------------------

    def _check_key_free(self, permission_key: str, exclude_id: Optional[str] = None) -> None:
        query = self.db.query(MenuAction).filter(MenuAction.permission_key == permission_key)
        if exclude_id:
            query = query.filter(MenuAction.id != exclude_id)
        existing = query.first()
        if existing:
            raise ConflictError(
                f"Permission key '{permission_key}' is already used by action {existing.id}",
                "MenuAction",
                permission_key,
            )

    def create_menu_action(
        self,
        menu_id: str,
        name: str,
        code: str,
        resource: str,
        permission_key: str,
        method: Optional[str] = None,
        description: Optional[str] = None,
        is_system: bool = False,
    ) -> MenuAction:
        """
        Attach an action to a menu.

        Raises:
            InvalidArgumentError: If a required field is empty
            NotFoundError: If the menu does not exist
            ConflictError: If the permission key is taken
        """
        for field_name, value in (
            ("name", name), ("code", code), ("resource", resource), ("permission_key", permission_key),
        ):
            if not value:
                raise InvalidArgumentError(field_name)
        menu = self.get_menu(menu_id)
        self._check_key_free(permission_key)

        action = MenuAction(
            menu=menu,
            name=name,
            code=code,
            resource=resource,
            permission_key=permission_key,
            method=method,
            description=description,
            is_system=is_system,
        )
        self.db.add(action)
        self.db.flush()
        return action

    def get_menu_action(self, action_id: str) -> MenuAction:
        action = self.db.get(MenuAction, action_id)
        if not action:
            raise NotFoundError("MenuAction", action_id)
        return action

    def get_by_permission_key(self, permission_key: str) -> Optional[MenuAction]:
        return self.db.query(MenuAction).filter(
            MenuAction.permission_key == permission_key
        ).first()

    def get_menu_actions(self, menu_id: str) -> List[MenuAction]:
        return self.db.query(MenuAction).filter(
            MenuAction.menu_id == menu_id
        ).order_by(MenuAction.code).all()

    def update_menu_action(self, action_id: str, **fields) -> MenuAction:
        """
        Update a menu action.

        Raises:
            ProtectedEntityError: If the action is a system action
            ConflictError: If the new permission key is taken
        """
        action = self.get_menu_action(action_id)
        unknown = set(fields) - MENU_ACTION_FIELDS
        if unknown:
            raise InvalidArgumentError(sorted(unknown)[0], f"Unknown menu action fields: {sorted(unknown)}")
        if action.is_system:
            raise ProtectedEntityError(
                f"Menu action {action.id} ({action.permission_key}) is a system action and cannot be modified",
                "MenuAction",
                action.id,
            )
        for required in ("name", "code", "resource", "permission_key"):
            if required in fields and not fields[required]:
                raise InvalidArgumentError(required)
        if "permission_key" in fields and fields["permission_key"] != action.permission_key:
            self._check_key_free(fields["permission_key"], exclude_id=action.id)

        for key, value in fields.items():
            setattr(action, key, value)
        self.db.flush()
        return action

    def delete_menu_action(self, action_id: str) -> None:
        action = self.get_menu_action(action_id)
        if action.is_system:
            raise ProtectedEntityError(
                f"Menu action {action.id} ({action.permission_key}) is a system action and cannot be deleted",
                "MenuAction",
                action.id,
            )
        action.menu.actions.remove(action)
        self.db.flush()
