"""Database seeding for pkms.

Creates the built-in system roles, the default menu tree with its actions,
and the role-menu links described by the catalog YAML file. Every step is
idempotent: existing rows are reused, never duplicated.

Run ``python -m pkms.db.seed`` to seed the configured database and
bootstrap the administrator policy.
"""

from typing import Dict, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from pkms.common.config import CatalogConfig, iter_menus, load_catalog_config, menus_for_role
from pkms.common.logger import configure_logging, get_logger
from pkms.core.catalog import MenuCatalog, RoleCatalog
from pkms.db.models import Menu, MenuAction, Role

logger = get_logger("seed")


def seed_system_roles(db: Session) -> Dict[str, Role]:
    """
    Create the built-in system roles.

    Returns:
        Dict mapping role code to Role object
    """
    return RoleCatalog(db).ensure_system_roles()


def seed_menus(db: Session, config: CatalogConfig) -> Dict[str, Menu]:
    """
    Create the global menu tree and its actions.

    Menus are matched by name, actions by permission key.

    Returns:
        Dict mapping menu name to Menu object
    """
    catalog = MenuCatalog(db)
    menus: Dict[str, Menu] = {}

    for parent_name, menu_config in iter_menus(config):
        existing = db.query(Menu).filter(
            and_(
                Menu.name == menu_config.name,
                Menu.tenant_id.is_(None),
            )
        ).first()

        if existing:
            menu = existing
        else:
            menu = catalog.create_menu(
                menu_config.name,
                path=menu_config.path,
                parent_id=menus[parent_name].id if parent_name else None,
                sort=menu_config.sort,
                visible=menu_config.visible,
                icon=menu_config.icon,
                component=menu_config.component,
                description=menu_config.description,
                is_system=True,
            )
        menus[menu.name] = menu

        for action_config in menu_config.actions:
            if catalog.get_by_permission_key(action_config.permission_key):
                continue
            catalog.create_menu_action(
                menu.id,
                action_config.name,
                action_config.code,
                action_config.resource,
                action_config.permission_key,
                method=action_config.method,
                description=action_config.description,
                is_system=True,
            )

    return menus


def seed_role_menus(
    db: Session,
    config: CatalogConfig,
    roles: Dict[str, Role],
    menus: Dict[str, Menu],
) -> int:
    """
    Link each built-in role to its default menus.

    Returns:
        Number of new role-menu links
    """
    catalog = RoleCatalog(db)
    added = 0
    for code, role in roles.items():
        names = menus_for_role(config, code)
        added += catalog.assign_menus_to_role(role.id, [menus[name].id for name in names])
    return added


def seed_catalog(db: Session, config_path: Optional[str] = None) -> Dict[str, int]:
    """
    Seed the default catalog. Flushes only; the caller commits.

    Args:
        db: Database session
        config_path: Catalog YAML file; the bundled catalog when omitted

    Returns:
        Counts of roles, menus, actions and new role-menu links
    """
    config = load_catalog_config(config_path)
    roles = seed_system_roles(db)
    menus = seed_menus(db, config)
    links = seed_role_menus(db, config, roles, menus)
    summary = {
        "roles": len(roles),
        "menus": len(menus),
        "actions": db.query(MenuAction).count(),
        "role_menu_links": links,
    }
    logger.info(f"Seeded catalog: {summary}")
    return summary


def main() -> None:
    from pkms.core.config import get_settings
    from pkms.core.rbac.engine import init_enforcer
    from pkms.core.rbac.synchronizer import PermissionSynchronizer
    from pkms.db.base import Base
    from pkms.db.session import get_session_factory

    settings = get_settings()
    configure_logging(settings)

    session_factory = get_session_factory()
    Base.metadata.create_all(bind=session_factory.kw["bind"])

    db = session_factory()
    try:
        seed_catalog(db, settings.catalog_path)
        db.commit()

        enforcer = init_enforcer(create_tables=True)
        synchronizer = PermissionSynchronizer(db, enforcer)
        synchronizer.initialize_system_admin_permissions()
        for role in RoleCatalog(db).list_roles():
            synchronizer.sync_role_permissions(role)
    finally:
        db.close()


if __name__ == "__main__":
    main()
