"""Catalog configuration for pkms.

Handles loading and validation of the YAML file describing the default
permission catalog: the menu tree, each menu's actions, and which menus
the built-in roles receive.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import yaml

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent.parent / "db" / "catalog.yaml"

# Role-menu entry granting every menu in the catalog
ALL_MENUS = "*"


@dataclass
class MenuActionConfig:
    """A leaf permission attached to a menu."""

    name: str
    code: str
    resource: str
    permission_key: str
    method: Optional[str] = None
    description: Optional[str] = None


@dataclass
class MenuConfig:
    """A menu node and its subtree."""

    name: str
    path: Optional[str] = None
    icon: Optional[str] = None
    component: Optional[str] = None
    sort: int = 0
    visible: bool = True
    description: Optional[str] = None
    actions: List[MenuActionConfig] = field(default_factory=list)
    children: List["MenuConfig"] = field(default_factory=list)


@dataclass
class CatalogConfig:
    """Top-level catalog configuration."""

    menus: List[MenuConfig] = field(default_factory=list)
    role_menus: Dict[str, List[str]] = field(default_factory=dict)


def parse_action_config(action_dict: Dict[str, Any]) -> MenuActionConfig:
    """Parse a menu action dictionary.

    Args:
        action_dict: Action configuration dictionary

    Returns:
        MenuActionConfig instance

    Raises:
        ValueError: If a required field is missing
    """
    for key in ("name", "code", "resource", "permission_key"):
        if not action_dict.get(key):
            raise ValueError(f"Menu action is missing required field '{key}': {action_dict}")

    return MenuActionConfig(
        name=action_dict["name"],
        code=action_dict["code"],
        resource=action_dict["resource"],
        permission_key=action_dict["permission_key"],
        method=action_dict.get("method"),
        description=action_dict.get("description"),
    )


def parse_menu_config(menu_dict: Dict[str, Any]) -> MenuConfig:
    """Parse a menu dictionary, recursing into its children.

    Args:
        menu_dict: Menu configuration dictionary

    Returns:
        MenuConfig instance
    """
    if not menu_dict.get("name"):
        raise ValueError(f"Menu is missing required field 'name': {menu_dict}")

    return MenuConfig(
        name=menu_dict["name"],
        path=menu_dict.get("path") or None,
        icon=menu_dict.get("icon"),
        component=menu_dict.get("component"),
        sort=menu_dict.get("sort", 0),
        visible=menu_dict.get("visible", True),
        description=menu_dict.get("description"),
        actions=[parse_action_config(a) for a in menu_dict.get("actions", [])],
        children=[parse_menu_config(c) for c in menu_dict.get("children", [])],
    )


def parse_catalog_config(config_dict: Dict[str, Any]) -> CatalogConfig:
    """Parse the full catalog dictionary.

    Args:
        config_dict: Full configuration dictionary

    Returns:
        CatalogConfig instance
    """
    menus = [parse_menu_config(m) for m in config_dict.get("menus", [])]

    role_menus = {}
    for role_code, menu_names in (config_dict.get("role_menus") or {}).items():
        if isinstance(menu_names, str):
            menu_names = [menu_names]
        role_menus[role_code] = list(menu_names or [])

    config = CatalogConfig(menus=menus, role_menus=role_menus)
    _check_unique_permission_keys(config)
    return config


def _check_unique_permission_keys(config: CatalogConfig) -> None:
    seen = set()
    for _, menu in iter_menus(config):
        for action in menu.actions:
            if action.permission_key in seen:
                raise ValueError(f"Duplicate permission key in catalog: {action.permission_key}")
            seen.add(action.permission_key)


def iter_menus(config: CatalogConfig) -> Iterator[Tuple[Optional[str], MenuConfig]]:
    """Walk the menu tree depth-first, parents before children.

    Yields:
        (parent menu name or None, MenuConfig) pairs
    """
    stack: List[Tuple[Optional[str], MenuConfig]] = [(None, m) for m in reversed(config.menus)]
    while stack:
        parent_name, menu = stack.pop()
        yield parent_name, menu
        stack.extend((menu.name, child) for child in reversed(menu.children))


def menus_for_role(config: CatalogConfig, role_code: str) -> List[str]:
    """Get the menu names a built-in role receives.

    Listing a parent menu also grants its whole subtree.

    Args:
        config: CatalogConfig instance
        role_code: Role code, e.g. "viewer"

    Returns:
        Menu names in catalog order
    """
    wanted = config.role_menus.get(role_code, [])
    if ALL_MENUS in wanted:
        return [menu.name for _, menu in iter_menus(config)]

    granted = set(wanted)
    names = []
    for parent_name, menu in iter_menus(config):
        if parent_name in granted:
            granted.add(menu.name)
        if menu.name in granted:
            names.append(menu.name)
    return names


def load_config(config_path: str) -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is invalid YAML
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_file.open("r") as f:
        config = yaml.safe_load(f)

    if config is None:
        config = {}

    if not isinstance(config, dict):
        raise TypeError(
            f"Configuration root must be a mapping, got {type(config).__name__}"
        )

    return _expand_env_vars(config)


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand environment variables in configuration."""
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return os.path.expandvars(obj)
    else:
        return obj


def load_catalog_config(config_path: Optional[str] = None) -> CatalogConfig:
    """Load and parse the catalog file into typed dataclasses.

    Args:
        config_path: Path to a catalog YAML file; the bundled default
            catalog is used when omitted

    Returns:
        CatalogConfig instance
    """
    return parse_catalog_config(load_config(str(config_path or DEFAULT_CATALOG_PATH)))
