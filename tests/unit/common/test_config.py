"""Tests for the catalog configuration module."""

import pytest
import yaml

from pkms.common.config import (
    ALL_MENUS,
    CatalogConfig,
    iter_menus,
    load_catalog_config,
    load_config,
    menus_for_role,
    parse_action_config,
    parse_catalog_config,
    parse_menu_config,
)


class TestMenuConfig:
    """Tests for menu and action parsing."""

    def test_parse_action(self):
        """Test parsing a complete action."""
        action = parse_action_config({
            "name": "View projects",
            "code": "read",
            "resource": "/api/v1/projects",
            "method": "GET",
            "permission_key": "project:read",
        })

        assert action.code == "read"
        assert action.permission_key == "project:read"
        assert action.description is None

    @pytest.mark.parametrize("missing", ["name", "code", "resource", "permission_key"])
    def test_parse_action_missing_field(self, missing):
        """Test that every required action field is enforced."""
        action_dict = {
            "name": "View", "code": "read", "resource": "/r", "permission_key": "r:read",
        }
        del action_dict[missing]

        with pytest.raises(ValueError, match=missing):
            parse_action_config(action_dict)

    def test_parse_menu_defaults(self):
        """Test menu defaults."""
        menu = parse_menu_config({"name": "System"})

        assert menu.path is None
        assert menu.sort == 0
        assert menu.visible
        assert menu.actions == []
        assert menu.children == []

    def test_parse_menu_requires_name(self):
        with pytest.raises(ValueError):
            parse_menu_config({"path": "/"})

    def test_parse_nested_menus(self):
        """Test parsing children recursively."""
        menu = parse_menu_config({
            "name": "System",
            "children": [{"name": "Users", "path": "/users"}],
        })

        assert [c.name for c in menu.children] == ["Users"]


class TestCatalogConfig:
    """Tests for the full catalog."""

    @pytest.fixture
    def config(self) -> CatalogConfig:
        return parse_catalog_config({
            "menus": [
                {"name": "Dashboard", "path": "/"},
                {
                    "name": "System",
                    "children": [
                        {"name": "Users", "path": "/users"},
                        {"name": "Roles", "path": "/roles"},
                    ],
                },
            ],
            "role_menus": {
                "admin": ALL_MENUS,
                "viewer": ["Dashboard"],
                "auditor": ["System"],
                "nobody": None,
            },
        })

    def test_iter_menus_parents_first(self, config):
        assert [(parent, m.name) for parent, m in iter_menus(config)] == [
            (None, "Dashboard"),
            (None, "System"),
            ("System", "Users"),
            ("System", "Roles"),
        ]

    def test_wildcard_role_gets_everything(self, config):
        assert menus_for_role(config, "admin") == ["Dashboard", "System", "Users", "Roles"]

    def test_parent_grants_subtree(self, config):
        assert menus_for_role(config, "auditor") == ["System", "Users", "Roles"]

    def test_role_without_menus(self, config):
        assert menus_for_role(config, "nobody") == []
        assert menus_for_role(config, "unknown") == []

    def test_duplicate_permission_key(self):
        """Test that permission keys must be unique across the whole tree."""
        action = {"name": "Read", "code": "read", "resource": "/r", "permission_key": "r:read"}

        with pytest.raises(ValueError, match="r:read"):
            parse_catalog_config({
                "menus": [
                    {"name": "A", "actions": [action]},
                    {"name": "B", "children": [{"name": "C", "actions": [action]}]},
                ],
            })

    def test_parse_empty_config(self):
        config = parse_catalog_config({})

        assert config.menus == []
        assert config.role_menus == {}


class TestLoadConfig:
    """Tests for loading YAML files."""

    def test_load_yaml_config(self, tmp_path):
        """Test loading a catalog file."""
        config_file = tmp_path / "catalog.yaml"
        config_file.write_text(yaml.dump({
            "menus": [{"name": "Dashboard", "path": "/"}],
            "role_menus": {"viewer": ["Dashboard"]},
        }))

        config = load_catalog_config(str(config_file))

        assert config.menus[0].name == "Dashboard"
        assert config.role_menus == {"viewer": ["Dashboard"]}

    def test_load_config_nonexistent(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_load_config_empty_file(self, tmp_path):
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")

        assert load_config(str(config_file)) == {}

    def test_load_config_rejects_list_root(self, tmp_path):
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- a\n- b\n")

        with pytest.raises(TypeError):
            load_config(str(config_file))

    def test_load_config_env_expansion(self, tmp_path, monkeypatch):
        """Test environment variable expansion."""
        monkeypatch.setenv("PKMS_API_ROOT", "/api/v2")
        config_file = tmp_path / "catalog.yaml"
        config_file.write_text(yaml.dump({
            "menus": [{
                "name": "Dashboard",
                "actions": [{
                    "name": "View", "code": "read",
                    "resource": "${PKMS_API_ROOT}/dashboard", "permission_key": "dashboard:read",
                }],
            }],
        }))

        config = load_catalog_config(str(config_file))

        assert config.menus[0].actions[0].resource == "/api/v2/dashboard"

    def test_bundled_catalog(self):
        """Test the catalog shipped with the package."""
        config = load_catalog_config()
        names = [m.name for _, m in iter_menus(config)]

        assert "Dashboard" in names
        assert menus_for_role(config, "viewer") == ["Dashboard", "Projects"]
        assert len(menus_for_role(config, "admin")) == len(names)
