"""Tests for policy evaluation."""

import logging

import pytest

from pkms.core.rbac.errors import InvalidArgumentError
from pkms.core.rbac.store import GrantFact


class TestRoleInheritance:
    """Grants reach users through grouping facts."""

    def test_role_grant_applies_in_its_tenant_only(self, enforcer):
        enforcer.add_grouping("u", "owner", "T1")
        enforcer.add_grant("owner", "T1", "project", "write")

        assert enforcer.enforce("u", "T1", "project", "write") is True
        assert enforcer.enforce("u", "T2", "project", "write") is False

    def test_direct_user_grant(self, enforcer):
        enforcer.add_grant("u", "T1", "package", "read")
        assert enforcer.enforce("u", "T1", "package", "read") is True
        assert enforcer.enforce("u", "T1", "package", "write") is False

    def test_transitive_roles_within_domain(self, enforcer):
        enforcer.add_grouping("u", "lead", "T1")
        enforcer.add_grouping("lead", "member", "T1")
        enforcer.add_grant("member", "T1", "project", "read")

        assert enforcer.enforce("u", "T1", "project", "read") is True
        assert enforcer.has_role("u", "member", "T1") is True

    def test_role_chain_does_not_cross_domains(self, enforcer):
        enforcer.add_grouping("u", "lead", "T1")
        enforcer.add_grouping("lead", "member", "T2")
        enforcer.add_grant("member", "T2", "project", "read")

        assert enforcer.enforce("u", "T2", "project", "read") is False

    def test_grouping_cycle_terminates(self, enforcer):
        enforcer.add_grouping("a", "b", "T1")
        enforcer.add_grouping("b", "a", "T1")
        assert enforcer.enforce("a", "T1", "project", "read") is False

    def test_matching_is_exact(self, enforcer):
        enforcer.add_grouping("u", "owner", "T1")
        enforcer.add_grant("owner", "T1", "/api/v1/projects/*", "update")
        assert enforcer.enforce("u", "T1", "/api/v1/projects/42", "update") is False


class TestWildcardDomain:
    """The "*" domain applies everywhere; "" does not."""

    def test_admin_bypass_in_any_tenant(self, enforcer):
        enforcer.add_grant("admin", "*", "project", "write")
        enforcer.add_grouping("u", "admin", "*")

        for tenant in ("T1", "T-anything", "never-seen", ""):
            assert enforcer.enforce("u", tenant, "project", "write") is True

    def test_wildcard_grant_for_tenant_role(self, enforcer):
        enforcer.add_grouping("u", "auditor", "T1")
        enforcer.add_grant("auditor", "*", "report", "read")

        assert enforcer.enforce("u", "T1", "report", "read") is True
        assert enforcer.enforce("u", "T2", "report", "read") is False

    def test_empty_domain_is_not_a_wildcard(self, enforcer):
        enforcer.add_grouping("u", "owner", "")
        enforcer.add_grant("owner", "", "project", "write")

        assert enforcer.enforce("u", "", "project", "write") is True
        assert enforcer.enforce("u", "T1", "project", "write") is False

    def test_tenant_grants_do_not_leak_into_empty_domain(self, enforcer):
        enforcer.add_grouping("u", "owner", "T1")
        enforcer.add_grant("owner", "T1", "project", "write")
        assert enforcer.enforce("u", "", "project", "write") is False

    def test_wildcard_role_ignores_tenant_grants(self, enforcer):
        enforcer.add_grouping("u", "admin", "*")
        enforcer.add_grant("admin", "T1", "billing", "refund")

        assert enforcer.enforce("u", "T1", "billing", "refund") is False
        assert ["admin", "T1", "billing", "refund"] not in enforcer.effective_permissions("u", "T1")

    def test_tenant_role_still_sees_its_tenant_grants(self, enforcer):
        enforcer.add_grouping("u", "admin", "T1")
        enforcer.add_grant("admin", "T1", "billing", "refund")
        assert enforcer.enforce("u", "T1", "billing", "refund") is True


class TestValidation:
    """Malformed requests fail fast."""

    @pytest.mark.parametrize("args, field", [
        (("", "T1", "project", "read"), "subject"),
        (("u", None, "project", "read"), "domain"),
        (("u", "T1", "", "read"), "object"),
        (("u", "T1", "project", ""), "action"),
    ])
    def test_invalid_arguments(self, enforcer, args, field):
        with pytest.raises(InvalidArgumentError) as exc_info:
            enforcer.enforce(*args)
        assert exc_info.value.field == field

    def test_denial_is_logged_at_debug(self, enforcer, caplog):
        with caplog.at_level(logging.DEBUG, logger="pkms.enforcer"):
            enforcer.enforce("u", "T1", "project", "read")
        assert "deny" in caplog.text


class TestQueries:
    """Role, user and permission listings."""

    def test_roles_and_users_of(self, enforcer):
        enforcer.add_grouping("u1", "owner", "T1")
        enforcer.add_grouping("u1", "viewer", "T1")
        enforcer.add_grouping("u2", "owner", "T1")

        assert enforcer.roles_of("u1", "T1") == ["owner", "viewer"]
        assert enforcer.users_of("owner", "T1") == ["u1", "u2"]
        assert enforcer.roles_of("u1", "T2") == []

    def test_has_role_sees_wildcard_membership(self, enforcer):
        enforcer.add_grouping("u", "admin", "*")
        assert enforcer.has_role("u", "admin", "T7") is True
        assert enforcer.has_role("u", "owner", "T7") is False

    def test_effective_permissions(self, enforcer):
        enforcer.add_grouping("u", "owner", "T1")
        enforcer.add_grant("owner", "T1", "project", "write")
        enforcer.add_grant("owner", "*", "sidebar", "dashboard")
        enforcer.add_grant("u", "T1", "package", "read")
        enforcer.add_grant("owner", "T2", "project", "manage")

        assert enforcer.effective_permissions("u", "T1") == [
            ["owner", "*", "sidebar", "dashboard"],
            ["owner", "T1", "project", "write"],
            ["u", "T1", "package", "read"],
        ]

    def test_listings(self, enforcer):
        enforcer.add_grant("owner", "T1", "project", "write")
        enforcer.add_grant("viewer", "T1", "package", "read")
        enforcer.add_grouping("u", "viewer", "T1")

        assert enforcer.all_role_names() == ["viewer"]
        assert enforcer.all_objects() == ["package", "project"]
        assert enforcer.all_actions() == ["read", "write"]
        assert enforcer.all_grants()[0] == GrantFact("owner", "T1", "project", "write")

    def test_remove_delegation(self, enforcer):
        enforcer.add_grouping("u", "owner", "T1")
        enforcer.add_grant("owner", "T1", "project", "write")

        assert enforcer.remove_grant("owner", "T1", "project", "write") is True
        assert enforcer.enforce("u", "T1", "project", "write") is False
        assert enforcer.remove_grouping("u", "owner", "T1") is True
        assert enforcer.all_groupings() == []

    def test_reload_picks_up_durable_changes(self, enforcer, policy_engine):
        from pkms.core.rbac.store import PolicyStore

        other = PolicyStore(policy_engine)
        other.add_grant("owner", "T1", "project", "write")
        other.add_grouping("u", "owner", "T1")

        assert enforcer.enforce("u", "T1", "project", "write") is False
        enforcer.reload()
        assert enforcer.enforce("u", "T1", "project", "write") is True

    def test_is_system_admin(self, enforcer):
        enforcer.add_grouping("root", "admin", "*")
        enforcer.add_grouping("alice", "admin", "T1")

        assert enforcer.is_system_admin("root") is True
        assert enforcer.is_system_admin("alice") is False
        assert enforcer.is_system_admin("bob") is False

    def test_is_system_admin_after_removal(self, enforcer):
        enforcer.add_grouping("root", "admin", "*")
        enforcer.remove_grouping("root", "admin", "*")
        assert enforcer.is_system_admin("root") is False

    def test_permissions_for_role(self, enforcer):
        enforcer.add_grant("owner", "T1", "project", "write")
        enforcer.add_grant("owner", "T1", "package", "read")
        enforcer.add_grant("owner", "T2", "project", "manage")
        enforcer.add_grant("owner", "*", "sidebar", "dashboard")
        enforcer.add_grouping("owner", "member", "T1")
        enforcer.add_grant("member", "T1", "report", "read")

        assert enforcer.permissions_for_role("owner", "T1") == [
            ["owner", "T1", "package", "read"],
            ["owner", "T1", "project", "write"],
        ]
        assert enforcer.permissions_for_role("owner", "T3") == []

    def test_permissions_for_role_in_empty_domain(self, enforcer):
        enforcer.add_grant("viewer", "", "project", "read")
        enforcer.add_grant("viewer", "T1", "project", "write")
        assert enforcer.permissions_for_role("viewer", "") == [["viewer", "", "project", "read"]]

    def test_permissions_for_role_rejects_empty_role(self, enforcer):
        with pytest.raises(InvalidArgumentError):
            enforcer.permissions_for_role("", "T1")
