"""Tests for the policy store."""

import threading

import pytest
from sqlalchemy.exc import OperationalError

from pkms.core.rbac.errors import InvalidArgumentError, PersistenceError
from pkms.core.rbac.store import GrantFact, GroupingFact, PolicyStore
from pkms.db.models import PolicyRule


def _rows(policy_session_factory):
    session = policy_session_factory()
    try:
        return sorted(
            (r.ptype, *r.values()) for r in session.query(PolicyRule).all()
        )
    finally:
        session.close()


class TestGrantFacts:
    """Adding and removing grant facts."""

    def test_add_grant_is_idempotent(self, store):
        assert store.add_grant("owner", "T1", "project", "write") is True
        assert store.add_grant("owner", "T1", "project", "write") is False

        grants = store.all_grants()
        assert grants.count(GrantFact("owner", "T1", "project", "write")) == 1
        assert len(grants) == 1

    def test_remove_grant(self, store):
        store.add_grant("owner", "T1", "project", "write")

        assert store.remove_grant("owner", "T1", "project", "write") is True
        assert store.remove_grant("owner", "T1", "project", "write") is False
        assert store.all_grants() == []

    def test_empty_domain_is_a_real_key(self, store):
        assert store.add_grant("owner", "", "project", "write") is True
        assert store.add_grant("owner", "T1", "project", "write") is True
        assert store.grants_for("owner", "") == [GrantFact("owner", "", "project", "write")]

    def test_batch_add_counts_only_new_facts(self, store):
        store.add_grant("owner", "T1", "project", "read")
        facts = [
            GrantFact("owner", "T1", "project", "read"),
            GrantFact("owner", "T1", "project", "write"),
            GrantFact("owner", "T1", "project", "write"),
        ]
        assert store.add_grants(facts) == 1
        assert len(store.all_grants()) == 2

    @pytest.mark.parametrize("args, field", [
        (("", "T1", "project", "read"), "subject"),
        (("owner", None, "project", "read"), "domain"),
        (("owner", "T1", "", "read"), "object"),
        (("owner", "T1", "project", ""), "action"),
    ])
    def test_malformed_grant_rejected(self, store, args, field):
        with pytest.raises(InvalidArgumentError) as exc_info:
            store.add_grant(*args)
        assert exc_info.value.field == field


class TestGroupingFacts:
    """Adding and removing grouping facts."""

    def test_add_and_remove_grouping(self, store):
        assert store.add_grouping("u1", "owner", "T1") is True
        assert store.add_grouping("u1", "owner", "T1") is False
        assert store.roles_for("u1", "T1") == ["owner"]
        assert store.users_for("owner", "T1") == ["u1"]

        assert store.remove_grouping("u1", "owner", "T1") is True
        assert store.remove_grouping("u1", "owner", "T1") is False
        assert store.roles_for("u1", "T1") == []
        assert store.users_for("owner", "T1") == []

    def test_all_groupings_sorted(self, store):
        store.add_grouping("u2", "viewer", "T1")
        store.add_grouping("u1", "owner", "T1")
        assert store.all_groupings() == [
            GroupingFact("u1", "owner", "T1"),
            GroupingFact("u2", "viewer", "T1"),
        ]

    def test_malformed_grouping_rejected(self, store):
        with pytest.raises(InvalidArgumentError):
            store.add_grouping("u1", "", "T1")

    def test_remove_facts_for_role(self, store):
        store.add_grant("editor", "T1", "project", "write")
        store.add_grant("editor", "T2", "project", "write")
        store.add_grouping("u1", "editor", "T1")
        store.add_grouping("u2", "editor", "T2")

        assert store.remove_facts_for_role("editor", ["T1"]) == 2
        assert store.all_grants() == [GrantFact("editor", "T2", "project", "write")]
        assert store.all_groupings() == [GroupingFact("u2", "editor", "T2")]

    def test_batch_remove_counts_only_existing_facts(self, store):
        store.add_grouping("u1", "viewer", "T1")
        store.add_grant("viewer", "T1", "project", "read")

        assert store.remove_groupings([
            GroupingFact("u1", "viewer", "T1"),
            GroupingFact("u2", "viewer", "T1"),
        ]) == 1
        assert store.remove_grants([GrantFact("viewer", "T1", "project", "read")]) == 1
        assert store.remove_grants([GrantFact("viewer", "T1", "project", "read")]) == 0
        assert store.all_groupings() == []


class TestDurability:
    """Write-through persistence."""

    def test_mutations_are_written_through(self, store, policy_session_factory):
        store.add_grant("owner", "T1", "project", "write")
        store.add_grouping("u1", "owner", "T1")

        assert _rows(policy_session_factory) == [
            ("g", "u1", "owner", "T1"),
            ("p", "owner", "T1", "project", "write"),
        ]

        store.remove_grouping("u1", "owner", "T1")
        assert _rows(policy_session_factory) == [("p", "owner", "T1", "project", "write")]

    def test_fresh_store_loads_same_facts(self, store, policy_engine):
        store.add_grant("owner", "T1", "project", "write")
        store.add_grouping("u1", "owner", "T1")

        reloaded = PolicyStore(policy_engine)
        assert reloaded.load() == (1, 1)
        assert reloaded.all_grants() == store.all_grants()
        assert reloaded.all_groupings() == store.all_groupings()

    def test_empty_domain_survives_reload(self, store, policy_engine):
        store.add_grant("viewer", "", "project", "read")
        store.add_grouping("u1", "viewer", "")

        reloaded = PolicyStore(policy_engine)
        assert reloaded.grants_for("viewer", "") == [GrantFact("viewer", "", "project", "read")]
        assert reloaded.roles_for("u1", "") == ["viewer"]
        assert reloaded.roles_for("u1", "T1") == []

    def test_save_replaces_durable_rows(self, store, policy_session_factory):
        store.add_grant("owner", "T1", "project", "write")
        session = policy_session_factory()
        session.add(PolicyRule(ptype="p", v0="stray", v1="T9", v2="x", v3="y"))
        session.commit()
        session.close()

        store.save()
        assert _rows(policy_session_factory) == [("p", "owner", "T1", "project", "write")]

    def test_replace_swaps_everything(self, store, policy_session_factory):
        store.add_grant("owner", "T1", "project", "write")
        store.replace(
            [GrantFact("viewer", "T1", "project", "read")],
            [GroupingFact("u1", "viewer", "T1")],
        )
        assert store.all_grants() == [GrantFact("viewer", "T1", "project", "read")]
        assert store.all_groupings() == [GroupingFact("u1", "viewer", "T1")]
        assert len(_rows(policy_session_factory)) == 2

    def test_clear(self, store, policy_session_factory):
        store.add_grant("owner", "T1", "project", "write")
        store.add_grouping("u1", "owner", "T1")
        store.clear()
        assert store.all_grants() == []
        assert store.all_groupings() == []
        assert _rows(policy_session_factory) == []


class TestPersistenceFailure:
    """A failed write leaves memory untouched."""

    @pytest.fixture
    def broken_store(self, store, policy_engine):
        store.add_grant("owner", "T1", "project", "read")
        store.add_grouping("u1", "owner", "T1")
        PolicyRule.__table__.drop(policy_engine)
        return store

    def test_failed_add_is_not_visible(self, broken_store):
        with pytest.raises(PersistenceError) as exc_info:
            broken_store.add_grant("owner", "T1", "project", "write")

        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert broken_store.all_grants() == [GrantFact("owner", "T1", "project", "read")]
        assert not broken_store.has_grant(GrantFact("owner", "T1", "project", "write"))

    def test_failed_remove_keeps_fact(self, broken_store):
        with pytest.raises(PersistenceError):
            broken_store.remove_grouping("u1", "owner", "T1")
        assert broken_store.roles_for("u1", "T1") == ["owner"]

    def test_failed_load_raises(self, broken_store):
        with pytest.raises(PersistenceError):
            broken_store.load()
        assert len(broken_store.all_grants()) == 1


class TestConcurrency:
    """Writers serialized by the synced enforcer."""

    def test_concurrent_adds_never_lose_facts(self, store):
        def worker(n):
            for i in range(20):
                store.add_grant(f"role-{n}", "T1", "project", f"act-{i}")
                store.add_grant("shared", "T1", "project", f"act-{i}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        grants = store.all_grants()
        assert len(grants) == 4 * 20 + 20
        assert len(set(grants)) == len(grants)
