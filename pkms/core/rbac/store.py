"""Durable store of grant and grouping facts, backed by pycasbin.

Facts live in a ``casbin.SyncedEnforcer`` whose adapter persists them to the
``policy_rules`` table. Auto-save is on, so every mutation is written to the
adapter before the in-memory model changes; a failed write raises
PersistenceError and leaves the model untouched.
"""

import threading
from typing import Iterable, List, NamedTuple, Sequence, Tuple

import casbin
from casbin.model import Model
from casbin_sqlalchemy_adapter import Adapter
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from pkms.common.logger import get_logger
from pkms.db.models import PolicyRule

from .errors import InvalidArgumentError, PersistenceError

logger = get_logger("policy_store")

GRANT_PTYPE = "p"
GROUPING_PTYPE = "g"

# A role held in the wildcard domain applies in every tenant, but only to
# grants that are themselves stored in the wildcard domain.
RBAC_DOMAIN_MODEL = """
[request_definition]
r = sub, dom, obj, act

[policy_definition]
p = sub, dom, obj, act

[role_definition]
g = _, _, _

[policy_effect]
e = some(where (p.eft == allow))

[matchers]
m = ((g(r.sub, p.sub, r.dom) && (p.dom == r.dom || p.dom == "*")) || (g(r.sub, p.sub, "*") && p.dom == "*")) && r.obj == p.obj && r.act == p.act
"""


def get_model() -> Model:
    """Build the domain RBAC model from RBAC_DOMAIN_MODEL."""
    model = Model()
    model.load_model_from_text(RBAC_DOMAIN_MODEL)
    return model


class GrantFact(NamedTuple):
    """Permits ``subject`` to perform ``action`` on ``object`` in ``domain``."""
    subject: str
    domain: str
    object: str
    action: str


class GroupingFact(NamedTuple):
    """Makes ``user`` a member of ``role`` within ``domain``."""
    user: str
    role: str
    domain: str


def validate_grant(fact: GrantFact) -> None:
    if not fact.subject:
        raise InvalidArgumentError("subject")
    if fact.domain is None:
        raise InvalidArgumentError("domain", "Invalid argument: domain must not be None")
    if not fact.object:
        raise InvalidArgumentError("object")
    if not fact.action:
        raise InvalidArgumentError("action")


def validate_grouping(fact: GroupingFact) -> None:
    if not fact.user:
        raise InvalidArgumentError("user")
    if not fact.role:
        raise InvalidArgumentError("role")
    if fact.domain is None:
        raise InvalidArgumentError("domain", "Invalid argument: domain must not be None")


class PolicyStore:
    """
    Authoritative holder of grant and grouping facts.

    Reads and single writes are serialized by the SyncedEnforcer. Compound
    writes (check, then write) additionally hold ``_writes`` so two callers
    never interleave between the check and the write.
    """

    def __init__(self, engine: Engine):
        """
        Initialize the store and read the durable facts.

        Args:
            engine: Engine bound to the policy database
        """
        self._adapter = Adapter(engine, db_class=PolicyRule)
        self._writes = threading.Lock()
        try:
            self._enforcer = casbin.SyncedEnforcer(get_model(), self._adapter)
        except SQLAlchemyError as exc:
            logger.error(f"Policy store failed to open: {exc}")
            raise PersistenceError(f"Failed to open policy store: {exc}") from exc
        self._enforcer.enable_auto_save(True)

    def _write(self, description: str, operation, *args):
        try:
            return operation(*args)
        except SQLAlchemyError as exc:
            logger.error(f"Policy write failed ({description}): {exc}")
            raise PersistenceError(f"Failed to write policy facts: {exc}") from exc

    # ------------------------------------------------------------------
    # Durable storage
    # ------------------------------------------------------------------

    def load(self) -> Tuple[int, int]:
        """
        Replace the in-memory facts with the durable rows.

        Returns:
            (grant count, grouping count)
        """
        try:
            self._enforcer.load_policy()
        except SQLAlchemyError as exc:
            logger.error(f"Policy load failed: {exc}")
            raise PersistenceError(f"Failed to load policy facts: {exc}") from exc
        grants = len(self._enforcer.get_policy())
        groupings = len(self._enforcer.get_grouping_policy())
        logger.info(f"Loaded {grants} grants and {groupings} groupings")
        return grants, groupings

    def save(self) -> None:
        """Replace the durable rows with the in-memory facts."""
        with self._writes:
            self._write("save", self._enforcer.save_policy)

    def replace(self, grants: Iterable[GrantFact], groupings: Iterable[GroupingFact]) -> Tuple[int, int]:
        """
        Swap both fact sets, durable storage first.

        The new facts are written in one adapter transaction, then the
        in-memory model is reloaded from it.

        Returns:
            (grant count, grouping count) after the swap
        """
        grants = sorted(set(GrantFact(*f) for f in grants))
        groupings = sorted(set(GroupingFact(*f) for f in groupings))
        for fact in grants:
            validate_grant(fact)
        for fact in groupings:
            validate_grouping(fact)

        model = get_model()
        for fact in grants:
            model.add_policy("p", GRANT_PTYPE, list(fact))
        for fact in groupings:
            model.add_policy("g", GROUPING_PTYPE, list(fact))

        with self._writes:
            self._write("replace", self._adapter.save_policy, model)
            self.load()
        logger.info(f"Replaced policy with {len(grants)} grants and {len(groupings)} groupings")
        return len(grants), len(groupings)

    def clear(self) -> None:
        """Remove every fact, durable and in memory."""
        self.replace((), ())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_grant(self, subject: str, domain: str, obj: str, act: str) -> bool:
        """Add a grant fact. Returns False if it already exists."""
        return self.add_grants([GrantFact(subject, domain, obj, act)]) == 1

    def remove_grant(self, subject: str, domain: str, obj: str, act: str) -> bool:
        """Remove a grant fact. Returns False if it was absent."""
        return self.remove_grants([GrantFact(subject, domain, obj, act)]) == 1

    def add_grouping(self, user: str, role: str, domain: str) -> bool:
        """Add a grouping fact. Returns False if it already exists."""
        return self.add_groupings([GroupingFact(user, role, domain)]) == 1

    def remove_grouping(self, user: str, role: str, domain: str) -> bool:
        """Remove a grouping fact. Returns False if it was absent."""
        return self.remove_groupings([GroupingFact(user, role, domain)]) == 1

    def add_grants(self, facts: Iterable[GrantFact]) -> int:
        """Add many grant facts in one transaction. Returns the number that were new."""
        facts = [GrantFact(*f) for f in facts]
        for fact in facts:
            validate_grant(fact)
        with self._writes:
            new = [list(f) for f in dict.fromkeys(facts) if not self._enforcer.has_policy(*f)]
            if not new:
                return 0
            self._write("add grants", self._enforcer.add_policies, new)
        logger.debug(f"Added {len(new)} grants")
        return len(new)

    def remove_grants(self, facts: Iterable[GrantFact]) -> int:
        """
        Remove many grant facts, one adapter write each. Returns the number
        that existed. On failure the facts removed so far stay removed.
        """
        facts = [GrantFact(*f) for f in facts]
        for fact in facts:
            validate_grant(fact)
        removed = 0
        with self._writes:
            for fact in dict.fromkeys(facts):
                if self._write("remove grant", self._enforcer.remove_policy, *fact):
                    removed += 1
        logger.debug(f"Removed {removed} grants")
        return removed

    def add_groupings(self, facts: Iterable[GroupingFact]) -> int:
        """Add many grouping facts in one transaction. Returns the number that were new."""
        facts = [GroupingFact(*f) for f in facts]
        for fact in facts:
            validate_grouping(fact)
        with self._writes:
            new = [
                list(f) for f in dict.fromkeys(facts)
                if not self._enforcer.has_grouping_policy(*f)
            ]
            if not new:
                return 0
            self._write("add groupings", self._enforcer.add_grouping_policies, new)
        logger.debug(f"Added {len(new)} groupings")
        return len(new)

    def remove_groupings(self, facts: Iterable[GroupingFact]) -> int:
        """Remove many grouping facts, one adapter write each. Returns the number that existed."""
        facts = [GroupingFact(*f) for f in facts]
        for fact in facts:
            validate_grouping(fact)
        removed = 0
        with self._writes:
            for fact in dict.fromkeys(facts):
                if self._write("remove grouping", self._enforcer.remove_grouping_policy, *fact):
                    removed += 1
        logger.debug(f"Removed {removed} groupings")
        return removed

    def remove_facts_for_role(self, role: str, domains: Iterable[str]) -> int:
        """
        Drop every grant held by ``role`` and every grouping onto ``role``
        within ``domains``.

        Grants go first; if the groupings then fail to delete, the grants
        are written back before PersistenceError propagates.

        Returns:
            Number of facts removed
        """
        if not role:
            raise InvalidArgumentError("role")
        domains = set(domains)
        grants = [f for f in self._grants_where(0, role) if f.domain in domains]
        groupings = [f for f in self._groupings_where(1, role) if f.domain in domains]
        if not grants and not groupings:
            return 0

        removed = self.remove_grants(grants)
        try:
            removed += self.remove_groupings(groupings)
        except PersistenceError:
            self.add_grants(grants)
            raise
        logger.info(f"Removed {len(grants)} grants and {len(groupings)} groupings for role {role}")
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    # An empty field value matches anything in pycasbin's filtered queries,
    # so domain filtering (the global domain is "") happens here.
    def _grants_where(self, index: int, value: str) -> List[GrantFact]:
        return [GrantFact(*rule[:4]) for rule in self._enforcer.get_filtered_policy(index, value)]

    def _groupings_where(self, index: int, value: str) -> List[GroupingFact]:
        return [
            GroupingFact(*rule[:3])
            for rule in self._enforcer.get_filtered_grouping_policy(index, value)
        ]

    def all_grants(self) -> List[GrantFact]:
        return sorted(GrantFact(*rule[:4]) for rule in self._enforcer.get_policy())

    def all_groupings(self) -> List[GroupingFact]:
        return sorted(GroupingFact(*rule[:3]) for rule in self._enforcer.get_grouping_policy())

    def grants_for(self, subject: str, domain: str) -> List[GrantFact]:
        return sorted(f for f in self._grants_where(0, subject) if f.domain == domain)

    def roles_for(self, user: str, domain: str) -> List[str]:
        return sorted({f.role for f in self._groupings_where(0, user) if f.domain == domain})

    def users_for(self, role: str, domain: str) -> List[str]:
        return sorted({f.user for f in self._groupings_where(1, role) if f.domain == domain})

    def implicit_roles_for(self, user: str, domain: str) -> List[str]:
        """Roles reachable from ``user`` through grouping facts in ``domain``."""
        roles = self._enforcer.get_implicit_roles_for_user(user, domain)
        return sorted(r for r in set(roles) if r != user)

    def has_grant(self, fact: Sequence[str]) -> bool:
        return self._enforcer.has_policy(*GrantFact(*fact))

    def has_grouping(self, fact: Sequence[str]) -> bool:
        return self._enforcer.has_grouping_policy(*GroupingFact(*fact))

    def enforce(self, subject: str, domain: str, obj: str, act: str) -> bool:
        return self._enforcer.enforce(subject, domain, obj, act)
