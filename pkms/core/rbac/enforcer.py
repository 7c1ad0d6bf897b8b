"""Policy evaluation over the fact store.

A request ``(subject, domain, object, action)`` is allowed when the subject,
or any role reachable from it through grouping facts in the request domain,
holds a matching grant in the request domain or in the wildcard domain.

Roles held in the wildcard domain are visible from every domain, but only
through grants that are themselves stored in the wildcard domain: holding
``admin`` under ``*`` does not pick up a tenant's ``admin`` grants. The empty
domain is an ordinary key and matches only itself.

Evaluation is pycasbin's; see RBAC_DOMAIN_MODEL in ``store``.
"""

from typing import List, Set

from pkms.common.logger import get_logger

from .errors import InvalidArgumentError
from .permissions import WILDCARD_DOMAIN
from .roles import ROLE_ADMIN
from .store import GrantFact, GroupingFact, PolicyStore

logger = get_logger("enforcer")


class Enforcer:
    """Evaluates access requests against a PolicyStore."""

    def __init__(self, store: PolicyStore):
        self.store = store

    def enforce(self, subject: str, domain: str, obj: str, act: str) -> bool:
        """
        Decide whether ``subject`` may perform ``act`` on ``obj`` in ``domain``.

        Raises:
            InvalidArgumentError: If subject, obj or act is empty, or domain is None
        """
        if not subject:
            raise InvalidArgumentError("subject")
        if domain is None:
            raise InvalidArgumentError("domain", "Invalid argument: domain must not be None")
        if not obj:
            raise InvalidArgumentError("object")
        if not act:
            raise InvalidArgumentError("action")

        allowed = self.store.enforce(subject, domain, obj, act)
        logger.debug(
            f"enforce({subject!r}, {domain!r}, {obj!r}, {act!r}) -> {'allow' if allowed else 'deny'}"
        )
        return allowed

    # ------------------------------------------------------------------
    # Fact management, delegated to the store
    # ------------------------------------------------------------------

    def add_grant(self, subject: str, domain: str, obj: str, act: str) -> bool:
        return self.store.add_grant(subject, domain, obj, act)

    def remove_grant(self, subject: str, domain: str, obj: str, act: str) -> bool:
        return self.store.remove_grant(subject, domain, obj, act)

    def add_grouping(self, user: str, role: str, domain: str) -> bool:
        return self.store.add_grouping(user, role, domain)

    def remove_grouping(self, user: str, role: str, domain: str) -> bool:
        return self.store.remove_grouping(user, role, domain)

    def reload(self) -> None:
        """Re-read every fact from durable storage."""
        self.store.load()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def roles_of(self, user: str, domain: str) -> List[str]:
        """Roles ``user`` holds directly in ``domain``."""
        return self.store.roles_for(user, domain)

    def users_of(self, role: str, domain: str) -> List[str]:
        """Users holding ``role`` directly in ``domain``."""
        return self.store.users_for(role, domain)

    def has_role(self, user: str, role: str, domain: str) -> bool:
        """True if ``role`` is reachable from ``user`` in ``domain`` or the wildcard domain."""
        if role == user:
            return False
        return (
            role in self.store.implicit_roles_for(user, domain)
            or role in self.store.implicit_roles_for(user, WILDCARD_DOMAIN)
        )

    def is_system_admin(self, user: str) -> bool:
        """True if ``user`` holds ``admin`` in the wildcard domain."""
        return self.store.has_grouping(GroupingFact(user, ROLE_ADMIN, WILDCARD_DOMAIN))

    def permissions_for_role(self, role: str, domain: str) -> List[List[str]]:
        """
        Grants stored directly for ``role`` in ``domain``.

        Inherited roles and wildcard-domain grants are not included; see
        effective_permissions() for those.

        Returns:
            Sorted [subject, domain, object, action] lists
        """
        if not role:
            raise InvalidArgumentError("role")
        if domain is None:
            raise InvalidArgumentError("domain", "Invalid argument: domain must not be None")
        return [list(fact) for fact in self.store.grants_for(role, domain)]

    def effective_permissions(self, user: str, domain: str) -> List[List[str]]:
        """
        Every grant tuple that applies to ``user`` in ``domain``.

        Includes the user's direct grants, grants of every role reachable in
        ``domain`` (in that domain or the wildcard domain), and wildcard-domain
        grants of roles the user holds under the wildcard domain.

        Returns:
            Sorted [subject, domain, object, action] lists
        """
        local = {user, *self.store.implicit_roles_for(user, domain)}
        wildcard = set(local)
        if domain != WILDCARD_DOMAIN:
            wildcard.update(self.store.implicit_roles_for(user, WILDCARD_DOMAIN))

        facts: Set[GrantFact] = set()
        for candidate in local:
            facts.update(self.store.grants_for(candidate, domain))
        for candidate in wildcard:
            facts.update(self.store.grants_for(candidate, WILDCARD_DOMAIN))
        return [list(fact) for fact in sorted(facts)]

    def all_grants(self) -> List[GrantFact]:
        return self.store.all_grants()

    def all_groupings(self) -> List[GroupingFact]:
        return self.store.all_groupings()

    def all_role_names(self) -> List[str]:
        """Distinct role names appearing in grouping facts."""
        return sorted({fact.role for fact in self.store.all_groupings()})

    def all_objects(self) -> List[str]:
        return sorted({fact.object for fact in self.store.all_grants()})

    def all_actions(self) -> List[str]:
        return sorted({fact.action for fact in self.store.all_grants()})
