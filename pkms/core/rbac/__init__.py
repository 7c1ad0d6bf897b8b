"""RBAC (Role-Based Access Control) module for pkms.

This module holds the policy store, the enforcer and the fixed permission
vocabularies. The synchronizer and resolver live in
``pkms.core.rbac.synchronizer`` and ``pkms.core.rbac.resolution``.
"""

from .errors import (
    AuthzError,
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    PersistenceError,
    ProtectedEntityError,
    ReferentialError,
)
from .permissions import GLOBAL_DOMAIN, WILDCARD_DOMAIN, ScopedPermission
from .store import GrantFact, GroupingFact, PolicyStore
from .enforcer import Enforcer
from .engine import get_enforcer, init_enforcer, reset_enforcer

__all__ = [
    "AuthzError",
    "ConflictError",
    "InvalidArgumentError",
    "NotFoundError",
    "PersistenceError",
    "ProtectedEntityError",
    "ReferentialError",
    "GLOBAL_DOMAIN",
    "WILDCARD_DOMAIN",
    "ScopedPermission",
    "GrantFact",
    "GroupingFact",
    "PolicyStore",
    "Enforcer",
    "get_enforcer",
    "init_enforcer",
    "reset_enforcer",
]
