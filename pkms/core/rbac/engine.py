"""Process-wide policy store and enforcer.

``init_enforcer()`` builds the store, loads its facts and wraps it in an
Enforcer exactly once per process. The returned handle is what callers pass
to the synchronizer, the resolver and the request checker.
"""

import threading
from typing import Optional

from sqlalchemy.engine import Engine

from pkms.common.logger import get_logger
from pkms.core.config import get_settings
from pkms.db.base import Base
from pkms.db.models import PolicyRule
from pkms.db.session import make_engine

from .enforcer import Enforcer
from .store import PolicyStore

logger = get_logger("engine")

_lock = threading.Lock()
_enforcer: Optional[Enforcer] = None


def init_enforcer(
    engine: Optional[Engine] = None,
    *,
    create_tables: bool = False,
) -> Enforcer:
    """
    Construct the process-wide enforcer, or return the existing one.

    Args:
        engine: Engine for the policy database; one bound to
            ``policy_database_url`` is created when omitted
        create_tables: Create the ``policy_rules`` table if missing

    Returns:
        The shared Enforcer
    """
    global _enforcer
    with _lock:
        if _enforcer is not None:
            return _enforcer

        if engine is None:
            settings = get_settings()
            engine = make_engine(settings.policy_db_url, echo=settings.sql_echo)

        if create_tables:
            Base.metadata.create_all(bind=engine, tables=[PolicyRule.__table__])

        store = PolicyStore(engine)
        grants, groupings = store.load()
        _enforcer = Enforcer(store)
        logger.info(f"Enforcer initialized with {grants} grants and {groupings} groupings")
        return _enforcer


def get_enforcer() -> Enforcer:
    """Get the shared enforcer.

    Raises:
        RuntimeError: If init_enforcer() has not been called
    """
    if _enforcer is None:
        raise RuntimeError("Enforcer is not initialized; call init_enforcer() first")
    return _enforcer


def reset_enforcer() -> None:
    """Forget the shared enforcer (used by tests)."""
    global _enforcer
    with _lock:
        _enforcer = None
