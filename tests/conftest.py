"""Pytest configuration and shared fixtures.

The catalog and the policy store each get their own in-memory SQLite
database, mirroring a deployment where ``policy_database_url`` differs from
``database_url``.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import pkms.db.models  # noqa: F401
from pkms.core.rbac.engine import reset_enforcer
from pkms.core.rbac.enforcer import Enforcer
from pkms.core.rbac.resolution import PermissionResolver
from pkms.core.rbac.store import PolicyStore
from pkms.core.rbac.synchronizer import PermissionSynchronizer
from pkms.db.base import Base
from pkms.db.seed import seed_catalog


def memory_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def catalog_engine():
    engine = memory_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(catalog_engine):
    """Catalog session; each test starts from an empty database."""
    session = sessionmaker(bind=catalog_engine, autoflush=False, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def policy_engine():
    engine = memory_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def policy_session_factory(policy_engine):
    return sessionmaker(bind=policy_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def store(policy_engine):
    return PolicyStore(policy_engine)


@pytest.fixture
def enforcer(store):
    return Enforcer(store)


@pytest.fixture
def synchronizer(db_session, enforcer):
    return PermissionSynchronizer(db_session, enforcer)


@pytest.fixture
def resolver(db_session, enforcer):
    return PermissionResolver(db_session, enforcer)


@pytest.fixture
def seeded_db(db_session):
    """Catalog session holding the default roles, menus and role-menu links."""
    seed_catalog(db_session)
    db_session.commit()
    return db_session


@pytest.fixture
def shared_enforcer():
    """Reset the process-wide enforcer around a test."""
    reset_enforcer()
    yield
    reset_enforcer()
