import os

# settings are read at import time by simflow.db.session
os.environ.setdefault("SIMFLOW_DATABASE_URL", "sqlite:///./simflow-test.db")

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

# FORCE model registration
import simflow.models  # noqa

from simflow.db.base import Base
from simflow.models.enums import UserRole
from simflow.policies.rbac import Actor
from simflow.services.hour_ledger import HourLedger
from simflow.services.projects_service import ProjectsService


@pytest.fixture(scope="function")
def engine(tmp_path):
    eng = create_engine(
        f"sqlite:///{tmp_path / 'simflow.db'}",
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(eng, "connect")
    def _fk_on(dbapi_conn, _record):
        dbapi_conn.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, future=True)


@pytest.fixture(scope="function")
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def manager():
    return Actor(actor_id="mgr-1", name="Maria Manager", role=UserRole.MANAGER)


@pytest.fixture
def admin():
    return Actor(actor_id="adm-1", name="Ada Admin", role=UserRole.ADMIN)


@pytest.fixture
def engineer():
    return Actor(actor_id="eng-1", name="Erik Engineer", role=UserRole.ENGINEER)


@pytest.fixture
def end_user():
    return Actor(actor_id="usr-1", name="Uma User", role=UserRole.END_USER)


@pytest.fixture
def make_project(db, manager):
    """Create a project through the registry; Active unless created by a non-manager."""

    def _make(name="Crash Program", total_hours=100, actor=None, used_hours=0, **kw):
        res = ProjectsService().create(db, name=name, total_hours=total_hours, actor=actor or manager, **kw)
        assert res.is_success, res.error
        p = res.value
        if used_hours:
            alloc = HourLedger().allocate(db, project_id=p.id, hours=used_hours, actor=manager)
            assert alloc.is_success, alloc.error
            db.refresh(p)
        return p

    return _make
