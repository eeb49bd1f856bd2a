"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time by the db and worker modules
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from reimbursement.core.approval import ApprovalService
from reimbursement.db.base import Base
from reimbursement.db import models  # noqa: F401  (registers tables)
from reimbursement.services.notifications import ApprovalNotifier, NotificationDispatcher

from tests.factories import create_user


class RecordingDispatcher(NotificationDispatcher):
    """Keeps dispatched emails in memory; can be told to fail."""

    def __init__(self):
        self.messages = []
        self.fail = False

    def dispatch(self, message):
        if self.fail:
            raise RuntimeError("broker unavailable")
        self.messages.append(message)

    def to(self, address):
        return [m for m in self.messages if m.to == address]


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture()
def service(db_session, dispatcher):
    return ApprovalService(db_session, notifier=ApprovalNotifier(dispatcher))


@pytest.fixture()
def staff(db_session):
    """One requester and the approvers around SAP code SAP-100."""
    users = {
        "employee": create_user(db_session, role="Employee", sap_codes=["SAP-100"], name="Erin Employee"),
        "sul": create_user(db_session, role="SUL", sap_codes=["SAP-100"], name="Sam Lead"),
        "other_sul": create_user(db_session, role="SUL", sap_codes=["SAP-200"], name="Olive Lead"),
        "invoice": create_user(db_session, role="Invoice Specialist", name="Ivy Invoice"),
        "account_manager": create_user(
            db_session, role="Account Manager", sap_codes=["SAP-300", "SAP-100"], name="Alex Accounts",
        ),
    }
    db_session.commit()
    return users


@pytest.fixture()
def client(db_session, dispatcher):
    from reimbursement.api.deps import get_db, get_dispatcher
    from reimbursement.api.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
