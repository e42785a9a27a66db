"""
Shared pytest fixtures for the QA Hub test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - qa / dev / outsider: Actors handed to the services
    - project: QA-created project with ``dev`` as a DEV member
    - auth_header: build a Bearer header for an Actor
"""

import pytest

from qahub import create_app
from qahub.core.actor import ROLE_DEV, ROLE_QA, Actor
from qahub.models import db as _db
from qahub.services import project_service
from qahub.services.jwt_service import generate_access_token


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Actors ───────────────────────────────────────────────────────────────


@pytest.fixture()
def qa():
    return Actor(id="qa-1", role=ROLE_QA, name="Quinn QA")


@pytest.fixture()
def dev():
    return Actor(id="dev-1", role=ROLE_DEV, name="Dana Dev")


@pytest.fixture()
def outsider():
    """A DEV that is not a member of any fixture project."""
    return Actor(id="dev-9", role=ROLE_DEV, name="Otto Outsider")


@pytest.fixture()
def auth_header():
    def _build(actor):
        token = generate_access_token(actor.id, actor.role, actor.name)
        return {"Authorization": f"Bearer {token}"}
    return _build


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project(qa, dev):
    """Project created by ``qa`` with ``dev`` as DEV member and default overrides."""
    return project_service.create_project(qa, {
        "name": "Checkout revamp",
        "description": "Fixture project",
        "members": [
            {"member_id": qa.id, "display_name": qa.name, "role": ROLE_QA},
            {"member_id": dev.id, "display_name": dev.name, "role": ROLE_DEV},
        ],
    })


@pytest.fixture()
def ready_test_case():
    """Payload of a test case whose required fields are all filled."""
    return {
        "title": "Login with valid credentials",
        "steps": "1. open /login\n2. submit valid credentials",
        "expected_result": "Dashboard is shown",
        "priority": "High",
    }


@pytest.fixture()
def ready_bug():
    """Payload of a bug whose required fields are all filled."""
    return {
        "title": "Login button does nothing",
        "steps_to_reproduce": "Click login",
        "severity": "High",
    }
