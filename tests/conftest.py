"""
Shared pytest fixtures for the PackERP test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - organization: Pre-created, committed Organization
"""

import pytest

from packerp import create_app
from packerp.models import db as _db
from packerp.models.organization import Organization

# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


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
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def organization():
    org = Organization(code="DKEGL", name="DKEGL Flexible Packaging")
    _db.session.add(org)
    _db.session.commit()
    return org


@pytest.fixture()
def other_organization():
    org = Organization(code="DKPKL", name="DKPKL Labels")
    _db.session.add(org)
    _db.session.commit()
    return org
