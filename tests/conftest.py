"""
Shared pytest fixtures for the PO Tracker test suite.

Provides:
    - app: Flask application (session-scoped, uploads in a temp dir)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - admin_user / regular_user: persisted accounts
    - auth_headers: build Bearer headers for a user
    - month / folder: a month bucket and one PO folder inside it
"""

import os
import shutil

import pytest

from po_tracker import create_app
from po_tracker.models import db as _db
from po_tracker.models.auth import User
from po_tracker.services import tree_service
from po_tracker.services.jwt_service import issue_session_token
from po_tracker.utils.crypto import hash_password


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    application = create_app("testing")
    application.config["UPLOAD_FOLDER"] = str(tmp_path_factory.mktemp("uploads"))
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
        folder = app.config["UPLOAD_FOLDER"]
        shutil.rmtree(folder, ignore_errors=True)
        os.makedirs(folder, exist_ok=True)


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users ────────────────────────────────────────────────────────────────


def _make_user(username, password="secret-pw", is_admin=False):
    user = User(username=username, password_hash=hash_password(password), is_admin=is_admin)
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def admin_user():
    return _make_user("boss", is_admin=True)


@pytest.fixture()
def regular_user():
    return _make_user("intern")


@pytest.fixture()
def auth_headers():
    """Return a callable: ``auth_headers(user)`` → Bearer header dict."""

    def _headers(user):
        token = issue_session_token(user)["access_token"]
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ── Workflow ─────────────────────────────────────────────────────────────


@pytest.fixture()
def month(regular_user):
    return tree_service.create_month("Feb 2026", regular_user)


@pytest.fixture()
def folder(month, regular_user):
    return tree_service.create_folder(month.id, "2026-02-IT-001_CAPEX_Hello World", regular_user)
