"""
Shared fixtures for the VenueWifi test suite.

Run with: pytest tests/ -v

NOTE: pytest is listed under extras_require["dev"] in setup.py.
Install with: pip install -e ".[dev]"
"""

import os
import shutil
import tempfile

import pytest
from flask import Flask

from venuewifi import VenueWifi
from venuewifi.core.storage import url_cache


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_db_dir():
    """Create a temporary directory for test databases, cleaned up after."""
    d = tempfile.mkdtemp(prefix="venuewifi-test-")
    yield d
    shutil.rmtree(d, ignore_errors=True)


def make_app(tmp_db_dir, **overrides):
    app = Flask(__name__)
    app.config["TESTING"] = True
    app.config["SECRET_KEY"] = "test-secret"
    app.config["DB_DIR"] = tmp_db_dir
    app.config["APP_DB"] = os.path.join(tmp_db_dir, "venuewifi.db")
    app.config["EMAIL_PROVIDER"] = "resend"
    app.config["STORAGE_PUBLIC_URL"] = "https://storage.test"
    app.config["UNIFI_SITE_NAME"] = ""
    app.config.update(overrides)
    VenueWifi(app)
    # Credentials from the developer's .env must never leak into a test run
    for key in ("RESEND_API_KEY", "SMTP2GO_API_KEY", "UNIFI_BASE_URL",
                "UNIFI_USERNAME", "UNIFI_PASSWORD"):
        if key not in overrides:
            app.config[key] = None
    with app.app_context():
        from venuewifi.modules.email import email_service
        email_service.init_app(app)
    return app


@pytest.fixture
def app(tmp_db_dir):
    """Fully initialised Flask app with every VenueWifi module registered."""
    url_cache.clear()
    app = make_app(tmp_db_dir)
    yield app
    url_cache.clear()


@pytest.fixture
def unifi_app(tmp_db_dir):
    """App with controller credentials configured."""
    url_cache.clear()
    return make_app(
        tmp_db_dir,
        UNIFI_BASE_URL="https://unifi.test:8443/",
        UNIFI_USERNAME="portal",
        UNIFI_PASSWORD="secret",
        UNIFI_TIMEOUT_MS=5000,
    )


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


def make_user_token(app, email, admin=False, role="admin"):
    """Issue a bearer token for email, optionally granting an admin profile."""
    from venuewifi.modules.auth.tokens import issue_token, grant_admin
    with app.app_context():
        issued = issue_token(email)
        if admin:
            grant_admin(issued["user_id"], email, created_by=issued["user_id"], role=role)
    return issued


@pytest.fixture
def admin(app):
    return make_user_token(app, "owner@batesford.test", admin=True)


def bearer(issued):
    return {"Authorization": f"Bearer {issued['token']}"}
