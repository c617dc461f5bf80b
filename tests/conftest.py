"""
Shared fixtures for the subscribekit test suite.

NOTE: pytest is listed under extras_require["dev"] in setup.py.
Install with: pip install -e ".[dev]"
"""

import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

# Keep anything that runs outside an app context (Config defaults) out of the repo
_SESSION_DB_DIR = tempfile.mkdtemp(prefix="subscribekit-session-")
os.environ["DB_DIR"] = _SESSION_DB_DIR
for _key in ("USER_DB", "SETTINGS_DB", "LOGS_DB"):
    os.environ.pop(_key, None)

import pytest
from flask import Flask

from subscribekit import SubscribeKit
from subscribekit.modules.captcha import CaptchaResult
from subscribekit.modules.subscribers import SubscriberRepository


class FakeClock:
    """Callable clock the workflow reads instead of the wall clock"""

    def __init__(self, start):
        self.current = start

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(_SESSION_DB_DIR, ignore_errors=True)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_db_dir():
    """Create a temporary directory for test databases, cleaned up after."""
    d = tempfile.mkdtemp(prefix="subscribekit-test-")
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def captcha():
    """Captcha verifier that passes by default"""
    verifier = MagicMock()
    verifier.verify.return_value = CaptchaResult(success=True)
    return verifier


@pytest.fixture
def mailer():
    return MagicMock()


@pytest.fixture
def repository(tmp_db_dir):
    repo = SubscriberRepository(os.path.join(tmp_db_dir, "users.db"))
    repo.init_table()
    return repo


def make_app(tmp_db_dir, **config):
    app = Flask(__name__)
    app.config["TESTING"] = True
    app.config["SECRET_KEY"] = "test-secret"
    app.config["DB_DIR"] = tmp_db_dir
    app.config["USER_DB"] = os.path.join(tmp_db_dir, "users.db")
    app.config["SETTINGS_DB"] = os.path.join(tmp_db_dir, "settings.db")
    app.config["LOGS_DB"] = os.path.join(tmp_db_dir, "logs.db")
    app.config["FRONTEND_URL"] = "https://news.example.com"
    app.config["EMAIL_FROM"] = "noreply@example.com"
    app.config["EMAIL_REPLY_TO"] = "hello@example.com"
    app.config["SUBSCRIBE_COOLDOWN_MINUTES"] = 5
    app.config["CONFIRMATION_TOKEN_EXPIRES_DAYS"] = 7
    app.config.update(config)
    return app


@pytest.fixture
def app_factory(tmp_db_dir):
    """Build a bare configured Flask app; tests register SubscribeKit themselves."""
    def factory(**config):
        return make_app(tmp_db_dir, **config)
    return factory


@pytest.fixture
def app(tmp_db_dir, captcha, mailer, clock):
    """Flask app with SubscribeKit registered and fake captcha/mail collaborators."""
    app = make_app(tmp_db_dir)
    SubscribeKit(app, captcha_verifier=captcha, mailer=mailer, now=clock)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(app):
    client = app.test_client()
    with client.session_transaction() as sess:
        sess["admin_id"] = 1
    return client
