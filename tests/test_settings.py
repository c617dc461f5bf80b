"""
Settings tests: the admin settings API, secrets encrypted at rest, and the
numeric helpers falling back to defaults on unparseable values.
"""

from unittest.mock import patch

import pytest

from subscribekit import SubscribeKit
from subscribekit.modules.settings import get_setting, set_setting, helpers
from subscribekit.modules.settings.database import mask_secret


@pytest.fixture
def recaptcha_app(app_factory, mailer, clock):
    """App that picks its captcha verifier from settings (nothing injected)."""
    app = app_factory(CAPTCHA_PROVIDER="recaptcha", RECAPTCHA_SECRET_KEY="config-secret")
    SubscribeKit(app, mailer=mailer, now=clock)
    return app


@pytest.fixture
def recaptcha_admin(recaptcha_app):
    client = recaptcha_app.test_client()
    with client.session_transaction() as sess:
        sess["admin_id"] = 1
    return client


def test_mask_secret():
    assert mask_secret("abcd") == "****"
    assert mask_secret("rc-live-secret") == "**********cret"
    assert mask_secret("") == ""


# ---------------------------------------------------------------------------
# Admin API
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("method, path", [
    ("get", "/admin/settings/"),
    ("get", "/admin/settings/RECAPTCHA_SECRET_KEY"),
    ("post", "/admin/settings/"),
    ("delete", "/admin/settings/RECAPTCHA_SECRET_KEY"),
])
def test_settings_api_requires_login(client, method, path):
    resp = getattr(client, method)(path, json={"key": "RECAPTCHA_SECRET_KEY", "value": "x"})

    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Authentication required"


def test_secret_is_encrypted_at_rest_and_masked(app, admin_client):
    resp = admin_client.post("/admin/settings/", json={
        "key": "RECAPTCHA_SECRET_KEY", "value": "rc-live-secret", "category": "captcha",
    })
    assert resp.status_code == 200

    with app.app_context():
        stored = get_setting("RECAPTCHA_SECRET_KEY", decrypt=False)
        assert stored != "rc-live-secret"
        assert get_setting("RECAPTCHA_SECRET_KEY") == "rc-live-secret"

    setting = admin_client.get("/admin/settings/RECAPTCHA_SECRET_KEY").get_json()["setting"]
    assert setting["is_secret"] is True
    assert setting["value"] == "**********cret"
    assert setting["category"] == "captcha"


def test_masked_value_does_not_overwrite_secret(app, admin_client):
    admin_client.post("/admin/settings/", json={"key": "RESEND_API_KEY", "value": "re_live_1234"})

    resp = admin_client.post("/admin/settings/", json={"key": "RESEND_API_KEY", "value": "********1234"})

    assert resp.status_code == 400
    with app.app_context():
        assert get_setting("RESEND_API_KEY") == "re_live_1234"


def test_save_requires_key(admin_client):
    assert admin_client.post("/admin/settings/", json={"value": "x"}).status_code == 400
    assert admin_client.post("/admin/settings/", json={"key": "  "}).status_code == 400


def test_list_settings_by_category(admin_client):
    admin_client.post("/admin/settings/", json={"key": "SUBSCRIBE_COOLDOWN_MINUTES", "value": 10,
                                                 "category": "subscriptions"})
    admin_client.post("/admin/settings/", json={"key": "CAPTCHA_PROVIDER", "value": "turnstile",
                                                 "category": "captcha"})

    settings = admin_client.get("/admin/settings/?category=subscriptions").get_json()["settings"]

    assert [(s["key"], s["value"], s["is_secret"]) for s in settings] == [
        ("SUBSCRIBE_COOLDOWN_MINUTES", "10", False),
    ]


def test_unknown_setting_404(admin_client):
    assert admin_client.get("/admin/settings/NOPE").status_code == 404
    assert admin_client.delete("/admin/settings/NOPE").status_code == 404


def test_delete_falls_back_to_config(app, admin_client):
    admin_client.post("/admin/settings/", json={"key": "FRONTEND_URL", "value": "https://other.example.com"})
    with app.app_context():
        assert helpers.get_frontend_url() == "https://other.example.com"

    resp = admin_client.delete("/admin/settings/FRONTEND_URL")

    assert resp.status_code == 200
    with app.app_context():
        assert helpers.get_frontend_url() == "https://news.example.com"


def test_subscribe_verifies_with_stored_secret(recaptcha_app, recaptcha_admin):
    recaptcha_admin.post("/admin/settings/", json={"key": "RECAPTCHA_SECRET_KEY", "value": "rc-live-secret"})

    with patch("subscribekit.modules.captcha.verifier.requests.post") as mock_post:
        mock_post.return_value.json.return_value = {"success": True, "score": 0.9}
        resp = recaptcha_app.test_client().post(
            "/subscribers/subscribe", json={"email": "reader@example.com", "captchaToken": "x"}
        )

    assert resp.status_code == 200
    assert mock_post.call_args.kwargs["data"]["secret"] == "rc-live-secret"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def test_unparseable_numbers_fall_back_to_defaults(app_factory):
    app = app_factory(RECAPTCHA_MIN_SCORE="high", CAPTCHA_TIMEOUT="soon")
    with app.app_context():
        assert helpers.get_recaptcha_min_score() == 0.5
        assert helpers.get_captcha_timeout() == 10


def test_stored_numbers_override_config(app):
    with app.app_context():
        set_setting("SUBSCRIBE_COOLDOWN_MINUTES", "15", category="subscriptions")
        set_setting("CONFIRMATION_TOKEN_EXPIRES_DAYS", "a week", category="subscriptions")

        assert helpers.get_cooldown_minutes() == 15
        assert helpers.get_token_expires_days() == 7
