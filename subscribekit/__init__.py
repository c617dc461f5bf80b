"""
subscribekit - Double opt-in newsletter subscriptions for Flask
===============================================================

A small set of Flask blueprint modules:
- Captcha-gated subscribe (Cloudflare Turnstile or Google reCAPTCHA)
- Email confirmation with expiring tokens and a resend cooldown
- Unsubscribe that never reveals whether an address is on the list
- Admin-editable confirmation email template

Usage:
    from flask import Flask
    from subscribekit import SubscribeKit

    app = Flask(__name__)
    SubscribeKit(app)
"""

__version__ = '0.1.0'

import logging
import os

from .core import Config, Database
from .modules.email import email_templates_bp, email_service as default_email_service
from .modules.email.templates import TemplateResolver
from .modules.captcha import ConfiguredCaptchaVerifier
from .modules.settings import settings_bp, init_settings_db, helpers
from .modules.subscribers import (
    subscribers_bp, SubscriberRepository, SubscriptionWorkflow, ConfirmationNotifier,
)
from .modules.subscribers.routes import configure_cors

logger = logging.getLogger(__name__)

# Database files created under DB_DIR when the host app doesn't set explicit paths
DB_FILES = {
    'USER_DB': 'users.db',
    'SETTINGS_DB': 'settings.db',
    'LOGS_DB': 'app_logs.db',
}


class SubscribeKit:
    """
    Flask extension that registers the subscription modules.

    Collaborators can be injected; anything left as None is built from config:
        captcha_verifier: object with verify(token, remote_ip=None) -> CaptchaResult
        mailer: object with send_email(to, subject, html_body, ...)
        template_store: object with get(name) -> Template or None
        now: zero-argument callable returning an aware UTC datetime
    """

    def __init__(self, app=None, captcha_verifier=None, mailer=None,
                 template_store=None, now=None, url_prefix=None):
        self.captcha_verifier = captcha_verifier
        self.mailer = mailer
        self.template_store = template_store
        self.now = now
        self.url_prefix = url_prefix
        self.repository = None
        self._registered = []

        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self._setup_database_paths(app)

        self.repository = SubscriberRepository(app.config['USER_DB'])
        self.repository.init_table()

        with app.app_context():
            init_settings_db()

        if self.mailer is None:
            default_email_service.init_app(app)
            self.mailer = default_email_service
            if not default_email_service.is_configured():
                logger.warning("Email service not configured - confirmation emails will fail")

        prefix = self.url_prefix or app.config.get('SUBSCRIBERS_URL_PREFIX')
        if prefix:
            app.register_blueprint(subscribers_bp, url_prefix=prefix)
        else:
            app.register_blueprint(subscribers_bp)
        app.register_blueprint(email_templates_bp)
        app.register_blueprint(settings_bp)
        self._registered = ['subscribers', 'email_templates', 'settings']

        configure_cors(app)

        app.extensions['subscribekit'] = self
        logger.info(f"subscribekit initialised (USER_DB: {app.config['USER_DB']})")

    def _setup_database_paths(self, app):
        """Fill in missing DB paths from DB_DIR and make sure the directories exist"""
        db_dir = app.config.get('DB_DIR') or Config.DB_DIR
        app.config['DB_DIR'] = db_dir
        for key, filename in DB_FILES.items():
            if not app.config.get(key):
                configured = os.getenv(key)
                app.config[key] = configured or os.path.join(db_dir, filename)
            Database.ensure_dir(app.config[key])

    def get_registered_modules(self):
        return list(self._registered)

    def build_workflow(self):
        """
        Assemble a SubscriptionWorkflow from the current settings.
        Called per request so admin changes to settings apply immediately.
        """
        token_expires_days = helpers.get_token_expires_days()
        resolver = TemplateResolver(
            store=self.template_store,
            default_sender=helpers.get_email_from(),
            default_reply_to=helpers.get_email_reply_to(),
        )
        notifier = ConfirmationNotifier(
            mailer=self.mailer,
            resolver=resolver,
            frontend_url=helpers.get_frontend_url(),
            token_expires_days=token_expires_days,
        )
        return SubscriptionWorkflow(
            repository=self.repository,
            captcha_verifier=self.captcha_verifier or ConfiguredCaptchaVerifier(),
            notifier=notifier,
            cooldown_minutes=helpers.get_cooldown_minutes(),
            token_expires_days=token_expires_days,
            now=self.now,
        )


__all__ = ['SubscribeKit', 'SubscriptionWorkflow']
