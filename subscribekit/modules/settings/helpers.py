"""
Settings Helpers
================

Convenient functions for accessing settings throughout the application.
These automatically fall back to app config / environment variables if
settings aren't in the database.
"""

import logging

from .database import get_setting

logger = logging.getLogger(__name__)


def _number_setting(key, default, cast):
    """Numeric setting; a value that does not parse logs a warning and yields the default"""
    value = get_setting(key, default)
    try:
        return cast(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid {key} setting {value!r}, using {default}")
        return default


# ============================================
# Captcha Settings
# ============================================

def get_captcha_provider():
    """Get captcha provider ('turnstile' or 'recaptcha')"""
    return (get_setting('CAPTCHA_PROVIDER', 'turnstile') or 'turnstile').lower()


def get_captcha_secret_key():
    """Get the secret key for the active captcha provider"""
    if get_captcha_provider() == 'recaptcha':
        return get_setting('RECAPTCHA_SECRET_KEY')
    return get_setting('CLOUDFLARE_TURNSTILE_SECRET_KEY')


def get_recaptcha_min_score():
    """Minimum reCAPTCHA v3 score accepted as human"""
    return _number_setting('RECAPTCHA_MIN_SCORE', 0.5, float)


def get_captcha_timeout():
    return _number_setting('CAPTCHA_TIMEOUT', 10, int)


# ============================================
# Subscription Settings
# ============================================

def get_cooldown_minutes():
    """Minutes a pending subscriber must wait before a new confirmation email"""
    return _number_setting('SUBSCRIBE_COOLDOWN_MINUTES', 5, int)


def get_token_expires_days():
    """Days a confirmation token stays valid"""
    return _number_setting('CONFIRMATION_TOKEN_EXPIRES_DAYS', 7, int)


def get_frontend_url():
    """Get the public site URL that hosts the confirmation/unsubscribe pages"""
    url = get_setting('FRONTEND_URL')
    return url.rstrip('/') if url else url


# ============================================
# Email Settings
# ============================================

def get_email_from():
    """Get from email address"""
    return get_setting('EMAIL_FROM') or get_setting('EMAIL_ADDRESS')


def get_email_reply_to():
    """Get reply-to email address"""
    return get_setting('EMAIL_REPLY_TO') or get_email_from()
