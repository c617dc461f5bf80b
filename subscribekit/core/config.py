import os
from dotenv import load_dotenv

load_dotenv(override=True)

class Config:
    """
    Base configuration for subscribekit.
    Projects should provide secrets and database paths via environment variables.
    """
    # Get DB_DIR from environment, or use a default if not set
    DB_DIR = os.getenv('DB_DIR', os.path.join(os.getcwd(), 'databases'))

    # Database paths - use environment variables or fallback to DB_DIR
    USER_DB = os.getenv('USER_DB', os.path.join(DB_DIR, "users.db"))
    SETTINGS_DB = os.getenv('SETTINGS_DB', os.path.join(DB_DIR, "settings.db"))
    LOGS_DB = os.getenv('LOGS_DB', os.path.join(DB_DIR, "app_logs.db"))

    # Table names
    SUBSCRIBERS = "subscribers"

    # Captcha settings
    # Provider is 'turnstile' (Cloudflare) or 'recaptcha' (Google, v2 or v3)
    CAPTCHA_PROVIDER = os.getenv('CAPTCHA_PROVIDER', 'turnstile')
    CLOUDFLARE_TURNSTILE_SECRET_KEY = os.getenv('CLOUDFLARE_TURNSTILE_SECRET_KEY')
    RECAPTCHA_SECRET_KEY = os.getenv('RECAPTCHA_SECRET_KEY')
    RECAPTCHA_MIN_SCORE = float(os.getenv('RECAPTCHA_MIN_SCORE', '0.5'))
    CAPTCHA_TIMEOUT = int(os.getenv('CAPTCHA_TIMEOUT', '10'))

    # Subscription workflow
    SUBSCRIBE_COOLDOWN_MINUTES = int(os.getenv('SUBSCRIBE_COOLDOWN_MINUTES', '5'))
    CONFIRMATION_TOKEN_EXPIRES_DAYS = int(os.getenv('CONFIRMATION_TOKEN_EXPIRES_DAYS', '7'))
    FRONTEND_URL = os.getenv('FRONTEND_URL')

    # Email settings
    EMAIL_PROVIDER = os.getenv('EMAIL_PROVIDER', 'resend')
    EMAIL_FROM = os.getenv('EMAIL_FROM')
    EMAIL_REPLY_TO = os.getenv('EMAIL_REPLY_TO')
    EMAIL_HOST = os.getenv("EMAIL_HOST", "smtp.gmail.com")
    EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
    EMAIL_PASSWORD = os.getenv("EMAIL_PASSWORD")
    AWS_REGION = os.getenv('AWS_REGION', 'eu-west-1')

    # Resend API settings (free tier: 3,000 emails/month)
    RESEND_API_KEY = os.getenv('RESEND_API_KEY') or os.getenv('RESEND')


def get_config(key, default=None):
    """Get config value: app.config > Config class > env var."""
    try:
        from flask import current_app
        val = current_app.config.get(key)
        if val is not None and val != '':
            return val
    except RuntimeError:
        # Outside of app context
        pass
    val = getattr(Config, key, None)
    if val is not None:
        return val
    return os.getenv(key, default)
