import secrets
from datetime import datetime, timedelta, timezone


def generate_token():
    """64 hex chars (32 random bytes) for the confirmation link"""
    return secrets.token_hex(32)


def token_expiry(days, now=None):
    """Expiry timestamp `days` after now (UTC)"""
    now = now or datetime.now(timezone.utc)
    return now + timedelta(days=days)
