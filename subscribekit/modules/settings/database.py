"""
Settings Database with Encryption
=================================

Admin-managed key/value store for site settings, captcha secrets and email
templates. Secret values are encrypted at rest with Fernet (AES-128-CBC).
Lookups fall back to app.config / Config / environment when a key is not stored.
"""

import os
import base64
import hashlib
import logging
from datetime import datetime

from cryptography.fernet import Fernet, InvalidToken

from subscribekit.core import Database, get_config

logger = logging.getLogger(__name__)


def get_settings_db_path():
    """Get settings database path"""
    return get_config('SETTINGS_DB')


def get_encryption_key():
    """
    Derive encryption key from Flask SECRET_KEY.
    Returns a Fernet-compatible key (32 bytes, base64 encoded).
    """
    secret = get_config('SECRET_KEY') or os.environ.get('FLASK_SECRET_KEY', 'default-insecure-key')

    # Derive a 32-byte key using SHA256
    key_bytes = hashlib.sha256(secret.encode()).digest()
    return base64.urlsafe_b64encode(key_bytes)


def encrypt_value(value):
    """Encrypt a value using Fernet"""
    if not value:
        return value
    f = Fernet(get_encryption_key())
    return f.encrypt(value.encode()).decode()


def decrypt_value(encrypted_value):
    """Decrypt a value using Fernet"""
    if not encrypted_value:
        return encrypted_value

    try:
        f = Fernet(get_encryption_key())
        return f.decrypt(encrypted_value.encode()).decode()
    except InvalidToken:
        # Stored before encryption was enabled, or SECRET_KEY rotated
        logger.warning("Could not decrypt stored setting, returning raw value")
        return encrypted_value


def init_settings_db():
    """Initialize settings database"""
    db_path = Database.ensure_dir(get_settings_db_path())

    with Database.connect(db_path) as conn:
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS settings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                category TEXT NOT NULL,
                key TEXT NOT NULL UNIQUE,
                value TEXT,
                is_secret BOOLEAN DEFAULT 0,
                description TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_settings_category ON settings(category)')
        conn.commit()

    return db_path


def get_setting(key, default=None, decrypt=True):
    """
    Get a setting value by key.
    Falls back to app.config / environment variable if not in database.
    """
    db_path = get_settings_db_path()
    if not db_path or not os.path.exists(db_path):
        return get_config(key, default)

    try:
        with Database.connect(db_path) as conn:
            row = conn.execute(
                'SELECT value, is_secret FROM settings WHERE key = ?', (key,)
            ).fetchone()
    except Exception as e:
        logger.error(f"Error getting setting {key}: {e}")
        return get_config(key, default)

    if row and row['value']:
        value = row['value']
        if row['is_secret'] and decrypt:
            value = decrypt_value(value)
        return value

    return get_config(key, default)


def set_setting(key, value, category='general', is_secret=False, description=None):
    """Set a setting value"""
    db_path = init_settings_db()

    # Encrypt if secret
    stored_value = encrypt_value(value) if is_secret and value else value

    with Database.connect(db_path) as conn:
        conn.execute('''
            INSERT INTO settings (category, key, value, is_secret, description, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                category = excluded.category,
                is_secret = excluded.is_secret,
                description = COALESCE(excluded.description, settings.description),
                updated_at = excluded.updated_at
        ''', (category, key, stored_value, is_secret, description, datetime.now().isoformat()))
        conn.commit()

    logger.info(f"Setting {key} saved (category: {category})")
    return True


def delete_setting(key):
    """Delete a setting"""
    db_path = get_settings_db_path()
    if not db_path or not os.path.exists(db_path):
        return False

    with Database.connect(db_path) as conn:
        cursor = conn.execute('DELETE FROM settings WHERE key = ?', (key,))
        conn.commit()
        return cursor.rowcount > 0


def mask_secret(value):
    """Show only the last 4 characters of a secret"""
    if not value:
        return value
    if len(value) <= 4:
        return '****'
    return '*' * (len(value) - 4) + value[-4:]


def get_all_settings(category=None, mask_secrets=True):
    """
    Get all stored settings, optionally filtered by category.
    Secrets are decrypted and, by default, masked.
    """
    db_path = get_settings_db_path()
    if not db_path or not os.path.exists(db_path):
        return []

    query = 'SELECT id, category, key, value, is_secret, description, updated_at FROM settings'
    params = ()
    if category:
        query += ' WHERE category = ?'
        params = (category,)
    query += ' ORDER BY category, key'

    with Database.connect(db_path) as conn:
        rows = conn.execute(query, params).fetchall()

    settings = []
    for row in rows:
        value = row['value']
        if row['is_secret'] and value:
            value = decrypt_value(value)
            if mask_secrets:
                value = mask_secret(value)
        settings.append({
            'id': row['id'],
            'category': row['category'],
            'key': row['key'],
            'value': value,
            'is_secret': bool(row['is_secret']),
            'description': row['description'],
            'updated_at': row['updated_at'],
        })
    return settings
