"""
Settings Module
===============

Admin-managed key/value store for site settings, captcha secrets and email
templates. Secret settings are encrypted at rest.
"""

from flask import Blueprint

settings_bp = Blueprint(
    'settings',
    __name__,
    url_prefix='/admin/settings'
)

from . import routes
from .database import get_setting, set_setting, delete_setting, get_all_settings, init_settings_db

__all__ = [
    'settings_bp', 'get_setting', 'set_setting', 'delete_setting', 'get_all_settings', 'init_settings_db',
]
