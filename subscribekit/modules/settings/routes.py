"""
Settings Admin Routes
=====================

Admin JSON API for the settings store. Values saved here take precedence over
app.config and environment variables (captcha provider and secrets, cooldown,
token lifetime, sender addresses...).

- GET    /admin/settings/          -- all settings, secrets masked (?category=)
- GET    /admin/settings/<key>     -- one setting, masked
- POST   /admin/settings/          -- save {key, value, category, is_secret, description}
- DELETE /admin/settings/<key>     -- remove, falling back to config again
"""

import logging
from functools import wraps

from flask import request, session, jsonify

from . import settings_bp
from .database import get_all_settings, set_setting, delete_setting

logger = logging.getLogger(__name__)

# Always stored encrypted, whatever the request says
SECRET_KEYS = {
    'CLOUDFLARE_TURNSTILE_SECRET_KEY',
    'RECAPTCHA_SECRET_KEY',
    'RESEND_API_KEY',
    'EMAIL_PASSWORD',
}


def admin_required(f):
    """Decorator to require admin login"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'admin_id' not in session:
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function


@settings_bp.route('/', methods=['GET'])
@admin_required
def api_get_settings():
    """API endpoint to get all settings"""
    category = request.args.get('category')
    settings = get_all_settings(category=category, mask_secrets=True)
    return jsonify({'success': True, 'settings': settings})


@settings_bp.route('/<key>', methods=['GET'])
@admin_required
def api_get_setting(key):
    """API endpoint to get a single setting (masked)"""
    setting = next((s for s in get_all_settings(mask_secrets=True) if s['key'] == key), None)

    if setting:
        return jsonify({'success': True, 'setting': setting})
    return jsonify({'success': False, 'error': 'Setting not found'}), 404


@settings_bp.route('/', methods=['POST'])
@admin_required
def api_save_setting():
    """API endpoint to save a single setting"""
    data = request.get_json(silent=True)

    if not isinstance(data, dict) or not isinstance(data.get('key'), str) or not data['key'].strip():
        return jsonify({'success': False, 'error': 'Key is required'}), 400

    key = data['key'].strip()
    value = data.get('value')
    if value is not None and not isinstance(value, str):
        value = str(value)
    is_secret = key in SECRET_KEYS or bool(data.get('is_secret', False))

    # A masked value echoed back from GET must not overwrite the real secret
    if is_secret and value and value.startswith('*'):
        return jsonify({'success': False, 'error': 'Refusing to store a masked secret'}), 400

    try:
        set_setting(
            key,
            value or None,
            category=data.get('category') or 'general',
            is_secret=is_secret,
            description=data.get('description'),
        )
    except Exception as e:
        logger.error(f"Failed to save setting {key}: {e}")
        return jsonify({'success': False, 'error': 'Failed to save setting'}), 500

    return jsonify({'success': True, 'message': 'Setting saved'})


@settings_bp.route('/<key>', methods=['DELETE'])
@admin_required
def api_delete_setting(key):
    """API endpoint to delete a setting"""
    if delete_setting(key):
        logger.info(f"Setting {key} deleted")
        return jsonify({'success': True, 'message': 'Setting deleted'})
    return jsonify({'success': False, 'error': 'Setting not found'}), 404
