"""
Email Template Routes
=====================

Admin JSON API for the editable email templates.

- GET /admin/email-templates/<name>          -- stored template (or the built-in fallback)
- PUT /admin/email-templates/<name>          -- save a template
- GET /admin/email-templates/<name>/preview  -- render with sample values
"""

import logging
from functools import wraps

from flask import jsonify, request, session

from . import email_templates_bp
from .templates import (
    FALLBACK_TEMPLATES, Template, TemplateResolver, TemplateStore, UnknownTemplateError,
)
from subscribekit.modules.settings import helpers

logger = logging.getLogger(__name__)

PREVIEW_VARIABLES = {
    'USER': 'Jane',
    'EMAIL': 'jane@example.com',
    'URL': 'https://example.com/subscribers/confirmation?token=preview',
    'UNSUBSCRIBE_URL': 'https://example.com/subscribers/unsubscribe?email=jane%40example.com',
}


def require_admin(f):
    """Decorator to require admin login"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'admin_id' not in session:
            return jsonify({'error': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function


@email_templates_bp.route('/<name>', methods=['GET'])
@require_admin
def get_template(name):
    """Return the stored template, flagging when the fallback is in use"""
    try:
        stored = TemplateStore().get(name)
    except UnknownTemplateError:
        return jsonify({'error': f'Unknown template: {name}'}), 404
    except ValueError as e:
        logger.error(f"Stored template {name} is unreadable: {e}")
        stored = None

    template = stored or FALLBACK_TEMPLATES[name]
    return jsonify({
        'name': name,
        'is_default': stored is None,
        'template': template.to_dict(),
    }), 200


@email_templates_bp.route('/<name>', methods=['PUT'])
@require_admin
def update_template(name):
    """Save a template to the settings store"""
    data = request.get_json(silent=True)
    try:
        template = Template.from_dict(data)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    try:
        TemplateStore().save(name, template)
    except UnknownTemplateError:
        return jsonify({'error': f'Unknown template: {name}'}), 404
    except Exception as e:
        logger.error(f"Failed to update email template {name}: {e}")
        return jsonify({'error': 'Failed to save template'}), 500

    return jsonify({'message': 'Template saved', 'template': template.to_dict()}), 200


@email_templates_bp.route('/<name>/preview', methods=['GET'])
@require_admin
def preview_template(name):
    """Render the template with sample values"""
    resolver = TemplateResolver(
        default_sender=helpers.get_email_from(),
        default_reply_to=helpers.get_email_reply_to(),
    )
    variables = dict(PREVIEW_VARIABLES, DAYS=helpers.get_token_expires_days())
    try:
        rendered = resolver.render(name, variables)
    except UnknownTemplateError:
        return jsonify({'error': f'Unknown template: {name}'}), 404

    if request.args.get('format') == 'html':
        return rendered.html, 200, {'Content-Type': 'text/html; charset=utf-8'}
    return jsonify(rendered.to_dict()), 200
