"""
Email Module
============

Provides email sending (Resend, Amazon SES or SMTP) and the admin-editable
templates used by the subscription emails.
"""

from flask import Blueprint

email_templates_bp = Blueprint(
    'email_templates',
    __name__,
    url_prefix='/admin/email-templates'
)

from . import routes
from .email_service import EmailService, EmailDeliveryError, email_service
from .templates import Template, RenderedEmail, TemplateStore, TemplateResolver, UnknownTemplateError

__all__ = [
    'email_templates_bp', 'EmailService', 'EmailDeliveryError', 'email_service',
    'Template', 'RenderedEmail', 'TemplateStore', 'TemplateResolver', 'UnknownTemplateError',
]
