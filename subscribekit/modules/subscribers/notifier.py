"""
Confirmation Notifier
=====================

Builds the double-opt-in email for a subscriber and hands it to the mailer.
"""

import logging
from urllib.parse import quote

from subscribekit.core import db_log

logger = logging.getLogger(__name__)


class NotifierConfigurationError(Exception):
    """FRONTEND_URL is required to build confirmation links"""


class ConfirmationNotifier:
    """
    Args:
        mailer: object with send_email(to, subject, html_body, text_body, sender, reply_to, email_type)
        resolver: TemplateResolver used to render the 'confirmation' template
        frontend_url: public site URL hosting the confirmation/unsubscribe pages
        token_expires_days: shown to the reader as the link lifetime
    """

    def __init__(self, mailer, resolver, frontend_url, token_expires_days):
        self.mailer = mailer
        self.resolver = resolver
        self.frontend_url = frontend_url.rstrip('/') if frontend_url else frontend_url
        self.token_expires_days = token_expires_days

    def confirmation_link(self, token):
        return f"{self.frontend_url}/subscribers/confirmation?token={token}"

    def unsubscribe_link(self, email):
        return f"{self.frontend_url}/subscribers/unsubscribe?email={quote(email, safe='')}"

    def send_confirmation(self, subscriber):
        """Render and send the confirmation email. Delivery errors are logged and re-raised."""
        if not self.frontend_url:
            logger.error("FRONTEND_URL is not set in the environment variables.")
            raise NotifierConfigurationError("FRONTEND_URL is not configured")

        rendered = self.resolver.render('confirmation', {
            'USER': subscriber.display_name,
            'EMAIL': subscriber.email,
            'URL': self.confirmation_link(subscriber.confirmation_token),
            'UNSUBSCRIBE_URL': self.unsubscribe_link(subscriber.email),
            'DAYS': self.token_expires_days,
        })

        try:
            self.mailer.send_email(
                to=subscriber.email,
                subject=rendered.subject,
                html_body=rendered.html,
                text_body=rendered.text,
                sender=rendered.sender,
                reply_to=rendered.reply_to,
                email_type='subscription_confirmation',
            )
        except Exception as e:
            logger.error(f"Failed to send confirmation email to {subscriber.email}: {e}")
            db_log('error', 'subscribers', f'Failed to send confirmation email to {subscriber.email}',
                   {'error': str(e)})
            raise

        logger.info(f"Confirmation email sent to {subscriber.email}")
