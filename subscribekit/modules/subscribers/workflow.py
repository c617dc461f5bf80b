"""
Subscription Workflow
=====================

Double opt-in orchestration: subscribe (captcha-gated, cooldown-limited),
confirm by emailed token, unsubscribe.

All collaborators are injected so the workflow can run against any storage,
captcha provider or mail transport:

    workflow = SubscriptionWorkflow(
        repository=SubscriberRepository(db_path),
        captcha_verifier=TurnstileVerifier(secret),
        notifier=ConfirmationNotifier(email_service, TemplateResolver(), frontend_url, 7),
    )
"""

import logging
import re
from datetime import datetime, timedelta, timezone

from subscribekit.core import db_log
from subscribekit.modules.captcha import CaptchaVerifyError
from . import errors
from .errors import SubscriptionError, ConflictError
from .models import Subscriber, SubscriptionState
from .tokens import generate_token, token_expiry

logger = logging.getLogger(__name__)

# Rejects consecutive dots, leading/trailing dots
EMAIL_REGEX = re.compile(r'^[a-zA-Z0-9_%+-]+(\.[a-zA-Z0-9_%+-]+)*@[a-zA-Z0-9-]+(\.[a-zA-Z0-9-]+)*\.[a-zA-Z]{2,}$')

SUBSCRIBE_MESSAGE = 'Subscription request received. Please check your email to confirm.'
CONFIRM_MESSAGE = 'Your subscription has been confirmed. Thank you!'
UNSUBSCRIBE_MESSAGE = 'If this email exists in our system, it has been unsubscribed.'


def normalize_email(email):
    """Trim and lowercase. Non-string input is returned as-is for validate_email to reject."""
    if not isinstance(email, str):
        return email or ''
    return email.strip().lower()


def validate_email(email):
    """Validate email format"""
    if not isinstance(email, str) or not email or len(email) > 255:
        return False
    return EMAIL_REGEX.match(email) is not None


def _utcnow():
    return datetime.now(timezone.utc)


class SubscriptionWorkflow:

    def __init__(self, repository, captcha_verifier, notifier,
                 cooldown_minutes=5, token_expires_days=7, now=None):
        self.repository = repository
        self.captcha_verifier = captcha_verifier
        self.notifier = notifier
        self.cooldown_minutes = cooldown_minutes
        self.token_expires_days = token_expires_days
        self._now = now or _utcnow

    # ------------------------------------------------------------------
    # subscribe
    # ------------------------------------------------------------------

    def subscribe(self, email, captcha_token, remote_ip=None, name=None):
        """
        Start (or restart) the double opt-in cycle for an email address.

        Returns:
            dict: {'message': ...}

        Raises:
            SubscriptionError: for every client-visible rejection
            Exception: template/mail failures propagate after the row is saved
        """
        email = normalize_email(email)
        if not email:
            raise SubscriptionError(errors.EMAIL_REQUIRED, 'Email is required.')
        if not captcha_token:
            raise SubscriptionError(errors.CAPTCHA_REQUIRED, 'Captcha validation is required.')
        if not validate_email(email):
            raise SubscriptionError(errors.EMAIL_INVALID, 'Please enter a valid email address.')

        self._verify_captcha(captcha_token, remote_ip)

        now = self._now()
        existing = self.repository.find_by_email(email)

        if existing and existing.subscription_state == SubscriptionState.SUBSCRIBED:
            raise SubscriptionError(errors.EMAIL_ALREADY_SUBSCRIBED, 'This email is already subscribed.')

        if existing and existing.subscription_state == SubscriptionState.PENDING:
            cooldown_ends = existing.updated_at + timedelta(minutes=self.cooldown_minutes)
            if now < cooldown_ends:
                raise SubscriptionError(
                    errors.PENDING_SUBSCRIPTION_COOL_DOWN,
                    f'Please wait {self.cooldown_minutes} minutes before trying again.'
                )

        fields = {
            'subscription_state': SubscriptionState.PENDING,
            'confirmation_token': generate_token(),
            'token_expires_at': token_expiry(self.token_expires_days, now),
            'subscribed_at': now,
            'confirmation_at': None,
            'unsubscribed_at': None,
        }
        if name:
            fields['name'] = name

        try:
            if existing:
                subscriber = self.repository.update(existing.id, fields, now)
            else:
                subscriber = self.repository.create(Subscriber(email=email, **fields), now)
        except ConflictError:
            logger.warning(f"Concurrent subscribe detected for {email}")
            raise SubscriptionError(
                errors.EMAIL_ALREADY_SUBSCRIBED,
                'This email is already subscribed or pending confirmation.'
            )

        action = 'Re-issued confirmation token' if existing else 'New pending subscriber'
        logger.info(f"{action}: {email}")
        db_log('info', 'subscribers', f'{action}: {email}', {'remote_ip': remote_ip})

        self.notifier.send_confirmation(subscriber)

        return {'message': SUBSCRIBE_MESSAGE}

    def _verify_captcha(self, captcha_token, remote_ip):
        try:
            result = self.captcha_verifier.verify(captcha_token, remote_ip=remote_ip)
        except CaptchaVerifyError as e:
            db_log('error', 'captcha', 'Error verifying captcha', {'error': str(e)})
            raise SubscriptionError(errors.CAPTCHA_VERIFY_ERROR, 'Could not verify captcha.', status_code=500)

        if not result.success:
            db_log('warning', 'captcha', 'Captcha verification failed',
                   {'error_codes': result.error_codes, 'score': result.score, 'remote_ip': remote_ip})
            raise SubscriptionError(errors.CAPTCHA_INVALID, 'Invalid captcha.')

    # ------------------------------------------------------------------
    # confirm
    # ------------------------------------------------------------------

    def confirm(self, token):
        """Consume a confirmation token and activate the subscription"""
        if not token:
            raise SubscriptionError(errors.TOKEN_MISSING, 'Confirmation token is missing.')

        subscriber = self.repository.find_by_token(token)
        if subscriber is None:
            raise SubscriptionError(errors.TOKEN_INVALID, 'Invalid confirmation token.')

        now = self._now()
        if subscriber.token_expires_at is not None and subscriber.token_expires_at < now:
            raise SubscriptionError(errors.TOKEN_EXPIRED, 'Confirmation token has expired.')

        if not self.repository.mark_subscribed(subscriber.id, token, now):
            # Consumed by a concurrent confirm between the lookup and the update
            raise SubscriptionError(errors.TOKEN_INVALID, 'Invalid confirmation token.')

        logger.info(f"Subscription confirmed: {subscriber.email}")
        db_log('info', 'subscribers', f'Subscription confirmed: {subscriber.email}')
        return {'message': CONFIRM_MESSAGE}

    # ------------------------------------------------------------------
    # unsubscribe
    # ------------------------------------------------------------------

    def unsubscribe(self, email):
        """
        Unsubscribe an address. Unknown addresses get the same answer as known
        ones so the endpoint cannot reveal who is on the list.
        """
        email = normalize_email(email)
        if not email:
            raise SubscriptionError(errors.EMAIL_REQUIRED, 'Email is required to unsubscribe.')
        if not isinstance(email, str):
            raise SubscriptionError(errors.EMAIL_INVALID, 'Please enter a valid email address.')

        subscriber = self.repository.find_by_email(email)
        if subscriber is None:
            return {'message': UNSUBSCRIBE_MESSAGE}

        if subscriber.subscription_state in (SubscriptionState.PENDING, SubscriptionState.SUBSCRIBED):
            self.repository.mark_unsubscribed(subscriber.id, self._now())
            logger.info(f"Unsubscribed: {email}")
            db_log('info', 'subscribers', f'Unsubscribed: {email}')

        return {'message': UNSUBSCRIBE_MESSAGE}
