"""
Subscribers Module
==================

Provides:
- Public API for double opt-in newsletter subscriptions (subscribe, confirm, unsubscribe)
- Admin listing and stats
- SubscriptionWorkflow for use outside of HTTP handlers
"""

from flask import Blueprint

subscribers_bp = Blueprint(
    'subscribers',
    __name__,
    url_prefix='/subscribers'
)

from . import routes
from .errors import SubscriptionError, ConflictError
from .models import Subscriber, SubscriptionState
from .notifier import ConfirmationNotifier, NotifierConfigurationError
from .repository import SubscriberRepository
from .workflow import SubscriptionWorkflow

__all__ = [
    'subscribers_bp', 'SubscriptionError', 'ConflictError', 'Subscriber', 'SubscriptionState',
    'ConfirmationNotifier', 'NotifierConfigurationError', 'SubscriberRepository', 'SubscriptionWorkflow',
]
