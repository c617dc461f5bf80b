"""
Subscriber Model
================

A single newsletter subscriber row and its subscription states.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Optional


class SubscriptionState(str, Enum):
    PENDING = 'pending'
    SUBSCRIBED = 'subscribed'
    UNSUBSCRIBED = 'unsubscribed'


@dataclass
class Subscriber:
    email: str
    subscription_state: SubscriptionState = SubscriptionState.PENDING
    confirmation_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    subscribed_at: Optional[datetime] = None
    confirmation_at: Optional[datetime] = None
    unsubscribed_at: Optional[datetime] = None
    name: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def display_name(self):
        """Name used in emails: explicit name, else the local part of the address"""
        return self.name or self.email.split('@')[0]

    def to_public_dict(self):
        """Serialisable view for admin endpoints (the confirmation token is never exposed)"""
        data = asdict(self)
        data.pop('confirmation_token')
        data['subscription_state'] = self.subscription_state.value
        for key, value in data.items():
            if isinstance(value, datetime):
                data[key] = value.isoformat()
        return data
