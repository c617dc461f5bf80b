"""
Subscription Errors
===================

Coded errors returned to API clients as {"error": ..., "errorCode": ...}.
"""

EMAIL_REQUIRED = 'EMAIL_REQUIRED'
EMAIL_INVALID = 'EMAIL_INVALID'
CAPTCHA_REQUIRED = 'CAPTCHA_REQUIRED'
CAPTCHA_INVALID = 'CAPTCHA_INVALID'
CAPTCHA_VERIFY_ERROR = 'CAPTCHA_VERIFY_ERROR'
EMAIL_ALREADY_SUBSCRIBED = 'EMAIL_ALREADY_SUBSCRIBED'
PENDING_SUBSCRIPTION_COOL_DOWN = 'PENDING_SUBSCRIPTION_COOL_DOWN'
TOKEN_MISSING = 'TOKEN_MISSING'
TOKEN_INVALID = 'TOKEN_INVALID'
TOKEN_EXPIRED = 'TOKEN_EXPIRED'


class SubscriptionError(Exception):
    """A client-visible failure with a stable error code"""

    def __init__(self, code, message, status_code=400):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code

    def to_dict(self):
        return {'error': self.message, 'errorCode': self.code}


class ConflictError(Exception):
    """Raised by the data layer when a unique constraint rejects a write"""
