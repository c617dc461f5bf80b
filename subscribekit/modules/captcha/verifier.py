"""
Captcha Verifier
================

Server-side verification of human-check tokens issued by the browser widget.
Two providers are supported and selected via CAPTCHA_PROVIDER:

- 'turnstile' -- Cloudflare Turnstile
- 'recaptcha' -- Google reCAPTCHA (v2 checkbox or v3 score-based)

A provider saying "no" is a CaptchaResult with success=False. A provider that
cannot be reached, or whose reply cannot be read, raises CaptchaVerifyError.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import requests

logger = logging.getLogger(__name__)

TURNSTILE_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
RECAPTCHA_VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"


class CaptchaVerifyError(Exception):
    """The verification endpoint could not be reached or returned garbage"""


class CaptchaConfigurationError(Exception):
    """No secret key configured for the selected provider"""


@dataclass
class CaptchaResult:
    success: bool
    score: Optional[float] = None
    error_codes: List[str] = field(default_factory=list)
    hostname: Optional[str] = None


class CaptchaVerifier:
    """Base class: POSTs the token to the provider's siteverify endpoint."""

    name = 'captcha'
    verify_url = None

    def __init__(self, secret_key, timeout=10):
        self.secret_key = secret_key
        self.timeout = timeout

    def verify(self, token: str, remote_ip: Optional[str] = None) -> CaptchaResult:
        """
        Verify a client token with the provider.

        Args:
            token: The response token produced by the browser widget
            remote_ip: Optional end-user IP, forwarded to the provider

        Returns:
            CaptchaResult

        Raises:
            CaptchaConfigurationError: no secret key configured
            CaptchaVerifyError: network failure, HTTP error or unparseable reply
        """
        if not self.secret_key:
            logger.error(f"{self.name} secret key is not configured")
            raise CaptchaConfigurationError(f"{self.name} secret key is not configured")

        form = {'secret': self.secret_key, 'response': token}
        if remote_ip:
            form['remoteip'] = remote_ip

        try:
            resp = requests.post(self.verify_url, data=form, timeout=self.timeout)
            resp.raise_for_status()
            outcome = resp.json()
        except requests.RequestException as e:
            logger.error(f"Error verifying captcha with {self.name}: {e}")
            raise CaptchaVerifyError(f"{self.name} verification request failed: {e}") from e
        except ValueError as e:
            logger.error(f"Unreadable {self.name} verification response: {e}")
            raise CaptchaVerifyError(f"{self.name} returned a non-JSON response") from e

        if not isinstance(outcome, dict) or 'success' not in outcome:
            raise CaptchaVerifyError(f"{self.name} response is missing the success flag")

        result = self._parse(outcome)
        if not result.success:
            logger.warning(f"Captcha verification failed ({self.name}): {result.error_codes}")
        return result

    def _parse(self, outcome):
        return CaptchaResult(
            success=bool(outcome.get('success')),
            error_codes=list(outcome.get('error-codes') or []),
            hostname=outcome.get('hostname'),
        )


class TurnstileVerifier(CaptchaVerifier):
    """Cloudflare Turnstile"""

    name = 'turnstile'
    verify_url = TURNSTILE_VERIFY_URL


class RecaptchaVerifier(CaptchaVerifier):
    """Google reCAPTCHA. v3 replies carry a score that must reach min_score."""

    name = 'recaptcha'
    verify_url = RECAPTCHA_VERIFY_URL

    def __init__(self, secret_key, min_score=0.5, timeout=10):
        super().__init__(secret_key, timeout=timeout)
        self.min_score = min_score

    def _parse(self, outcome):
        result = super()._parse(outcome)

        score = outcome.get('score')
        if score is None:
            # v2 checkbox: no score, success flag is the whole answer
            return result

        try:
            result.score = float(score)
        except (TypeError, ValueError) as e:
            raise CaptchaVerifyError(f"recaptcha returned an invalid score: {score!r}") from e

        if result.success and result.score < self.min_score:
            logger.info(f"reCAPTCHA score {result.score} below minimum {self.min_score}")
            result.success = False
            result.error_codes.append('score-too-low')
        return result


PROVIDERS = {
    'turnstile': TurnstileVerifier,
    'recaptcha': RecaptchaVerifier,
}


def get_captcha_verifier(provider=None):
    """Build the verifier for the configured provider (settings DB > app.config > env)"""
    from subscribekit.modules.settings import helpers

    provider = (provider or helpers.get_captcha_provider()).lower()
    if provider not in PROVIDERS:
        raise CaptchaConfigurationError(f"Unknown captcha provider: {provider}")

    secret_key = helpers.get_captcha_secret_key()
    timeout = helpers.get_captcha_timeout()

    if provider == 'recaptcha':
        return RecaptchaVerifier(secret_key, min_score=helpers.get_recaptcha_min_score(), timeout=timeout)
    return TurnstileVerifier(secret_key, timeout=timeout)


class ConfiguredCaptchaVerifier:
    """
    Picks the provider from settings when verify() is called, so a workflow
    can be built for confirm/unsubscribe without touching captcha settings.
    """

    def verify(self, token, remote_ip=None):
        return get_captcha_verifier().verify(token, remote_ip=remote_ip)
