"""
Captcha Module
==============

Provides Cloudflare Turnstile and Google reCAPTCHA server-side verification.
"""

from .verifier import (
    CaptchaVerifier,
    ConfiguredCaptchaVerifier,
    TurnstileVerifier,
    RecaptchaVerifier,
    CaptchaResult,
    CaptchaVerifyError,
    CaptchaConfigurationError,
    get_captcha_verifier,
)

__all__ = [
    'CaptchaVerifier', 'ConfiguredCaptchaVerifier', 'TurnstileVerifier', 'RecaptchaVerifier',
    'CaptchaResult', 'CaptchaVerifyError', 'CaptchaConfigurationError', 'get_captcha_verifier',
]
