"""
subscribekit Modules
====================

Flask blueprint and service modules for newsletter subscriptions.
"""

__all__ = ['captcha', 'email', 'settings', 'subscribers']
