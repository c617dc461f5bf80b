"""
subscribekit Core
=================

Core utilities and shared functionality for subscribekit modules.
"""

from .config import Config, get_config
from .database import Database
from .logging_service import LoggingService, db_log

__all__ = ['Config', 'get_config', 'Database', 'LoggingService', 'db_log']
