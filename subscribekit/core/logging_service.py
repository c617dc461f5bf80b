"""
Persistent event log for subscribekit.

Subscription events (new pending subscribers, confirmations, captcha
failures, delivery errors) are written to the app_logs table in LOGS_DB so
they survive restarts and can be inspected from the admin side. Each row
carries the request IP, user agent and path when written during a request.
"""

import json
import logging
import traceback
from datetime import datetime, timezone

from flask import request, has_request_context

from .database import Database
from .config import get_config

stdout_logger = logging.getLogger(__name__)


class LoggingService:
    """Writes structured log rows to the app_logs table"""

    @staticmethod
    def _db_path():
        return get_config('LOGS_DB')

    @staticmethod
    def _ensure_logs_table(db_path):
        with Database.connect(Database.ensure_dir(db_path)) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS app_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    level TEXT NOT NULL,
                    source TEXT NOT NULL,
                    message TEXT NOT NULL,
                    details TEXT,
                    ip_address TEXT,
                    user_agent TEXT,
                    request_path TEXT
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_logs_source ON app_logs(source)")
            conn.commit()

    @staticmethod
    def _request_fields():
        """(ip, user agent, path) of the current request, or Nones outside one"""
        if not has_request_context():
            return None, None, None

        forwarded = request.headers.get('X-Forwarded-For')
        ip_address = forwarded.split(',')[0].strip() if forwarded else request.remote_addr
        return ip_address, request.headers.get('User-Agent', '')[:500], request.path

    @classmethod
    def log(cls, level, source, message, details=None):
        """
        Persist one log row. Never raises: if the database is unavailable the
        entry goes to the process logger instead.

        Args:
            level (str): info, warning, error...
            source (str): Component name (subscribers, captcha, email)
            message (str): Main log message
            details (str/dict): Extra context, JSON-encoded if a dict
        """
        if isinstance(details, dict):
            details = json.dumps(details, default=str)

        try:
            db_path = cls._db_path()
            cls._ensure_logs_table(db_path)
            with Database.connect(db_path) as conn:
                conn.execute("""
                    INSERT INTO app_logs
                    (timestamp, level, source, message, details, ip_address, user_agent, request_path)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    datetime.now(timezone.utc).isoformat(), level.upper(), source, message, details,
                    *cls._request_fields()
                ))
                conn.commit()
        except Exception as e:
            stdout_logger.warning(f"[{level.upper()}] [{source}] {message} ({details})")
            stdout_logger.warning(f"Could not persist log entry: {e}")

    @classmethod
    def log_exception(cls, source, message, error):
        """Persist an unexpected exception together with its traceback"""
        cls.log('error', source, message, {
            'error_type': type(error).__name__,
            'error_message': str(error),
            'traceback': traceback.format_exc(),
        })

    @classmethod
    def recent(cls, source=None, limit=50):
        """Most recent entries, newest first"""
        db_path = cls._db_path()
        cls._ensure_logs_table(db_path)

        query = "SELECT * FROM app_logs"
        params = []
        if source:
            query += " WHERE source = ?"
            params.append(source)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        with Database.connect(db_path) as conn:
            return [dict(row) for row in conn.execute(query, params).fetchall()]


def db_log(level, source, message, details=None):
    """Shortcut used by modules to persist a log line"""
    LoggingService.log(level, source, message, details)
