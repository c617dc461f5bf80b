"""
Subscriber Repository
=====================

SQLite-backed storage for newsletter subscribers (table lives in USER_DB).
Unique-constraint violations are raised as ConflictError so callers never
have to inspect driver-specific error shapes.
"""

import logging
import sqlite3
from datetime import datetime, timezone

from subscribekit.core import Database, Config
from .errors import ConflictError
from .models import Subscriber, SubscriptionState

logger = logging.getLogger(__name__)

TABLE = Config.SUBSCRIBERS

_TIMESTAMP_FIELDS = (
    'token_expires_at', 'subscribed_at', 'confirmation_at', 'unsubscribed_at',
    'created_at', 'updated_at',
)

_WRITABLE_FIELDS = (
    'email', 'subscription_state', 'confirmation_token', 'token_expires_at',
    'subscribed_at', 'confirmation_at', 'unsubscribed_at', 'name',
)


def is_duplicate_key_error(error):
    """Recognise unique-constraint violations across SQLite, PostgreSQL and MySQL drivers"""
    if getattr(error, 'pgcode', None) == '23505':
        return True
    if getattr(error, 'code', None) in ('ER_DUP_ENTRY', '23505', 1062):
        return True
    if error.args and error.args[0] == 1062:
        return True
    message = str(error).lower()
    return (
        'unique constraint' in message
        or 'duplicate entry' in message
        or 'duplicate key' in message
    )


def _to_db(value):
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, SubscriptionState):
        return value.value
    return value


def _from_db(value):
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _row_to_subscriber(row):
    if row is None:
        return None
    data = dict(row)
    for field in _TIMESTAMP_FIELDS:
        data[field] = _from_db(data.get(field))
    data['subscription_state'] = SubscriptionState(data['subscription_state'])
    return Subscriber(**data)


class SubscriberRepository:

    def __init__(self, db_path):
        self.db_path = db_path

    def _connect(self):
        return Database.connect(self.db_path)

    def init_table(self):
        """Create the subscribers table and indexes if they don't exist"""
        Database.ensure_dir(self.db_path)
        with self._connect() as conn:
            conn.execute(f'''
                CREATE TABLE IF NOT EXISTS {TABLE} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT UNIQUE NOT NULL,
                    name TEXT,
                    subscription_state TEXT NOT NULL DEFAULT 'pending',
                    confirmation_token TEXT,
                    token_expires_at TEXT,
                    subscribed_at TEXT,
                    confirmation_at TEXT,
                    unsubscribed_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            ''')
            conn.execute(f'''
                CREATE UNIQUE INDEX IF NOT EXISTS idx_{TABLE}_token
                ON {TABLE}(confirmation_token)
            ''')
            conn.execute(f'''
                CREATE INDEX IF NOT EXISTS idx_{TABLE}_state
                ON {TABLE}(subscription_state)
            ''')
            conn.commit()
        logger.info("Subscribers database table created/verified successfully")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_email(self, email):
        with self._connect() as conn:
            row = conn.execute(f'SELECT * FROM {TABLE} WHERE email = ?', (email,)).fetchone()
        return _row_to_subscriber(row)

    def find_by_token(self, token):
        with self._connect() as conn:
            row = conn.execute(
                f'SELECT * FROM {TABLE} WHERE confirmation_token = ?', (token,)
            ).fetchone()
        return _row_to_subscriber(row)

    def get(self, subscriber_id):
        with self._connect() as conn:
            row = conn.execute(f'SELECT * FROM {TABLE} WHERE id = ?', (subscriber_id,)).fetchone()
        return _row_to_subscriber(row)

    def list(self, state=None):
        query = f'SELECT * FROM {TABLE}'
        params = ()
        if state is not None:
            query += ' WHERE subscription_state = ?'
            params = (_to_db(state),)
        query += ' ORDER BY created_at DESC, id DESC'
        with self._connect() as conn:
            return [_row_to_subscriber(row) for row in conn.execute(query, params).fetchall()]

    def count_by_state(self):
        counts = {state.value: 0 for state in SubscriptionState}
        with self._connect() as conn:
            rows = conn.execute(
                f'SELECT subscription_state, COUNT(*) AS n FROM {TABLE} GROUP BY subscription_state'
            ).fetchall()
        for row in rows:
            counts[row['subscription_state']] = row['n']
        return counts

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, subscriber, now):
        """Insert a new row. Raises ConflictError if the email already exists."""
        values = {field: _to_db(getattr(subscriber, field)) for field in _WRITABLE_FIELDS}
        values['created_at'] = values['updated_at'] = _to_db(now)
        columns = ', '.join(values)
        placeholders = ', '.join('?' for _ in values)

        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    f'INSERT INTO {TABLE} ({columns}) VALUES ({placeholders})',
                    tuple(values.values())
                )
                conn.commit()
                new_id = cursor.lastrowid
        except sqlite3.Error as e:
            if is_duplicate_key_error(e):
                raise ConflictError(f"Subscriber {subscriber.email} already exists") from e
            raise

        return self.get(new_id)

    def update(self, subscriber_id, fields, now):
        """Update the given columns of one row and bump updated_at"""
        unknown = set(fields) - set(_WRITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown subscriber fields: {sorted(unknown)}")

        values = {field: _to_db(value) for field, value in fields.items()}
        values['updated_at'] = _to_db(now)
        assignments = ', '.join(f'{field} = ?' for field in values)

        try:
            with self._connect() as conn:
                conn.execute(
                    f'UPDATE {TABLE} SET {assignments} WHERE id = ?',
                    tuple(values.values()) + (subscriber_id,)
                )
                conn.commit()
        except sqlite3.Error as e:
            if is_duplicate_key_error(e):
                raise ConflictError(f"Update of subscriber {subscriber_id} violates a unique constraint") from e
            raise

        return self.get(subscriber_id)

    def mark_subscribed(self, subscriber_id, token, now):
        """
        Consume a confirmation token in one statement.
        Returns False if the token was already consumed by a concurrent request.
        """
        stamp = _to_db(now)
        with self._connect() as conn:
            cursor = conn.execute(f'''
                UPDATE {TABLE}
                SET subscription_state = ?,
                    confirmation_at = ?,
                    subscribed_at = ?,
                    confirmation_token = NULL,
                    token_expires_at = NULL,
                    updated_at = ?
                WHERE id = ? AND confirmation_token = ?
            ''', (SubscriptionState.SUBSCRIBED.value, stamp, stamp, stamp, subscriber_id, token))
            conn.commit()
            return cursor.rowcount > 0

    def mark_unsubscribed(self, subscriber_id, now):
        stamp = _to_db(now)
        with self._connect() as conn:
            cursor = conn.execute(f'''
                UPDATE {TABLE}
                SET subscription_state = ?,
                    unsubscribed_at = ?,
                    confirmation_token = NULL,
                    token_expires_at = NULL,
                    updated_at = ?
                WHERE id = ? AND subscription_state IN (?, ?)
            ''', (
                SubscriptionState.UNSUBSCRIBED.value, stamp, stamp, subscriber_id,
                SubscriptionState.PENDING.value, SubscriptionState.SUBSCRIBED.value,
            ))
            conn.commit()
            return cursor.rowcount > 0
