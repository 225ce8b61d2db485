"""
SQLite session storage.
A single key-value table in a portable file; the session is stored as one
JSON document under a fixed key.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from deskline.errors import PersistenceError
from deskline.models import Session
from deskline.storage.base import SESSION_KEY, SessionStorage

logger = logging.getLogger(__name__)

CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class SQLiteSessionStore(SessionStorage):
    """Key-value session store backed by one SQLite file."""

    def __init__(self, db_path: str, key: str = SESSION_KEY):
        self.db_path = Path(db_path)
        self.key = key
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_db()
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Cannot open session store at {self.db_path}: {e}") from e

    def _init_db(self):
        with self._connect() as conn:
            conn.executescript(CREATE_TABLES)
        logger.info("SQLite session store initialized at %s", self.db_path)

    @contextmanager
    def _connect(self):
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def get(self, key: str) -> str | None:
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read '{key}': {e}") from e
        return row["value"] if row else None

    def set(self, key: str, value: str):
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
                    (key, value, datetime.now(timezone.utc).isoformat()),
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to write '{key}': {e}") from e

    def delete(self, key: str):
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to delete '{key}': {e}") from e

    def load_session(self) -> Session | None:
        raw = self.get(self.key)
        if raw is None:
            return None
        try:
            return Session.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise PersistenceError(f"Stored session is corrupt: {e}") from e

    def save_session(self, session: Session):
        self.set(self.key, json.dumps(session.to_dict(), ensure_ascii=False))
        logger.debug("Saved session %s (%d messages)", session.session_id, len(session.messages))

    def clear_session(self):
        self.delete(self.key)
