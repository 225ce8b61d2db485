"""In-process session storage, for ephemeral runs and tests."""

import json

from deskline.errors import PersistenceError
from deskline.models import Session
from deskline.storage.base import SESSION_KEY, SessionStorage


class MemorySessionStore(SessionStorage):
    """Keeps the session as a JSON string so loads never alias live state."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def load_session(self) -> Session | None:
        raw = self._data.get(SESSION_KEY)
        if raw is None:
            return None
        try:
            return Session.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise PersistenceError(f"Stored session is corrupt: {e}") from e

    def save_session(self, session: Session):
        self._data[SESSION_KEY] = json.dumps(session.to_dict())

    def clear_session(self):
        self._data.pop(SESSION_KEY, None)
