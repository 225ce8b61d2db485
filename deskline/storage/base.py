"""
SessionStorage — abstract base for persisted chat sessions.

Storage is an opaque key-value collaborator with three primitives:
  load_session   — the last saved session, or None
  save_session   — overwrite the saved session
  clear_session  — forget it

Implementations raise PersistenceError on any read/write failure. Callers
log it and carry on in memory; it is never shown to the user.
"""

from abc import ABC, abstractmethod

from deskline.models import Session

SESSION_KEY = "chat_session"


class SessionStorage(ABC):
    """Abstract session storage."""

    @abstractmethod
    def load_session(self) -> Session | None:
        ...

    @abstractmethod
    def save_session(self, session: Session) -> None:
        ...

    @abstractmethod
    def clear_session(self) -> None:
        ...
