"""
Ordered message log for one conversation.

Append-only apart from the error flag. Identity is the message id; append
never lets a second message in under an id already held. A store built
from a server snapshot is the exception: it holds the list as sent.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Iterator

if TYPE_CHECKING:
    from deskline.models import Message


class MessageStore:
    """In-memory, insertion-ordered message log."""

    __slots__ = ("_messages", "_ids")

    def __init__(self, messages: Iterable[Message] = ()):
        self._messages: list[Message] = []
        self._ids: set[str] = set()
        for msg in messages:
            self.append(msg)

    @classmethod
    def from_snapshot(cls, messages: Iterable[Message]) -> MessageStore:
        """Store holding exactly messages, in order, repeated ids included."""
        store = cls()
        store._messages = list(messages)
        store._ids = {m.id for m in store._messages}
        return store

    def append(self, msg: Message) -> Message:
        if msg.id in self._ids:
            raise ValueError(f"Duplicate message id: {msg.id}")
        self._messages.append(msg)
        self._ids.add(msg.id)
        return msg

    def get(self, message_id: str) -> Message | None:
        if message_id not in self._ids:
            return None
        for msg in self._messages:
            if msg.id == message_id:
                return msg
        return None

    def mark_error(self, message_id: str) -> bool:
        """Flag a message as failed. Returns False if absent or already failed."""
        msg = self.get(message_id)
        if msg is None or msg.error:
            return False
        msg.error = True
        return True

    def find_last_failed_from_user(self, user_id: str | None = None) -> Message | None:
        """
        Newest failed message authored locally.

        A message counts as ours when its stored role is "user", or when
        its role is derived (None) and sender_id matches user_id.
        """
        for msg in reversed(self._messages):
            if not msg.error:
                continue
            if msg.role == "user":
                return msg
            if msg.role is None and user_id and msg.sender_id == user_id:
                return msg
        return None

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __getitem__(self, index):
        return self._messages[index]

    def __eq__(self, other) -> bool:
        if not isinstance(other, MessageStore):
            return NotImplemented
        return self._messages == other._messages

    def __repr__(self) -> str:
        return f"<MessageStore n={len(self._messages)}>"
