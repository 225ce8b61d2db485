"""
Data models for the conversation core.
These define the shape of data flowing between the controllers, the
gateway and session storage.

Two serialized forms exist:
  to_dict / from_dict    — snake_case, used for persisted sessions
  to_wire / from_wire    — the server's camelCase JSON
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from uuid import uuid4

from deskline.message_store import MessageStore

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLES = (ROLE_USER, ROLE_ASSISTANT)

# Ticket-intake progression, in order. Never regresses within a session.
STATE_GREETING = "greeting"
STATE_COLLECTING_PRODUCT = "collecting_product"
STATE_COLLECTING_ISSUE = "collecting_issue"
STATE_COLLECTING_URGENCY = "collecting_urgency"
STATE_CONFIRMING = "confirming"
STATE_COMPLETE = "complete"
STATES = (
    STATE_GREETING,
    STATE_COLLECTING_PRODUCT,
    STATE_COLLECTING_ISSUE,
    STATE_COLLECTING_URGENCY,
    STATE_CONFIRMING,
    STATE_COMPLETE,
)

URGENCIES = ("low", "medium", "high")

_clock_lock = threading.Lock()
_last_ms = 0


def now_ms() -> int:
    """Epoch milliseconds that never go backwards within this process."""
    global _last_ms
    with _clock_lock:
        _last_ms = max(_last_ms, int(time.time() * 1000))
        return _last_ms


def new_id() -> str:
    return str(uuid4())


def derive_role(sender_id: str | None, local_user_id: str | None) -> str:
    """Peer messages are 'user' when we sent them, 'assistant' otherwise."""
    if local_user_id and sender_id == local_user_id:
        return ROLE_USER
    return ROLE_ASSISTANT


@dataclass
class Message:
    """
    A single message in a conversation.

    role is None for peer/channel messages: it is derived from sender_id
    at read time instead of being stored.
    """
    text: str
    role: str | None = ROLE_USER
    id: str = field(default_factory=new_id)
    created_at: int = field(default_factory=now_ms)
    error: bool = False
    sender_name: str | None = None
    sender_id: str | None = None

    def resolve_role(self, local_user_id: str | None = None) -> str:
        if self.role is not None:
            return self.role
        return derive_role(self.sender_id, local_user_id)

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "role": self.role,
            "text": self.text,
            "created_at": self.created_at,
            "error": self.error,
        }
        if self.sender_name is not None:
            d["sender_name"] = self.sender_name
        if self.sender_id is not None:
            d["sender_id"] = self.sender_id
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Message:
        role = d.get("role")
        if role is not None and role not in ROLES:
            raise ValueError(f"Unknown message role: {role!r}")
        return cls(
            id=d["id"],
            role=role,
            text=d.get("text", ""),
            created_at=int(d.get("created_at", 0)),
            error=bool(d.get("error", False)),
            sender_name=d.get("sender_name"),
            sender_id=d.get("sender_id"),
        )

    @classmethod
    def from_wire(cls, d: dict) -> Message:
        """Build a peer/channel message from a server record (role left unset)."""
        sender_id = d.get("userId", d.get("senderId"))
        return cls(
            id=str(d.get("id") or new_id()),
            role=None,
            text=d.get("text", d.get("message", "")),
            created_at=int(d.get("timestamp", d.get("createdAt", 0)) or 0),
            sender_name=d.get("userName", d.get("senderName")),
            sender_id=str(sender_id) if sender_id is not None else None,
        )


@dataclass
class ConversationContext:
    """Structured ticket-intake progress attached to a session."""
    product: str | None = None
    issue: str | None = None
    urgency: str | None = None
    ticket_id: str | None = None
    state: str = STATE_GREETING

    def __post_init__(self):
        if self.state not in STATES:
            raise ValueError(f"Unknown conversation state: {self.state!r}")
        if self.urgency is not None and self.urgency not in URGENCIES:
            raise ValueError(f"Unknown urgency: {self.urgency!r}")

    def to_dict(self) -> dict:
        return {
            "product": self.product,
            "issue": self.issue,
            "urgency": self.urgency,
            "ticket_id": self.ticket_id,
            "state": self.state,
        }

    @classmethod
    def from_dict(cls, d: dict) -> ConversationContext:
        return cls(
            product=d.get("product"),
            issue=d.get("issue"),
            urgency=d.get("urgency"),
            ticket_id=d.get("ticket_id"),
            state=d.get("state", STATE_GREETING),
        )

    def to_wire(self) -> dict:
        return {
            "product": self.product,
            "issue": self.issue,
            "urgency": self.urgency,
            "ticketId": self.ticket_id,
            "state": self.state,
        }

    @classmethod
    def from_wire(cls, d: dict) -> ConversationContext:
        return cls(
            product=d.get("product"),
            issue=d.get("issue"),
            urgency=d.get("urgency"),
            ticket_id=d.get("ticketId"),
            state=d.get("state", STATE_GREETING),
        )


@dataclass
class Session:
    """One AI-assisted support conversation."""
    session_id: str = ""
    messages: MessageStore = field(default_factory=MessageStore)
    context: ConversationContext = field(default_factory=ConversationContext)
    pending: bool = False
    last_latency_ms: float = 0.0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "messages": [m.to_dict() for m in self.messages],
            "context": self.context.to_dict(),
            "pending": self.pending,
            "last_latency_ms": self.last_latency_ms,
            "errors": list(self.errors),
        }

    @classmethod
    def from_dict(cls, d: dict) -> Session:
        return cls(
            session_id=d.get("session_id", ""),
            messages=MessageStore(Message.from_dict(m) for m in d.get("messages", [])),
            context=ConversationContext.from_dict(d.get("context") or {}),
            pending=bool(d.get("pending", False)),
            last_latency_ms=float(d.get("last_latency_ms", 0.0)),
            errors=list(d.get("errors", [])),
        )


@dataclass
class PeerConversation:
    """
    A group channel or direct conversation.
    The message list is overwritten by each server snapshot; only the
    optimistic entries in between are authored locally.
    """
    channel_key: str = ""
    messages: MessageStore = field(default_factory=MessageStore)
    pending: bool = False


@dataclass(frozen=True)
class AiReply:
    """Response to send_ai_message."""
    reply: str
    context: ConversationContext
    latency_ms: float | None = None


@dataclass(frozen=True)
class LocalUser:
    """The signed-in user, as seen by the peer/channel controller."""
    id: str
    name: str


@dataclass(frozen=True)
class User:
    id: str
    name: str
    status: str = "offline"     # "online", "offline", "away"
    avatar: str | None = None
    last_seen: int | None = None

    @classmethod
    def from_wire(cls, d: dict) -> User:
        return cls(
            id=str(d["id"]),
            name=d.get("name", ""),
            status=d.get("status", "offline"),
            avatar=d.get("avatar"),
            last_seen=d.get("lastSeen"),
        )


@dataclass(frozen=True)
class Channel:
    id: str
    name: str
    description: str = ""
    type: str = "public"        # "public" or "private"
    member_count: int = 0
    unread_count: int = 0

    @classmethod
    def from_wire(cls, d: dict) -> Channel:
        return cls(
            id=str(d["id"]),
            name=d.get("name", ""),
            description=d.get("description", ""),
            type=d.get("type", "public"),
            member_count=int(d.get("memberCount", 0) or 0),
            unread_count=int(d.get("unreadCount", 0) or 0),
        )
