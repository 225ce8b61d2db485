"""
deskline — client-side conversation engine for a support messaging app.

SessionController drives AI-assisted ticket intake; PollingSyncController
keeps group channels and direct conversations in sync by polling.
"""

from deskline.context import ContextMachine
from deskline.errors import (
    Cancelled,
    DesklineError,
    GatewayConnectionError,
    MalformedResponse,
    PersistenceError,
    RequestFailed,
)
from deskline.message_store import MessageStore
from deskline.models import ConversationContext, LocalUser, Message, PeerConversation, Session
from deskline.polling import ChannelTarget, DirectTarget, PollingSyncController, apply_snapshot
from deskline.session import SessionController

__version__ = "0.3.0"

__all__ = [
    "Cancelled",
    "ChannelTarget",
    "ContextMachine",
    "ConversationContext",
    "DesklineError",
    "DirectTarget",
    "GatewayConnectionError",
    "LocalUser",
    "MalformedResponse",
    "Message",
    "MessageStore",
    "PeerConversation",
    "PersistenceError",
    "PollingSyncController",
    "RequestFailed",
    "Session",
    "SessionController",
    "apply_snapshot",
]
