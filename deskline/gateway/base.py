"""
Transport gateway abstraction.
Controllers talk to the server only through this interface, so tests and
alternative transports can stand in for the HTTP one.
"""

from __future__ import annotations

import abc

from deskline.models import AiReply, Channel, ConversationContext, Message, User


class BaseGateway(abc.ABC):
    """
    Abstract remote collaborator.

    Failures are raised, not returned:
      GatewayConnectionError  server unreachable (session creation)
      RequestFailed           server rejected the request or network failed
      Cancelled               superseded by a newer send for the same session
    """

    @abc.abstractmethod
    async def create_session(self) -> str:
        """Ask the server for a new session id."""
        ...

    @abc.abstractmethod
    async def send_ai_message(
        self, session_id: str, text: str, context: ConversationContext,
    ) -> AiReply:
        """
        Send a user turn to the support assistant.
        Single-flight per session_id: a newer call cancels an older one.
        """
        ...

    @abc.abstractmethod
    async def fetch_channel_messages(self, channel_id: str) -> list[Message]:
        """Full authoritative message list for a group channel, server order."""
        ...

    @abc.abstractmethod
    async def send_channel_message(
        self, channel_id: str, sender_id: str, sender_name: str, text: str,
    ) -> None:
        ...

    @abc.abstractmethod
    async def fetch_peer_messages(self, user_a: str, user_b: str) -> list[Message]:
        """Full authoritative message list between two users, server order."""
        ...

    @abc.abstractmethod
    async def send_peer_message(
        self, from_id: str, to_id: str, from_name: str, text: str,
    ) -> None:
        ...

    def cancel_pending(self, key: str | None = None) -> None:
        """Cancel the in-flight send for key (or all). Default: nothing to cancel."""
        return None

    # Directory lookups. These never raise: failures are logged and an
    # empty result returned.

    async def list_users(self) -> list[User]:
        return []

    async def list_channels(self) -> list[Channel]:
        return []

    async def get_user(self, user_id: str) -> User | None:
        return None

    async def get_channel(self, channel_id: str) -> Channel | None:
        return None
