"""
Polling sync controller — group channels and direct conversations.

There is no push connection. The server's message list is authoritative
and is fetched in full on selection and then on a fixed interval; each
fetch replaces the local list outright (see apply_snapshot). Sends are
echoed locally right away and followed by an immediate refresh.

Roles are never stored for these messages: a message is "user" when its
sender is the local user and "assistant" otherwise, worked out at read
time so a change of local identity cannot leave stale roles behind.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Iterable

from deskline.gateway.base import BaseGateway
from deskline.message_store import MessageStore
from deskline.models import LocalUser, Message, PeerConversation

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 3.0


@dataclass(frozen=True)
class ChannelTarget:
    """A group channel."""
    channel_id: str

    def ready(self, me: LocalUser | None) -> bool:
        return bool(self.channel_id)

    def key(self, me: LocalUser | None) -> str:
        return f"channel:{self.channel_id}"

    async def fetch(self, gateway: BaseGateway, me: LocalUser | None) -> list[Message]:
        return await gateway.fetch_channel_messages(self.channel_id)

    async def send(self, gateway: BaseGateway, me: LocalUser, text: str):
        await gateway.send_channel_message(self.channel_id, me.id, me.name, text)


@dataclass(frozen=True)
class DirectTarget:
    """A one-to-one conversation with another user."""
    peer_id: str

    def ready(self, me: LocalUser | None) -> bool:
        return bool(self.peer_id and me is not None and me.id)

    def key(self, me: LocalUser | None) -> str:
        return f"direct:{me.id if me else ''}:{self.peer_id}"

    async def fetch(self, gateway: BaseGateway, me: LocalUser) -> list[Message]:
        return await gateway.fetch_peer_messages(me.id, self.peer_id)

    async def send(self, gateway: BaseGateway, me: LocalUser, text: str):
        await gateway.send_peer_message(me.id, self.peer_id, me.name, text)


def apply_snapshot(
    state: PeerConversation, channel_key: str, snapshot: Iterable[Message],
) -> PeerConversation:
    """
    Next conversation state after a server snapshot.

    Full replace: the result holds exactly the snapshot's messages in the
    server's order. A snapshot for any other channel than state's is stale
    and state is returned unchanged.
    """
    if state.channel_key != channel_key:
        return state
    return PeerConversation(
        channel_key=channel_key,
        messages=MessageStore.from_snapshot(snapshot),
        pending=state.pending,
    )


@dataclass(frozen=True)
class PeerView:
    """Read-only snapshot for the UI layer."""
    channel_key: str
    messages: tuple[Message, ...]
    pending: bool
    is_loading: bool


class PollingSyncController:
    """Keeps one selected channel/conversation in sync by polling."""

    def __init__(
        self,
        gateway: BaseGateway,
        local_user: LocalUser | None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ):
        self.gateway = gateway
        self.local_user = local_user
        self.poll_interval = poll_interval
        self.target: ChannelTarget | DirectTarget | None = None
        self.state = PeerConversation()
        self.is_loading = False
        self._poll_task: asyncio.Task | None = None
        # Channel keys with a send still awaiting the server, across reselection.
        self._in_flight: set[str] = set()

    @property
    def channel_key(self) -> str:
        return self.state.channel_key

    @property
    def pending(self) -> bool:
        return self.state.pending

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def messages(self) -> tuple[Message, ...]:
        """Messages with roles derived against the local user."""
        me_id = self.local_user.id if self.local_user else None
        return tuple(replace(m, role=m.resolve_role(me_id)) for m in self.state.messages)

    def snapshot(self) -> PeerView:
        return PeerView(
            channel_key=self.state.channel_key,
            messages=self.messages,
            pending=self.state.pending,
            is_loading=self.is_loading,
        )

    # ------------------------------------------------------------------
    # Selection and polling
    # ------------------------------------------------------------------

    async def select(self, target: ChannelTarget | DirectTarget | None):
        """
        Switch to target (None to deselect).
        Stops the old poll loop before anything else happens.
        """
        await self._stop_polling()
        self.target = target

        if target is None or not target.ready(self.local_user):
            self.state = PeerConversation()
            self.is_loading = False
            return

        key = target.key(self.local_user)
        self.state = PeerConversation(channel_key=key, pending=key in self._in_flight)
        await self.refresh(silent=False)

        if self.target is target and self._poll_task is None:
            self._poll_task = asyncio.create_task(self._poll_loop(key))
            logger.debug("Polling %s every %.1fs", key, self.poll_interval)

    async def _poll_loop(self, key: str):
        while True:
            await asyncio.sleep(self.poll_interval)
            if self.state.channel_key != key:
                return
            await self.refresh(silent=True)

    async def _stop_polling(self):
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def close(self):
        """Tear down: stop polling and forget the selection."""
        await self._stop_polling()
        self.target = None
        self.state = PeerConversation()
        self.is_loading = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()
        return False

    async def refresh(self, silent: bool = True) -> bool:
        """
        Fetch the server's list and replace ours. Returns True if applied.
        Failures are logged and leave state as it was.
        """
        target = self.target
        me = self.local_user
        if target is None or not target.ready(me):
            return False

        key = target.key(me)
        if not silent:
            self.is_loading = True
        try:
            snapshot = await target.fetch(self.gateway, me)
            next_state = apply_snapshot(self.state, key, snapshot)
        except Exception as e:
            logger.error("Failed to load messages for %s: %s", key, e)
            return False
        finally:
            if not silent and self.state.channel_key == key:
                self.is_loading = False

        if next_state is self.state:
            logger.debug("Dropping stale snapshot for %s", key)
            return False
        self.state = next_state
        return True

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_message(self, text: str) -> bool:
        """
        Echo text locally and send it. Returns True on a confirmed send.

        No-op for blank text, while a send to this channel is pending (even
        one started before the channel was last reselected), or without a
        selected target and a local user id/name.
        """
        me = self.local_user
        target = self.target
        state = self.state
        if not text or not text.strip() or state.pending or target is None:
            return False
        if me is None or not me.id or not me.name or not target.ready(me):
            return False
        key = target.key(me)
        if key in self._in_flight:
            return False

        text = text.strip()
        msg = state.messages.append(
            Message(text=text, role=None, sender_id=me.id, sender_name=me.name)
        )
        state.pending = True
        self._in_flight.add(key)

        try:
            await target.send(self.gateway, me, text)
        except Exception as e:
            logger.error("Failed to send message to %s: %s", key, e)
            self._in_flight.discard(key)
            current = self.state
            if current.channel_key == key:
                if current.messages.get(msg.id) is None:
                    # The list was replaced mid-send; keep the failure retryable.
                    current.messages.append(msg)
                current.messages.mark_error(msg.id)
                current.pending = False
            return False

        try:
            await self.refresh(silent=True)
        finally:
            self._in_flight.discard(key)
            if self.state.channel_key == key:
                self.state.pending = False
        return True

    async def retry_last_message(self) -> bool:
        """Resend the newest failed locally-authored message as a new one."""
        me_id = self.local_user.id if self.local_user else None
        failed = self.state.messages.find_last_failed_from_user(me_id)
        if failed is None:
            return False
        logger.info("Retrying failed message %s on %s", failed.id, self.state.channel_key)
        return await self.send_message(failed.text)
