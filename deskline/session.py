"""
Session controller — one AI-backed support conversation.

Owns the message log and the context machine for a session and is the
only thing that mutates them. Every public operation settles into state
(failed message flag, recent-errors log, has_error) instead of raising.

Lifecycle of a send:
  user message appended + pending set     (before the first await)
  → gateway.send_ai_message
  → success: assistant reply appended, context advanced, latency recorded
  → failure: user message flagged, error logged, has_error raised
  → superseded: nothing applied
  → cancel(): user message flagged so it can be retried, reply dropped

At most one send per session is in flight: send_message is a no-op while
pending is set, and because the flag is set before the first suspension
point there is no window between the check and the set.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from deskline.context import ContextMachine
from deskline.errors import Cancelled
from deskline.gateway.base import BaseGateway
from deskline.message_store import MessageStore
from deskline.models import ROLE_ASSISTANT, ROLE_USER, ConversationContext, Message, Session
from deskline.storage.base import SessionStorage

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = "Hi! I'm your support assistant. What product can I help you with today?"


@dataclass(frozen=True)
class SessionView:
    """Read-only snapshot of a session for the UI layer."""
    session_id: str
    messages: tuple[Message, ...]
    context: ConversationContext
    pending: bool
    last_latency_ms: float
    errors: tuple[str, ...]
    has_error: bool
    is_loading: bool


class SessionController:
    """Drives one AI support session: optimistic sends, replies, retries, persistence."""

    def __init__(
        self,
        gateway: BaseGateway,
        storage: SessionStorage,
        welcome_message: str = WELCOME_MESSAGE,
    ):
        self.gateway = gateway
        self.storage = storage
        self.welcome_message = welcome_message
        self.has_error = False
        self._session = self._blank_session()
        self._machine = ContextMachine(self._session.context)
        # User message of the send currently allowed to apply its result.
        self._flight: Message | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._session.messages.messages

    @property
    def context(self) -> ConversationContext:
        return self._session.context

    @property
    def pending(self) -> bool:
        return self._session.pending

    @property
    def is_loading(self) -> bool:
        return not self._session.session_id

    def snapshot(self) -> SessionView:
        s = self._session
        return SessionView(
            session_id=s.session_id,
            messages=s.messages.messages,
            context=s.context,
            pending=s.pending,
            last_latency_ms=s.last_latency_ms,
            errors=tuple(s.errors),
            has_error=self.has_error,
            is_loading=self.is_loading,
        )

    def _welcome(self) -> Message:
        return Message(text=self.welcome_message, role=ROLE_ASSISTANT)

    def _blank_session(self, session_id: str = "") -> Session:
        return Session(session_id=session_id, messages=MessageStore([self._welcome()]))

    def _adopt(self, session: Session):
        self._session = session
        self._machine = ContextMachine(session.context)
        self._flight = None

    # ------------------------------------------------------------------
    # Persistence (best effort)
    # ------------------------------------------------------------------

    def _persist(self):
        if not self._session.session_id:
            return
        try:
            self.storage.save_session(self._session)
        except Exception as e:
            logger.warning("Failed to save session %s: %s", self._session.session_id, e)

    def _restore(self) -> Session | None:
        try:
            return self.storage.load_session()
        except Exception as e:
            logger.warning("Failed to load saved session: %s", e)
            return None

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """
        Restore the saved session, or create a new one on the server.

        Returns False (and raises has_error) if session creation failed;
        the controller stays unusable until initialize() is called again.
        """
        if self._session.session_id:
            return True

        saved = self._restore()
        if saved is not None and saved.session_id:
            if saved.pending:
                # No request survives a restart; nothing can settle this flag.
                logger.info("Restored session %s was mid-send, clearing pending", saved.session_id)
                saved.pending = False
            self._adopt(saved)
            self.has_error = False
            logger.info(
                "Restored session %s (%d messages, state=%s)",
                saved.session_id, len(saved.messages), saved.context.state,
            )
            return True

        return await self._create()

    async def _create(self) -> bool:
        try:
            session_id = await self.gateway.create_session()
        except Exception as e:
            logger.error("Failed to create session: %s", e)
            self.has_error = True
            return False

        self._adopt(self._blank_session(session_id))
        self.has_error = False
        self._persist()
        return True

    async def send_message(self, text: str) -> bool:
        """
        Send a user turn. Returns True if a reply was applied.

        No-op (False) for blank text, while another send is pending, or
        before a session exists.
        """
        session = self._session
        if not text or not text.strip() or session.pending or not session.session_id:
            return False

        text = text.strip()
        user_msg = session.messages.append(Message(text=text, role=ROLE_USER))
        session.pending = True
        self.has_error = False
        flight = self._flight = user_msg
        context = self._machine.context
        self._persist()

        t0 = time.monotonic()
        try:
            reply = await self.gateway.send_ai_message(session.session_id, text, context)
        except Cancelled as e:
            logger.debug("Send for session %s superseded: %s", session.session_id, e)
            if self._session is session and self._flight is flight:
                # Cancelled underneath us (gateway-level cancel): release the slot.
                self._flight = None
                session.pending = False
                self._persist()
            return False
        except Exception as e:
            if self._session is not session or self._flight is not flight:
                logger.debug("Dropping failure for a send that no longer owns session state")
                return False
            self._flight = None
            session.messages.mark_error(user_msg.id)
            session.pending = False
            session.errors.append(str(e) or "Unknown error")
            self.has_error = True
            logger.warning("Failed to send message in session %s: %s", session.session_id, e)
            self._persist()
            return False

        if self._session is not session or self._flight is not flight:
            logger.debug("Dropping reply for a send that no longer owns session state")
            return False

        self._flight = None
        session.messages.append(Message(text=reply.reply, role=ROLE_ASSISTANT))
        if self._machine.advance(reply.context):
            session.context = self._machine.context
        session.pending = False
        session.last_latency_ms = reply.latency_ms or (time.monotonic() - t0) * 1000
        session.errors.clear()
        logger.debug(
            "Session %s reply in %.0fms, state=%s",
            session.session_id, session.last_latency_ms, session.context.state,
        )
        self._persist()
        return True

    async def retry_last_message(self) -> bool:
        """Resend the newest failed user message as a brand-new message."""
        failed = self._session.messages.find_last_failed_from_user()
        if failed is None:
            return False
        logger.info("Retrying failed message %s", failed.id)
        return await self.send_message(failed.text)

    def cancel(self) -> bool:
        """
        Abandon the in-flight send. Its outcome is never applied, and the
        user message is flagged failed so retry_last_message can resend it.
        """
        session = self._session
        if not session.pending:
            return False
        flight, self._flight = self._flight, None
        self.gateway.cancel_pending(session.session_id)
        if flight is not None:
            session.messages.mark_error(flight.id)
        session.pending = False
        self._persist()
        return True

    async def reset(self) -> bool:
        """Drop the current session (memory and storage) and start a new one."""
        old_id = self._session.session_id
        if old_id:
            self.gateway.cancel_pending(old_id)
        try:
            self.storage.clear_session()
        except Exception as e:
            logger.warning("Failed to clear saved session: %s", e)
        self._adopt(self._blank_session())
        logger.info("Session %s reset", old_id or "<none>")
        return await self._create()
