"""
HTTP gateway — talks to the support backend's JSON API with httpx.

  POST /api/chat/session                              new AI session
  POST /api/chat/message                              AI turn
  GET  /api/group-chat/messages/{channelId}           channel snapshot
  POST /api/group-chat/messages                       channel send
  GET  /api/direct-messages/conversation/{me}/{peer}  direct snapshot
  POST /api/direct-messages/send                      direct send
  GET  /api/users[/{id}], /api/channels[/{id}]        directory

Timeouts and transport errors surface as RequestFailed, same as any other
failed send. Nothing here retries; resubmission is always user-initiated.
"""

from __future__ import annotations

import logging
import time

import httpx

from deskline.errors import GatewayConnectionError, MalformedResponse, RequestFailed
from deskline.gateway.base import BaseGateway
from deskline.gateway.single_flight import SingleFlight
from deskline.models import AiReply, Channel, ConversationContext, Message, User

logger = logging.getLogger(__name__)

NETWORK_ERROR = "Network error. Please check your connection."


def _error_from_response(resp: httpx.Response, default: str) -> RequestFailed:
    """Turn a 4xx/5xx into RequestFailed, using the server's {"error": ...} body if any."""
    message = default
    retry_after = None
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("error") or default
        retry_after = body.get("retryAfterMs")
    return RequestFailed(message, status_code=resp.status_code, retry_after_ms=retry_after)


def _latency(raw) -> float | None:
    """Server-reported latency in ms; anything non-numeric raises ValueError/TypeError."""
    if raw is None or isinstance(raw, bool):
        return None
    return float(raw)


class HttpGateway(BaseGateway):
    """Gateway for the support backend's REST API."""

    def __init__(self, base_url: str, timeout: float = 30, directory_timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.directory_timeout = directory_timeout
        self._flights = SingleFlight()

    @classmethod
    def from_config(cls, cfg: dict) -> HttpGateway:
        from deskline.config import resolve_api_url

        api_cfg = cfg.get("api", {})
        return cls(
            base_url=resolve_api_url(cfg),
            timeout=api_cfg.get("timeout", 30),
            directory_timeout=api_cfg.get("directory_timeout", 10),
        )

    # ------------------------------------------------------------------
    # AI session
    # ------------------------------------------------------------------

    async def create_session(self) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(f"{self.base_url}/api/chat/session")
        except httpx.TransportError as e:
            logger.warning("Session creation failed, backend unreachable: %s", e)
            raise GatewayConnectionError(
                f"Cannot connect to backend at {self.base_url}. "
                "Please make sure the backend server is running."
            ) from e

        if resp.status_code >= 400:
            raise _error_from_response(resp, "Failed to create session")
        try:
            session_id = resp.json()["sessionId"]
        except (ValueError, KeyError, TypeError) as e:
            raise MalformedResponse(f"Malformed session response: {e}") from e
        logger.info("Created chat session %s", session_id)
        return str(session_id)

    async def send_ai_message(
        self, session_id: str, text: str, context: ConversationContext,
    ) -> AiReply:
        return await self._flights.run(
            session_id, lambda: self._post_ai_message(session_id, text, context),
        )

    async def _post_ai_message(
        self, session_id: str, text: str, context: ConversationContext,
    ) -> AiReply:
        t0 = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.base_url}/api/chat/message",
                    json={
                        "sessionId": session_id,
                        "message": text,
                        "context": context.to_wire(),
                    },
                )
        except httpx.TimeoutException as e:
            logger.warning("AI message for session %s timed out after %ss", session_id, self.timeout)
            raise RequestFailed(f"Timeout after {self.timeout}s") from e
        except httpx.TransportError as e:
            logger.warning("AI message for session %s failed: %s", session_id, e)
            raise RequestFailed(NETWORK_ERROR) from e

        latency = (time.monotonic() - t0) * 1000
        if resp.status_code >= 400:
            raise _error_from_response(resp, "Failed to send message")

        try:
            data = resp.json()
            reply = AiReply(
                reply=data["reply"],
                context=ConversationContext.from_wire(data.get("context") or {}),
                latency_ms=_latency(data.get("latencyMs")),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise MalformedResponse(f"Malformed chat response: {e}") from e

        logger.debug("AI reply for session %s in %.0fms", session_id, latency)
        return reply

    def cancel_pending(self, key: str | None = None) -> None:
        n = self._flights.cancel(key)
        if n:
            logger.debug("Cancelled %d pending request(s)", n)

    # ------------------------------------------------------------------
    # Channels and direct messages
    # ------------------------------------------------------------------

    async def _get_messages(self, path: str) -> list[Message]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(f"{self.base_url}{path}")
        except httpx.TransportError as e:
            raise RequestFailed(NETWORK_ERROR) from e
        if resp.status_code >= 400:
            raise _error_from_response(resp, "Failed to load messages")
        try:
            records = resp.json().get("messages")
            if records is None:
                raise MalformedResponse("Response has no 'messages' list")
            return [Message.from_wire(r) for r in records]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise MalformedResponse(f"Malformed message list: {e}") from e

    async def _post(self, path: str, body: dict, default_error: str) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(f"{self.base_url}{path}", json=body)
        except httpx.TimeoutException as e:
            raise RequestFailed(f"Timeout after {self.timeout}s") from e
        except httpx.TransportError as e:
            raise RequestFailed(NETWORK_ERROR) from e
        if resp.status_code >= 400:
            raise _error_from_response(resp, default_error)

    async def fetch_channel_messages(self, channel_id: str) -> list[Message]:
        return await self._get_messages(f"/api/group-chat/messages/{channel_id}")

    async def send_channel_message(
        self, channel_id: str, sender_id: str, sender_name: str, text: str,
    ) -> None:
        await self._post(
            "/api/group-chat/messages",
            {"channelId": channel_id, "userId": sender_id, "userName": sender_name, "message": text},
            "Failed to send group message",
        )

    async def fetch_peer_messages(self, user_a: str, user_b: str) -> list[Message]:
        return await self._get_messages(f"/api/direct-messages/conversation/{user_a}/{user_b}")

    async def send_peer_message(
        self, from_id: str, to_id: str, from_name: str, text: str,
    ) -> None:
        await self._post(
            "/api/direct-messages/send",
            {"fromUserId": from_id, "toUserId": to_id, "fromUserName": from_name, "message": text},
            "Failed to send direct message",
        )

    # ------------------------------------------------------------------
    # Directory
    # ------------------------------------------------------------------

    async def _get_json(self, path: str):
        async with httpx.AsyncClient(timeout=self.directory_timeout) as client:
            resp = await client.get(f"{self.base_url}{path}")
            resp.raise_for_status()
            return resp.json()

    async def list_users(self) -> list[User]:
        try:
            data = await self._get_json("/api/users")
            return [User.from_wire(u) for u in data.get("users", [])]
        except Exception as e:
            logger.error("Failed to fetch users: %s", e)
            return []

    async def list_channels(self) -> list[Channel]:
        try:
            data = await self._get_json("/api/channels")
            return [Channel.from_wire(c) for c in data.get("channels", [])]
        except Exception as e:
            logger.error("Failed to fetch channels: %s", e)
            return []

    async def get_user(self, user_id: str) -> User | None:
        try:
            return User.from_wire(await self._get_json(f"/api/users/{user_id}"))
        except Exception as e:
            logger.error("Failed to fetch user %s: %s", user_id, e)
            return None

    async def get_channel(self, channel_id: str) -> Channel | None:
        try:
            return Channel.from_wire(await self._get_json(f"/api/channels/{channel_id}"))
        except Exception as e:
            logger.error("Failed to fetch channel %s: %s", channel_id, e)
            return None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} url={self.base_url!r} timeout={self.timeout}>"
