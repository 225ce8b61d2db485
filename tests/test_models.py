"""
Tests for data models.
Run with: pytest tests/test_models.py
"""

import re

import pytest

from deskline.message_store import MessageStore
from deskline.models import (
    ConversationContext,
    Message,
    Session,
    derive_role,
    new_id,
    now_ms,
)

UUID4 = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$")


# ---------------------------------------------------------------------------
# Identity and time
# ---------------------------------------------------------------------------

def test_message_id_is_uuid4():
    """Message ids are version-4 UUIDs and unique."""
    ids = {Message(text="x").id for _ in range(200)}
    assert len(ids) == 200
    assert all(UUID4.match(i) for i in ids)
    assert UUID4.match(new_id())


def test_now_ms_never_goes_backwards():
    stamps = [now_ms() for _ in range(1000)]
    assert stamps == sorted(stamps)


def test_derive_role():
    assert derive_role("u1", "u1") == "user"
    assert derive_role("u2", "u1") == "assistant"
    assert derive_role("u1", None) == "assistant"


def test_resolve_role_prefers_stored_role():
    assert Message(text="hi", role="assistant", sender_id="u1").resolve_role("u1") == "assistant"
    assert Message(text="hi", role=None, sender_id="u1").resolve_role("u1") == "user"


# ---------------------------------------------------------------------------
# ConversationContext
# ---------------------------------------------------------------------------

def test_context_defaults_to_greeting():
    ctx = ConversationContext()
    assert ctx.state == "greeting"
    assert ctx.product is None and ctx.ticket_id is None


def test_context_rejects_unknown_state_and_urgency():
    with pytest.raises(ValueError):
        ConversationContext(state="shipping")
    with pytest.raises(ValueError):
        ConversationContext(urgency="critical")


def test_context_wire_format():
    """Wire format uses camelCase ticketId."""
    ctx = ConversationContext.from_wire({
        "product": "Mobile App", "issue": "crash", "urgency": "high",
        "ticketId": "T-42", "state": "complete",
    })
    assert ctx.ticket_id == "T-42"
    assert ctx.to_wire()["ticketId"] == "T-42"
    assert "ticket_id" not in ctx.to_wire()


# ---------------------------------------------------------------------------
# Wire records
# ---------------------------------------------------------------------------

def test_message_from_wire_leaves_role_unset():
    msg = Message.from_wire({
        "id": "srv-1", "userId": "u1", "userName": "Ann",
        "text": "hello", "timestamp": 1700000000000,
    })
    assert msg.id == "srv-1"
    assert msg.role is None
    assert msg.sender_id == "u1"
    assert msg.sender_name == "Ann"
    assert msg.created_at == 1700000000000


def test_message_from_wire_without_id_gets_one():
    msg = Message.from_wire({"userId": 7, "text": "hi"})
    assert UUID4.match(msg.id)
    assert msg.sender_id == "7"


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

def test_session_dict_round_trip():
    """to_dict/from_dict preserves messages, context and counters."""
    session = Session(
        session_id="s1",
        messages=MessageStore([
            Message(text="welcome", role="assistant"),
            Message(text="hello", role="user", error=True),
        ]),
        context=ConversationContext(product="Router", state="collecting_issue"),
        last_latency_ms=321.5,
        errors=["Network error. Please check your connection."],
    )
    restored = Session.from_dict(session.to_dict())
    assert restored == session
    assert [m.id for m in restored.messages] == [m.id for m in session.messages]
    assert restored.messages[1].error


def test_session_from_dict_rejects_unknown_role():
    with pytest.raises(ValueError):
        Session.from_dict({"session_id": "s", "messages": [{"id": "1", "role": "system", "text": ""}]})
