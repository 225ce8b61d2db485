"""
Tests for session storage.
Uses a temp database for each test.
"""

import pytest

from deskline.errors import PersistenceError
from deskline.message_store import MessageStore
from deskline.models import ConversationContext, Message, Session
from deskline.storage import MemorySessionStore, SQLiteSessionStore, make_storage


@pytest.fixture
def store(tmp_path):
    """Create a fresh SQLite store for each test."""
    return SQLiteSessionStore(str(tmp_path / "test.db"))


def _session():
    return Session(
        session_id="sess-1",
        messages=MessageStore([
            Message(text="Hi! How can I help?", role="assistant"),
            Message(text="My app crashes", role="user"),
            Message(text="Which product?", role="assistant"),
        ]),
        context=ConversationContext(issue="crash", state="collecting_product"),
        last_latency_ms=88.0,
    )


def test_empty_store_loads_none(store):
    assert store.load_session() is None


def test_save_and_load_round_trip(store):
    """Saved session loads back with identical messages and context."""
    session = _session()
    store.save_session(session)

    loaded = store.load_session()
    assert loaded == session
    assert [m.id for m in loaded.messages] == [m.id for m in session.messages]
    assert loaded.context == session.context


def test_save_overwrites(store):
    session = _session()
    store.save_session(session)
    session.messages.append(Message(text="Router", role="user"))
    store.save_session(session)
    assert len(store.load_session().messages) == 4


def test_clear_session(store):
    store.save_session(_session())
    store.clear_session()
    assert store.load_session() is None


def test_persists_across_instances(tmp_path):
    path = str(tmp_path / "shared.db")
    SQLiteSessionStore(path).save_session(_session())
    assert SQLiteSessionStore(path).load_session().session_id == "sess-1"


def test_corrupt_session_raises_persistence_error(store):
    store.set("chat_session", "{not json")
    with pytest.raises(PersistenceError):
        store.load_session()


def test_unwritable_path_raises_persistence_error(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    with pytest.raises(PersistenceError):
        SQLiteSessionStore(str(blocker / "sub" / "db.sqlite"))


def test_memory_store_round_trip():
    store = MemorySessionStore()
    session = _session()
    store.save_session(session)
    loaded = store.load_session()
    assert loaded == session
    assert loaded is not session
    store.clear_session()
    assert store.load_session() is None


def test_make_storage():
    assert isinstance(make_storage("memory"), MemorySessionStore)
    with pytest.raises(ValueError):
        make_storage("redis")
