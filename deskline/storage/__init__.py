"""
Session storage factory.

Usage:
    from deskline.storage import make_storage
    storage = make_storage("sqlite", path="./data/deskline.db")
"""

from .base import SessionStorage
from .memory import MemorySessionStore
from .sqlite_store import SQLiteSessionStore

_REGISTRY: dict[str, type[SessionStorage]] = {
    "sqlite": SQLiteSessionStore,
    "memory": MemorySessionStore,
}


def make_storage(kind: str = "sqlite", **kwargs) -> SessionStorage:
    """
    Instantiate a storage backend by name.

    sqlite  — requires path=
    memory  — no arguments
    """
    cls = _REGISTRY.get(kind)
    if cls is None:
        raise ValueError(f"Unknown storage backend '{kind}'. Available: {list(_REGISTRY)}")
    if kind == "sqlite":
        return cls(kwargs["path"])
    return cls()


__all__ = ["SessionStorage", "MemorySessionStore", "SQLiteSessionStore", "make_storage"]
