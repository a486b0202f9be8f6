"""DocStore database layer — SQLAlchemy base, item model, sessions."""

from docstore.db.base import Base, EngineRegistry, StoreItem, engine_registry
from docstore.db.session import session_scope

__all__ = [
    "Base",
    "EngineRegistry",
    "StoreItem",
    "engine_registry",
    "session_scope",
]
