"""Database utilities and session management."""

from app.db.base import (
    Base,
    BaseModel,
    String36,
    String50,
    String100,
    String255,
    String500,
    TimestampMixin,
    UTCDateTime,
)
from app.db.session import (
    AsyncSessionLocal,
    check_db_health,
    close_db,
    engine,
    init_db,
)

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UTCDateTime",
    # String types
    "String36",
    "String50",
    "String100",
    "String255",
    "String500",
    # Session management
    "engine",
    "AsyncSessionLocal",
    "init_db",
    "close_db",
    "check_db_health",
]
