"""
Database Base Classes and Common Utilities

This module provides the foundation for all database models in the application.

Key Concepts:
--------------
1. DeclarativeBase: SQLAlchemy's base class that enables ORM functionality
2. TimestampMixin: created_at / updated_at columns shared by every table
3. BaseModel: Base + integer primary key + timestamps, for tables whose
   identity is internal (episodes, settings). Tables keyed by an external
   identifier (animes, users) combine Base and TimestampMixin themselves.
4. UTCDateTime: timezone-aware datetime column that always loads as UTC,
   including on backends (SQLite) that drop the offset.

Learning Resources:
- SQLAlchemy Declarative Base: https://docs.sqlalchemy.org/en/20/orm/declarative_config.html
- TypeDecorator: https://docs.sqlalchemy.org/en/20/core/custom_types.html
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import DateTime, MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, registry
from sqlalchemy.types import TypeDecorator


# ================================
# Naming Convention for Constraints
# ================================
# Consistent constraint names keep Alembic autogenerate stable.
#
# Format examples:
# - ix_episodes_released_at: Index on 'episodes.released_at'
# - fk_episodes_anime_id_animes: Foreign key from 'episodes.anime_id' to 'animes'
# - pk_users: Primary key on 'users' table
convention = {
    "ix": "ix_%(column_0_label)s",  # Index
    "uq": "uq_%(table_name)s_%(column_0_name)s",  # Unique constraint
    "ck": "ck_%(table_name)s_%(constraint_name)s",  # Check constraint
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",  # Foreign key
    "pk": "pk_%(table_name)s",  # Primary key
}

metadata = MetaData(naming_convention=convention)

orm_registry = registry(metadata=metadata)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# ================================
# Column Types
# ================================
class UTCDateTime(TypeDecorator):
    """
    Timezone-aware DateTime that is always UTC in Python.

    PostgreSQL stores TIMESTAMP WITH TIME ZONE and returns aware values.
    SQLite has no timezone support and returns naive values; those are
    interpreted as UTC so comparisons with datetime.now(timezone.utc)
    never mix naive and aware datetimes.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# ================================
# Base DeclarativeBase Class
# ================================
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Usage:
        class Setting(Base):
            __tablename__ = "settings"
            key: Mapped[str] = mapped_column(primary_key=True)
    """

    registry = orm_registry
    metadata = metadata

    __tablename__: str


# ================================
# Common Table Attributes Mixins
# ================================
class TimestampMixin:
    """
    Adds created_at / updated_at to a model.

    Both are set on insert; updated_at is refreshed on every UPDATE issued
    through the ORM (including bulk update() statements).
    """

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
        comment="Timestamp when record was created (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        comment="Timestamp when record was last updated (UTC)"
    )


class CommonTableAttributes(TimestampMixin):
    """Auto-incrementing integer primary key plus timestamps."""

    id: Mapped[int] = mapped_column(
        primary_key=True,
        autoincrement=True,
        comment="Auto-incrementing primary key"
    )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id})"


# ================================
# Convenient Base Model
# ================================
class BaseModel(Base, CommonTableAttributes):
    """
    Ready-to-use base class for models with an internal integer id.

    Every subclass automatically gets:
    - Primary key (id)
    - Creation timestamp (created_at)
    - Update timestamp (updated_at)
    - __repr__()
    """

    __abstract__ = True


# ================================
# String Length Constraints
# ================================
String36 = String(36)  # UUIDs
String50 = String(50)  # usernames, enum-ish values, setting keys
String100 = String(100)  # external ids
String255 = String(255)  # titles
String500 = String(500)  # URLs, episode titles, provider lists
