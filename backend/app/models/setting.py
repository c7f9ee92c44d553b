"""
Setting Model

Key/value rows backing the Settings Store (app.services.settings_store).
A missing row means "use the built-in default"; rows are seeded on startup
and overwritten (never deleted) by a reset.
"""

from sqlalchemy import Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import BaseModel, String50


class Setting(BaseModel):
    """A single runtime setting."""

    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(
        String50,
        unique=True,
        nullable=False,
        comment="Setting key (see SettingKey)"
    )

    value: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Raw string value"
    )

    def __repr__(self) -> str:
        return f"Setting(key={self.key!r}, value={self.value!r})"
