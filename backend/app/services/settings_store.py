"""
Runtime settings backed by the `settings` table.

Settings differ from app.core.config: they are edited at runtime (admin
actions) and re-read on every scheduler tick, so a changed cron expression or
check window applies on the next minute without restarting anything.

Every key has a built-in default. A missing or empty row means "use the
default", and reading never writes.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import report_exception
from app.models.setting import Setting

logger = logging.getLogger(__name__)


class SettingKey(str, enum.Enum):
    """The closed set of runtime settings."""

    ALLOW_EDIT = "ALLOW_EDIT"
    ALLOW_DELETE = "ALLOW_DELETE"
    TITLE_TYPE = "TITLE_TYPE"
    AUTO_REGISTER = "AUTO_REGISTER"
    AUTO_REGISTER_CRON = "AUTO_REGISTER_CRON"
    AUTO_REGISTER_CHECK_DAYS = "AUTO_REGISTER_CHECK_DAYS"
    INTELLIGENT_CHECKS = "INTELLIGENT_CHECKS"
    INTELLIGENT_MIN_DAYS = "INTELLIGENT_MIN_DAYS"
    INTELLIGENT_MAX_DAYS = "INTELLIGENT_MAX_DAYS"
    INTELLIGENT_CRON = "INTELLIGENT_CRON"
    CRON = "CRON"
    ANILIST_UPDATE_CRON = "ANILIST_UPDATE_CRON"

    def __str__(self) -> str:
        return self.value


class SettingDefinition(NamedTuple):
    default: str
    description: str


SETTING_DEFINITIONS: Dict[SettingKey, SettingDefinition] = {
    SettingKey.ALLOW_EDIT: SettingDefinition(
        "true", "Allow users to edit their information."
    ),
    SettingKey.ALLOW_DELETE: SettingDefinition(
        "true", "Allow users to delete their account."
    ),
    SettingKey.TITLE_TYPE: SettingDefinition(
        "english", 'The title type, can be "english", "romaji" or "native".'
    ),
    SettingKey.AUTO_REGISTER: SettingDefinition(
        "false", "Automatically register anime that are about to air."
    ),
    SettingKey.AUTO_REGISTER_CRON: SettingDefinition(
        "0 0 * * *", "Cron expression for the auto-register job."
    ),
    SettingKey.AUTO_REGISTER_CHECK_DAYS: SettingDefinition(
        "2", "How many days into the future auto-register looks for airing anime."
    ),
    SettingKey.INTELLIGENT_CHECKS: SettingDefinition(
        "true",
        "Reduce requests to the episode source: only check an anime when the "
        "last episode is between INTELLIGENT_MIN_DAYS and INTELLIGENT_MAX_DAYS "
        "days old (plus one full check a day).",
    ),
    SettingKey.INTELLIGENT_MIN_DAYS: SettingDefinition(
        "5", "Minimum days since the last episode before an anime is checked."
    ),
    SettingKey.INTELLIGENT_MAX_DAYS: SettingDefinition(
        "10", "Maximum days since the last episode for an anime to be checked."
    ),
    SettingKey.INTELLIGENT_CRON: SettingDefinition(
        "*/60 * * * *", "Cron expression for intelligent checks."
    ),
    SettingKey.CRON: SettingDefinition(
        "*/60 * * * *",
        "Cron expression for the episode check used when INTELLIGENT_CHECKS is disabled.",
    ),
    SettingKey.ANILIST_UPDATE_CRON: SettingDefinition(
        "0 0 * * *", "Cron expression for syncing users' AniList lists."
    ),
}


def get_default(key: SettingKey) -> str:
    return SETTING_DEFINITIONS[SettingKey(key)].default


def get_description(key: SettingKey) -> str:
    return SETTING_DEFINITIONS[SettingKey(key)].description


def _parse_bool(value: str, default: bool) -> bool:
    normalized = value.strip().lower()
    if normalized in ("true", "1", "yes", "on"):
        return True
    if normalized in ("false", "0", "no", "off"):
        return False
    return default


def _parse_days(value: str, default: int) -> int:
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


@dataclass(frozen=True)
class SchedulerConfig:
    """
    Scheduling policy resolved from the settings table.

    Built once per tick (and once per job run) and passed explicitly to the
    code that needs it.
    """

    intelligent_checks: bool
    intelligent_min_days: int
    intelligent_max_days: int
    intelligent_cron: str
    cron: str
    anilist_update_cron: str
    auto_register: bool
    auto_register_cron: str
    auto_register_check_days: int
    title_type: str

    @classmethod
    def from_values(cls, values: Dict[SettingKey, str]) -> "SchedulerConfig":
        """Build from raw values, falling back to defaults on malformed input."""

        def raw(key: SettingKey) -> str:
            return values.get(key) or get_default(key)

        def as_bool(key: SettingKey) -> bool:
            return _parse_bool(raw(key), _parse_bool(get_default(key), False))

        def as_days(key: SettingKey) -> int:
            return _parse_days(raw(key), int(get_default(key)))

        return cls(
            intelligent_checks=as_bool(SettingKey.INTELLIGENT_CHECKS),
            intelligent_min_days=as_days(SettingKey.INTELLIGENT_MIN_DAYS),
            intelligent_max_days=as_days(SettingKey.INTELLIGENT_MAX_DAYS),
            intelligent_cron=raw(SettingKey.INTELLIGENT_CRON).strip(),
            cron=raw(SettingKey.CRON).strip(),
            anilist_update_cron=raw(SettingKey.ANILIST_UPDATE_CRON).strip(),
            auto_register=as_bool(SettingKey.AUTO_REGISTER),
            auto_register_cron=raw(SettingKey.AUTO_REGISTER_CRON).strip(),
            auto_register_check_days=as_days(SettingKey.AUTO_REGISTER_CHECK_DAYS),
            title_type=raw(SettingKey.TITLE_TYPE).strip(),
        )

    @classmethod
    def defaults(cls) -> "SchedulerConfig":
        return cls.from_values({})


class SettingsStore:
    """
    Read/write access to runtime settings.

    Example:
        >>> store = SettingsStore(db)
        >>> await store.get(SettingKey.CRON)
        '*/60 * * * *'
        >>> config = await store.scheduler_config()
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load(self, key: Optional[SettingKey] = None) -> Dict[SettingKey, str]:
        query = select(Setting.key, Setting.value)
        if key is not None:
            query = query.where(Setting.key == key.value)
        result = await self.db.execute(query)

        values: Dict[SettingKey, str] = {}
        for row_key, row_value in result.all():
            try:
                values[SettingKey(row_key)] = row_value
            except ValueError:
                # Unknown keys left behind by older versions are ignored
                continue
        return values

    async def get(self, key: SettingKey) -> str:
        """
        Effective value of a setting.

        Returns the stored value, or the default when the row is missing or
        empty or the database cannot be read. Never raises, never writes.
        """
        key = SettingKey(key)
        try:
            values = await self._load(key)
        except SQLAlchemyError as e:
            report_exception(e, setting=key.value)
            return get_default(key)

        return values.get(key) or get_default(key)

    async def set(self, key: SettingKey, value: str) -> None:
        """Store a value, inserting the row if needed."""
        key = SettingKey(key)
        result = await self.db.execute(select(Setting).where(Setting.key == key.value))
        setting = result.scalar_one_or_none()

        if setting is None:
            self.db.add(Setting(key=key.value, value=value))
        else:
            setting.value = value

        await self.db.commit()
        logger.info(f"Setting {key.value} updated")

    async def reset(self, key: SettingKey) -> str:
        """Overwrite a setting with its default. Returns the default."""
        default = get_default(key)
        await self.set(key, default)
        return default

    async def seed_defaults(self) -> int:
        """
        Insert a row for every key that has none.

        Existing values are left untouched, so this is safe on every startup.

        Returns:
            Number of rows inserted
        """
        result = await self.db.execute(select(Setting.key))
        existing = set(result.scalars().all())

        missing = [key for key in SettingKey if key.value not in existing]
        for key in missing:
            self.db.add(Setting(key=key.value, value=get_default(key)))

        if missing:
            await self.db.commit()
            logger.info(f"Seeded {len(missing)} default settings")

        return len(missing)

    async def all(self) -> List[Dict[str, str]]:
        """Every setting with its effective value, default and description."""
        values = await self._load()
        return [
            {
                "key": key.value,
                "value": values.get(key) or get_default(key),
                "default": get_default(key),
                "description": get_description(key),
            }
            for key in SettingKey
        ]

    async def scheduler_config(self) -> SchedulerConfig:
        """
        Resolve the scheduling policy in a single query.

        Falls back to the defaults entirely when the database cannot be read.
        """
        try:
            values = await self._load()
        except SQLAlchemyError as e:
            report_exception(e, operation="scheduler_config")
            return SchedulerConfig.defaults()

        return SchedulerConfig.from_values(values)
