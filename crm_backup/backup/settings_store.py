"""Backup settings persisted in the ``system_settings`` table."""

from typing import Optional
from uuid import uuid4

from pydantic import ValidationError
from sqlalchemy import insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from .._utils import logger, utc_now
from ..schema import SystemSetting
from .models import BackupSettings, RetentionClass

SETTINGS_KEY = "backup_settings"
SETTINGS_CATEGORY = "backup"


class SettingsStore:
    """Read and write the operator's backup settings.

    Stored values are merged over the defaults, so a partial record only
    overrides what it names. If the settings cannot be read the defaults apply.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.table = SystemSetting.__table__

    async def load(self) -> BackupSettings:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(
                    select(self.table.c.value).where(self.table.c.key == SETTINGS_KEY)
                )
                value = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load backup settings, using defaults: {e}")
            return BackupSettings()

        if not isinstance(value, dict):
            return BackupSettings()

        try:
            return BackupSettings(**{**BackupSettings().model_dump(), **value})
        except ValidationError as e:
            logger.error(f"Invalid backup settings, using defaults: {e}")
            return BackupSettings()

    async def save(self, settings: BackupSettings, updated_by: Optional[str] = None) -> BackupSettings:
        value = settings.model_dump(mode="json")
        now = utc_now().replace(tzinfo=None)

        async with self.engine.begin() as conn:
            result = await conn.execute(
                select(self.table.c.id).where(self.table.c.key == SETTINGS_KEY)
            )
            if result.first() is not None:
                await conn.execute(
                    update(self.table)
                    .where(self.table.c.key == SETTINGS_KEY)
                    .values(value=value, updated_by=updated_by, updated_at=now)
                )
            else:
                await conn.execute(insert(self.table).values(
                    id=str(uuid4()),
                    key=SETTINGS_KEY,
                    category=SETTINGS_CATEGORY,
                    value=value,
                    updated_by=updated_by,
                    created_at=now,
                    updated_at=now,
                ))

        logger.info(f"Backup settings saved: {value}")
        return settings

    async def record_backup(self, retention_class: RetentionClass) -> None:
        """Store the time and class of the last successful scheduled backup."""
        try:
            settings = await self.load()
            settings.last_backup = utc_now()
            settings.last_backup_type = RetentionClass(retention_class)
            await self.save(settings)
        except SQLAlchemyError as e:
            logger.error(f"Failed to update last backup timestamp: {e}")
