import logging
from datetime import datetime
from typing import Optional

from peewee import CharField, DateTimeField, TextField

from src.shared.infrastructure.database import BaseModel, database
from src.shared.infrastructure.storage import KeyValueStore

logger = logging.getLogger(__name__)


class SettingModel(BaseModel):
    """
    Peewee ORM model for settings table

    Small string values that must survive a restart
    (e.g. the last connected device id).
    """

    key = CharField(primary_key=True, max_length=100)
    value = TextField()
    updated_at = DateTimeField(default=datetime.now)

    class Meta:
        table_name = 'settings'


class KeyValueRepository(KeyValueStore):
    """SQLite-backed KeyValueStore"""

    def __init__(self):
        self._ensure_table_exists()

    def _ensure_table_exists(self):
        """Create table if it doesn't exist"""
        with database:
            database.create_tables([SettingModel], safe=True)
        logger.info("SettingModel table verified/created")

    def get(self, key: str) -> Optional[str]:
        try:
            model = SettingModel.get_or_none(SettingModel.key == key)
            return model.value if model else None

        except Exception as e:
            logger.error(f"Error reading setting {key}: {e}", exc_info=True)
            raise

    def set(self, key: str, value: str) -> None:
        try:
            (SettingModel
             .insert(key=key, value=value, updated_at=datetime.now())
             .on_conflict_replace()
             .execute())

            logger.debug(f"Setting stored: {key}")

        except Exception as e:
            logger.error(f"Error storing setting {key}: {e}", exc_info=True)
            raise

    def delete(self, key: str) -> None:
        try:
            SettingModel.delete().where(SettingModel.key == key).execute()
            logger.debug(f"Setting removed: {key}")

        except Exception as e:
            logger.error(f"Error removing setting {key}: {e}", exc_info=True)
            raise
