import os
import logging
from peewee import SqliteDatabase, Model
from config.database_config import DatabaseConfig

logger = logging.getLogger(__name__)

# Ensure data directory exists
_database_dir = os.path.dirname(DatabaseConfig.DATABASE_PATH)
if _database_dir:
    os.makedirs(_database_dir, exist_ok=True)

database = SqliteDatabase(
    DatabaseConfig.DATABASE_PATH,
    timeout=DatabaseConfig.BUSY_TIMEOUT,
    check_same_thread=False,  # Bridge reader and workers write from their own threads
    pragmas=DatabaseConfig.get_pragmas()
)

logger.info(f"SQLite database configured: {DatabaseConfig.DATABASE_PATH}")


class BaseModel(Model):
    """Base model for every table of the Edge"""

    class Meta:
        database = database
