import os
from dotenv import load_dotenv

load_dotenv()


class DatabaseConfig:
    """
    Local SQLite store: measurements, registered devices and settings
    (the Bluetooth reconnection hint lives there)
    """

    DATABASE_PATH = os.getenv('DATABASE_PATH', './data/edge_service.db')

    # Seconds a writer waits on a locked database; the bridge reader,
    # the sync worker and Flask all write concurrently
    BUSY_TIMEOUT = int(os.getenv('DATABASE_BUSY_TIMEOUT', 10))

    # Page cache in KiB
    CACHE_SIZE_KB = int(os.getenv('DATABASE_CACHE_SIZE_KB', 64000))

    @classmethod
    def get_pragmas(cls) -> dict:
        return {
            'foreign_keys': 1,
            'journal_mode': 'wal',  # Readers never block the writer
            'cache_size': -1 * cls.CACHE_SIZE_KB,
            'synchronous': 1  # NORMAL: durable enough with WAL
        }
