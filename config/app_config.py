import logging
import os
from dotenv import load_dotenv

load_dotenv()


class AppConfig:
    """
    Service-wide settings: HTTP server, identity and logging
    """

    # Flask configuration
    FLASK_HOST = os.getenv('FLASK_HOST', '0.0.0.0')
    FLASK_PORT = int(os.getenv('FLASK_PORT', 5000))
    FLASK_DEBUG = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'

    # Comma separated; '*' lets the companion web app call from anywhere
    CORS_ORIGINS = [
        origin.strip() for origin in os.getenv('CORS_ORIGINS', '*').split(',') if origin.strip()
    ]

    # Service identity (reported by /info and the MQTT status topic)
    SERVICE_NAME = 'Edge Service - Medical Device Monitoring'
    SERVICE_VERSION = '1.0.0'

    # Logging configuration
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE', './logs/edge_service.log')
    LOG_FORMAT = '%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s'
    LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

    @classmethod
    def get_log_level(cls) -> int:
        """LOG_LEVEL as a logging constant, INFO when unrecognized"""
        level = logging.getLevelName(cls.LOG_LEVEL.upper())
        return level if isinstance(level, int) else logging.INFO
