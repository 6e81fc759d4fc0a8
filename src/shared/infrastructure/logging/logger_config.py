import os
import logging
import logging.handlers
from typing import Optional

from config.app_config import AppConfig

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ('werkzeug', 'peewee', 'urllib3')


def setup_logging(log_file: Optional[str] = None, level: Optional[int] = None):
    """
    Configure logging for the entire application

    Sets up:
    - Console handler (stdout)
    - File handler (rotating, 10MB max, 5 backups)
    - Consistent formatting
    - Configurable log level

    Args:
        log_file: Path overriding AppConfig.LOG_FILE
        level: Override for the configured log level
    """
    log_file = log_file or AppConfig.LOG_FILE
    level = level if level is not None else AppConfig.get_log_level()

    # Create a logs directory if it doesn't exist
    log_dir = os.path.dirname(log_file)
    if log_dir and not os.path.exists(log_dir):
        os.makedirs(log_dir, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear any existing handlers (setup may run again in tests)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(
        AppConfig.LOG_FORMAT,
        datefmt=AppConfig.LOG_DATE_FORMAT
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    try:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    except OSError as e:
        root_logger.warning(f"Could not create file handler: {e}")

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    root_logger.info("=" * 80)
    root_logger.info(f"{AppConfig.SERVICE_NAME} Starting")
    root_logger.info(f"Log Level: {logging.getLevelName(level)}")
    root_logger.info(f"Log File: {log_file}")
    root_logger.info("=" * 80)
