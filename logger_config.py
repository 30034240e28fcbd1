"""Centralized logging configuration for the Medication Reminder Service.

Every component writes to its own rotating file under LOG_DIR (api.log,
worker.log, detector.log, presenter.log, escalation.log, crud.log, mcp.log,
client.log, main.log) and to the console.
"""

import logging
from logging.handlers import RotatingFileHandler
import os

from config import settings

LOG_DIR = settings.LOG_DIR or os.path.join(os.path.dirname(os.path.abspath(__file__)), 'logs')
os.makedirs(LOG_DIR, exist_ok=True)

LOG_FORMAT = '[%(asctime)s] %(levelname)s - %(name)s - %(message)s'
MAX_LOG_BYTES = 10 * 1024 * 1024  # 10MB
LOG_BACKUPS = 5


def setup_logger(name: str, log_file: str = 'service.log') -> logging.Logger:
    """Return the named logger, attaching file and console handlers once.

    Args:
        name: Logger name (usually __name__)
        log_file: File under LOG_DIR this component writes to

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    file_handler = RotatingFileHandler(
        os.path.join(LOG_DIR, log_file),
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def configure_root_logger():
    """Quiet third-party libraries: web server, ORM, HTTP client and Twilio."""
    for noisy in ('uvicorn', 'uvicorn.access', 'fastapi', 'sqlalchemy', 'httpx', 'twilio.http_client'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


configure_root_logger()
