"""
Logging setup
"""
import logging
import os
from logging.handlers import RotatingFileHandler

from .config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def setup_logging(level: int = None) -> None:
    """Configure the root logger once per process"""
    global _configured
    if _configured:
        return

    if level is None:
        level = logging.DEBUG if settings.DEBUG else logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT)

    if settings.LOGS_PATH:
        os.makedirs(settings.LOGS_PATH, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(settings.LOGS_PATH, "catalog_sync.log"),
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(file_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True
