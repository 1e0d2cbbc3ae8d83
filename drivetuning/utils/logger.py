# drivetuning/utils/logger.py
"""
Logging setup shared by the API, the services and the setup scripts.
Console plus a rotating file under LOG_DIR (repo-level logs/ by default).
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from drivetuning.config import settings

LOG_LEVEL = settings.LOG_LEVEL.upper()
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Library loggers that drown out the service tags ([LEGALITY], [CONTRIB], ...) at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "uvicorn.access", "urllib3")

_configured = False


def _configure_root_logger():
    global _configured
    if _configured:
        return
    _configured = True

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    root = logging.getLogger()
    root.setLevel(LOG_LEVEL)

    console = logging.StreamHandler()
    console.setFormatter(fmt)
    root.addHandler(console)

    if settings.LOG_DIR:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        # 10 × 5MB
        file_handler = RotatingFileHandler(
            filename=os.path.join(settings.LOG_DIR, settings.LOG_FILE),
            maxBytes=5 * 1024 * 1024,
            backupCount=10,
            encoding="utf-8",
        )
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root.level))


def get_logger(name: str) -> logging.Logger:
    _configure_root_logger()
    return logging.getLogger(name)
