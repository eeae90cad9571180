"""
Logging configuration for the IVR tools service.

Writes rotating logs to <LOG_DIR>/ivr_tools.log and mirrors warnings
and errors to the console.
"""

import logging
from pathlib import Path
from logging.handlers import RotatingFileHandler

from ivr_tools import config

IVR_TOOLS_LOG_NAME = "ivr_tools.log"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_BYTES = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5


def _service_logger(name: str, log_file: Path, level: int, console_level: int = logging.WARNING) -> logging.Logger:
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    rotating = RotatingFileHandler(log_file, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8")
    rotating.setLevel(level)
    rotating.setFormatter(formatter)

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(formatter)

    service = logging.getLogger(name)
    service.setLevel(level)
    # setup_logging may run more than once (reload, tests); replace, don't stack
    for old in list(service.handlers):
        service.removeHandler(old)
        old.close()
    service.addHandler(rotating)
    service.addHandler(console)
    return service


def setup_logging() -> None:
    """
    Configure the root level and the ``ivr_tools`` logger tree.
    """
    level = getattr(logging, config.LOG_LEVEL, logging.INFO)

    log_dir = Path(config.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.getLogger().setLevel(level)
    _service_logger("ivr_tools", log_dir / IVR_TOOLS_LOG_NAME, level)

    # SQL echo is opt-in; keep the engine logger quiet otherwise
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if config.DATABASE_ECHO else logging.WARNING
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
