import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from tankpod import config

LOG_FORMAT = "%(asctime)s - [%(levelname)s] - %(name)s - %(message)s"
LOG_LEVEL_ENV = "TANK_POD_LOG_LEVEL"


def _level_from_env(default: int) -> int:
    name = os.getenv(LOG_LEVEL_ENV, "").strip().upper()
    if not name:
        return default
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


def setupLogging(level: int = logging.INFO, log_dir: Optional[str] = None) -> Path:
    """
    Route every tankpod logger to a rotating service log plus the console.

    TANK_POD_LOG_LEVEL (DEBUG, INFO, ...) overrides `level`. Returns the
    path of the service log.
    """
    target_dir = Path(log_dir or config.LOG_DIR)
    target_dir.mkdir(parents=True, exist_ok=True)
    log_file = target_dir / "tankpod_service.log"

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root = logging.getLogger()
    # Re-running setup (tests, restarts in-process) must not stack handlers
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(_level_from_env(level))

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=config.LOG_MAX_BYTES,
        backupCount=config.LOG_BACKUP_COUNT,
    )
    console_handler = logging.StreamHandler()
    for handler in (file_handler, console_handler):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    # pyserial is chatty at DEBUG while the RAK is polled
    logging.getLogger("serial").setLevel(logging.WARNING)
    return log_file
