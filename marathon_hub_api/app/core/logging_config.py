"""
Logging setup for the API server and the maintenance scripts.

Records go to the console and, when ``LOG_FILE`` is set, to a size
rotated file next to it (``marathon_hub.log``, ``marathon_hub.log.1``
and so on).  The count coordinator logs drift warnings there, so the
file is what an operator reads before running ``reconcile_counts.py``.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


CONSOLE_HANDLER_NAME = "marathon_hub.console"
FILE_HANDLER_NAME = "marathon_hub.file"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _installed(logger: logging.Logger) -> bool:
    return any(h.get_name() == CONSOLE_HANDLER_NAME for h in logger.handlers)


def setup_logging(
    level: str = "INFO",
    logfile: Optional[str] = None,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> None:
    """Attach the console handler (and the rotating file handler) to the root logger.

    Handlers added by other tools, such as pytest's capture handler,
    are left alone; only our own handlers make a second call a no-op.
    ``level`` is case insensitive and unknown names fall back to INFO.
    """
    root = logging.getLogger()
    if _installed(root):
        return

    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.set_name(CONSOLE_HANDLER_NAME)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if logfile:
        log_path = Path(logfile).resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.set_name(FILE_HANDLER_NAME)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
