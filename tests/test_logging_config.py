import logging
from logging.handlers import RotatingFileHandler

import pytest

from marathon_hub_api.app.core.logging_config import CONSOLE_HANDLER_NAME, setup_logging


@pytest.fixture
def root_logger(monkeypatch):
    """Root logger with its handlers and level restored after the test."""
    root = logging.getLogger()
    original_level = root.level
    monkeypatch.setattr(root, "handlers", [])
    yield root
    for handler in root.handlers:
        handler.close()
    root.setLevel(original_level)


def test_setup_logging_adds_rotating_file_handler_once(root_logger, tmp_path):
    logfile = tmp_path / "logs" / "marathon_hub.log"

    setup_logging("debug", str(logfile), max_bytes=1024, backup_count=2)
    setup_logging("info", str(logfile))

    assert root_logger.level == logging.DEBUG
    assert [h.get_name() for h in root_logger.handlers].count(CONSOLE_HANDLER_NAME) == 1
    rotating = [h for h in root_logger.handlers if isinstance(h, RotatingFileHandler)]
    assert len(rotating) == 1
    assert rotating[0].maxBytes == 1024
    assert rotating[0].backupCount == 2

    logging.getLogger("marathon_hub_api.tests").warning("count drift on %s", "m1")
    rotating[0].flush()
    assert "count drift on m1" in logfile.read_text(encoding="utf-8")


def test_foreign_handlers_do_not_block_setup(root_logger):
    root_logger.addHandler(logging.NullHandler())

    setup_logging("warning")

    assert CONSOLE_HANDLER_NAME in [h.get_name() for h in root_logger.handlers]
    assert root_logger.level == logging.WARNING
