"""Tests for logger setup and the log-pane handler."""

import logging

import pytest

from abot import logger as logger_module
from abot.logger import PaneLogHandler, get_logger, set_level, setup_logger


@pytest.fixture(autouse=True)
def restore_logger():
    yield
    root = logging.getLogger("abot")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


class TestSetupLogger:

    def test_default_file_logging(self):
        logger = setup_logger(level="debug", console=False)
        logger.debug("written to disk")
        for handler in logger.handlers:
            handler.flush()
        content = logger_module.DEFAULT_LOG_FILE.read_text(encoding="utf-8")
        assert "written to disk" in content

    def test_file_logging_disabled(self):
        logger = setup_logger(console=False, log_file=False)
        assert logger.handlers == []

    def test_custom_log_file(self, tmp_path):
        path = tmp_path / "nested" / "custom.log"
        logger = setup_logger(console=False, log_file=path)
        logger.info("hello")
        for handler in logger.handlers:
            handler.flush()
        assert "hello" in path.read_text(encoding="utf-8")

    def test_reconfigure_replaces_handlers(self):
        setup_logger(log_file=False)
        logger = setup_logger(log_file=False)
        assert len(logger.handlers) == 1

    def test_console_level_only_affects_stderr(self):
        logger = setup_logger(level="debug", console_level="warning", log_file=False)
        (handler,) = logger.handlers
        assert handler.level == logging.WARNING
        assert logger.level == logging.DEBUG

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            setup_logger(level="loud", log_file=False)


class TestPaneHandler:

    def test_records_are_posted(self):
        posted = []
        setup_logger(level="info", console=False, log_file=False,
                     pane_post=lambda level, text: posted.append((level, text)))
        get_logger("abot.test").info("for the pane")
        get_logger("abot.test").debug("filtered out")
        assert len(posted) == 1
        level, text = posted[0]
        assert level == logging.INFO
        assert "abot.test: for the pane" in text

    def test_set_level_at_runtime(self):
        posted = []
        setup_logger(level="info", console=False, log_file=False,
                     pane_post=lambda level, text: posted.append(text))
        assert set_level("debug") == logging.DEBUG
        get_logger("abot.test").debug("now visible")
        assert any("now visible" in text for text in posted)

    def test_failing_callback_does_not_raise(self, monkeypatch):
        def broken(level, text):
            raise RuntimeError("queue gone")

        handler = PaneLogHandler(broken)
        monkeypatch.setattr(logging, "raiseExceptions", False)
        record = logging.LogRecord("abot", logging.INFO, __file__, 1, "msg", None, None)
        handler.emit(record)
