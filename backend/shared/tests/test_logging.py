import json
import logging
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from unittest.mock import patch
from uuid import UUID

import pytest
import structlog

from shared.logging import _plain_values, build_formatter, setup_logging


@pytest.fixture(autouse=True)
def _cleanup_root_logger():
    """Close and remove all handlers from the root logger after each test."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture(autouse=True)
def _allow_file_logging():
    """Disable the _is_test guard so logging tests can create real file handlers."""
    with patch("shared.logging._is_test", return_value=False):
        yield


class TestSetupLogging:
    def test_configures_stdout_handler(self):
        assert setup_logging() is None
        root = logging.getLogger()

        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)

    def test_file_handler_in_log_dir(self, tmp_path):
        log_dir = tmp_path / "nested" / "quiz"
        log_path = setup_logging(log_dir=log_dir)
        root = logging.getLogger()

        assert len(root.handlers) == 2
        assert isinstance(root.handlers[1], logging.FileHandler)
        assert log_path is not None
        assert log_path.parent == log_dir
        assert Path(root.handlers[1].baseFilename) == log_path

    def test_log_file_named_by_timestamp(self, tmp_path):
        fixed_time = datetime(2025, 6, 1, 20, 15, 5, tzinfo=UTC)
        with patch("shared.logging.datetime") as mock_dt:
            mock_dt.now.return_value = fixed_time
            log_path = setup_logging(log_dir=str(tmp_path))

        assert log_path is not None
        assert log_path.name == "2025-06-01_20-15-05.log"

    def test_no_file_under_pytest_guard(self, tmp_path):
        with patch("shared.logging._is_test", return_value=True):
            assert setup_logging(log_dir=tmp_path / "quiz") is None
        assert not (tmp_path / "quiz").exists()

    def test_repeated_calls_replace_handlers(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_noisy_loggers_quieted(self):
        setup_logging(level=logging.DEBUG)
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("uvicorn.access").level == logging.WARNING

    def test_log_level_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        setup_logging()
        assert logging.getLogger().level == logging.WARNING

    def test_invalid_log_level_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "loud")
        with pytest.raises(ValueError, match="Invalid LOG_LEVEL"):
            setup_logging()

    def test_invalid_log_format_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "xml")
        with pytest.raises(ValueError, match="Invalid LOG_FORMAT"):
            setup_logging()

    def test_json_lines_carry_bound_context(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        log_path = setup_logging(log_dir=tmp_path)

        with structlog.contextvars.bound_contextvars(session="s1", correlation_id="corr-1"):
            structlog.get_logger("test.json").info("command accepted", command="StartGame")

        assert log_path is not None
        parsed = json.loads(log_path.read_text().strip().splitlines()[0])
        assert parsed["event"] == "command accepted"
        assert parsed["session"] == "s1"
        assert parsed["correlation_id"] == "corr-1"
        assert parsed["command"] == "StartGame"
        assert parsed["level"] == "info"

    def test_console_output_readable(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "console")
        log_path = setup_logging(log_dir=tmp_path)

        structlog.get_logger("test.console").warning("critical role missing", role="Engine")

        assert log_path is not None
        content = log_path.read_text()
        assert "critical role missing" in content
        assert "Engine" in content

    def test_stdlib_records_use_same_formatter(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        log_path = setup_logging(log_dir=tmp_path)

        logging.getLogger("uvicorn.error").error("plain stdlib record")

        assert log_path is not None
        parsed = json.loads(log_path.read_text().strip().splitlines()[-1])
        assert parsed["event"] == "plain stdlib record"


class TestBuildFormatter:
    def test_json_and_console(self):
        assert isinstance(build_formatter(json_mode=True), structlog.stdlib.ProcessorFormatter)
        assert isinstance(build_formatter(json_mode=False), structlog.stdlib.ProcessorFormatter)


class TestPlainValues:
    class _Phase(Enum):
        LOCK = "Lock"

    def test_enum_and_uuid_rendered_plain(self):
        command_id = UUID("8a0f8c4e-1f2a-4a7e-9c1d-2f6a0b3c4d5e")
        result = _plain_values(None, "", {"phase": self._Phase.LOCK, "command_id": command_id, "n": 3})
        assert result == {"phase": "Lock", "command_id": str(command_id), "n": 3}

    def test_one_level_into_dicts(self):
        result = _plain_values(None, "", {"counts": {"phase": self._Phase.LOCK, "n": 1}})
        assert result["counts"] == {"phase": "Lock", "n": 1}
