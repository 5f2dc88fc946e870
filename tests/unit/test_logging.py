"""Unit tests for logging infrastructure."""
import logging
from unittest.mock import MagicMock
from clipbatch.domain.events import LogEmitted
from clipbatch.domain.models import Severity
from clipbatch.infrastructure.logging import emit_log, level_for, setup_logging


def test_setup_logging_creates_log_file(tmp_path):
    """Test that setup_logging creates clipbatch.log in the scratch directory."""
    scratch = tmp_path / "temp"

    logger = setup_logging(scratch, debug=False)

    assert isinstance(logger, logging.Logger)
    assert (scratch / "clipbatch.log").exists()


def test_setup_logging_debug_mode(tmp_path):
    logger = setup_logging(tmp_path, debug=True)
    assert logger.getEffectiveLevel() == logging.DEBUG


def test_setup_logging_normal_mode(tmp_path):
    logger = setup_logging(tmp_path, debug=False)
    assert logger.getEffectiveLevel() == logging.INFO


def test_setup_logging_custom_path(tmp_path):
    custom = tmp_path / "logs" / "custom.log"

    setup_logging(tmp_path / "temp", log_path=custom)

    assert custom.exists()
    assert not (tmp_path / "temp" / "clipbatch.log").exists()


def test_setup_logging_writes_formatted_lines(tmp_path):
    logger = setup_logging(tmp_path, debug=False)
    logger.info("Test log message for verification")

    for handler in logging.getLogger().handlers:
        handler.flush()

    content = (tmp_path / "clipbatch.log").read_text()
    assert "Test log message for verification" in content
    assert " - INFO - " in content


def test_level_for_maps_success_to_info():
    assert level_for(Severity.SUCCESS) == logging.INFO
    assert level_for(Severity.WARNING) == logging.WARNING
    assert level_for(Severity.ERROR) == logging.ERROR
    assert level_for(Severity.DEBUG) == logging.DEBUG


def test_emit_log_writes_and_publishes():
    bus = MagicMock()
    logger = MagicMock()

    emit_log(bus, logger, "Queued clip.mp4", Severity.SUCCESS)

    logger.log.assert_called_once_with(logging.INFO, "Queued clip.mp4")
    event = bus.publish.call_args[0][0]
    assert isinstance(event, LogEmitted)
    assert event.message == "Queued clip.mp4"
    assert event.severity == Severity.SUCCESS


def test_emit_log_without_bus():
    logger = MagicMock()
    emit_log(None, logger, "no bus", Severity.ERROR)
    logger.log.assert_called_once_with(logging.ERROR, "no bus")
