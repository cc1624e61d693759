"""
Тесты для модуля структурированного логирования (logger.py).
"""

import json
import logging
import os
from io import StringIO

import pytest

from src.logger import create_test_logger, log_phase_transition, log_rejected_action, logger


@pytest.fixture
def capture_logs():
    """Fixture для захвата логов"""
    log_capture = StringIO()
    handler = logging.StreamHandler(log_capture)
    handler.setLevel(logging.DEBUG)
    return log_capture, handler


def _attach(log, handler):
    log.logger.handlers.clear()
    log.logger.addHandler(handler)
    log.logger.setLevel(logging.DEBUG)
    return log


class TestStructuredLoggerBasic:
    """Базовые тесты StructuredLogger"""

    def test_create_logger(self):
        log = create_test_logger("basic")
        assert log.name == "reconnect_funnel.basic"

    def test_set_session(self):
        log = create_test_logger("session")
        assert log.session_id is None

        log.set_session("sess_123")
        assert log.session_id == "sess_123"

        log.clear_session()
        assert log.session_id is None

    def test_format_structured(self):
        log = create_test_logger("format")
        log.set_session("sess_999")

        result = log._format_structured("INFO", "Test message", key="value")

        assert "timestamp" in result
        assert result["level"] == "INFO"
        assert result["session_id"] == "sess_999"
        assert result["key"] == "value"
        assert result["logger"] == "reconnect_funnel.format"


class TestStructuredLoggerOutput:
    """Тесты вывода логов"""

    def test_readable_format(self, capture_logs):
        log_capture, handler = capture_logs
        env_backup = os.environ.pop("LOG_FORMAT", None)
        try:
            log = _attach(create_test_logger("readable"), handler)
            log.set_session("sess_1")
            log.info("Question answered", question_id=3)

            output = log_capture.getvalue()
            assert "[sess_1]" in output
            assert "Question answered" in output
            assert "question_id=3" in output
        finally:
            if env_backup:
                os.environ["LOG_FORMAT"] = env_backup

    def test_json_format(self, capture_logs):
        log_capture, handler = capture_logs
        os.environ["LOG_FORMAT"] = "json"
        try:
            log = _attach(create_test_logger("json"), handler)
            log.event("phase_transition", phase_from=1, phase_to=2)

            data = json.loads(log_capture.getvalue().strip())
            assert data["level"] == "EVENT"
            assert data["message"] == "phase_transition"
            assert data["phase_to"] == 2
        finally:
            del os.environ["LOG_FORMAT"]

    def test_metric_readable(self, capture_logs):
        log_capture, handler = capture_logs
        env_backup = os.environ.pop("LOG_FORMAT", None)
        try:
            log = _attach(create_test_logger("metric"), handler)
            log.metric("spots_left", 42, phase=4)

            output = log_capture.getvalue()
            assert "spots_left" in output
            assert "value=42" in output
            assert "phase=4" in output
        finally:
            if env_backup:
                os.environ["LOG_FORMAT"] = env_backup


class TestFunnelHelpers:
    """Хелперы логирования воронки"""

    def test_log_phase_transition(self, capture_logs):
        log_capture, handler = capture_logs
        env_backup = os.environ.pop("LOG_FORMAT", None)
        old_handlers = list(logger.logger.handlers)
        old_level = logger.logger.level
        try:
            _attach(logger, handler)
            log_phase_transition(1, 2, "Unlock The Secret Video")
            output = log_capture.getvalue()
            assert "phase_transition" in output
            assert "phase_to=2" in output
            assert "button_name=Unlock The Secret Video" in output
        finally:
            logger.logger.handlers[:] = old_handlers
            logger.logger.setLevel(old_level)
            if env_backup:
                os.environ["LOG_FORMAT"] = env_backup

    def test_log_rejected_action_is_debug(self, capture_logs):
        log_capture, handler = capture_logs
        old_handlers = list(logger.logger.handlers)
        old_level = logger.logger.level
        try:
            _attach(logger, handler)
            logger.logger.setLevel(logging.INFO)
            log_rejected_action("confirm", "locked", phase=2)
            assert log_capture.getvalue() == ""

            logger.logger.setLevel(logging.DEBUG)
            log_rejected_action("confirm", "locked", phase=2)
            assert "reason=locked" in log_capture.getvalue()
        finally:
            logger.logger.handlers[:] = old_handlers
            logger.logger.setLevel(old_level)
