"""
Structured Logging для воронки.

JSON-логи для production, readable для dev.
Включает session_id для трейсинга одной сессии воронки.

Использование:
    from src.logger import logger

    logger.set_session("sess_123")
    logger.info("Question answered", question_id=3)
    logger.event("phase_transition", phase_from=1, phase_to=2)
"""

import logging
import json
import os
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.settings import settings


# Context-local storage for session tracking
_session_id_var: ContextVar[Optional[str]] = ContextVar('session_id', default=None)
_extra_context_var: ContextVar[Optional[Dict[str, Any]]] = ContextVar('extra_context', default=None)


class StructuredLogger:
    """
    Структурированный логгер с поддержкой JSON и session tracing.

    Особенности:
    - JSON формат для production (LOG_FORMAT=json)
    - Readable формат для development (по умолчанию)
    - Автоматический session_id в каждом логе
    - Методы metric() и event() для аналитики
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)

        # Настройка логгера (только если еще не настроен)
        if not self.logger.handlers:
            self._setup_logger()

    def _setup_logger(self) -> None:
        """Настройка логгера на основе settings и environment"""
        level_name = settings.get_nested("logging.level", "INFO")
        level = getattr(logging, level_name.upper(), logging.INFO)
        self.logger.setLevel(level)

        handler = logging.StreamHandler()
        handler.setLevel(level)

        log_format = os.environ.get("LOG_FORMAT", "readable")

        if log_format == "json":
            formatter = logging.Formatter("%(message)s")
        else:
            formatter = logging.Formatter(
                "[%(asctime)s] %(levelname)s - %(message)s",
                datefmt="%H:%M:%S"
            )

        handler.setFormatter(formatter)
        self.logger.addHandler(handler)

        # Предотвращаем дублирование логов
        self.logger.propagate = False

    @property
    def session_id(self) -> Optional[str]:
        """Context-local session_id"""
        return _session_id_var.get()

    def set_session(self, session_id: str) -> None:
        """Set session_id (context-local)"""
        _session_id_var.set(session_id)

    def clear_session(self) -> None:
        """Clear session_id"""
        _session_id_var.set(None)

    @property
    def _extra_context(self) -> Dict[str, Any]:
        """Context-local extra context"""
        ctx = _extra_context_var.get()
        if ctx is None:
            ctx = {}
            _extra_context_var.set(ctx)
        return ctx

    def set_context(self, **kwargs: Any) -> None:
        """Set extra context (context-local)"""
        ctx = self._extra_context
        ctx.update(kwargs)
        _extra_context_var.set(ctx)

    def clear_context(self) -> None:
        """Clear extra context"""
        _extra_context_var.set({})

    def _format_structured(self, level: str, message: str, **kwargs: Any) -> Dict[str, Any]:
        """Форматирование структурированного лога"""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "logger": self.name,
            "message": message,
        }

        if self.session_id:
            log_entry["session_id"] = self.session_id

        if self._extra_context:
            log_entry.update(self._extra_context)

        if kwargs:
            log_entry.update(kwargs)

        return log_entry

    def _should_use_json(self) -> bool:
        """Проверка нужно ли использовать JSON формат"""
        return os.environ.get("LOG_FORMAT", "readable") == "json"

    def _readable(self, message: str, **kwargs: Any) -> str:
        if kwargs:
            extras = ", ".join(f"{k}={v}" for k, v in kwargs.items())
            message = f"{message} [{extras}]"
        if self.session_id:
            message = f"[{self.session_id}] {message}"
        return message

    def _log(self, level: str, message: str, log_method, **kwargs: Any) -> None:
        """Общий метод логирования"""
        if self._should_use_json():
            structured = self._format_structured(level, message, **kwargs)
            log_method(json.dumps(structured, ensure_ascii=False, default=str))
        else:
            log_method(self._readable(message, **kwargs))

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug message"""
        self._log("DEBUG", message, self.logger.debug, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info message"""
        self._log("INFO", message, self.logger.info, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log warning message"""
        self._log("WARNING", message, self.logger.warning, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        """Log error message"""
        self._log("ERROR", message, self.logger.error, **kwargs)

    def critical(self, message: str, **kwargs: Any) -> None:
        """Log critical message"""
        self._log("CRITICAL", message, self.logger.critical, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log exception with traceback"""
        if self._should_use_json():
            import traceback
            kwargs["traceback"] = traceback.format_exc()
            structured = self._format_structured("ERROR", message, **kwargs)
            self.logger.error(json.dumps(structured, ensure_ascii=False, default=str))
        else:
            self.logger.exception(self._readable(message, **kwargs))

    def metric(self, name: str, value: Any, **kwargs: Any) -> None:
        """
        Structured metric for analytics.

        Args:
            name: Название метрики (например, "spots_left", "loading_progress")
            value: Значение метрики
            **kwargs: Дополнительные измерения (phase, gender, etc.)

        Example:
            logger.metric("spots_left", 42, phase=4)
        """
        self._log("METRIC", name, self.logger.info, value=value, **kwargs)

    def event(self, event_type: str, **kwargs: Any) -> None:
        """
        Log business event.

        Args:
            event_type: Тип события (например, "phase_transition", "question_answered")
            **kwargs: Данные события

        Example:
            logger.event("phase_transition", phase_from=1, phase_to=2)
        """
        self._log("EVENT", event_type, self.logger.info, **kwargs)


# Singleton экземпляр логгера
logger = StructuredLogger("reconnect_funnel")


# =============================================================================
# Funnel Logging Helpers
# =============================================================================

def log_phase_transition(phase_from: int, phase_to: int, button_name: str) -> None:
    """
    Логирование перехода между фазами result-воронки.

    Args:
        phase_from: Номер фазы до перехода
        phase_to: Номер фазы после перехода
        button_name: Текст кнопки подтверждения
    """
    logger.event(
        "phase_transition",
        phase_from=phase_from,
        phase_to=phase_to,
        button_name=button_name,
    )


def log_rejected_action(action: str, reason: str, **kwargs: Any) -> None:
    """
    Логирование отклонённого действия пользователя (двойной клик,
    ответ во время печати, заблокированная кнопка).
    """
    logger.debug("Action ignored", action=action, reason=reason, **kwargs)


# =============================================================================
# Утилиты для тестирования
# =============================================================================

def create_test_logger(name: str = "test") -> StructuredLogger:
    """Создать изолированный логгер для тестов"""
    return StructuredLogger(f"reconnect_funnel.{name}")


if __name__ == "__main__":

    print("=" * 60)
    print("ДЕМО STRUCTURED LOGGER")
    print("=" * 60)

    print("\n--- Readable Format (default) ---")
    logger.info("Application started")
    logger.set_session("sess_abc123")
    logger.info("Question answered", question_id=1, answer="MALE")
    logger.metric("spots_left", 42, phase=4)
    logger.event("phase_transition", phase_from=1, phase_to=2)

    print("\n--- JSON Format (set LOG_FORMAT=json) ---")
    os.environ["LOG_FORMAT"] = "json"
    json_logger = StructuredLogger("reconnect_funnel.demo")
    json_logger.set_session("sess_xyz789")
    json_logger.info("Application started")
    json_logger.metric("spots_left", 42, phase=4)
