"""
Analytics: fire-and-forget события воронки.

Движки вызывают FunnelTracker в фиксированных точках (page views,
ответы, переходы фаз, unlock, CTA). Ответ sink'а никогда не читается,
а любая ошибка sink'а логируется и гасится на границе: сбой аналитики
не может повлиять на переходы состояний.

Sinks:
- LoggingSink: события в StructuredLogger (по умолчанию)
- RecordingSink: список событий в памяти (тесты, симулятор)
- MeasurementProtocolSink: GA4 Measurement Protocol через requests

TrackingGuard заменяет глобальный флаг "tracking loaded": явная
инициализация и teardown, пока guard не инициализирован, события
буферизуются и отправляются при init().

Использование:
    from src.analytics import FunnelTracker, RecordingSink, TrackingGuard

    guard = TrackingGuard()
    guard.init(RecordingSink())
    tracker = FunnelTracker(guard)
    tracker.chat_started()
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from src.feature_flags import flags
from src.logger import logger
from src.settings import settings


Params = Dict[str, Any]

VSL_VIDEO_NAME = "VSL Personalized Plan"


class AnalyticsSink:
    """Интерфейс получателя событий: send(event, params)"""

    def send(self, event: str, params: Params) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class LoggingSink(AnalyticsSink):
    def send(self, event: str, params: Params) -> None:
        logger.event(event, **params)


@dataclass
class RecordedEvent:
    name: str
    params: Params


class RecordingSink(AnalyticsSink):
    """Запоминает события в порядке отправки"""

    def __init__(self):
        self.events: List[RecordedEvent] = []

    def send(self, event: str, params: Params) -> None:
        self.events.append(RecordedEvent(event, dict(params)))

    def names(self) -> List[str]:
        return [e.name for e in self.events]

    def of(self, name: str) -> List[Params]:
        return [e.params for e in self.events if e.name == name]

    def count(self, name: str) -> int:
        return len(self.of(name))

    def clear(self) -> None:
        self.events.clear()


class MeasurementProtocolSink(AnalyticsSink):
    """
    GA4 Measurement Protocol.

    Один POST на событие с коротким таймаутом. Ошибки сети и HTTP
    пробрасываются наверх, FunnelTracker их гасит и логирует.
    """

    def __init__(
        self,
        measurement_id: Optional[str] = None,
        api_secret: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
        client_id: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        config = settings.analytics
        self.measurement_id = measurement_id or config.measurement_id
        self.api_secret = api_secret or config.api_secret
        self.endpoint = endpoint or config.endpoint
        self.timeout = timeout or config.timeout
        self.client_id = client_id or uuid.uuid4().hex
        self._session = session or requests.Session()

    def build_payload(self, event: str, params: Params) -> Dict[str, Any]:
        return {
            "client_id": self.client_id,
            "events": [{"name": event, "params": params}],
        }

    def send(self, event: str, params: Params) -> None:
        response = self._session.post(
            self.endpoint,
            params={"measurement_id": self.measurement_id, "api_secret": self.api_secret},
            json=self.build_payload(event, params),
            timeout=self.timeout,
        )
        response.raise_for_status()

    def close(self) -> None:
        self._session.close()


def create_sink(config=None) -> AnalyticsSink:
    """Sink по настройкам analytics.* и флагу analytics_remote"""
    config = config or settings.analytics
    if flags.analytics_remote and config.get("measurement_id") and config.get("api_secret"):
        return MeasurementProtocolSink(
            measurement_id=config.measurement_id,
            api_secret=config.api_secret,
            endpoint=config.endpoint,
            timeout=config.timeout,
        )
    return LoggingSink()


# =============================================================================
# Tracking guard
# =============================================================================

class TrackingGuard:
    """
    Явная инициализация трекинга на процесс.

    init() устанавливает sink ровно один раз; повторный init() ничего
    не делает и возвращает False. teardown() закрывает sink и снова
    разрешает init(). До init() события копятся в буфере.
    """

    MAX_PENDING = 100

    def __init__(self):
        self._sink: Optional[AnalyticsSink] = None
        self._pending: List[Tuple[str, Params]] = []

    @property
    def loaded(self) -> bool:
        return self._sink is not None

    @property
    def sink(self) -> Optional[AnalyticsSink]:
        return self._sink

    @property
    def pending(self) -> int:
        return len(self._pending)

    def init(self, sink: AnalyticsSink) -> bool:
        if self._sink is not None:
            logger.debug("Tracking already loaded")
            return False
        self._sink = sink
        pending, self._pending = self._pending, []
        for event, params in pending:
            self.dispatch(event, params)
        return True

    def teardown(self) -> None:
        if self._sink is None:
            return
        try:
            self._sink.close()
        except Exception as exc:
            logger.warning("Analytics sink close failed", error=str(exc))
        self._sink = None
        self._pending = []

    def dispatch(self, event: str, params: Params) -> bool:
        """Отправить событие; True если sink принял его без ошибки"""
        if self._sink is None:
            if len(self._pending) < self.MAX_PENDING:
                self._pending.append((event, params))
            return False
        try:
            self._sink.send(event, params)
        except requests.RequestException as exc:
            logger.warning("Analytics request failed", analytics_event=event, error=str(exc))
            return False
        except Exception as exc:
            logger.warning("Analytics sink failed", analytics_event=event, error=str(exc))
            return False
        return True


# =============================================================================
# Funnel tracker
# =============================================================================

@dataclass
class FunnelTracker:
    """
    Именованные события воронки (набор событий GA4 помощника).

    Все события, кроме purchase, несут параметр page. page_location из
    location(), если она задана.
    """

    guard: TrackingGuard
    location: Optional[Callable[[], str]] = None
    sent: int = field(default=0, init=False)

    def _send(self, event: str, params: Params) -> None:
        if not flags.analytics_tracking:
            return
        if settings.get_nested("logging.log_analytics_events", False):
            logger.debug("Analytics event", analytics_event=event, **params)
        if self.guard.dispatch(event, params):
            self.sent += 1

    def _page_view(self, title: str, path: str, page: str) -> None:
        params: Params = {"page_title": title, "page_path": path, "page": page}
        if self.location is not None:
            params["page_location"] = self.location()
        self._send("page_view", params)

    # --- LANDING ---

    def landing_page_view(self) -> None:
        self._page_view("Landing Page", "/", "landing")

    def landing_cta_click(self) -> None:
        self._send("cta_click", {
            "button_name": "Start Analysis",
            "button_location": "landing_primary",
            "page": "landing",
        })

    def landing_scroll_depth(self, depth: int) -> None:
        self._send("scroll_depth", {"depth_percentage": depth, "page": "landing"})

    # --- CHAT ---

    def chat_page_view(self) -> None:
        self._page_view("Chat Analysis", "/chat", "chat")

    def chat_started(self) -> None:
        self._send("chat_started", {"page": "chat"})

    def question_answered(self, question_id: int, question_text: str, answer: str) -> None:
        self._send("question_answered", {
            "question_id": question_id,
            "question_text": question_text,
            "answer": answer,
            "page": "chat",
        })

    def chat_completed(self) -> None:
        self._send("chat_completed", {"page": "chat"})

    def chat_cta_click(self) -> None:
        self._send("cta_click", {
            "button_name": "See My Personalized Plan",
            "button_location": "chat_complete",
            "page": "chat",
        })

    # --- RESULT ---

    def result_page_view(self) -> None:
        self._page_view("Result Page", "/result", "result")

    def revelation_viewed(self, revelation_name: str, revelation_number: int) -> None:
        self._send("revelation_viewed", {
            "revelation_name": revelation_name,
            "revelation_number": revelation_number,
            "page": "result",
        })

    def video_started(self) -> None:
        self._send("video_started", {"video_name": VSL_VIDEO_NAME, "page": "result"})

    def video_progress(self, progress: int) -> None:
        self._send("video_progress", {
            "progress_percentage": progress,
            "video_name": VSL_VIDEO_NAME,
            "page": "result",
        })

    def video_completed(self) -> None:
        self._send("video_completed", {"video_name": VSL_VIDEO_NAME, "page": "result"})

    def video_button_unlocked(self, unlock_time_seconds: int, video_name: str = VSL_VIDEO_NAME) -> None:
        self._send("video_button_unlocked", {
            "unlock_time_seconds": unlock_time_seconds,
            "video_name": video_name,
            "page": "result",
        })

    def offer_revealed(self) -> None:
        self._send("offer_revealed", {"page": "result"})

    def phase_progression_clicked(self, phase_from: int, phase_to: int, button_name: str) -> None:
        self._send("phase_progression_clicked", {
            "phase_from": phase_from,
            "phase_to": phase_to,
            "button_name": button_name,
            "page": "result",
        })

    def cta_buy_clicked(self, position: str) -> None:
        self._send("cta_buy_clicked", {"button_position": position, "page": "result"})

    def spots_updated(self, spots_left: int) -> None:
        self._send("spots_updated", {"spots_left": spots_left, "page": "result"})

    # --- PURCHASE ---

    def purchase_initiated(self, product_name: str, price: float, currency: str) -> None:
        self._send("purchase_initiated", {
            "product_name": product_name,
            "price": price,
            "currency": currency,
            "page": "result",
        })

    def purchase_completed(
        self,
        product_name: str,
        price: float,
        currency: str,
        transaction_id: Optional[str] = None,
    ) -> None:
        params: Params = {"product_name": product_name, "price": price, "currency": currency}
        if transaction_id:
            params["transaction_id"] = transaction_id
        self._send("purchase", params)
