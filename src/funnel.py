"""
Funnel Phase Controller - страница результата.

Фазы (строго по порядку, без возврата назад):
    LOADING -> PHASE1 -> PHASE2 -> PHASE3 -> OFFER

Гейты:
- LOADING -> PHASE1: автоматически через loading_delay
- PHASE1 -> PHASE2: подтверждение (кнопка)
- PHASE2 -> PHASE3: таймер (20 с) И подтверждение; до нуля кнопка инертна
- PHASE3 -> OFFER: подтверждение
- OFFER: терминальная фаза, покупка доступна всегда

Переход: checkmark -> exit delay (400 мс) -> вход в фазу -> эффекты входа
(скролл к якорю, аналитика phase_progression_clicked и revelation события,
видео-эмбеды). Все таймеры фазы отменяются при выходе из неё, таймеры
сессии (счётчики дефицита) - в close().

Использование:
    controller = FunnelPhaseController(scheduler, store, storage, tracker=tracker)
    controller.open()
    scheduler.advance(2.5)
    controller.confirm(FunnelPhase.PHASE1)
"""

import math
import random
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional

from src.analytics import FunnelTracker
from src.answer_store import AnswerStore
from src.attribution import build_checkout_url, load_attribution
from src.content import (
    GUARANTEE_POINTS,
    GUARANTEE_TEXT,
    GUARANTEE_TITLE,
    get_copy,
    get_cta,
    get_emotional_validation,
    get_features,
    get_loading_message,
    get_offer_title,
    get_phase_heading,
    get_phase_text,
    get_situation_insight,
    get_situation_summary,
    get_title,
    get_total_value,
    get_value_breakdown,
    get_window_72_copy,
    resolve_gender,
)
from src.countdown import BuyersCounter, RevealCountdown, SpotsCounter
from src.embeds import VideoEmbedRegistry, play_key_sound
from src.feature_flags import flags
from src.logger import log_phase_transition, log_rejected_action, logger
from src.scheduler import Scheduler, TimerGroup, TimerHandle
from src.settings import settings
from src.storage import KeyValueStorage
from src.typed_reveal import TypedReveal


class FunnelPhase(IntEnum):
    LOADING = 0
    PHASE1 = 1
    PHASE2 = 2
    PHASE3 = 3
    OFFER = 4


# Текст кнопки подтверждения в каждой фазе
PHASE_BUTTONS: Dict[FunnelPhase, str] = {
    FunnelPhase.PHASE1: "🔓 Unlock The Secret Video",
    FunnelPhase.PHASE2: "Reveal 72-HOUR WINDOW",
    FunnelPhase.PHASE3: "⚡ Reveal My Personalized Plan",
}

# button_name в событии phase_progression_clicked
PHASE_BUTTON_EVENTS: Dict[FunnelPhase, str] = {
    FunnelPhase.PHASE1: "Unlock The Secret Video",
    FunnelPhase.PHASE2: "Reveal 72-HOUR WINDOW",
    FunnelPhase.PHASE3: "Reveal My Personalized Plan",
}

SCROLL_ANCHORS: Dict[FunnelPhase, str] = {
    FunnelPhase.PHASE1: "diagnosis",
    FunnelPhase.PHASE2: "video",
    FunnelPhase.PHASE3: "window72",
    FunnelPhase.OFFER: "pre_offer",
}

PHASE_CAPTIONS: Dict[FunnelPhase, str] = {
    FunnelPhase.PHASE2: "Now there's just one more step to win back the one you love.",
    FunnelPhase.PHASE3: "THE 72-HOUR WINDOW",
    FunnelPhase.OFFER: "🎥 FINAL MESSAGE BEFORE REVEALING YOUR PLAN",
}

STEPPER_LABELS = ("Diagnosis", "Video", "72h Window", "Solution")

# (icon, text, offset в секундах от входа в LOADING)
LOADING_STEPS = (
    ("📊", "Responses processed", 0.0),
    ("🧠", "Generating your personalized diagnosis...", 1.0),
)

PAGE_TITLE = "Your Personalized Plan Is Ready"
PRE_OFFER_SUBTITLE = (
    "Watch this last important message before accessing your personalized solution"
)
BUY_POSITION = "result_buy_main"
UNLOCK_VIDEO_NAME = "VSL Personalized Plan"


def delay_emoji(seconds_left: int, gate_seconds: int) -> str:
    """Эмодзи индикатора ожидания по доле прошедшего времени гейта"""
    progress = (gate_seconds - seconds_left) / gate_seconds if gate_seconds else 1.0
    if progress < 0.2:
        return "😴"
    if progress < 0.4:
        return "⏳"
    if progress < 0.7:
        return "🔥"
    return "🚀"


def _money(value: float) -> str:
    return f"${value:.0f}" if float(value).is_integer() else f"${value:.2f}"


class FunnelPhaseController:
    """
    Машина состояний result-воронки.

    Attributes:
        phase: Текущая FunnelPhase
        checkmarks: {FunnelPhase: True} для подтверждённых фаз
        entered: Фазы в порядке входа
        gate_remaining: Секунды до открытия кнопки Phase2
        gate_open: Кнопка Phase2 активна
        loading_progress: 0..100
    """

    def __init__(
        self,
        scheduler: Scheduler,
        store: AnswerStore,
        storage: KeyValueStorage,
        tracker: Optional[FunnelTracker] = None,
        embeds: Optional[VideoEmbedRegistry] = None,
        on_scroll: Optional[Callable[[str], None]] = None,
        on_open_url: Optional[Callable[[str], None]] = None,
        sound: Optional[Callable[[], None]] = None,
        rng: Optional[random.Random] = None,
        config=None,
        offer=None,
    ):
        self.config = config or settings.funnel
        self.offer = offer or settings.offer
        self.scheduler = scheduler
        self.store = store
        self.storage = storage
        self.tracker = tracker
        self.embeds = embeds or VideoEmbedRegistry()
        self.on_scroll = on_scroll
        self.on_open_url = on_open_url
        self.sound = sound

        self.gate_seconds = int(self.config.phase2_gate_seconds)
        self.exit_delay = self.config.exit_transition_ms / 1000
        self.embed_delay = self.config.embed_delay_ms / 1000
        self.scroll_delay = self.config.scroll_delay_ms / 1000

        self.phase = FunnelPhase.LOADING
        self.checkmarks: Dict[FunnelPhase, bool] = {}
        self.entered: List[FunnelPhase] = []
        self.fading_out: Optional[FunnelPhase] = None
        self.loading_progress = 0
        self.loading_step = 0
        self.gate_remaining = self.gate_seconds
        self.gate_open = False
        self.unlock_events = 0
        self.scrolled: List[str] = []
        self.opened = False
        self.closed = False

        self.countdown: Optional[RevealCountdown] = None
        self.spots = SpotsCounter(storage, tracker=tracker)
        self.buyers = BuyersCounter(rng=rng)

        self._phase_timers = TimerGroup(scheduler, name="phase")
        self._session_timers = TimerGroup(scheduler, name="result")
        self._gate_handle: Optional[TimerHandle] = None
        self._loading_handle: Optional[TimerHandle] = None
        self._caption = TypedReveal(scheduler, tick=settings.dialogue.typing_tick_ms / 1000)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Вход на страницу результата: LOADING и таймеры сессии"""
        if self.opened or self.closed:
            return
        self.opened = True
        if self.tracker is not None:
            self.tracker.result_page_view()

        self.countdown = RevealCountdown(self.storage, clock=self.scheduler.now)
        if flags.scarcity_counters:
            self._session_timers.adopt(self.spots.start(self.scheduler))
            self._session_timers.adopt(self.buyers.start(self.scheduler))

        self._enter_phase(FunnelPhase.LOADING)
        step = self.config.loading_tick_ms / 1000
        self._loading_handle = self._phase_timers.call_every(step, self._loading_tick)
        for index, (_, _, offset) in enumerate(LOADING_STEPS):
            self._phase_timers.call_later(offset, lambda i=index: self._set_loading_step(i))
        self._phase_timers.call_later(
            self.config.loading_delay_ms / 1000, self._finish_loading
        )

    def close(self) -> None:
        """Уход со страницы: отменить все таймеры фазы и сессии"""
        self._phase_timers.cancel_all()
        self._session_timers.cancel_all()
        self._caption.cancel()
        self.spots.stop()
        self.buyers.stop()
        self._gate_handle = None
        self.closed = True

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _loading_tick(self) -> None:
        if self.loading_progress >= 100:
            if self._loading_handle is not None:
                self._loading_handle.cancel()
            return
        self.loading_progress = min(100, self.loading_progress + int(self.config.loading_step_percent))

    def _set_loading_step(self, index: int) -> None:
        self.loading_step = index

    def _finish_loading(self) -> None:
        self._enter_phase(FunnelPhase.PHASE1)
        if self.tracker is not None:
            self.tracker.revelation_viewed("Why They Left", 1)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _enter_phase(self, phase: FunnelPhase) -> None:
        self._phase_timers.cancel_all()
        self._gate_handle = None
        self.phase = phase
        self.entered.append(phase)
        logger.info("Funnel phase entered", phase=int(phase))

        anchor = SCROLL_ANCHORS.get(phase)
        if anchor is not None:
            self._phase_timers.call_later(self.scroll_delay, lambda: self._scroll(anchor))

        caption = PHASE_CAPTIONS.get(phase)
        if caption is not None:
            self._caption.start(caption)
        else:
            self._caption.cancel()

        if phase == FunnelPhase.PHASE2:
            self.gate_remaining = self.gate_seconds
            self.gate_open = False
            self._gate_handle = self._phase_timers.call_every(1.0, self._gate_tick)
            self._phase_timers.call_later(
                self.embed_delay, lambda: self.embeds.request_mount(self.offer.vsl_media_id)
            )
        elif phase == FunnelPhase.OFFER:
            self._phase_timers.call_later(
                self.embed_delay, lambda: self.embeds.request_mount(self.offer.pre_offer_media_id)
            )

    def _scroll(self, anchor: str) -> None:
        self.scrolled.append(anchor)
        if self.on_scroll is None:
            return
        try:
            self.on_scroll(anchor)
        except Exception as exc:
            logger.warning("Scroll effect failed", anchor=anchor, error=str(exc))

    def _gate_tick(self) -> None:
        if self.gate_open:
            return
        self.gate_remaining = max(0, self.gate_remaining - 1)
        if self.gate_remaining > 0:
            return
        self.gate_open = True
        if self._gate_handle is not None:
            self._gate_handle.cancel()
            self._gate_handle = None
        self.unlock_events += 1
        logger.info("Phase2 gate opened", seconds=self.gate_seconds)
        if self.tracker is not None:
            self.tracker.video_button_unlocked(self.gate_seconds, UNLOCK_VIDEO_NAME)

    def can_confirm(self, phase: Optional[FunnelPhase] = None) -> bool:
        current = self.phase
        if self.closed or current not in PHASE_BUTTONS:
            return False
        if phase is not None and phase != current:
            return False
        if self.checkmarks.get(current):
            return False
        if current == FunnelPhase.PHASE2 and not self.gate_open:
            return False
        return True

    def confirm(self, phase: Optional[FunnelPhase] = None) -> bool:
        """
        Кнопка подтверждения текущей фазы.

        Args:
            phase: Фаза, чья кнопка нажата (None = текущая)

        Returns:
            True если переход запущен; повторный клик, клик по
            заблокированной кнопке или по чужой фазе - False
        """
        if not self.can_confirm(phase):
            reason = "locked" if self.phase == FunnelPhase.PHASE2 and not self.gate_open else "inactive"
            if self.checkmarks.get(self.phase):
                reason = "already_confirmed"
            log_rejected_action("confirm", reason, phase=int(self.phase))
            return False

        current = self.phase
        target = FunnelPhase(current + 1)
        play_key_sound(self.sound)
        self.checkmarks[current] = True
        self.fading_out = current
        self._phase_timers.call_later(self.exit_delay, lambda: self._advance(current, target))
        return True

    def _advance(self, phase_from: FunnelPhase, phase_to: FunnelPhase) -> None:
        self.fading_out = None
        self._enter_phase(phase_to)
        button_name = PHASE_BUTTON_EVENTS[phase_from]
        log_phase_transition(int(phase_from), int(phase_to), button_name)
        if self.tracker is None:
            return

        self.tracker.phase_progression_clicked(int(phase_from), int(phase_to), button_name)
        if phase_to == FunnelPhase.PHASE2:
            self.tracker.video_started()
        elif phase_to == FunnelPhase.PHASE3:
            self.tracker.revelation_viewed("72 Hour Window", 2)
        elif phase_to == FunnelPhase.OFFER:
            self.tracker.revelation_viewed("Offer Revealed", 3)
            self.tracker.offer_revealed()

    # ------------------------------------------------------------------
    # Offer
    # ------------------------------------------------------------------

    def checkout_url(self) -> str:
        return build_checkout_url(self.offer.checkout_url, load_attribution(self.storage))

    def buy(self) -> Optional[str]:
        """
        Кнопка покупки (только в OFFER).

        Returns:
            Checkout URL с атрибуцией или None, если покупка недоступна
        """
        if self.closed or self.phase != FunnelPhase.OFFER:
            log_rejected_action("buy", "offer_not_revealed", phase=int(self.phase))
            return None

        url = self.checkout_url()
        if self.tracker is not None:
            self.tracker.cta_buy_clicked(BUY_POSITION)
            self.tracker.purchase_initiated(
                self.offer.product_name, float(self.offer.price), self.offer.currency
            )
        logger.info("Checkout opened", phase=int(self.phase))
        if self.on_open_url is not None:
            try:
                self.on_open_url(url)
            except Exception as exc:
                logger.warning("Opening checkout failed", error=str(exc))
        return url

    def report_video_progress(self, percent: int) -> None:
        """Прогресс VSL от плеера (25/50/75/100)"""
        if self.tracker is None:
            return
        if percent >= 100:
            self.tracker.video_completed()
        else:
            self.tracker.video_progress(int(percent))

    # ------------------------------------------------------------------
    # Render snapshot
    # ------------------------------------------------------------------

    def _button(self, phase: FunnelPhase) -> Dict[str, Any]:
        if self.checkmarks.get(phase):
            return {"checkmark": True}
        enabled = not (phase == FunnelPhase.PHASE2 and not self.gate_open)
        return {"label": PHASE_BUTTONS[phase], "enabled": enabled, "checkmark": False}

    def _stepper(self) -> List[Dict[str, Any]]:
        return [
            {"label": label, "done": int(self.phase) > i + 1, "current": int(self.phase) == i + 1}
            for i, label in enumerate(STEPPER_LABELS)
        ]

    def _countdown_text(self) -> str:
        return self.countdown.format() if self.countdown is not None else ""

    def _section(self) -> Dict[str, Any]:
        profile = self.store.get()
        gender = resolve_gender(profile)
        phase = self.phase

        if phase == FunnelPhase.LOADING:
            return {
                "title": "ANALYZING YOUR CASE",
                "message": get_loading_message(gender),
                "steps": [
                    {
                        "text": text,
                        "icon": "✅" if i < self.loading_step else icon,
                        "active": i <= self.loading_step,
                    }
                    for i, (icon, text, _) in enumerate(LOADING_STEPS)
                ],
                "progress": self.loading_progress,
                "eta_seconds": math.ceil((100 - self.loading_progress) / 10),
            }

        if phase == FunnelPhase.PHASE1:
            return {
                "title": get_title(gender),
                "summary": get_situation_summary(profile),
                "copy": get_copy(profile),
                "validation": get_emotional_validation(profile),
                "insight": get_situation_insight(profile),
                "button": self._button(phase),
            }

        if phase == FunnelPhase.PHASE2:
            section: Dict[str, Any] = {
                "caption": self._caption.prefix,
                "video": self.offer.vsl_media_id if self.embeds.is_mounted(self.offer.vsl_media_id) else None,
                "button": self._button(phase),
            }
            if not self.gate_open and not self.checkmarks.get(phase):
                section["delay_text"] = (
                    f"{delay_emoji(self.gate_remaining, self.gate_seconds)} "
                    f"Next section in {self.gate_remaining} seconds..."
                )
                section["delay_progress"] = round(
                    (self.gate_seconds - self.gate_remaining) / self.gate_seconds * 100
                )
            return section

        if phase == FunnelPhase.PHASE3:
            return {
                "caption": self._caption.prefix,
                "intro": get_window_72_copy(gender),
                "phases": [
                    {"heading": get_phase_heading(n), "text": get_phase_text(gender, n)}
                    for n in (1, 2, 3)
                ],
                "mentioned_in": "Mentioned in",
                "button": self._button(phase),
            }

        return self._offer_section(profile)

    def _offer_section(self, profile) -> Dict[str, Any]:
        gender = resolve_gender(profile)
        price = float(self.offer.price)
        regular = float(self.offer.regular_price)
        discount = round((1 - price / regular) * 100) if regular else 0
        remaining = self._countdown_text()
        scarcity = None
        if flags.scarcity_counters:
            scarcity = {
                "time": remaining,
                "spots": self.spots.label(),
                "buying": self.buyers.label(),
            }
        return {
            "pre_offer": {
                "caption": self._caption.prefix,
                "subtitle": PRE_OFFER_SUBTITLE,
                "video": (
                    self.offer.pre_offer_media_id
                    if self.embeds.is_mounted(self.offer.pre_offer_media_id)
                    else None
                ),
            },
            "badge": "EXCLUSIVE OFFER",
            "title": get_offer_title(gender),
            "value_breakdown": {
                "heading": "WHAT YOU GET TODAY",
                "items": [(item.label, item.price_label) for item in get_value_breakdown(gender)],
                "total": f"${get_total_value(gender)}",
                "discount": f"🔥 {discount}% OFF - TODAY ONLY",
            },
            "summary": {
                "heading": "Based on your specific situation:",
                "rows": get_situation_summary(profile),
            },
            "features": get_features(gender),
            "headline": get_cta(gender),
            "price": {
                "old": f"Regular price: {_money(regular)}",
                "new": f"${price:.2f}",
                "discount": f"💰 {discount}% OFF TODAY",
            },
            "buy_button": {
                "label": f"🚀 YES, I WANT ACCESS FOR {_money(price)}",
                "timer": f"⏰ {remaining} REMAINING",
            },
            "guarantee": {
                "title": GUARANTEE_TITLE,
                "text": GUARANTEE_TEXT,
                "points": [f"✓ {point}" for point in GUARANTEE_POINTS],
            },
            "proof": [
                "⭐ 4.8/5 stars (2,341 verified reviews)",
                "📱 Last purchase 4 minutes ago",
            ],
            "trust": ["🔒 Secure purchase", "✅ Instant access", "↩️ 30-day guarantee"],
            "scarcity": scarcity,
            "footer": [
                "✓ +9,247 successful reconnections",
                "Exclusive for those who completed the personalized analysis",
            ],
        }

    def render(self) -> Dict[str, Any]:
        """Снимок всего видимого контента страницы результата"""
        return {
            "title": PAGE_TITLE,
            "countdown": f"Your analysis expires in: {self._countdown_text()}",
            "countdown_note": (
                "For security, your personalized diagnosis will only be available "
                f"for {self.config.countdown_minutes} minutes."
            ),
            "phase": int(self.phase),
            "fading_out": int(self.fading_out) if self.fading_out is not None else None,
            "stepper": self._stepper(),
            "section": self._section(),
        }
