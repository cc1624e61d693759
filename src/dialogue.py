"""
Dialogue Engine - скриптовый чат из 7 вопросов.

Состояния:
    IDLE -> ASKING(N) -> AWAITING_ANSWER(N) -> ACKNOWLEDGING(N) -> ASKING(N+1) ...
                                              ACKNOWLEDGING(last) -> COMPLETE

Переходы:
- open(): печать вступления, через settle-паузу видна кнопка START
- start(): только из IDLE при видимой кнопке; профиль сбрасывается
- печать вопроса завершена + settle-пауза -> AWAITING_ANSWER, опции видны
- answer(option): только в AWAITING_ANSWER, при видимых опциях и если
  option входит в текущий набор опций; ответ пишется в AnswerStore,
  1.5 с "обработки", затем печать подтверждения
- подтверждение напечатано -> пауза -> следующий вопрос или COMPLETE
- COMPLETE: пауза, печать финального сообщения, затем CTA

Недопустимые действия (ответ во время печати, повторный клик, чужая
опция) не меняют состояние и только логируются.

Все таймеры состояния живут в TimerGroup и отменяются при выходе из
состояния и в close().
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from src.analytics import FunnelTracker
from src.answer_store import AnswerStore
from src.content import get_acknowledgement, get_completion_badge, get_question_options
from src.embeds import play_key_sound
from src.logger import log_rejected_action, logger
from src.questions import (
    COMPLETION_COUNT,
    FINAL_MESSAGE,
    INTRO_MESSAGE,
    QUESTIONS,
    START_BUTTON,
    VIEW_PLAN_BUTTON,
    Question,
)
from src.scheduler import Scheduler, TimerGroup
from src.settings import settings
from src.typed_reveal import TypedReveal


class DialogueState(str, Enum):
    IDLE = "idle"
    ASKING = "asking"
    AWAITING_ANSWER = "awaiting_answer"
    ACKNOWLEDGING = "acknowledging"
    COMPLETE = "complete"


@dataclass
class Message:
    """Сообщение в ленте чата"""
    type: str               # "bot" | "user"
    text: str
    is_typing: bool = False
    shown: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "text": self.shown if self.is_typing else self.text,
            "is_typing": self.is_typing,
        }


class DialogueEngine:
    """
    Машина состояний чата поверх фиксированного списка вопросов.

    Attributes:
        state: Текущее DialogueState
        index: Индекс активного вопроса (-1 до start())
        progress: Доля отвеченных вопросов в [0, 1]
        show_options: Видны ли кнопки (START, опции или CTA)
        processing: Показывается индикатор "анализирую"
        messages: Лента сообщений
    """

    def __init__(
        self,
        scheduler: Scheduler,
        store: AnswerStore,
        tracker: Optional[FunnelTracker] = None,
        questions: Sequence[Question] = QUESTIONS,
        on_navigate: Optional[Callable[[str], None]] = None,
        sound: Optional[Callable[[], None]] = None,
        config=None,
    ):
        config = config or settings.dialogue
        self.scheduler = scheduler
        self.store = store
        self.tracker = tracker
        self.questions = tuple(questions)
        self.on_navigate = on_navigate
        self.sound = sound

        self.tick = config.typing_tick_ms / 1000
        self.settle_delay = config.settle_delay_ms / 1000
        self.response_delay = config.response_delay_ms / 1000
        self.inter_question_pause = config.inter_question_pause_ms / 1000
        self.completion_pause = config.completion_pause_ms / 1000

        self.state = DialogueState.IDLE
        self.index = -1
        self.progress = 0.0
        self.show_options = False
        self.processing = False
        self.messages: List[Message] = []
        self.opened = False
        self.closed = False

        self._timers = TimerGroup(scheduler, name="dialogue")
        self._reveal = TypedReveal(scheduler, tick=self.tick)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.index < len(self.questions):
            return self.questions[self.index]
        return None

    @property
    def is_complete(self) -> bool:
        return self.state == DialogueState.COMPLETE

    @property
    def cta_visible(self) -> bool:
        return self.is_complete and self.show_options

    def _enter(self, state: DialogueState) -> None:
        self._timers.cancel_all()
        logger.debug("Dialogue state", state=state.value, index=self.index)
        self.state = state

    def _type_bot_message(self, text: str, on_typed: Callable[[], None]) -> None:
        message = Message(type="bot", text=text, is_typing=True)
        self.messages.append(message)

        def update(prefix: str) -> None:
            message.shown = prefix

        def finished() -> None:
            message.is_typing = False
            message.shown = text
            on_typed()

        self._reveal.start(text, on_update=update, on_complete=finished)

    def _reject(self, action: str, reason: str) -> bool:
        log_rejected_action(action, reason, state=self.state.value, index=self.index)
        return False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Открыть чат: page view и печать вступления"""
        if self.opened or self.closed:
            return
        self.opened = True
        if self.tracker is not None:
            self.tracker.chat_page_view()
            self.tracker.chat_started()
        self._type_bot_message(INTRO_MESSAGE, self._settle_then_show_options)

    def _settle_then_show_options(self) -> None:
        self._timers.call_later(self.settle_delay, self._show_options)

    def _show_options(self) -> None:
        if self.state == DialogueState.ASKING:
            self._enter(DialogueState.AWAITING_ANSWER)
        self.show_options = True

    def close(self) -> None:
        """Снять все таймеры (уход со страницы)"""
        self._timers.cancel_all()
        self._reveal.cancel()
        self.closed = True

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Кнопка START ANALYSIS"""
        if self.closed:
            return self._reject("start", "closed")
        if self.state != DialogueState.IDLE:
            return self._reject("start", "already_started")
        if not self.show_options:
            return self._reject("start", "options_hidden")

        play_key_sound(self.sound)
        self.store.reset()
        self.show_options = False
        self._ask(0)
        return True

    def current_options(self) -> tuple:
        """Опции активного вопроса (вариант по полу, если пол уже известен)"""
        question = self.current_question
        if question is None or self.state != DialogueState.AWAITING_ANSWER:
            return ()
        return get_question_options(question, self.store.get())

    def answer(self, option: str) -> bool:
        """Выбор опции; False если действие сейчас недопустимо"""
        if self.closed:
            return self._reject("answer", "closed")
        if self.state != DialogueState.AWAITING_ANSWER:
            return self._reject("answer", "not_awaiting")
        if not self.show_options:
            return self._reject("answer", "options_hidden")
        if option not in self.current_options():
            return self._reject("answer", "unknown_option")

        question = self.current_question
        play_key_sound(self.sound)
        self.messages.append(Message(type="user", text=option, shown=option))
        self.show_options = False
        self.processing = True
        self._enter(DialogueState.ACKNOWLEDGING)

        self.store.set(question.data_key, option)
        if self.tracker is not None:
            self.tracker.question_answered(question.id, question.text, option)
        self.progress = min(1.0, max(0.0, (self.index + 1) / len(self.questions)))
        logger.info(
            "Question answered",
            question_id=question.id,
            key=question.data_key,
            progress=round(self.progress, 3),
        )

        self._timers.call_later(self.response_delay, self._acknowledge)
        return True

    def view_plan(self) -> bool:
        """CTA "SEE MY PERSONALIZED PLAN" после завершения"""
        if self.closed:
            return self._reject("view_plan", "closed")
        if not self.cta_visible:
            return self._reject("view_plan", "not_complete")
        play_key_sound(self.sound)
        if self.tracker is not None:
            self.tracker.chat_cta_click()
        self.close()
        if self.on_navigate is not None:
            self.on_navigate("result")
        return True

    # ------------------------------------------------------------------
    # Scheduled steps
    # ------------------------------------------------------------------

    def _ask(self, index: int) -> None:
        self.index = index
        self._enter(DialogueState.ASKING)
        self._type_bot_message(self.questions[index].text, self._settle_then_show_options)

    def _acknowledge(self) -> None:
        self.processing = False
        question = self.current_question
        text = get_acknowledgement(question, self.store.get().gender)
        self._type_bot_message(text, self._after_acknowledgement)

    def _after_acknowledgement(self) -> None:
        next_index = self.index + 1
        if next_index < len(self.questions):
            self._timers.call_later(self.inter_question_pause, lambda: self._ask(next_index))
            return
        self._enter(DialogueState.COMPLETE)
        if self.tracker is not None:
            self.tracker.chat_completed()
        logger.info("Dialogue complete", answers=len(self.store.get().answers))
        self._timers.call_later(self.completion_pause, self._type_final_message)

    def _type_final_message(self) -> None:
        self._type_bot_message(FINAL_MESSAGE, self._settle_then_show_options)

    # ------------------------------------------------------------------
    # Render snapshot
    # ------------------------------------------------------------------

    def view(self) -> Dict[str, Any]:
        """Снимок того, что видит пользователь"""
        snapshot: Dict[str, Any] = {
            "state": self.state.value,
            "question_index": self.index,
            "progress": round(self.progress * 100),
            "messages": [m.to_dict() for m in self.messages],
            "processing": self.processing,
            "start_button": None,
            "options": [],
            "completion": None,
        }
        if not self.show_options:
            return snapshot

        if self.state == DialogueState.IDLE:
            snapshot["start_button"] = START_BUTTON
        elif self.state == DialogueState.AWAITING_ANSWER:
            snapshot["options"] = list(self.current_options())
        elif self.state == DialogueState.COMPLETE:
            badge = get_completion_badge(self.store.get().gender)
            snapshot["completion"] = {
                "title": badge["title"],
                "subtitle": badge["subtitle"],
                "cta": VIEW_PLAN_BUTTON,
                "count": COMPLETION_COUNT,
            }
        return snapshot
