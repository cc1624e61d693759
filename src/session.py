"""
FunnelSession - один посетитель, проходящий landing -> chat -> result.

Владеет общими зависимостями (storage, answer store, tracker, реестр
эмбедов) и движком текущей страницы. Уход со страницы закрывает
предыдущий движок, ни один таймер старой страницы не переживает навигацию.

Перезагрузка моделируется FunnelSession.restore(): новая сессия поверх
того же storage открывает страницу и находит сохранённые профиль,
старт таймера, счётчик мест и атрибуцию.

Использование:
    from src.scheduler import ManualScheduler
    from src.session import FunnelSession

    session = FunnelSession(ManualScheduler())
    session.open_landing("https://quiz.example.com/?utm_source=fb")
    session.start_analysis()
"""

import random
import uuid
from enum import Enum
from typing import Callable, List, Optional
from urllib.parse import urlsplit, urlunsplit

from src.analytics import AnalyticsSink, FunnelTracker, TrackingGuard, create_sink
from src.answer_store import AnswerStore
from src.attribution import capture_attribution, ensure_attribution, load_attribution
from src.dialogue import DialogueEngine
from src.embeds import VideoEmbedRegistry, play_key_sound
from src.funnel import FunnelPhaseController
from src.logger import log_rejected_action, logger
from src.scheduler import Scheduler
from src.storage import KeyValueStorage, create_storage


class Page(str, Enum):
    LANDING = "landing"
    CHAT = "chat"
    RESULT = "result"


PAGE_PATHS = {
    Page.LANDING: "/",
    Page.CHAT: "/chat",
    Page.RESULT: "/result",
}

DEFAULT_ENTRY_URL = "https://localhost/"


class FunnelSession:
    """Связывает компоненты воронки для одного посетителя"""

    def __init__(
        self,
        scheduler: Scheduler,
        storage: Optional[KeyValueStorage] = None,
        sink: Optional[AnalyticsSink] = None,
        guard: Optional[TrackingGuard] = None,
        session_id: Optional[str] = None,
        rng: Optional[random.Random] = None,
        mount: Optional[Callable[[str], None]] = None,
        on_scroll: Optional[Callable[[str], None]] = None,
        on_open_url: Optional[Callable[[str], None]] = None,
        sound: Optional[Callable[[], None]] = None,
    ):
        self.scheduler = scheduler
        self.storage = storage if storage is not None else create_storage()
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.rng = rng or random.Random()
        self.on_scroll = on_scroll
        self.on_open_url = on_open_url
        self.sound = sound

        self._owns_guard = guard is None
        self.guard = guard or TrackingGuard()
        if not self.guard.loaded:
            self.guard.init(sink or create_sink())

        self.url = DEFAULT_ENTRY_URL
        self.page: Optional[Page] = None
        self.store = AnswerStore(self.storage)
        self.tracker = FunnelTracker(self.guard, location=lambda: self.url)
        self.embeds = VideoEmbedRegistry(mount)
        self.dialogue: Optional[DialogueEngine] = None
        self.result: Optional[FunnelPhaseController] = None
        self.checkout_urls: List[str] = []

        logger.set_session(self.session_id)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _url_for(self, page: Page) -> str:
        parts = urlsplit(self.url)
        return urlunsplit((parts.scheme, parts.netloc, PAGE_PATHS[page], "", ""))

    def _close_engines(self) -> None:
        if self.dialogue is not None:
            self.dialogue.close()
        if self.result is not None:
            self.result.close()

    def open_landing(self, url: str = DEFAULT_ENTRY_URL) -> None:
        """Вход: атрибуция из URL и page_view лендинга"""
        self._close_engines()
        self.url = url
        self.page = Page.LANDING
        capture_attribution(url, self.storage)
        self.tracker.landing_page_view()

    def landing_scroll(self, depth: int) -> None:
        if self.page == Page.LANDING:
            self.tracker.landing_scroll_depth(depth)

    def start_analysis(self) -> bool:
        """CTA лендинга"""
        if self.page != Page.LANDING:
            log_rejected_action("start_analysis", "not_on_landing", page=self.page)
            return False
        play_key_sound(self.sound)
        self.tracker.landing_cta_click()
        self.navigate(Page.CHAT)
        return True

    def navigate(self, page: Page) -> None:
        """Клиентская навигация: новый path без query, атрибуция добавляется заново"""
        if isinstance(page, str):
            page = Page(page)
        self._close_engines()
        self.url = ensure_attribution(self._url_for(page), self.storage)
        self.page = page
        logger.info("Page opened", page=page.value)

        if page == Page.CHAT:
            self.dialogue = DialogueEngine(
                self.scheduler,
                self.store,
                tracker=self.tracker,
                on_navigate=self.navigate,
                sound=self.sound,
            )
            self.dialogue.open()
        elif page == Page.RESULT:
            self.result = FunnelPhaseController(
                self.scheduler,
                self.store,
                self.storage,
                tracker=self.tracker,
                embeds=self.embeds,
                on_scroll=self.on_scroll,
                on_open_url=self._open_checkout,
                sound=self.sound,
                rng=self.rng,
            )
            self.result.open()
        else:
            self.tracker.landing_page_view()

    def _open_checkout(self, url: str) -> None:
        self.checkout_urls.append(url)
        if self.on_open_url is not None:
            self.on_open_url(url)

    # ------------------------------------------------------------------
    # Reload / teardown
    # ------------------------------------------------------------------

    @classmethod
    def restore(
        cls,
        scheduler: Scheduler,
        storage: KeyValueStorage,
        page: Page = Page.RESULT,
        url: Optional[str] = None,
        **kwargs,
    ) -> "FunnelSession":
        """
        Перезагрузка страницы: новая сессия поверх того же storage.

        Профиль, старт таймера, счётчик мест и атрибуция читаются из
        storage. Состояние в памяти (позиция диалога, фаза) начинается
        заново, как в браузере.
        """
        session = cls(scheduler, storage=storage, **kwargs)
        if url is not None:
            session.url = url
        session.store.reload()
        if isinstance(page, str):
            page = Page(page)
        if page == Page.LANDING:
            session.open_landing(session.url)
        else:
            session.navigate(page)
        logger.info(
            "Session restored",
            page=page.value,
            answers=len(session.store.get().answers),
            attribution=sorted(load_attribution(storage)),
        )
        return session

    def close(self) -> None:
        self._close_engines()
        if self._owns_guard:
            self.guard.teardown()
        logger.clear_session()
