"""
Таймер сессии и счётчики дефицита для страницы результата.

RevealCountdown - 47-минутный дедлайн от сохранённого старта. Оставшееся
время вычисляется из часов при каждом обращении, поэтому перезагрузка
не сбрасывает его. Достижение нуля ничего не блокирует: таймер
декоративный.

SpotsCounter и BuyersCounter - явно симулированные счётчики ("места",
"покупают сейчас"), а не реальный инвентарь. Значения держатся в
фиксированных диапазонах.
"""

import random
from typing import Callable, Optional

from src.analytics import FunnelTracker
from src.logger import logger
from src.scheduler import Scheduler, TimerHandle
from src.settings import settings
from src.storage import KeyValueStorage


TIMER_START_KEY = "quiz_timer_start"
SPOTS_KEY = "spots_left"


def format_time(seconds: int) -> str:
    """Секунды -> "M:SS" (минуты без ограничения сверху)"""
    seconds = max(0, int(seconds))
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}:{secs:02d}"


class RevealCountdown:
    """
    Дедлайн сессии: start + window.

    Старт пишется в storage один раз (epoch ms) и не переписывается,
    пока ключ существует. remaining() не возрастает и не бывает < 0.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        clock: Callable[[], float],
        window_seconds: Optional[int] = None,
    ):
        self.storage = storage
        self.clock = clock
        self.window_seconds = (
            window_seconds
            if window_seconds is not None
            else int(settings.funnel.countdown_minutes) * 60
        )
        self.started_at_ms = self._load_or_start()

    def _load_or_start(self) -> int:
        raw = self.storage.get(TIMER_START_KEY)
        if raw is not None:
            try:
                return int(raw)
            except ValueError:
                logger.warning("Malformed countdown start ignored", value=raw)
        started = int(self.clock() * 1000)
        self.storage.set(TIMER_START_KEY, str(started))
        return started

    def elapsed(self) -> int:
        """Целые секунды с момента старта"""
        return max(0, int(self.clock() * 1000 - self.started_at_ms) // 1000)

    def remaining(self) -> int:
        return max(0, self.window_seconds - self.elapsed())

    @property
    def expired(self) -> bool:
        return self.remaining() == 0

    def format(self) -> str:
        return format_time(self.remaining())


class SpotsCounter:
    """
    "Spots left": минус одно место каждые interval секунд, пока выше floor.

    Значение сохраняется в storage после каждого уменьшения и никогда
    не растёт в течение сессии.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        tracker: Optional[FunnelTracker] = None,
        initial: Optional[int] = None,
        floor: Optional[int] = None,
        maximum: Optional[int] = None,
        interval: Optional[float] = None,
    ):
        config = settings.scarcity
        self.storage = storage
        self.tracker = tracker
        self.floor = floor if floor is not None else int(config.spots_floor)
        self.maximum = maximum if maximum is not None else int(config.spots_max)
        self.interval = interval if interval is not None else float(config.spots_interval_seconds)
        default = initial if initial is not None else int(config.spots_initial)
        self.value = self._load(default)
        self._handle: Optional[TimerHandle] = None

    def _load(self, default: int) -> int:
        stored = self.storage.get_json(SPOTS_KEY)
        if isinstance(stored, int) and not isinstance(stored, bool):
            # сохранённое значение ниже floor не поднимаем: счётчик только убывает
            return max(0, min(self.maximum, stored))
        if stored is not None:
            logger.warning("Malformed spots value ignored", value=stored)
        return min(self.maximum, max(self.floor, default))

    @property
    def running(self) -> bool:
        return self._handle is not None and self._handle.active

    def start(self, scheduler: Scheduler) -> TimerHandle:
        self.stop()
        self._handle = scheduler.call_every(self.interval, self.tick)
        return self._handle

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def tick(self) -> None:
        if self.value <= self.floor:
            return
        self.value -= 1
        self.storage.set_json(SPOTS_KEY, self.value)
        logger.metric("spots_left", self.value)
        if self.tracker is not None:
            self.tracker.spots_updated(self.value)

    def label(self) -> str:
        return f"{self.value}/{self.maximum}"


class BuyersCounter:
    """
    "N buying now": случайное блуждание ±1 в [minimum, maximum].

    Интервал следующего шага выбирается заново после каждого тика.
    Не сохраняется.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        minimum: Optional[int] = None,
        maximum: Optional[int] = None,
        interval_range: Optional[tuple] = None,
    ):
        config = settings.scarcity
        self.rng = rng or random.Random()
        self.minimum = minimum if minimum is not None else int(config.buying_min)
        self.maximum = maximum if maximum is not None else int(config.buying_max)
        self.interval_range = interval_range or (
            float(config.buying_interval_min_seconds),
            float(config.buying_interval_max_seconds),
        )
        initial_max = min(self.maximum, int(config.buying_initial_max))
        self.value = self.rng.randint(self.minimum, initial_max)
        self._handle: Optional[TimerHandle] = None

    def next_interval(self) -> float:
        low, high = self.interval_range
        return self.rng.uniform(low, high)

    def start(self, scheduler: Scheduler) -> TimerHandle:
        self.stop()
        self._handle = scheduler.call_every(self.next_interval, self.tick)
        return self._handle

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def tick(self) -> None:
        step = 1 if self.rng.random() > 0.5 else -1
        self.value = min(self.maximum, max(self.minimum, self.value + step))

    def label(self) -> str:
        return f"✨ {self.value} buying now"