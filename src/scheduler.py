"""
Модель таймеров для движков воронки.

Все переходы диалога и страницы результата происходят в запланированных
callback-ах. Движки никогда не спят: они просят Scheduler вызвать их
позже, складывают TimerHandle в TimerGroup текущей фазы и отменяют всю
группу при выходе.

Две реализации:
- ManualScheduler: виртуальные часы, двигаются явно (тесты, симулятор)
- AsyncioScheduler: реальное время поверх работающего event loop

Использование:
    from src.scheduler import ManualScheduler, TimerGroup

    scheduler = ManualScheduler()
    group = TimerGroup(scheduler)
    group.call_later(0.4, enter_next_phase)
    scheduler.advance(0.4)
"""

import asyncio
import heapq
import itertools
import time
from typing import Callable, List, Optional, Tuple, Union

from src.logger import logger


Interval = Union[float, Callable[[], float]]


class TimerHandle:
    """Хэндл одного запланированного callback (разового или повторяющегося)"""

    def __init__(self, callback: Callable[[], None], repeat: Optional[Interval] = None):
        self._callback = callback
        self._repeat = repeat
        self._cancelled = False
        self._fired = False
        self._cancel_hook: Optional[Callable[[], None]] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        """True, пока callback ещё может выполниться"""
        if self._cancelled:
            return False
        return self._repeat is not None or not self._fired

    @property
    def repeating(self) -> bool:
        return self._repeat is not None

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._cancel_hook is not None:
            self._cancel_hook()
            self._cancel_hook = None

    def next_interval(self) -> float:
        repeat = self._repeat
        return float(repeat() if callable(repeat) else repeat)

    def _run(self) -> None:
        if not self.active:
            return
        self._fired = True
        self._callback()


class Scheduler:
    """Интерфейс: now(), call_later(), call_every()"""

    def now(self) -> float:
        """Текущее время в секундах"""
        raise NotImplementedError

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError

    def call_every(self, interval: Interval, callback: Callable[[], None]) -> TimerHandle:
        """
        Повторять callback каждые interval секунд.

        interval может быть callable: он вычисляется перед первым тиком
        и после каждого тика (счётчики со случайным интервалом).
        """
        raise NotImplementedError

    def now_ms(self) -> int:
        return int(self.now() * 1000)


class ManualScheduler(Scheduler):
    """
    Виртуальные часы. Ничего не выполняется до advance() или run_until_idle().

    Callback-и выполняются по дедлайну, при равенстве в порядке
    планирования. Callback, запланированный внутри сдвигаемого окна,
    выполняется в том же вызове advance().
    """

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._queue: List[Tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def _push(self, deadline: float, handle: TimerHandle) -> None:
        heapq.heappush(self._queue, (deadline, next(self._seq), handle))

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(callback)
        self._push(self._now + max(0.0, delay), handle)
        return handle

    def call_every(self, interval: Interval, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(callback, repeat=interval)
        self._push(self._now + max(0.0, handle.next_interval()), handle)
        return handle

    @property
    def pending(self) -> int:
        """Сколько живых таймеров ещё в очереди"""
        return sum(1 for _, _, handle in self._queue if handle.active)

    def next_deadline(self) -> Optional[float]:
        self._drop_cancelled()
        return self._queue[0][0] if self._queue else None

    def _drop_cancelled(self) -> None:
        while self._queue and not self._queue[0][2].active:
            heapq.heappop(self._queue)

    def _run_due(self, until: float) -> int:
        ran = 0
        while True:
            self._drop_cancelled()
            if not self._queue or self._queue[0][0] > until:
                return ran
            deadline, _, handle = heapq.heappop(self._queue)
            self._now = max(self._now, deadline)
            handle._run()
            ran += 1
            if handle.repeating and handle.active:
                self._push(self._now + max(0.001, handle.next_interval()), handle)

    def advance(self, seconds: float) -> int:
        """Сдвинуть часы вперёд, выполнив все наступившие callback-и"""
        target = self._now + max(0.0, seconds)
        ran = self._run_due(target)
        self._now = target
        return ran

    def advance_to(self, timestamp: float) -> int:
        return self.advance(timestamp - self._now)

    def run_until_idle(self, limit: float = 3600.0) -> int:
        """
        Выполнять очередь, пока не останутся только повторяющиеся тикеры
        или часы не сдвинутся на limit секунд.
        """
        stop_at = self._now + limit
        ran = 0
        while True:
            self._drop_cancelled()
            one_shots = [d for d, _, h in self._queue if h.active and not h.repeating]
            if not one_shots:
                return ran
            deadline = min(one_shots)
            if deadline > stop_at:
                self._now = stop_at
                return ran
            ran += self._run_due(deadline)


class AsyncioScheduler(Scheduler):
    """
    Реальное время поверх asyncio event loop.

    Без явного loop создаётся внутри работающего loop (из корутины),
    иначе RuntimeError.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop if loop is not None else asyncio.get_running_loop()

    def now(self) -> float:
        return time.time()

    def _guarded(self, callback: Callable[[], None]) -> Callable[[], None]:
        def run() -> None:
            try:
                callback()
            except Exception:
                logger.exception("Scheduled callback failed")
        return run

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(callback)
        timer = self._loop.call_later(max(0.0, delay), self._guarded(handle._run))
        handle._cancel_hook = timer.cancel
        return handle

    def call_every(self, interval: Interval, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(callback, repeat=interval)

        def tick() -> None:
            handle._run()
            if handle.active:
                schedule()

        def schedule() -> None:
            timer = self._loop.call_later(
                max(0.001, handle.next_interval()), self._guarded(tick)
            )
            handle._cancel_hook = timer.cancel

        schedule()
        return handle


class TimerGroup:
    """
    Таймеры одной фазы или одного состояния диалога.

    cancel_all() вызывается при выходе: callback предыдущего состояния
    не может изменить следующее.
    """

    def __init__(self, scheduler: Scheduler, name: str = ""):
        self.scheduler = scheduler
        self.name = name
        self._handles: List[TimerHandle] = []

    def _track(self, handle: TimerHandle) -> TimerHandle:
        self._handles = [h for h in self._handles if h.active]
        self._handles.append(handle)
        return handle

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return self._track(self.scheduler.call_later(delay, callback))

    def call_every(self, interval: Interval, callback: Callable[[], None]) -> TimerHandle:
        return self._track(self.scheduler.call_every(interval, callback))

    def adopt(self, handle: TimerHandle) -> TimerHandle:
        return self._track(handle)

    @property
    def active_count(self) -> int:
        return sum(1 for h in self._handles if h.active)

    def cancel_all(self) -> int:
        cancelled = 0
        for handle in self._handles:
            if handle.active:
                handle.cancel()
                cancelled += 1
        self._handles = []
        if cancelled:
            logger.debug("Timers cancelled", group=self.name, count=cancelled)
        return cancelled
