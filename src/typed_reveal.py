"""
Typed reveal: посимвольная печать текста.

Общий примитив для сообщений бота в диалоге и подписей фаз result.
Каждый тик раскрывает ещё один символ; после полного текста один раз
вызывается on_complete. Новый start() сбрасывает последовательность,
cancel() останавливает печать без завершения.

Использование:
    from src.typed_reveal import TypedReveal

    reveal = TypedReveal(scheduler, tick=0.05)
    reveal.start("Hi.", on_update=render, on_complete=show_options)
"""

from typing import Callable, Iterator, Optional

from src.scheduler import Scheduler, TimerHandle


def iter_prefixes(text: str) -> Iterator[str]:
    """Префиксы text от "" до полного текста (ленивая последовательность)"""
    for i in range(len(text) + 1):
        yield text[:i]


class TypedReveal:
    """
    Одна печатающаяся строка.

    Attributes:
        prefix: Текущая видимая часть
        done: Текст напечатан полностью
    """

    def __init__(self, scheduler: Scheduler, tick: float = 0.05):
        self.scheduler = scheduler
        self.tick = tick
        self.text = ""
        self.prefix = ""
        self.done = False
        self._prefixes: Optional[Iterator[str]] = None
        self._handle: Optional[TimerHandle] = None
        self._on_update: Optional[Callable[[str], None]] = None
        self._on_complete: Optional[Callable[[], None]] = None
        self._generation = 0

    @property
    def running(self) -> bool:
        return self._handle is not None and self._handle.active

    def duration_for(self, text: str) -> float:
        """Время печати text при текущем тике"""
        return len(text) * self.tick

    def start(
        self,
        text: str,
        on_update: Optional[Callable[[str], None]] = None,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> None:
        """Начать печать text; предыдущая печать отменяется без завершения"""
        self.cancel()
        self._generation += 1
        self.text = text
        self.prefix = ""
        self.done = False
        self._on_update = on_update
        self._on_complete = on_complete
        self._prefixes = iter_prefixes(text)
        next(self._prefixes)  # пустой префикс виден сразу

        if not text:
            self._finish(self._generation)
            return

        generation = self._generation
        self._handle = self.scheduler.call_every(self.tick, lambda: self._step(generation))

    def _step(self, generation: int) -> None:
        if generation != self._generation or self._prefixes is None:
            return
        try:
            self.prefix = next(self._prefixes)
        except StopIteration:
            self._finish(generation)
            return
        if self._on_update is not None:
            self._on_update(self.prefix)
        if self.prefix == self.text:
            self._finish(generation)

    def _finish(self, generation: int) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._prefixes = None
        if self.done or generation != self._generation:
            return
        self.done = True
        callback, self._on_complete = self._on_complete, None
        if callback is not None:
            callback()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._prefixes = None
        self._on_complete = None

    def skip(self) -> None:
        """Показать текст целиком и завершить печать"""
        if self.done or self._prefixes is None:
            return
        self.prefix = self.text
        if self._on_update is not None:
            self._on_update(self.prefix)
        self._finish(self._generation)
