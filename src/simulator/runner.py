"""
Оркестратор симуляций воронки.

Каждая симуляция - один виртуальный посетитель на ManualScheduler:
landing -> чат из 7 вопросов -> страница результата -> оффер -> покупка.
Время виртуальное, поэтому 100 посетителей проходят за доли секунды,
а все таймеры (печать, гейт Phase2, счётчики) отрабатывают по-честному.
"""

import random
import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from src.analytics import RecordingSink, TrackingGuard
from src.dialogue import DialogueState
from src.funnel import FunnelPhase
from src.logger import logger
from src.models import Gender
from src.scheduler import ManualScheduler
from src.session import FunnelSession
from src.storage import MemoryStorage

from .personas import PERSONAS, Persona, get_all_persona_names


# Этапы воронки по порядку
STAGES = ("landing", "chat", "phase1", "phase2", "phase3", "offer", "purchase")

# Шаг виртуального времени при ожидании условий
POLL_STEP = 0.05

# Старт виртуальных часов (epoch seconds), чтобы таймстемпы выглядели реально
CLOCK_START = 1_700_000_000.0


@dataclass
class SimulationResult:
    """Результат одной симуляции"""
    simulation_id: int
    persona: str
    gender: str
    outcome: str                 # "purchased" | "dropped" | "error"
    furthest_stage: str
    virtual_seconds: float
    answers: int = 0
    events: List[str] = field(default_factory=list)
    rejected_clicks: int = 0
    checkout_url: Optional[str] = None
    attribution: Dict[str, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @property
    def converted(self) -> bool:
        return self.outcome == "purchased"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "simulation_id": self.simulation_id,
            "persona": self.persona,
            "gender": self.gender,
            "outcome": self.outcome,
            "furthest_stage": self.furthest_stage,
            "virtual_seconds": round(self.virtual_seconds, 2),
            "answers": self.answers,
            "events": len(self.events),
            "rejected_clicks": self.rejected_clicks,
            "checkout_url": self.checkout_url,
            "errors": self.errors,
        }


class _Dropped(Exception):
    """Посетитель ушёл на этапе stage"""

    def __init__(self, stage: str):
        super().__init__(stage)
        self.stage = stage


class SimulationRunner:
    """Оркестратор массовых симуляций"""

    def __init__(self, seed: Optional[int] = None, verbose: bool = False):
        """
        Args:
            seed: Seed для воспроизводимости (None = случайный)
            verbose: Выводить подробную информацию
        """
        self.seed = seed if seed is not None else random.randrange(1 << 30)
        self.verbose = verbose

    def run_batch(
        self,
        count: int = 50,
        persona_filter: Optional[str] = None,
        progress_callback: Optional[Callable[[SimulationResult], None]] = None,
    ) -> List[SimulationResult]:
        """
        Запуск batch симуляций.

        Args:
            count: Количество симуляций
            persona_filter: Фильтр по персоне (или None для всех)
            progress_callback: Callback для отображения прогресса
        """
        rng = random.Random(self.seed)
        if persona_filter and persona_filter != "all":
            persona_queue = [persona_filter] * count
        else:
            all_personas = get_all_persona_names()
            persona_queue = [all_personas[i % len(all_personas)] for i in range(count)]
            rng.shuffle(persona_queue)

        results = []
        for i in range(count):
            result = self._run_single(i, PERSONAS[persona_queue[i]])
            results.append(result)
            if progress_callback:
                progress_callback(result)
            elif self.verbose:
                print(f"  [{i + 1}/{count}] {result.persona}: {result.outcome} ({result.furthest_stage})")
        return results

    def run_single(self, persona_name: str = "eager", sim_id: int = 0) -> SimulationResult:
        return self._run_single(sim_id, PERSONAS[persona_name])

    # ------------------------------------------------------------------

    def _run_single(self, sim_id: int, persona: Persona) -> SimulationResult:
        rng = random.Random(self.seed * 1000003 + sim_id)
        scheduler = ManualScheduler(start=CLOCK_START)
        sink = RecordingSink()
        guard = TrackingGuard()
        guard.init(sink)
        storage = MemoryStorage()
        gender = Gender.MALE if rng.random() < persona.male_share else Gender.FEMALE

        session = FunnelSession(
            scheduler,
            storage=storage,
            guard=guard,
            session_id=f"sim-{sim_id}",
            rng=rng,
        )
        result = SimulationResult(
            simulation_id=sim_id,
            persona=persona.name,
            gender=gender.value,
            outcome="dropped",
            furthest_stage="landing",
            virtual_seconds=0.0,
        )

        try:
            self._walk(session, scheduler, persona, gender, rng, result)
            result.outcome = "purchased"
            result.furthest_stage = "purchase"
        except _Dropped as dropped:
            result.furthest_stage = dropped.stage
        except Exception as exc:
            result.outcome = "error"
            result.errors.append(f"{type(exc).__name__}: {exc}")
            logger.error("Simulation failed", simulation_id=sim_id, traceback=traceback.format_exc())
        finally:
            result.virtual_seconds = scheduler.now() - CLOCK_START
            result.answers = len(session.store.get().answers)
            result.events = sink.names()
            result.checkout_url = session.checkout_urls[-1] if session.checkout_urls else None
            result.attribution = dict(session.storage.get_json("quiz_utms", default={}) or {})
            session.close()
            guard.teardown()
        return result

    def _maybe_drop(self, rng: random.Random, persona: Persona, stage: str) -> None:
        if rng.random() < persona.drop_rate(stage):
            raise _Dropped(stage)

    @staticmethod
    def _wait_until(scheduler: ManualScheduler, predicate: Callable[[], bool], limit: float = 300.0) -> None:
        waited = 0.0
        while not predicate():
            if waited >= limit:
                raise TimeoutError("Funnel did not reach expected state")
            scheduler.advance(POLL_STEP)
            waited += POLL_STEP

    def _walk(
        self,
        session: FunnelSession,
        scheduler: ManualScheduler,
        persona: Persona,
        gender: Gender,
        rng: random.Random,
        result: SimulationResult,
    ) -> None:
        url = (
            f"https://quiz.example.com/?utm_source={persona.name}-{persona.utm_source}"
            f"&utm_campaign=reconnect&fbclid=sim{result.simulation_id}"
        )
        session.open_landing(url)
        scheduler.advance(rng.uniform(*persona.read_time))
        session.landing_scroll(rng.choice((25, 50, 75, 100)))
        self._maybe_drop(rng, persona, "landing")
        session.start_analysis()

        # --- Chat ---
        result.furthest_stage = "chat"
        dialogue = session.dialogue
        self._wait_until(scheduler, lambda: dialogue.view()["start_button"] is not None)
        scheduler.advance(rng.uniform(*persona.think_time))
        dialogue.start()

        for _ in dialogue.questions:
            self._wait_until(scheduler, lambda: bool(dialogue.view()["options"]))
            scheduler.advance(rng.uniform(*persona.think_time))
            self._maybe_drop(rng, persona, "chat")
            options = dialogue.current_options()
            if dialogue.current_question.data_key == "gender":
                choice = gender.value
            else:
                choice = rng.choice(options)
            for click in range(persona.clicks_per_button):
                accepted = dialogue.answer(choice)
                if click and accepted:
                    raise AssertionError("Repeated answer click was accepted")
                if not accepted:
                    result.rejected_clicks += 1

        self._wait_until(scheduler, lambda: dialogue.state == DialogueState.COMPLETE and dialogue.cta_visible)
        scheduler.advance(rng.uniform(*persona.think_time))
        dialogue.view_plan()

        # --- Result ---
        funnel = session.result
        self._wait_until(scheduler, lambda: funnel.phase == FunnelPhase.PHASE1)
        for phase, stage in (
            (FunnelPhase.PHASE1, "phase1"),
            (FunnelPhase.PHASE2, "phase2"),
            (FunnelPhase.PHASE3, "phase3"),
        ):
            result.furthest_stage = stage
            self._wait_until(scheduler, lambda: funnel.phase == phase)
            scheduler.advance(rng.uniform(*persona.read_time))
            self._maybe_drop(rng, persona, stage)
            if phase == FunnelPhase.PHASE2:
                waited = 0.0
                while not funnel.gate_open:
                    if waited >= persona.gate_patience:
                        raise _Dropped(stage)
                    if not funnel.confirm(phase):
                        result.rejected_clicks += 1
                    scheduler.advance(1.0)
                    waited += 1.0
            for _ in range(persona.clicks_per_button):
                if not funnel.confirm(phase):
                    result.rejected_clicks += 1

        result.furthest_stage = "offer"
        self._wait_until(scheduler, lambda: funnel.phase == FunnelPhase.OFFER)
        scheduler.advance(rng.uniform(*persona.read_time))
        if rng.random() >= persona.buy_rate:
            raise _Dropped("offer")
        if funnel.buy() is None:
            raise AssertionError("Purchase was rejected in the offer phase")
