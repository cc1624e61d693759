"""
Персоны виртуальных посетителей для симулятора воронки.

Персона задаёт:
- распределение пола (ветка контента)
- время "на подумать" перед ответом и перед кликами в result
- вероятности ухода на каждом шаге
- терпение к заблокированной кнопке Phase2
- вероятность покупки на оффере
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple


@dataclass(frozen=True)
class Persona:
    """Поведенческий профиль посетителя"""
    name: str
    description: str
    male_share: float = 0.5
    think_time: Tuple[float, float] = (1.0, 4.0)
    read_time: Tuple[float, float] = (3.0, 10.0)
    # Вероятность уйти на шаге: landing, chat (на каждый вопрос), phase1..3
    drop_rates: Dict[str, float] = field(default_factory=dict)
    # Сколько секунд готов ждать открытия кнопки Phase2
    gate_patience: float = 60.0
    # Сколько раз жмёт кнопку подряд (проверка двойных кликов)
    clicks_per_button: int = 1
    buy_rate: float = 0.1
    utm_source: str = "facebook"

    def drop_rate(self, stage: str) -> float:
        return self.drop_rates.get(stage, 0.0)


PERSONAS: Dict[str, Persona] = {
    "eager": Persona(
        name="eager",
        description="Мотивированный посетитель: быстро отвечает, доходит до оффера",
        think_time=(0.5, 2.0),
        read_time=(2.0, 6.0),
        drop_rates={"landing": 0.05, "chat": 0.01, "phase1": 0.03, "phase2": 0.05, "phase3": 0.03},
        gate_patience=120.0,
        buy_rate=0.35,
    ),
    "skeptic": Persona(
        name="skeptic",
        description="Сомневается, долго читает, часто уходит на видео",
        think_time=(3.0, 9.0),
        read_time=(8.0, 25.0),
        drop_rates={"landing": 0.2, "chat": 0.04, "phase1": 0.15, "phase2": 0.3, "phase3": 0.1},
        gate_patience=40.0,
        buy_rate=0.05,
        utm_source="google",
    ),
    "impatient": Persona(
        name="impatient",
        description="Кликает по всему подряд, не ждёт таймеров",
        think_time=(0.2, 0.8),
        read_time=(0.5, 2.0),
        drop_rates={"landing": 0.1, "chat": 0.02, "phase1": 0.05, "phase2": 0.1, "phase3": 0.05},
        gate_patience=12.0,
        clicks_per_button=3,
        buy_rate=0.15,
        utm_source="tiktok",
    ),
    "browser": Persona(
        name="browser",
        description="Случайный заход из рекламы, уходит рано",
        male_share=0.4,
        think_time=(2.0, 6.0),
        read_time=(4.0, 12.0),
        drop_rates={"landing": 0.45, "chat": 0.08, "phase1": 0.25, "phase2": 0.35, "phase3": 0.2},
        gate_patience=30.0,
        buy_rate=0.02,
        utm_source="instagram",
    ),
}


def get_persona(name: str) -> Persona:
    return PERSONAS[name]


def get_all_persona_names() -> List[str]:
    return list(PERSONAS.keys())
