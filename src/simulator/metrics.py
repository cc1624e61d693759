"""
Сбор и агрегация метрик симуляций воронки.

Основные срезы:
- доходимость до каждого этапа (drop-off)
- конверсия по ветке контента (MALE / FEMALE)
- конверсия по персонам
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List

if TYPE_CHECKING:
    from .runner import SimulationResult


@dataclass
class AggregatedMetrics:
    """Агрегированные метрики по всем симуляциям"""
    total_simulations: int = 0
    purchases: int = 0
    errors: int = 0
    conversion_rate: float = 0.0
    avg_virtual_seconds: float = 0.0
    total_rejected_clicks: int = 0

    # stage -> сколько посетителей дошли до этапа (включительно)
    stage_reach: Dict[str, int] = field(default_factory=dict)
    # stage -> доля ушедших именно на этом этапе
    stage_drop_rates: Dict[str, float] = field(default_factory=dict)

    gender_stats: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    persona_stats: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    event_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_simulations": self.total_simulations,
            "purchases": self.purchases,
            "errors": self.errors,
            "conversion_rate": round(self.conversion_rate, 4),
            "avg_virtual_seconds": round(self.avg_virtual_seconds, 2),
            "total_rejected_clicks": self.total_rejected_clicks,
            "stage_reach": self.stage_reach,
            "stage_drop_rates": {k: round(v, 4) for k, v in self.stage_drop_rates.items()},
            "gender_stats": self.gender_stats,
            "persona_stats": self.persona_stats,
            "event_counts": self.event_counts,
        }


def _rate(part: int, total: int) -> float:
    return part / total if total else 0.0


class MetricsCollector:
    """Агрегатор результатов SimulationRunner"""

    def aggregate(self, results: List["SimulationResult"]) -> AggregatedMetrics:
        from .runner import STAGES

        metrics = AggregatedMetrics()
        total = len(results)
        metrics.total_simulations = total
        if not total:
            return metrics

        metrics.purchases = sum(1 for r in results if r.converted)
        metrics.errors = sum(1 for r in results if r.outcome == "error")
        metrics.conversion_rate = _rate(metrics.purchases, total)
        metrics.avg_virtual_seconds = sum(r.virtual_seconds for r in results) / total
        metrics.total_rejected_clicks = sum(r.rejected_clicks for r in results)

        stage_index = {stage: i for i, stage in enumerate(STAGES)}
        for i, stage in enumerate(STAGES):
            reached = sum(1 for r in results if stage_index[r.furthest_stage] >= i)
            metrics.stage_reach[stage] = reached
        for stage in STAGES[:-1]:
            dropped_here = sum(
                1 for r in results if r.furthest_stage == stage and r.outcome == "dropped"
            )
            metrics.stage_drop_rates[stage] = _rate(dropped_here, metrics.stage_reach[stage])

        metrics.gender_stats = self._group_stats(results, lambda r: r.gender)
        metrics.persona_stats = self._group_stats(results, lambda r: r.persona)

        events: Counter = Counter()
        for r in results:
            events.update(r.events)
        metrics.event_counts = dict(events.most_common())
        return metrics

    @staticmethod
    def _group_stats(results: List["SimulationResult"], key) -> Dict[str, Dict[str, Any]]:
        groups: Dict[str, List["SimulationResult"]] = {}
        for r in results:
            groups.setdefault(key(r), []).append(r)
        return {
            name: {
                "total": len(items),
                "purchases": sum(1 for r in items if r.converted),
                "conversion_rate": round(_rate(sum(1 for r in items if r.converted), len(items)), 4),
                "reached_offer": sum(1 for r in items if r.furthest_stage in ("offer", "purchase")),
            }
            for name, items in sorted(groups.items())
        }
