"""
Генерация отчётов по симуляциям воронки.

Консольная сводка + полный отчёт в файл (JSON для *.json, иначе текст):
- общая статистика и конверсия
- drop-off по этапам
- конверсия по ветке пола и по персонам
- частоты analytics событий
"""

import json
from datetime import datetime
from typing import Any, Dict, List

from .metrics import AggregatedMetrics, MetricsCollector
from .runner import STAGES, SimulationResult


class ReportGenerator:
    """Генератор отчётов по симуляциям"""

    def __init__(self):
        self.metrics_collector = MetricsCollector()

    def generate_console_summary(self, results: List[SimulationResult]) -> str:
        metrics = self.metrics_collector.aggregate(results)
        lines = [
            "=" * 60,
            "SUMMARY",
            "=" * 60,
            f"Посетителей:   {metrics.total_simulations}",
            f"Покупок:       {metrics.purchases} ({metrics.conversion_rate * 100:.1f}%)",
            f"Ошибок:        {metrics.errors}",
            f"Среднее время: {metrics.avg_virtual_seconds:.1f} с (виртуальных)",
            "",
            self._section_funnel(metrics),
            self._section_groups("ПО ВЕТКЕ КОНТЕНТА", metrics.gender_stats),
        ]
        return "\n".join(lines)

    def generate_full_report(self, results: List[SimulationResult]) -> str:
        if not results:
            return "Нет результатов для отчёта"

        metrics = self.metrics_collector.aggregate(results)
        report = [
            "=" * 80,
            "ОТЧЁТ ПО СИМУЛЯЦИЯМ ВОРОНКИ",
            f"Дата: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            "=" * 80,
            "",
            self._section_general_stats(metrics),
            self._section_funnel(metrics),
            self._section_groups("ПО ВЕТКЕ КОНТЕНТА", metrics.gender_stats),
            self._section_groups("ПО ПЕРСОНАМ", metrics.persona_stats),
            self._section_events(metrics),
            self._section_problems(results),
        ]
        return "\n".join(report)

    def generate_json_report(self, results: List[SimulationResult]) -> Dict[str, Any]:
        metrics = self.metrics_collector.aggregate(results)
        return {
            "generated_at": datetime.now().isoformat(timespec="seconds"),
            "metrics": metrics.to_dict(),
            "results": [r.to_dict() for r in results],
        }

    # ------------------------------------------------------------------

    def _section_general_stats(self, metrics: AggregatedMetrics) -> str:
        return "\n".join([
            "ОБЩАЯ СТАТИСТИКА",
            "-" * 40,
            f"Всего симуляций: {metrics.total_simulations}",
            f"Покупок: {metrics.purchases} ({metrics.conversion_rate * 100:.1f}%)",
            f"Ошибок: {metrics.errors}",
            f"Отклонённых кликов: {metrics.total_rejected_clicks}",
            f"Среднее виртуальное время: {metrics.avg_virtual_seconds:.1f} с",
            "",
        ])

    def _section_funnel(self, metrics: AggregatedMetrics) -> str:
        lines = ["ВОРОНКА", "-" * 40]
        total = metrics.total_simulations or 1
        for stage in STAGES:
            reached = metrics.stage_reach.get(stage, 0)
            drop = metrics.stage_drop_rates.get(stage)
            drop_text = f"  drop {drop * 100:5.1f}%" if drop is not None else ""
            lines.append(f"  {stage:10s} {reached:5d} ({reached / total * 100:5.1f}%){drop_text}")
        lines.append("")
        return "\n".join(lines)

    def _section_groups(self, title: str, stats: Dict[str, Dict[str, Any]]) -> str:
        lines = [title, "-" * 40]
        for name, row in stats.items():
            lines.append(
                f"  {name:12s} n={row['total']:4d}  offer={row['reached_offer']:4d}  "
                f"buy={row['purchases']:4d} ({row['conversion_rate'] * 100:.1f}%)"
            )
        lines.append("")
        return "\n".join(lines)

    def _section_events(self, metrics: AggregatedMetrics) -> str:
        lines = ["ANALYTICS СОБЫТИЯ", "-" * 40]
        for name, count in metrics.event_counts.items():
            lines.append(f"  {name:28s} {count}")
        lines.append("")
        return "\n".join(lines)

    def _section_problems(self, results: List[SimulationResult]) -> str:
        failed = [r for r in results if r.errors]
        if not failed:
            return "ПРОБЛЕМЫ: нет\n"
        lines = ["ПРОБЛЕМЫ", "-" * 40]
        for r in failed:
            lines.append(f"  #{r.simulation_id} {r.persona}: {'; '.join(r.errors)}")
        lines.append("")
        return "\n".join(lines)

    def save_report(self, results: List[SimulationResult], filepath: str) -> None:
        """Сохранить отчёт: JSON для *.json, иначе текст"""
        if filepath.endswith(".json"):
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(self.generate_json_report(results), f, ensure_ascii=False, indent=2)
            return
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(self.generate_full_report(results))
