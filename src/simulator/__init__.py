"""
Симулятор посетителей воронки.

Использование:
    python -m src.simulator -n 100 --persona eager --seed 7 -o report.json
"""

from .personas import Persona, PERSONAS
from .runner import SimulationRunner, SimulationResult
from .metrics import MetricsCollector, AggregatedMetrics
from .report import ReportGenerator

__all__ = [
    'Persona',
    'PERSONAS',
    'SimulationRunner',
    'SimulationResult',
    'MetricsCollector',
    'AggregatedMetrics',
    'ReportGenerator',
]
