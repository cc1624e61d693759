#!/usr/bin/env python3
"""
CLI для запуска симуляций воронки.

Использование:
    python -m src.simulator -n 100 -o report.json
    python -m src.simulator --count 20 --persona skeptic
    python -m src.simulator -n 100 --persona eager --seed 7 -o report.txt
"""

import argparse
import os
from datetime import datetime

from src.simulator.personas import get_all_persona_names
from src.simulator.report import ReportGenerator
from src.simulator.runner import SimulationRunner


def create_parser():
    """Create and return the argument parser."""
    parser = argparse.ArgumentParser(
        description="Симулятор посетителей воронки (виртуальное время)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Примеры:
  python -m src.simulator -n 50                      # 50 посетителей
  python -m src.simulator -n 50 -o report.json       # С сохранением JSON
  python -m src.simulator -n 20 --persona skeptic    # Только скептики
  python -m src.simulator -n 100 --seed 7            # Воспроизводимый прогон
        """
    )

    parser.add_argument(
        "--count", "-n",
        type=int,
        default=50,
        help="Количество симуляций (по умолчанию: 50)"
    )

    parser.add_argument(
        "--persona",
        choices=get_all_persona_names() + ["all"],
        default="all",
        help="Фильтр по персоне (по умолчанию: all)"
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed генератора случайных чисел"
    )

    parser.add_argument(
        "--output", "-o",
        help="Файл для сохранения полного отчёта (.json или текст)"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Подробный вывод"
    )

    return parser


def main(argv=None):
    parser = create_parser()
    args = parser.parse_args(argv)

    runner = SimulationRunner(seed=args.seed, verbose=args.verbose)

    print()
    print("=" * 60)
    print("СИМУЛЯТОР ВОРОНКИ")
    print("=" * 60)
    print(f"Дата: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"Симуляций: {args.count}")
    print(f"Персона: {args.persona}")
    print(f"Seed: {runner.seed}")
    if args.output:
        print(f"Вывод в: {args.output}")
    print("=" * 60)
    print()

    print(f"Запуск {args.count} симуляций...")
    print("-" * 60)

    completed = [0]

    def progress_callback(result):
        completed[0] += 1
        status = "✓" if result.converted else "✗"
        print(f"  [{completed[0]:3d}/{args.count}] {status} {result.persona:10s} "
              f"{result.gender:6s} → {result.furthest_stage:8s} ({result.virtual_seconds:.0f} с)")

    results = runner.run_batch(
        count=args.count,
        persona_filter=args.persona if args.persona != "all" else None,
        progress_callback=progress_callback if args.verbose else None,
    )

    print("-" * 60)
    print(f"Завершено: {len(results)} симуляций")
    print()

    reporter = ReportGenerator()
    print(reporter.generate_console_summary(results))

    if args.output:
        reporter.save_report(results, args.output)
        print(f"\nПолный отчёт сохранён: {args.output}")

        size = os.path.getsize(args.output)
        if size > 1024 * 1024:
            print(f"Размер: {size / 1024 / 1024:.1f} MB")
        elif size > 1024:
            print(f"Размер: {size / 1024:.1f} KB")
        else:
            print(f"Размер: {size} bytes")

    print()
    print("Готово!")
    return results


if __name__ == "__main__":
    main()
