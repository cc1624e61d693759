"""
Загрузчик настроек из settings.yaml

Использование:
    from src.settings import settings

    tick = settings.dialogue.typing_tick_ms
    floor = settings.scarcity.spots_floor
"""

import yaml
from pathlib import Path
from typing import List, Any


# Путь к файлу настроек
SETTINGS_FILE = Path(__file__).parent / "settings.yaml"

# Значения по умолчанию (используются если параметр не указан в YAML)
DEFAULTS = {
    "logging": {
        "level": "INFO",
        "log_analytics_events": False,
    },
    "storage": {
        "backend": "sqlite",              # sqlite | memory
        "path": "data/funnel_storage.sqlite",
        "namespace": "quiz",
    },
    "dialogue": {
        "typing_tick_ms": 50,             # один символ за тик
        "settle_delay_ms": 300,           # пауза перед показом кнопок
        "response_delay_ms": 1500,        # "ANALYZING DATA..."
        "inter_question_pause_ms": 800,
        "completion_pause_ms": 1000,
    },
    "funnel": {
        "loading_delay_ms": 2500,
        "loading_tick_ms": 100,
        "loading_step_percent": 4,
        "exit_transition_ms": 400,
        "phase2_gate_seconds": 20,
        "countdown_minutes": 47,
        "embed_delay_ms": 500,
        "scroll_delay_ms": 100,
    },
    "scarcity": {
        "spots_initial": 50,
        "spots_max": 50,
        "spots_floor": 15,
        "spots_interval_seconds": 45,
        "buying_min": 1,
        "buying_max": 7,
        "buying_initial_max": 5,
        "buying_interval_min_seconds": 5,
        "buying_interval_max_seconds": 15,
    },
    "offer": {
        "price": 17.0,
        "regular_price": 123.0,
        "currency": "USD",
        "product_name": "Reconnection Protocol",
        "checkout_url": "https://pay.hotmart.com/checkout",
        "vsl_media_id": "696c0551b5b7b3215a710994",
        "pre_offer_media_id": "696c0559a4304f1d777785ce",
    },
    "analytics": {
        "enabled": True,
        "remote": False,
        "endpoint": "https://www.google-analytics.com/mp/collect",
        "measurement_id": "",
        "api_secret": "",
        "timeout": 2,
    },
    "attribution": {
        "utm_params": ["utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term"],
        "click_ids": ["fbclid", "gclid", "ttclid"],
    },
    "development": {
        "debug": False,
    },
}


class DotDict(dict):
    """Словарь с доступом через точку: d.key вместо d['key']"""

    def __getattr__(self, key: str) -> Any:
        try:
            value = self[key]
            if isinstance(value, dict):
                return DotDict(value)
            return value
        except KeyError:
            raise AttributeError(f"Настройка '{key}' не найдена")

    def __setattr__(self, key: str, value: Any) -> None:
        self[key] = value

    def get_nested(self, path: str, default: Any = None) -> Any:
        """Получить значение по пути: 'funnel.countdown_minutes'"""
        keys = path.split('.')
        value = self
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value


def _deep_merge(base: dict, override: dict) -> dict:
    """Глубокое слияние словарей (override перезаписывает base)"""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_settings(filepath: Path = None) -> DotDict:
    """
    Загрузить настройки из YAML файла.

    Порядок приоритета:
    1. Значения из YAML файла (высший приоритет)
    2. Значения по умолчанию (DEFAULTS)

    Args:
        filepath: Путь к файлу настроек (по умолчанию settings.yaml)

    Returns:
        DotDict с настройками
    """
    filepath = filepath or SETTINGS_FILE

    config = _deep_merge({}, DEFAULTS)

    if filepath.exists():
        with open(filepath, "r", encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        config = _deep_merge(config, yaml_config)
    else:
        print(f"[settings] Файл настроек не найден: {filepath}")
        print("[settings] Используются значения по умолчанию")

    return DotDict(config)


def validate_settings(settings: DotDict) -> List[str]:
    """
    Валидация настроек.

    Returns:
        Список ошибок (пустой если всё OK)
    """
    errors = []

    # Storage
    if settings.storage.backend not in ("sqlite", "memory"):
        errors.append("storage.backend должен быть 'sqlite' или 'memory'")
    if not settings.storage.namespace:
        errors.append("storage.namespace не указан")

    # Dialogue timings
    for name in ["typing_tick_ms", "settle_delay_ms", "response_delay_ms",
                 "inter_question_pause_ms", "completion_pause_ms"]:
        if settings.dialogue.get(name, 0) < 0:
            errors.append(f"dialogue.{name} должен быть >= 0")
    if settings.dialogue.typing_tick_ms <= 0:
        errors.append("dialogue.typing_tick_ms должен быть > 0")

    # Funnel
    if settings.funnel.phase2_gate_seconds < 1:
        errors.append("funnel.phase2_gate_seconds должен быть >= 1")
    if settings.funnel.countdown_minutes <= 0:
        errors.append("funnel.countdown_minutes должен быть > 0")
    if settings.funnel.loading_step_percent <= 0:
        errors.append("funnel.loading_step_percent должен быть > 0")

    # Scarcity bands
    scarcity = settings.scarcity
    if not (0 <= scarcity.spots_floor <= scarcity.spots_initial <= scarcity.spots_max):
        errors.append("scarcity: нужно spots_floor <= spots_initial <= spots_max")
    if not (1 <= scarcity.buying_min <= scarcity.buying_max):
        errors.append("scarcity: нужно 1 <= buying_min <= buying_max")
    if scarcity.buying_interval_min_seconds >= scarcity.buying_interval_max_seconds:
        errors.append("scarcity.buying_interval_min_seconds должен быть < max")

    return errors


# Глобальный экземпляр настроек (ленивая загрузка)
_settings = None


def get_settings() -> DotDict:
    """Получить глобальные настройки (singleton)"""
    global _settings
    if _settings is None:
        _settings = load_settings()
        errors = validate_settings(_settings)
        if errors:
            print("[settings] Ошибки в настройках:")
            for err in errors:
                print(f"  - {err}")
    return _settings


def reload_settings() -> DotDict:
    """Перезагрузить настройки из файла"""
    global _settings
    _settings = None
    return get_settings()


# Для удобного импорта: from src.settings import settings
settings = get_settings()


# =============================================================================
# CLI для проверки настроек
# =============================================================================

if __name__ == "__main__":
    import json

    print("=" * 60)
    print("ТЕКУЩИЕ НАСТРОЙКИ")
    print("=" * 60)

    s = load_settings()

    errors = validate_settings(s)
    if errors:
        print("\n[!] ОШИБКИ:")
        for err in errors:
            print(f"  - {err}")
    else:
        print("\n[+] Все настройки валидны")

    print("\n" + "-" * 60)
    print(json.dumps(dict(s), indent=2, ensure_ascii=False))
