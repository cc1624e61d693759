"""
Feature Flags для воронки.

Контроль постепенного включения внешних эффектов.
Позволяет отключить трекинг, embeds или счётчики без деплоя.

Использование:
    from src.feature_flags import flags

    if flags.video_embeds:
        registry.request_mount(media_id)

    if flags.is_enabled("custom_flag"):
        pass
"""

import os
from typing import Any, Dict, List, Set

from src.settings import settings


class FeatureFlags:
    """
    Система feature flags.

    Особенности:
    - Загрузка из settings.yaml
    - Override через environment variables (FF_<NAME>)
    - Типизированные property для основных флагов
    - Метод is_enabled() для произвольных флагов
    - Поддержка групп флагов
    """

    DEFAULTS: Dict[str, bool] = {
        # Аналитика
        "analytics_tracking": True,       # События воронки в sink
        "analytics_remote": False,        # GA4 Measurement Protocol через HTTP

        # Атрибуция
        "attribution_capture": True,      # UTM + click ids с entry URL

        # Внешние эффекты result-страницы
        "video_embeds": True,             # VSL и pre-offer видео
        "scarcity_counters": True,        # "spots left" / "buying now"
        "sound_effects": False,           # Звук клавиш при кликах
    }

    GROUPS: Dict[str, List[str]] = {
        "tracking": ["analytics_tracking", "analytics_remote", "attribution_capture"],
        "result_effects": ["video_embeds", "scarcity_counters", "sound_effects"],
        "safe": ["analytics_tracking", "attribution_capture"],
        # Для симулятора: никаких внешних вызовов
        "offline": ["analytics_remote", "video_embeds", "sound_effects"],
    }

    def __init__(self):
        self._flags: Dict[str, bool] = {}
        self._overrides: Dict[str, bool] = {}
        self._load_flags()

    def _load_flags(self) -> None:
        """Загрузить флаги из settings и environment"""
        self._flags = self.DEFAULTS.copy()

        settings_flags = settings.get_nested("feature_flags", {})
        if isinstance(settings_flags, dict):
            for key, value in settings_flags.items():
                if isinstance(value, bool):
                    self._flags[key] = value

        # environment имеет высший приоритет
        for key in self._flags:
            env_value = os.environ.get(f"FF_{key.upper()}")
            if env_value is not None:
                self._flags[key] = env_value.lower() in ("true", "1", "yes", "on")

    def reload(self) -> None:
        """Перезагрузить флаги из settings"""
        self._overrides.clear()
        self._load_flags()

    def is_enabled(self, flag: str) -> bool:
        """
        Проверить включён ли флаг.

        Args:
            flag: Имя флага

        Returns:
            True если флаг включён, False иначе
        """
        if flag in self._overrides:
            return self._overrides[flag]
        return self._flags.get(flag, False)

    def set_override(self, flag: str, value: bool) -> None:
        """
        Установить runtime override для флага.
        Используется для тестов и симулятора.
        """
        self._overrides[flag] = value

    def clear_override(self, flag: str) -> None:
        """Убрать runtime override для флага"""
        self._overrides.pop(flag, None)

    def clear_all_overrides(self) -> None:
        """Убрать все runtime overrides"""
        self._overrides.clear()

    def get_all_flags(self) -> Dict[str, bool]:
        """Получить все флаги с текущими значениями"""
        result = self._flags.copy()
        result.update(self._overrides)
        return result

    def get_enabled_flags(self) -> Set[str]:
        """Получить набор включённых флагов"""
        return {k for k, v in self.get_all_flags().items() if v}

    def get_disabled_flags(self) -> Set[str]:
        """Получить набор выключенных флагов"""
        return {k for k, v in self.get_all_flags().items() if not v}

    def is_group_enabled(self, group: str, require_all: bool = False) -> bool:
        """
        Проверить включена ли группа флагов.

        Args:
            group: Имя группы
            require_all: True = все флаги должны быть включены,
                        False = хотя бы один
        """
        flags_in_group = self.GROUPS.get(group, [])
        if not flags_in_group:
            return False

        if require_all:
            return all(self.is_enabled(f) for f in flags_in_group)
        return any(self.is_enabled(f) for f in flags_in_group)

    def enable_group(self, group: str) -> None:
        """Включить все флаги в группе (через overrides)"""
        for flag in self.GROUPS.get(group, []):
            self.set_override(flag, True)

    def disable_group(self, group: str) -> None:
        """Выключить все флаги в группе (через overrides)"""
        for flag in self.GROUPS.get(group, []):
            self.set_override(flag, False)

    # =========================================================================
    # Типизированные property для основных флагов
    # =========================================================================

    @property
    def analytics_tracking(self) -> bool:
        """Отправляются ли события воронки"""
        return self.is_enabled("analytics_tracking")

    @property
    def analytics_remote(self) -> bool:
        """Включена ли отправка в GA4 Measurement Protocol"""
        return self.is_enabled("analytics_remote")

    @property
    def attribution_capture(self) -> bool:
        """Сохраняются ли UTM-параметры с entry URL"""
        return self.is_enabled("attribution_capture")

    @property
    def video_embeds(self) -> bool:
        """Монтируются ли видео-плееры"""
        return self.is_enabled("video_embeds")

    @property
    def scarcity_counters(self) -> bool:
        """Запускаются ли счётчики дефицита"""
        return self.is_enabled("scarcity_counters")

    @property
    def sound_effects(self) -> bool:
        """Проигрывается ли звук при кликах"""
        return self.is_enabled("sound_effects")


# Singleton экземпляр
flags = FeatureFlags()


def feature_flag(flag_name: str, default_return: Any = None):
    """
    Декоратор для условного выполнения функции на основе feature flag.

    Example:
        @feature_flag("sound_effects")
        def play_key_sound():
            ...
    """
    def decorator(func):
        def wrapper(*args, **kwargs):
            if flags.is_enabled(flag_name):
                return func(*args, **kwargs)
            return default_return
        wrapper.__name__ = func.__name__
        wrapper.__doc__ = func.__doc__
        return wrapper
    return decorator


if __name__ == "__main__":
    print("=" * 60)
    print("FEATURE FLAGS STATUS")
    print("=" * 60)

    for flag, value in sorted(flags.get_all_flags().items()):
        status = "ON" if value else "OFF"
        print(f"  {flag}: {status}")

    print("\n--- Groups ---")
    for group in FeatureFlags.GROUPS:
        all_enabled = flags.is_group_enabled(group, require_all=True)
        any_enabled = flags.is_group_enabled(group, require_all=False)
        status = "ALL ON" if all_enabled else ("PARTIAL" if any_enabled else "OFF")
        print(f"  {group}: {status}")
