"""
Тесты для модуля feature flags (feature_flags.py).
"""

import os

from src.feature_flags import FeatureFlags, feature_flag, flags
from src.settings import SETTINGS_FILE, load_settings


class TestFeatureFlagsBasic:
    """Базовые тесты FeatureFlags"""

    def test_default_values_exist(self):
        """Дефолтные значения существуют"""
        for name in ("analytics_tracking", "analytics_remote", "attribution_capture",
                     "video_embeds", "scarcity_counters", "sound_effects"):
            assert name in FeatureFlags.DEFAULTS

    def test_every_flag_is_wired(self):
        """Каждый флаг имеет property, а settings.yaml не объявляет лишних"""
        bundled = load_settings(SETTINGS_FILE).get("feature_flags", {})
        assert set(bundled) == set(FeatureFlags.DEFAULTS)
        for name in FeatureFlags.DEFAULTS:
            assert isinstance(getattr(FeatureFlags, name, None), property), name
        for group in FeatureFlags.GROUPS.values():
            assert set(group) <= set(FeatureFlags.DEFAULTS)

    def test_unknown_flag_returns_false(self):
        ff = FeatureFlags()
        assert ff.is_enabled("nonexistent_flag_xyz") is False

    def test_bundled_defaults(self):
        """Трекинг и embeds включены, удалённая аналитика и звук выключены"""
        ff = FeatureFlags()
        assert ff.analytics_tracking is True
        assert ff.video_embeds is True
        assert ff.analytics_remote is False
        assert ff.sound_effects is False


class TestFeatureFlagsOverrides:
    """Тесты для runtime overrides"""

    def test_set_and_clear_override(self):
        ff = FeatureFlags()
        original = ff.is_enabled("video_embeds")

        ff.set_override("video_embeds", not original)
        assert ff.video_embeds == (not original)

        ff.clear_override("video_embeds")
        assert ff.video_embeds == original

    def test_clear_all_overrides(self):
        ff = FeatureFlags()
        ff.set_override("sound_effects", True)
        ff.set_override("scarcity_counters", False)

        ff.clear_all_overrides()

        assert ff._overrides == {}

    def test_get_all_flags_includes_overrides(self):
        ff = FeatureFlags()
        ff.set_override("custom_test_flag", True)
        assert ff.get_all_flags()["custom_test_flag"] is True
        assert "custom_test_flag" in ff.get_enabled_flags()


class TestFeatureFlagsGroups:
    """Тесты для групп флагов"""

    def test_disable_offline_group(self):
        """Группа offline выключает все внешние эффекты"""
        ff = FeatureFlags()
        ff.disable_group("offline")

        assert ff.analytics_remote is False
        assert ff.video_embeds is False
        assert ff.sound_effects is False
        assert ff.analytics_tracking is True

    def test_is_group_enabled(self):
        ff = FeatureFlags()
        ff.set_override("video_embeds", True)
        ff.set_override("scarcity_counters", False)
        ff.set_override("sound_effects", False)

        assert ff.is_group_enabled("result_effects") is True
        assert ff.is_group_enabled("result_effects", require_all=True) is False

    def test_nonexistent_group(self):
        assert FeatureFlags().is_group_enabled("nonexistent_group") is False


class TestFeatureFlagsEnvironment:
    """Переопределение через environment"""

    def test_env_override(self):
        os.environ["FF_SOUND_EFFECTS"] = "yes"
        try:
            ff = FeatureFlags()
            assert ff.sound_effects is True
        finally:
            del os.environ["FF_SOUND_EFFECTS"]

    def test_reload_drops_overrides(self):
        ff = FeatureFlags()
        ff.set_override("video_embeds", False)
        ff.reload()
        assert ff.video_embeds is True


class TestFeatureFlagDecorator:
    """Тесты декоратора feature_flag"""

    def test_disabled_returns_default(self):
        calls = []

        @feature_flag("sound_effects", default_return="off")
        def play():
            calls.append(1)
            return "on"

        flags.set_override("sound_effects", False)
        assert play() == "off"
        assert calls == []

        flags.set_override("sound_effects", True)
        assert play() == "on"
        assert calls == [1]

    def test_preserves_name(self):
        @feature_flag("video_embeds")
        def mount_player():
            """Doc"""

        assert mount_player.__name__ == "mount_player"
        assert mount_player.__doc__ == "Doc"
