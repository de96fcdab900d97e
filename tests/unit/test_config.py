"""
Unit tests for static Config and the dynamic ConfigManager.
"""

from pathlib import Path

import pytest

from fuelpoints.core.config import Config, Environment
from fuelpoints.core.config.manager import ConfigManager
from fuelpoints.core.exceptions import ConfigurationError


class TestConfigManager:
    def test_defaults_loaded_from_yaml(self):
        assert ConfigManager.get_int("boosts.daily_quota", 0) == 3
        assert ConfigManager.get("boosts.reset_weekday") == "sunday"
        assert ConfigManager.get_int("challenges.standard.verifications_by_challenge.mb0", 0) == 21

    def test_missing_key_returns_default(self):
        assert ConfigManager.get("no.such.key", "fallback") == "fallback"
        assert ConfigManager.get_int("no.such.key", 7) == 7

    def test_non_numeric_value_falls_back(self):
        ConfigManager.set("quests.weekly_reward", "lots")

        assert ConfigManager.get_int("quests.weekly_reward", 30) == 30

    def test_override_and_reset(self):
        ConfigManager.set("quests.weekly_reward", 40)
        assert ConfigManager.get_int("quests.weekly_reward", 0) == 40

        ConfigManager.reset_overrides()

        assert ConfigManager.get_int("quests.weekly_reward", 0) == 30

    def test_override_creates_intermediate_mappings(self):
        ConfigManager.set("experimental.flags.enabled", True)

        assert ConfigManager.get_bool("experimental.flags.enabled", False) is True

    def test_extra_yaml_file_merges(self, tmp_path: Path):
        extra = tmp_path / "tuning.yaml"
        extra.write_text("boosts:\n  daily_quota: 5\n", encoding="utf-8")

        ConfigManager.initialize([extra])

        assert ConfigManager.get_int("boosts.daily_quota", 0) == 5
        assert ConfigManager.get_int("boosts.default_fp", 0) == 1

    def test_non_mapping_yaml_rejected(self, tmp_path: Path):
        extra = tmp_path / "broken.yaml"
        extra.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            ConfigManager.initialize([extra])

    def test_metrics_count_reads(self):
        ConfigManager.get("boosts.daily_quota")
        ConfigManager.get("missing.key")

        metrics = ConfigManager.get_metrics()

        assert metrics["gets"] >= 2
        assert metrics["cache_misses"] >= 1


class TestStaticConfig:
    def test_testing_environment(self):
        assert Config.ENVIRONMENT == Environment.TESTING.value

    def test_debounce_env_override(self, monkeypatch):
        monkeypatch.setenv("FUEL_RESYNC_DEBOUNCE_MS", "120")
        try:
            Config.load()
            assert Config.RESYNC_DEBOUNCE_MS == 120
        finally:
            monkeypatch.delenv("FUEL_RESYNC_DEBOUNCE_MS")
            Config.load()

    def test_unknown_environment_falls_back(self):
        assert Environment.from_string("moon") is Environment.DEVELOPMENT
