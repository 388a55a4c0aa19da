"""Tests for TaproomSettings environment loading."""

from __future__ import annotations

from pathlib import Path

from taproom.core.settings import TaproomSettings, clear_settings_cache, get_settings


class TestDefaults:
    def test_pipeline_limits(self, settings):
        assert settings.enrichment_daily_limit == 500
        assert settings.enrichment_monthly_limit == 2000
        assert settings.cleanup_daily_limit == 1000
        assert settings.cleanup_monthly_limit == 30000

    def test_delivery_and_timing(self, settings):
        assert settings.enrichment_max_attempts == 3
        assert settings.cleanup_max_attempts == 2
        assert settings.cleanup_batch_size == 25
        assert settings.max_cleanup_concurrency == 10
        assert settings.quota_retry_delay_seconds == 300
        assert settings.rate_limit_retry_delay_seconds == 120
        assert settings.enrichment_enabled is True
        assert settings.alert_to == []


class TestEnvironment:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("TAPROOM_ENRICHMENT_ENABLED", "false")
        monkeypatch.setenv("TAPROOM_ENRICHMENT_DAILY_LIMIT", "42")
        monkeypatch.setenv("TAPROOM_DATABASE_PATH", "/tmp/beers.db")
        settings = TaproomSettings(_env_file=None)
        assert settings.enrichment_enabled is False
        assert settings.enrichment_daily_limit == 42
        assert settings.database_path == Path("/tmp/beers.db")

    def test_alert_recipients_from_json(self, monkeypatch):
        monkeypatch.setenv("TAPROOM_ALERT_TO", '["ops@example.com", "dev@example.com"]')
        settings = TaproomSettings(_env_file=None)
        assert settings.alert_to == ["ops@example.com", "dev@example.com"]

    def test_log_level_uppercased(self, monkeypatch):
        monkeypatch.setenv("TAPROOM_LOG_LEVEL", "debug")
        assert TaproomSettings(_env_file=None).log_level == "DEBUG"

    def test_unknown_variables_ignored(self, monkeypatch):
        monkeypatch.setenv("TAPROOM_NOT_A_SETTING", "x")
        TaproomSettings(_env_file=None)


class TestCache:
    def test_get_settings_is_cached(self):
        clear_settings_cache()
        assert get_settings() is get_settings()

    def test_force_reload(self, monkeypatch):
        clear_settings_cache()
        first = get_settings()
        monkeypatch.setenv("TAPROOM_CLEANUP_BATCH_SIZE", "5")
        reloaded = get_settings(_force_reload=True)
        assert reloaded is not first
        assert reloaded.cleanup_batch_size == 5
        clear_settings_cache()
