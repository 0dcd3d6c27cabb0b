"""
Unit tests for configuration loading.
"""

import pytest

from config.settings import (
    CONFIG_ENV_VAR,
    CacheConfig,
    ExecutorConfig,
    Settings,
    get_default_config_path,
    load_config,
)


class TestSettings:
    """Test settings dataclasses."""

    def test_defaults(self):
        """Test default settings."""
        settings = Settings()

        assert settings.cache_config.enabled
        assert settings.cache_config.max_entries == 1024
        assert settings.cache_config.ttl_seconds is None
        assert settings.executor_config.max_workers == 4
        assert settings.executor_config.default_cache_policy == "no_cache"
        assert settings.log_level == "INFO"

    def test_from_dict(self):
        """Test settings from a dictionary."""
        settings = Settings.from_dict({
            "cache_config": {"max_entries": 10, "ttl_seconds": 30},
            "executor_config": {"default_cache_policy": "cache_then_network"},
            "log_level": "DEBUG",
        })

        assert settings.cache_config == CacheConfig(max_entries=10, ttl_seconds=30)
        assert settings.executor_config == ExecutorConfig(default_cache_policy="cache_then_network")
        assert settings.log_level == "DEBUG"

    def test_round_trip(self):
        """Test to_dict output loads back."""
        settings = Settings(log_file="eq.log")

        assert Settings.from_dict(settings.to_dict()) == settings

    def test_invalid_policy(self):
        """Test unknown default cache policies."""
        with pytest.raises(ValueError, match="Unknown cache policy"):
            ExecutorConfig(default_cache_policy="sometimes")

    def test_invalid_workers(self):
        """Test a non-positive worker count."""
        with pytest.raises(ValueError):
            ExecutorConfig(max_workers=0)


class TestLoadConfig:
    """Test loading YAML configuration."""

    def test_load_file(self, tmp_path):
        """Test loading a YAML file."""
        path = tmp_path / "eq.yaml"
        path.write_text(
            "cache_config:\n"
            "  enabled: false\n"
            "executor_config:\n"
            "  max_workers: 2\n"
            "  id_key: _id\n"
        )

        settings = load_config(str(path))

        assert not settings.cache_config.enabled
        assert settings.executor_config.max_workers == 2
        assert settings.executor_config.id_key == "_id"

    def test_missing_file(self, tmp_path):
        """Test a missing file gives defaults."""
        assert load_config(str(tmp_path / "absent.yaml")) == Settings()

    def test_empty_file(self, tmp_path):
        """Test an empty file gives defaults."""
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_config(str(path)) == Settings()

    def test_env_var(self, tmp_path, monkeypatch):
        """Test the environment variable selects the file."""
        path = tmp_path / "env.yaml"
        path.write_text("log_level: WARNING\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        assert get_default_config_path() == path
        assert load_config().log_level == "WARNING"

    def test_packaged_default(self, monkeypatch, tmp_path):
        """Test the packaged default file."""
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        monkeypatch.chdir(tmp_path)

        path = get_default_config_path()

        assert path.name == "default_config.yaml"
        assert load_config() == Settings()
