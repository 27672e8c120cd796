"""Tests for settings loading and the startup configuration check."""

import logging

from roomscout.config import Settings, check_configuration


class TestSettings:
    def test_keys_stripped(self, monkeypatch):
        monkeypatch.setenv("GEOCODING_API_KEY", "  abc123\n")
        monkeypatch.setenv("API_TOKEN", "token \n")
        config = Settings(_env_file=None)
        assert config.geocoding_api_key == "abc123"
        assert config.api_token == "token"

    def test_trailing_slashes_removed(self, monkeypatch):
        monkeypatch.setenv("API_BASE_URL", "https://rooms.example/api/")
        config = Settings(_env_file=None)
        assert config.api_base_url == "https://rooms.example/api"

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("GEOCODING_API_KEY", raising=False)
        config = Settings(_env_file=None)
        assert config.reverse_geocode_timeout == 15.0
        assert config.reverse_geocode_max_attempts == 3
        assert config.retry_base_delay == 2.0
        assert not config.geocoding_configured


class TestCheckConfiguration:
    def test_missing_geocoding_key_reported(self, caplog):
        config = Settings(_env_file=None, geocoding_api_key="")
        with caplog.at_level(logging.ERROR, logger="roomscout.config"):
            problems = check_configuration(config)
        assert len(problems) == 1
        assert "GEOCODING_API_KEY" in problems[0]
        assert "GEOCODING_API_KEY" in caplog.text

    def test_invalid_attempt_bound(self):
        config = Settings(_env_file=None, geocoding_api_key="k", reverse_geocode_max_attempts=0)
        assert check_configuration(config) == ["REVERSE_GEOCODE_MAX_ATTEMPTS must be at least 1"]

    def test_clean(self):
        assert check_configuration(Settings(_env_file=None, geocoding_api_key="k")) == []
