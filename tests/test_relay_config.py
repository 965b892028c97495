"""Configuration validation tests."""

import pytest

from relay.config import DEFAULT_PORT, RelayConfig, get_config, reset_config


class TestConfigValidation:
    """Test RelayConfig.validate()."""

    def test_default_config_valid(self, monkeypatch):
        for key in ("PORT", "RELAY_PORT", "RELAY_HOST", "RELAY_PING_INTERVAL",
                    "RELAY_MAX_MSG_SIZE", "RELAY_LOG_LEVEL"):
            monkeypatch.delenv(key, raising=False)
        cfg = RelayConfig()
        assert cfg.port == DEFAULT_PORT
        assert cfg.ping_interval == 25.0
        errors = cfg.validate()
        assert errors == [], f"Default config errors: {errors}"

    def test_invalid_port(self):
        cfg = RelayConfig(port=70000)
        assert any("port" in e for e in cfg.validate())

    def test_port_zero_allowed(self):
        assert RelayConfig(port=0, log_level="INFO").validate() == []

    def test_invalid_ping_interval(self):
        cfg = RelayConfig(ping_interval=0)
        assert any("ping_interval" in e for e in cfg.validate())

    def test_invalid_log_level(self):
        cfg = RelayConfig(log_level="LOUD")
        assert any("log_level" in e for e in cfg.validate())


class TestEnvOverrides:
    def test_port_env(self, monkeypatch):
        monkeypatch.setenv("PORT", "9001")
        monkeypatch.setenv("RELAY_PORT", "9002")
        assert RelayConfig().port == 9001

    def test_relay_port_env(self, monkeypatch):
        monkeypatch.delenv("PORT", raising=False)
        monkeypatch.setenv("RELAY_PORT", "9002")
        assert RelayConfig().port == 9002

    def test_bad_env_value_falls_back(self, monkeypatch):
        monkeypatch.setenv("RELAY_PING_INTERVAL", "soon")
        assert RelayConfig().ping_interval == 25.0

    def test_frozen(self):
        cfg = RelayConfig()
        with pytest.raises(AttributeError):
            cfg.port = 1

    def test_get_config_singleton(self, monkeypatch):
        monkeypatch.setenv("RELAY_HOST", "10.0.0.1")
        reset_config()
        try:
            assert get_config() is get_config()
            assert get_config().host == "10.0.0.1"
        finally:
            reset_config()
