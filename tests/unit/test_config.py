"""
Unit tests for configuration.
"""

import pytest

from networker.config import NetworkerConfig


class TestNetworkerConfig:
    """Tests for NetworkerConfig."""

    def test_defaults(self):
        """Test the default values."""
        config = NetworkerConfig()

        assert config.host == "127.0.0.1"
        assert config.port is None
        assert config.bind_port == 0
        assert config.buffer_size == 1024
        assert config.encoding == "utf-8"
        config.validate()

    def test_from_env(self, monkeypatch):
        """Test reading configuration from environment variables."""
        monkeypatch.setenv("NETWORKER_HOST", "0.0.0.0")
        monkeypatch.setenv("NETWORKER_PORT", "15001")
        monkeypatch.setenv("NETWORKER_BUFFER_SIZE", "4096")
        monkeypatch.setenv("NETWORKER_POLL_INTERVAL", "0.5")
        monkeypatch.setenv("NETWORKER_LOG_LEVEL", "DEBUG")

        config = NetworkerConfig.from_env()

        assert config.host == "0.0.0.0"
        assert config.port == 15001
        assert config.bind_port == 15001
        assert config.buffer_size == 4096
        assert config.poll_interval == 0.5
        assert config.log_level == "DEBUG"

    def test_from_env_without_port(self, monkeypatch):
        """Test that a missing port means any free port."""
        monkeypatch.delenv("NETWORKER_PORT", raising=False)

        assert NetworkerConfig.from_env().port is None

    @pytest.mark.parametrize("overrides", [
        {"port": 70000},
        {"port": -1},
        {"backlog": 0},
        {"buffer_size": 0},
        {"poll_interval": 0},
        {"join_timeout": -1.0},
        {"encoding": "no-such-codec"},
    ])
    def test_validate_rejects(self, overrides):
        """Test that invalid values fail validation."""
        with pytest.raises(ValueError):
            NetworkerConfig(**overrides).validate()
