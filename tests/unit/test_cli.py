"""
Unit tests for the command-line interface.
"""

import threading

import pytest

from networker import Connection, DialError
from networker.__main__ import build_config, build_parser, main, serve


class TestParser:
    """Tests for argument parsing."""

    def test_serve_defaults(self):
        """Test serve with no options."""
        args = build_parser().parse_args(["serve"])

        assert args.command == "serve"
        assert args.host is None
        assert args.port is None
        assert args.max_connections == 10
        assert args.binary is False

    def test_serve_options(self):
        """Test serve with every option set."""
        args = build_parser().parse_args(
            ["--log-level", "DEBUG", "serve", "-H", "0.0.0.0", "-p", "15001", "-m", "3", "--binary"]
        )

        assert args.log_level == "DEBUG"
        assert args.host == "0.0.0.0"
        assert args.port == 15001
        assert args.max_connections == 3
        assert args.binary is True

    def test_connect(self):
        """Test connect positional arguments."""
        args = build_parser().parse_args(["connect", "127.0.0.1", "15001"])

        assert args.command == "connect"
        assert args.host == "127.0.0.1"
        assert args.port == 15001

    def test_command_required(self):
        """Test that a subcommand is mandatory."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestBuildConfig:
    """Tests for turning arguments into NetworkerConfig."""

    def test_serve_overrides_environment(self, monkeypatch):
        """Test that CLI options win over environment variables."""
        monkeypatch.setenv("NETWORKER_PORT", "15001")
        monkeypatch.setenv("NETWORKER_HOST", "127.0.0.1")
        args = build_parser().parse_args(["serve", "--port", "15002", "--host", "0.0.0.0"])

        config = build_config(args)

        assert config.port == 15002
        assert config.host == "0.0.0.0"

    def test_connect_does_not_touch_bind_settings(self, monkeypatch):
        """Test that the remote of connect is not used as the bind address."""
        monkeypatch.delenv("NETWORKER_PORT", raising=False)
        monkeypatch.delenv("NETWORKER_HOST", raising=False)
        args = build_parser().parse_args(["connect", "10.0.0.1", "9000"])

        config = build_config(args)

        assert config.port is None
        assert config.host == "127.0.0.1"

    def test_invalid_config_exits(self, monkeypatch):
        """Test that a config that fails validation stops the CLI."""
        monkeypatch.setenv("NETWORKER_BUFFER_SIZE", "0")

        with pytest.raises(SystemExit):
            main(["serve"])

    def test_connect_to_closed_port_fails(self, free_port, capsys):
        """Test that a dial failure is reported with exit code 1."""
        assert main(["connect", "127.0.0.1", str(free_port)]) == 1
        assert "Error:" in capsys.readouterr().err


class TestServe:
    """Tests for the serve command loop."""

    def test_returns_after_last_connection_closes(self, config, free_port, wait_until):
        """Test that serve ends once the accept loop is done and its only peer left."""
        config.port = free_port
        result = []
        thread = threading.Thread(
            target=lambda: result.append(serve(config, 1, False)),
            daemon=True,
        )
        thread.start()

        clients = []

        def try_dial() -> bool:
            try:
                clients.append(Connection.dial("127.0.0.1", free_port, config))
            except DialError:
                return False
            return True

        assert wait_until(try_dial)
        client = clients[0]
        assert wait_until(lambda: client.get_all_text_messages() != [])
        client.send("last words\n")
        client.disconnect()

        thread.join(3.0)
        assert not thread.is_alive()
        assert result == [0]
