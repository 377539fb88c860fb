"""
pytest configuration and fixtures.
"""

import socket
import time
from typing import Callable, Generator, List

import pytest

from networker import Acceptor, Connection, NetworkerConfig


@pytest.fixture
def config() -> NetworkerConfig:
    """Test configuration: loopback, any free port, fast polling."""
    return NetworkerConfig(
        host="127.0.0.1",
        port=None,
        poll_interval=0.05,
        join_timeout=2.0,
        log_level="DEBUG",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """
    Poll a condition until it holds or the timeout expires.

    Background threads fill the queues, so assertions have to wait for them.
    """

    def _wait(condition: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if condition():
                return True
            time.sleep(interval)
        return condition()

    return _wait


@pytest.fixture
def acceptor(config: NetworkerConfig) -> Generator[Acceptor, None, None]:
    """A bound acceptor on a free port, closed after the test."""
    acc = Acceptor(config)
    acc.bind()

    yield acc

    acc.close()


@pytest.fixture
def dial(acceptor: Acceptor, config: NetworkerConfig) -> Generator[Callable[[], Connection], None, None]:
    """Factory that dials the acceptor fixture; every client is disconnected afterwards."""
    clients: List[Connection] = []

    def _dial() -> Connection:
        conn = Connection.dial("127.0.0.1", acceptor.port, config)
        clients.append(conn)
        return conn

    yield _dial

    for conn in clients:
        try:
            conn.disconnect()
        except OSError:
            pass  # Peer already reset the connection
