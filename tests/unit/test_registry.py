"""
Unit tests for the connection registry.
"""

import socket
import threading

import pytest

from networker import Connection, NetworkerConfig
from networker.core.registry import ConnectionRegistry


@pytest.fixture
def make_connection():
    """Factory for Connections over socketpairs; all disconnected afterwards."""
    created = []
    config = NetworkerConfig(poll_interval=0.05)

    def _make() -> Connection:
        left, right = socket.socketpair()
        conn = Connection(left, config)
        created.append((conn, right))
        return conn

    yield _make

    for conn, peer in created:
        conn.disconnect()
        peer.close()


class TestConnectionRegistry:
    """Tests for ConnectionRegistry."""

    def test_uids_increase(self):
        """Test that consecutive UIDs strictly increase."""
        registry = ConnectionRegistry()

        first = registry.next_uid()
        second = registry.next_uid()

        assert second > first
        assert registry.accepted == 2

    def test_concurrent_uids_are_distinct(self):
        """Test that UIDs taken from many threads never collide."""
        registry = ConnectionRegistry()
        uids = []
        lock = threading.Lock()

        def take():
            for _ in range(200):
                uid = registry.next_uid()
                with lock:
                    uids.append(uid)

        threads = [threading.Thread(target=take) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert registry.accepted == 1600
        assert len(set(uids)) == 1600

    def test_add_and_lookup(self, make_connection):
        """Test registering and looking up by UID and by Connection."""
        registry = ConnectionRegistry()
        conn = make_connection()
        uid = registry.next_uid()

        registry.add(uid, conn)

        assert registry.get(uid) is conn
        assert uid in registry
        assert conn in registry
        assert registry.uids == [uid]
        assert registry.connections == [conn]
        assert len(registry) == 1

    def test_remove(self, make_connection):
        """Test that remove drops both the UID and the Connection."""
        registry = ConnectionRegistry()
        conn = make_connection()
        registry.add(7, conn)

        assert registry.remove(7) is conn
        assert registry.get(7) is None
        assert conn not in registry
        assert registry.remove(7) is None

    def test_duplicate_uid_replaces(self, make_connection):
        """Test that a reused UID points to the newer Connection only."""
        registry = ConnectionRegistry()
        old, new = make_connection(), make_connection()

        registry.add(42, old)
        registry.add(42, new)

        assert registry.get(42) is new
        assert registry.connections == [new]

    def test_clear(self, make_connection):
        """Test that clear returns everything that was registered."""
        registry = ConnectionRegistry()
        a, b = make_connection(), make_connection()
        registry.add(1, a)
        registry.add(2, b)

        dropped = registry.clear()

        assert set(dropped) == {a, b}
        assert len(registry) == 0
        assert registry.uids == []
