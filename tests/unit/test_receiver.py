"""
Unit tests for line splitting and the receive loop thread.
"""

import socket
import time

import pytest

from networker.core.message_queue import MessageQueue
from networker.core.receiver import LineBuffer, ReceiveLoop, ReceiveMode


class TestLineBuffer:
    """Tests for LineBuffer."""

    def test_complete_lines(self):
        """Test that every terminated line is returned without its terminator."""
        lines = LineBuffer()

        assert lines.feed(b"one\ntwo\n") == ["one", "two"]
        assert lines.pending == b""

    def test_partial_line_is_kept(self):
        """Test that bytes after the last newline wait for more data."""
        lines = LineBuffer()

        assert lines.feed(b"hel") == []
        assert lines.feed(b"lo\nwor") == ["hello"]
        assert lines.pending == b"wor"

    def test_crlf_is_stripped(self):
        """Test that Windows line endings are removed too."""
        lines = LineBuffer()

        assert lines.feed(b"a\r\nb\r\n") == ["a", "b"]

    def test_empty_lines(self):
        """Test that blank lines are kept as empty strings."""
        lines = LineBuffer()

        assert lines.feed(b"\n\nx\n") == ["", "", "x"]

    def test_multibyte_character_split_across_reads(self):
        """Test that a UTF-8 character cut in two is decoded once complete."""
        data = "grüße\n".encode("utf-8")
        lines = LineBuffer("utf-8")

        assert lines.feed(data[:3]) == []
        assert lines.feed(data[3:]) == ["grüße"]

    def test_flush(self):
        """Test that flush returns the unterminated remainder once."""
        lines = LineBuffer()
        lines.feed(b"tail")

        assert lines.flush() == "tail"
        assert lines.flush() is None


@pytest.fixture
def pair():
    left, right = socket.socketpair()
    yield left, right
    left.close()
    right.close()


def _loop(sock, mode, text_queue, binary_queue, buffer_size=1024):
    return ReceiveLoop(
        sock=sock,
        mode=mode,
        text_queue=text_queue,
        binary_queue=binary_queue,
        lines=LineBuffer(),
        buffer_size=buffer_size,
        poll_interval=0.05,
        connection_id="test",
    )


class TestReceiveLoop:
    """Tests for ReceiveLoop running on a socketpair."""

    def test_text_mode_queues_lines(self, pair):
        """Test that text mode queues lines and ends at end of stream."""
        reader, writer = pair
        text_queue, binary_queue = MessageQueue(), MessageQueue()
        loop = _loop(reader, ReceiveMode.TEXT, text_queue, binary_queue)
        loop.start()

        writer.sendall(b"first\nsecond\nlast")
        writer.shutdown(socket.SHUT_WR)
        loop.join(5.0)

        assert not loop.is_alive()
        assert text_queue.peek_all() == ["first", "second", "last"]
        assert len(binary_queue) == 0
        assert loop.error is None

    def test_binary_mode_respects_buffer_size(self, pair):
        """Test that binary chunks never exceed buffer_size and keep all bytes."""
        reader, writer = pair
        text_queue, binary_queue = MessageQueue(), MessageQueue()
        payload = bytes(range(256)) * 10
        loop = _loop(reader, ReceiveMode.BINARY, text_queue, binary_queue, buffer_size=100)
        loop.start()

        writer.sendall(payload)
        writer.shutdown(socket.SHUT_WR)
        loop.join(5.0)

        chunks = binary_queue.peek_all()
        assert all(1 <= len(chunk) <= 100 for chunk in chunks)
        assert b"".join(chunks) == payload
        assert loop.bytes_received == len(payload)

    def test_stop_without_traffic(self, pair):
        """Test that stop() ends a loop that is waiting for data."""
        reader, _ = pair
        loop = _loop(reader, ReceiveMode.TEXT, MessageQueue(), MessageQueue())
        loop.start()
        time.sleep(0.1)

        loop.stop()
        loop.join(2.0)

        assert not loop.is_alive()
        assert loop.error is None

    def test_read_error_is_kept_not_raised(self, pair):
        """Test that a failing socket ends the loop with a stored error."""
        reader, _ = pair
        loop = _loop(reader, ReceiveMode.TEXT, MessageQueue(), MessageQueue())
        reader.close()

        loop.start()
        loop.join(2.0)

        assert not loop.is_alive()
        assert loop.error is not None
        assert loop.error.connection_id == "test"
