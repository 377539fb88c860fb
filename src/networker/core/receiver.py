"""
=============================================================================
RECEIVE LOOP
=============================================================================

Every listening Connection owns exactly one background thread that drains
its socket into a MessageQueue. This module contains that thread.

=============================================================================
TWO WAYS TO READ A BYTE STREAM
=============================================================================

TCP delivers bytes, not messages. The loop offers two interpretations:

    TEXT MODE
    ─────────
    Bytes are collected until a "\\n" shows up. Each complete line is
    decoded and queued WITHOUT its terminator ("\\n" or "\\r\\n").

        recv() → b"hel"           (nothing queued, kept as pending)
        recv() → b"lo\\nwor"       queue: ["hello"]
        recv() → b"ld\\r\\n"        queue: ["hello", "world"]

    BINARY MODE
    ───────────
    Every recv() result is queued as-is, one chunk per read. Chunks are
    NOT reassembled into the sender's writes; only the order and the
    total bytes are preserved.

        recv() → b"\\x01\\x02"      queue: [b"\\x01\\x02"]
        recv() → b"\\x03"          queue: [b"\\x01\\x02", b"\\x03"]

=============================================================================
STOPPING
=============================================================================

A plain blocking recv() cannot be interrupted by setting a flag. The loop
therefore waits for readability with select() for at most poll_interval
seconds, then checks its stop event:

    while not stopped:
        select([sock], timeout=poll_interval)
        │
        ├── timeout  → loop again (check stop event)
        └── readable → recv_into(buffer) → queue units

Disconnecting also shuts the socket down, which makes select() report it
readable and recv() return b"" (end of stream) right away.

=============================================================================
"""

import logging
import select
import socket
import threading
from enum import Enum
from typing import List, Optional

from ..errors import ReceiveLoopError
from .message_queue import MessageQueue


logger = logging.getLogger(__name__)


class ReceiveMode(Enum):
    """How incoming bytes are turned into queued units."""
    TEXT = "text"      # newline-delimited lines → MessageQueue[str]
    BINARY = "binary"  # raw recv() chunks → MessageQueue[bytes]


class LineBuffer:
    """
    Accumulates bytes and splits them into decoded lines.

    Splitting happens on raw bytes before decoding, so a multi-byte
    character cut in half by TCP is reassembled before it is decoded.
    """

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding
        self._pending = b""

    @property
    def pending(self) -> bytes:
        """Bytes received after the last complete line."""
        return self._pending

    def feed(self, data: bytes) -> List[str]:
        """Add received bytes; return every line they completed."""
        self._pending += data
        *lines, self._pending = self._pending.split(b"\n")
        return [self._decode(line) for line in lines]

    def flush(self) -> Optional[str]:
        """Return the unterminated remainder as a final line, if any."""
        if not self._pending:
            return None
        line = self._decode(self._pending)
        self._pending = b""
        return line

    def _decode(self, raw: bytes) -> str:
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        return raw.decode(self.encoding, errors="replace")


class ReceiveLoop(threading.Thread):
    """
    Background thread that fills a Connection's message queues.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Receive Loop                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. Wait (select) up to poll_interval for data                      │
    │          │                                                           │
    │          ├── nothing → stop requested? exit : go to 1               │
    │          │                                                           │
    │   2. recv_into(buffer)                                               │
    │          │                                                           │
    │          ├── 0 bytes → end of stream, flush pending line, exit      │
    │          │                                                           │
    │   3. Queue units (lines or one chunk), go to 1                      │
    │                                                                      │
    │   Any OSError: logged, kept in .error, thread exits.                │
    │   Never raised to callers, never reconnects.                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    The mode is fixed when the loop is created. To read in another mode,
    stop this loop and start a new one.
    """

    def __init__(
        self,
        sock: socket.socket,
        mode: ReceiveMode,
        text_queue: MessageQueue,
        binary_queue: MessageQueue,
        lines: LineBuffer,
        buffer_size: int = 1024,
        poll_interval: float = 0.2,
        connection_id: str = "",
    ):
        """
        Initialize the loop (does not start it).

        Args:
            sock: Connected socket to read from.
            mode: TEXT or BINARY; fixed for the lifetime of this thread.
            text_queue: Destination for lines in TEXT mode.
            binary_queue: Destination for chunks in BINARY mode.
            lines: Partial-line buffer owned by the Connection.
            buffer_size: Maximum bytes per recv() (and per binary chunk).
            poll_interval: Seconds between stop checks while idle.
            connection_id: Used in log messages.
        """
        # daemon=True: a forgotten Connection never keeps the process alive
        super().__init__(name=f"ReceiveLoop-{connection_id}", daemon=True)

        self.sock = sock
        self.mode = mode
        self.text_queue = text_queue
        self.binary_queue = binary_queue
        self.lines = lines
        self.buffer_size = buffer_size
        self.poll_interval = poll_interval
        self.connection_id = connection_id

        self._stop_event = threading.Event()
        self.error: Optional[ReceiveLoopError] = None

        # Metrics
        self.bytes_received = 0
        self.units_queued = 0

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def stop(self):
        """Ask the loop to exit at its next poll boundary."""
        self._stop_event.set()

    def run(self):
        logger.debug(f"[{self.connection_id}] Receive loop started ({self.mode.value})")

        # One buffer reused for every read; only the bytes read are copied out
        buffer = bytearray(self.buffer_size)

        try:
            while not self._stop_event.is_set():
                readable, _, _ = select.select([self.sock], [], [], self.poll_interval)
                if not readable or self._stop_event.is_set():
                    continue

                count = self.sock.recv_into(buffer)
                if count == 0:
                    self._end_of_stream()
                    break

                self.bytes_received += count
                self._dispatch(bytes(buffer[:count]))

        except (OSError, ValueError) as e:
            # ValueError: select() on a socket closed under us (fileno -1)
            if self._stop_event.is_set():
                logger.debug(f"[{self.connection_id}] Receive loop interrupted by stop: {e}")
            else:
                self.error = ReceiveLoopError(
                    f"Receive loop failed: {e}", connection_id=self.connection_id
                )
                self.error.__cause__ = e
                logger.error(f"[{self.connection_id}] Receive loop failed: {e}")

        finally:
            logger.debug(
                f"[{self.connection_id}] Receive loop stopped after "
                f"{self.bytes_received} bytes, {self.units_queued} units"
            )

    def _dispatch(self, data: bytes):
        if self.mode is ReceiveMode.BINARY:
            self.binary_queue.put(data)
            self.units_queued += 1
            return

        for line in self.lines.feed(data):
            self.text_queue.put(line)
            self.units_queued += 1

    def _end_of_stream(self):
        logger.debug(f"[{self.connection_id}] Peer closed the stream")
        if self.mode is ReceiveMode.TEXT:
            last = self.lines.flush()
            if last is not None:
                self.text_queue.put(last)
                self.units_queued += 1
