"""
=============================================================================
CONNECTION
=============================================================================

This module wraps one TCP socket with a small, symmetric API. The same
class is used on both ends of a link:

    CLIENT SIDE                              SERVER SIDE
    ───────────                              ───────────
    conn = Connection.dial(host, port)       conn = acceptor.accept()
              │                                        │
              └────────────── TCP stream ──────────────┘

Either end can send, receive, disconnect and reconnect. Nothing in the
wire format tells a dialled Connection from an accepted one.

=============================================================================
SENDING VS RECEIVING
=============================================================================

Sending is synchronous: send() returns once every byte was handed to the
OS, or raises SendError.

Receiving is asynchronous: a background ReceiveLoop thread reads the socket
continuously and appends what it reads to a MessageQueue. Callers poll:

    ┌────────────┐   recv()   ┌──────────────┐  put()  ┌──────────────┐
    │   socket   │ ─────────► │ ReceiveLoop  │ ──────► │ MessageQueue │
    └────────────┘            │  (thread)    │         └──────┬───────┘
                              └──────────────┘                │ poll()
                                                              ▼
                                                     receive_text() etc.

There are two queues, one for text lines and one for binary chunks. Only
the queue matching the receive mode of the running loop is filled; the
other keeps whatever it held before the mode was switched.

=============================================================================
CONNECTION LIFECYCLE
=============================================================================

    dial() / Connection(sock)
        │
        ▼
    connect(sock) ─────► CONNECTED + LISTENING
        │                    │        ▲
        │     stop_listening()│        │ start_listening()
        │                    ▼        │
        │               CONNECTED (not listening)
        │
        ▼
    disconnect() ──────► DISCONNECTED ──── reconnect() ───► CONNECTED + LISTENING
                           (same remote address and port)

=============================================================================
MODE SWITCHING
=============================================================================

Changing the receive mode does not touch a loop that is already running.
Restart it to apply the change:

    conn.set_receiver_to_binary()
    conn.restart_listening()

Data already queued stays in the old mode's queue.

=============================================================================
"""

import errno
import logging
import socket
import threading
import time
import uuid
from typing import List, Optional, Tuple, Union

from ..config import NetworkerConfig
from ..errors import ConnectError, DialError, ReceiveLoopError, SendError
from .message_queue import MessageQueue
from .receiver import LineBuffer, ReceiveLoop, ReceiveMode


logger = logging.getLogger(__name__)


class Connection:
    """
    One end of a bidirectional TCP link.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. LIFECYCLE                                                        │
    │     └── connect(), disconnect(), reconnect()                         │
    │     └── disconnect() is idempotent                                   │
    │                                                                      │
    │  2. RECEIVING                                                        │
    │     └── One ReceiveLoop thread at most                               │
    │     └── Text lines or binary chunks, queued FIFO                     │
    │                                                                      │
    │  3. SENDING                                                          │
    │     └── sendall() under a lock, nothing appended                     │
    │     └── Failures raise SendError, state is left alone               │
    │                                                                      │
    │  4. IDENTITY                                                         │
    │     └── A local id that survives reconnect()                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        conn = Connection.dial("127.0.0.1", 15001)
        conn.send("hello\\n")
        line = conn.receive_text()    # None until something arrived
        conn.disconnect()

    Attributes:
        id: Local identifier used for equality, hashing and logs.
        config: Buffer size, encoding and polling settings.
        created_at: Timestamp when the Connection was created.
    """

    def __init__(self, sock: socket.socket, config: Optional[NetworkerConfig] = None):
        """
        Wrap an already connected socket (typically an accepted one).

        Args:
            sock: A connected stream socket. Ownership passes to the
                  Connection; disconnect() closes it.
            config: Settings; defaults are used if omitted.

        Raises:
            ConnectError: If the socket is closed or not connected.
        """
        self.config = config or NetworkerConfig()
        self.config.validate()
        self.id = str(uuid.uuid4())[:8]
        self.created_at = time.time()

        self._socket: Optional[socket.socket] = None
        self._remote: Optional[Tuple[str, int]] = None
        self._connected = False
        self._listening = False
        self._receive_mode = ReceiveMode.TEXT

        self._text_messages: MessageQueue[str] = MessageQueue()
        self._binary_messages: MessageQueue[bytes] = MessageQueue()
        self._lines = LineBuffer(self.config.encoding)
        self._loop: Optional[ReceiveLoop] = None

        # Serializes writers; the receive loop never takes it
        self._send_lock = threading.Lock()
        # Serializes lifecycle changes (connect, disconnect, start/stop)
        self._state_lock = threading.RLock()

        self.connect(sock)

    @classmethod
    def dial(
        cls,
        address: str,
        port: int,
        config: Optional[NetworkerConfig] = None,
    ) -> "Connection":
        """
        Open a TCP connection to address:port and wrap it.

        Raises:
            DialError: If the remote cannot be reached.
        """
        sock = cls._open_socket(address, port)
        try:
            return cls(sock, config)
        except ConnectError:
            sock.close()
            raise

    @staticmethod
    def _open_socket(address: str, port: int) -> socket.socket:
        try:
            return socket.create_connection((address, port))
        except OSError as e:
            logger.error(f"Failed to connect to {address}:{port}: {e}")
            raise DialError(
                f"Could not connect to {address}:{port}: {e}",
                address=address,
                port=port,
            ) from e

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_connected(self) -> bool:
        """True if a socket is held, was connected, and is not closed."""
        sock = self._socket
        return sock is not None and self._connected and sock.fileno() != -1

    @property
    def is_listening(self) -> bool:
        """
        True while a receive loop is wanted.

        The loop does not clear this when the peer closes the stream; use
        is_connected and receive_error to notice a dead loop.
        """
        return self._listening

    @property
    def receive_mode(self) -> ReceiveMode:
        return self._receive_mode

    @property
    def is_receiving(self) -> bool:
        """True while a receive loop thread is actually running."""
        loop = self._loop
        return loop is not None and loop.is_alive()

    @property
    def receive_error(self) -> Optional[ReceiveLoopError]:
        """The error that ended the most recent receive loop, if any."""
        loop = self._loop
        return loop.error if loop is not None else None

    @property
    def remote_address(self) -> Optional[Tuple[str, int]]:
        """(host, port) of the peer, kept after disconnect for reconnect()."""
        return self._remote

    @property
    def address(self) -> Optional[str]:
        return self._remote[0] if self._remote else None

    @property
    def port(self) -> Optional[int]:
        return self._remote[1] if self._remote else None

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def connect(self, sock: socket.socket):
        """
        Bind this Connection to a socket and start listening.

        A Connection that is still connected is disconnected first.

        Raises:
            ConnectError: If the socket is closed or has no peer.
        """
        with self._state_lock:
            if sock.fileno() == -1:
                raise ConnectError("Socket is closed")

            try:
                peer = sock.getpeername()
            except OSError as e:
                raise ConnectError(f"Socket is not connected: {e}") from e

            if self._connected and sock is not self._socket:
                self.disconnect()

            # The receive loop polls with select(); reads and writes block
            sock.setblocking(True)
            try:
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            except OSError:
                pass  # Not a TCP socket (e.g. socketpair in tests)

            self._socket = sock
            self._remote = (peer[0], peer[1]) if isinstance(peer, tuple) else (str(peer), 0)
            self._connected = True
            self._lines = LineBuffer(self.config.encoding)

            logger.debug(f"[{self.id}] Connected to {self._remote[0]}:{self._remote[1]}")

            self.start_listening()

    def disconnect(self):
        """
        Stop listening and release the socket.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    disconnect() Sequence                         │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   1. listening = False, signal the receive loop                  │
        │   2. shutdown(SHUT_RDWR)   wakes a loop waiting for data        │
        │   3. join the loop (join_timeout at most)                        │
        │   4. close()               release the file descriptor          │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Every step runs even if an earlier one failed; the first failure
        is raised at the end. Calling it on a disconnected Connection
        does nothing.

        Raises:
            OSError: The first failure seen while tearing down.
        """
        with self._state_lock:
            if not self._connected:
                return

            sock = self._socket
            loop = self._loop
            errors: List[OSError] = []

            self._listening = False
            if loop is not None:
                loop.stop()

            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                if e.errno != errno.ENOTCONN:  # Peer went away first, fine
                    errors.append(e)

            if loop is not None and loop is not threading.current_thread():
                loop.join(self.config.join_timeout)
                if loop.is_alive():
                    logger.warning(f"[{self.id}] Receive loop did not stop in time")

            try:
                sock.close()
            except OSError as e:
                errors.append(e)

            self._connected = False
            logger.debug(f"[{self.id}] Disconnected")

            if errors:
                raise errors[0]

    def reconnect(self):
        """
        Disconnect, then dial the same remote address and port again.

        Raises:
            DialError: If the remote cannot be reached. The Connection is
                       left disconnected.
        """
        with self._state_lock:
            if self._remote is None:
                raise DialError("Connection has no remote address to reconnect to")

            address, port = self._remote
            self.disconnect()

            logger.debug(f"[{self.id}] Reconnecting to {address}:{port}")
            sock = self._open_socket(address, port)
            try:
                self.connect(sock)
            except ConnectError:
                sock.close()
                raise

    # =========================================================================
    # LISTENING
    # =========================================================================

    def start_listening(self):
        """
        Start the receive loop for the current receive mode.

        Does nothing if already listening or not connected. A previously
        stopped loop is joined first, so two loops never read the same
        socket.
        """
        with self._state_lock:
            if self._listening:
                return

            if not self.is_connected:
                logger.debug(f"[{self.id}] Not connected, not starting receive loop")
                return

            previous = self._loop
            if previous is not None and previous.is_alive():
                previous.stop()
                if previous is not threading.current_thread():
                    previous.join(self.config.join_timeout)
                    if previous.is_alive():
                        logger.warning(f"[{self.id}] Previous receive loop still running")

            self._loop = ReceiveLoop(
                sock=self._socket,
                mode=self._receive_mode,
                text_queue=self._text_messages,
                binary_queue=self._binary_messages,
                lines=self._lines,
                buffer_size=self.config.buffer_size,
                poll_interval=self.config.poll_interval,
                connection_id=self.id,
            )
            self._listening = True
            self._loop.start()

    def stop_listening(self):
        """
        Ask the receive loop to stop.

        Returns immediately; the loop exits within poll_interval seconds.
        """
        with self._state_lock:
            self._listening = False
            if self._loop is not None:
                self._loop.stop()

    def restart_listening(self):
        """Stop and start the receive loop, e.g. to apply a mode change."""
        with self._state_lock:
            self.stop_listening()
            self.start_listening()

    def set_receiver_to_binary(self):
        """
        Expect binary data from now on.

        Takes effect at the next restart_listening().
        """
        self._receive_mode = ReceiveMode.BINARY

    def set_receiver_to_text(self):
        """
        Expect newline-delimited text from now on.

        Takes effect at the next restart_listening().
        """
        self._receive_mode = ReceiveMode.TEXT

    # =========================================================================
    # RECEIVING
    # =========================================================================

    def receive_text(self) -> Optional[str]:
        """Oldest queued text line, or None. Never blocks."""
        return self._text_messages.poll()

    def receive_binary(self) -> Optional[bytes]:
        """Oldest queued binary chunk, or None. Never blocks."""
        return self._binary_messages.poll()

    def get_all_text_messages(self) -> List[str]:
        """Copy of every queued text line, oldest first. Does not drain."""
        return self._text_messages.peek_all()

    def get_all_binary_messages(self) -> List[bytes]:
        """Copy of every queued binary chunk, oldest first. Does not drain."""
        return self._binary_messages.peek_all()

    # =========================================================================
    # SENDING
    # =========================================================================

    def send(self, unit: Union[str, bytes, bytearray, memoryview]):
        """
        Send text or bytes, depending on the type of unit.

        No line terminator is added; include "\\n" if the peer reads text.

        Raises:
            SendError: If the write fails.
            TypeError: If unit is neither str nor bytes-like.
        """
        if isinstance(unit, str):
            self.send_text(unit)
        elif isinstance(unit, (bytes, bytearray, memoryview)):
            self.send_binary(unit)
        else:
            raise TypeError(f"Cannot send {type(unit).__name__}; expected str or bytes")

    def send_text(self, message: str):
        """Encode message with the configured encoding and send it."""
        self._write(message.encode(self.config.encoding))

    def send_binary(self, data: Union[bytes, bytearray, memoryview]):
        """Send raw bytes."""
        self._write(data)

    def _write(self, data):
        sock = self._socket
        if sock is None or not self._connected:
            raise SendError("Connection is not connected")

        try:
            # sendall() keeps writing until every byte is out, or fails
            with self._send_lock:
                sock.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            raise SendError(f"Send failed: {e}") from e

    # =========================================================================
    # IDENTITY AND REPRESENTATION
    # =========================================================================

    def __eq__(self, other) -> bool:
        if not isinstance(other, Connection):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __str__(self) -> str:
        state = "A" if self.is_connected else "C"
        host, port = self._remote or ("?", 0)
        return f"Connection-{state}:[{host}:{port}]"

    def __repr__(self) -> str:
        return (
            f"Connection(id={self.id!r}, remote={self._remote}, "
            f"connected={self.is_connected}, listening={self._listening}, "
            f"mode={self._receive_mode.value})"
        )

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        """
        Allows automatic cleanup:

            with Connection.dial("127.0.0.1", port) as conn:
                conn.send("hi\\n")
            # disconnected here
        """
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
        return False
