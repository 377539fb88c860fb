"""
=============================================================================
ACCEPTOR
=============================================================================

The Acceptor owns a listening socket and turns incoming TCP connections
into Connection objects.

=============================================================================
SOCKET LIFECYCLE (Server Side)
=============================================================================

    1. socket()    Create the listening socket
    2. bind()      Reserve IP:PORT (port 0 = let the OS choose)
    3. listen()    OS starts queueing incoming connections
    4. accept()    Take one queued connection, get a NEW socket for it
    5. close()     Release the listening socket

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── bind() once
                    └───────────┬───────────┘
                                │ accept()
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    Connection              Connection              Connection
    UID 1718000000001       UID 1718000000043       UID 1718000000107

=============================================================================
TWO WAYS TO ACCEPT
=============================================================================

accept()
    Blocks the caller until one peer connects and returns its Connection.
    The Connection is NOT registered; the caller owns it.

listen(max_connections)
    Starts a background thread that accepts up to max_connections peers.
    Each one gets a UID, is greeted with the line "UID: <uid>" and is
    registered so it can be looked up with get(uid).

        accept() ──► Connection(sock) ──► next_uid() ──► send greeting
                                                               │
                                           registry.add() ◄────┘

    A UID becomes visible to get() only after its greeting was sent.

=============================================================================
STOPPING THE ACCEPT LOOP
=============================================================================

The listening socket has a timeout of poll_interval seconds, so accept()
wakes up regularly and the loop can check whether stop_listening() was
called:

    while not stopped:
        try:
            accept()           # at most poll_interval seconds
        except timeout:
            continue           # check the flag again

An accept failure after a stop request is normal shutdown. Any other
accept failure ends the loop; it is logged and kept in accept_error.

=============================================================================
"""

import logging
import socket
import threading
from typing import List, Optional, Tuple

from ..config import NetworkerConfig
from ..errors import AcceptError, BindError, ConnectError, SendError
from .connection import Connection
from .registry import ConnectionRegistry


logger = logging.getLogger(__name__)


GREETING_FORMAT = "UID: {uid}\n"


class Acceptor:
    """
    Listening socket plus the registry of connections it accepted.

    State machine:

        Created ──bind()──► Bound ──► accept()            (sync)
                                  ──► listen(n)           (async, re-enterable)
                                  ──► close()  ──► Stopped

    There is no guard against two listen() loops running at once; start
    the next one after the previous finished or was stopped.

    Usage:
        acceptor = Acceptor()
        port = acceptor.bind()          # any free port
        acceptor.listen(10)             # background accept loop
        ...
        conn = acceptor.get(uid)
        acceptor.close()
    """

    def __init__(self, config: Optional[NetworkerConfig] = None):
        """
        Initialize the acceptor.

        Args:
            config: Host, port, backlog and polling settings.

        Note: This does NOT create the socket. Call bind(), or let
              accept()/listen() bind lazily to the configured port.
        """
        self.config = config or NetworkerConfig()
        self.config.validate()
        self.registry = ConnectionRegistry()

        self._socket: Optional[socket.socket] = None
        self._port: Optional[int] = None
        self._lock = threading.Lock()

        # Current background accept loop
        self._accept_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        self.accept_error: Optional[AcceptError] = None

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_bound(self) -> bool:
        return self._socket is not None

    @property
    def port(self) -> Optional[int]:
        """Port actually bound (useful after binding to port 0)."""
        return self._port

    @property
    def address(self) -> Tuple[str, Optional[int]]:
        return (self.config.host, self._port)

    @property
    def is_listening(self) -> bool:
        """True while a background accept loop is running and not stopped."""
        thread = self._accept_thread
        return thread is not None and thread.is_alive() and not self._stop_event.is_set()

    @property
    def connections(self) -> List[Connection]:
        """Snapshot of the registered connections."""
        return self.registry.connections

    def get(self, uid: int) -> Optional[Connection]:
        """Registered Connection for uid, or None."""
        return self.registry.get(uid)

    # =========================================================================
    # BINDING
    # =========================================================================

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # SO_REUSEADDR: rebind right away after a restart (TIME_WAIT)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # accept() returns at least every poll_interval so stop requests
        # are noticed
        sock.settimeout(self.config.poll_interval)

        return sock

    def bind(self, port: Optional[int] = None) -> int:
        """
        Bind and listen on host:port.

        Args:
            port: Port to bind. None uses the configured port, which
                  defaults to any free port chosen by the OS.

        Returns:
            The bound port.

        Raises:
            BindError: If already bound, or the port is unavailable.
        """
        with self._lock:
            if self._socket is not None:
                raise BindError(
                    f"Acceptor already bound to {self.config.host}:{self._port}",
                    host=self.config.host,
                    port=self._port or 0,
                )

            requested = self.config.bind_port if port is None else port
            sock = self._create_socket()

            try:
                # Common errors:
                # - Address already in use: another socket holds this port
                # - Permission denied: ports < 1024 need privileges
                sock.bind((self.config.host, requested))
                sock.listen(self.config.backlog)
            except OSError as e:
                sock.close()
                logger.error(f"Failed to bind to {self.config.host}:{requested}: {e}")
                raise BindError(
                    f"Could not bind to {self.config.host}:{requested}: {e}",
                    host=self.config.host,
                    port=requested,
                ) from e

            self._socket = sock
            self._port = sock.getsockname()[1]

        logger.info(f"Acceptor bound to {self.config.host}:{self._port}")
        return self._port

    def _ensure_bound(self) -> socket.socket:
        if self._socket is None:
            self.bind()
        return self._socket

    # =========================================================================
    # SYNCHRONOUS ACCEPT
    # =========================================================================

    def accept(self) -> Connection:
        """
        Block until one peer connects; return its listening Connection.

        The Connection is not registered and gets no UID.

        Raises:
            AcceptError: If accepting fails (e.g. the acceptor was closed).
        """
        sock = self._ensure_bound()

        while True:
            try:
                client_socket, client_address = sock.accept()
                break
            except socket.timeout:
                continue
            except OSError as e:
                raise AcceptError(f"Accept failed: {e}") from e

        logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

        try:
            return Connection(client_socket, self.config)
        except ConnectError as e:
            client_socket.close()
            raise AcceptError(f"Accepted socket unusable: {e}") from e

    # =========================================================================
    # ASYNCHRONOUS ACCEPT LOOP
    # =========================================================================

    def listen(self, max_connections: int) -> threading.Thread:
        """
        Accept up to max_connections peers in a background thread.

        Every accepted peer is greeted with "UID: <uid>" and registered.

        Args:
            max_connections: Total sockets to accept before the loop ends.

        Returns:
            The accept thread (also reachable through wait()).

        Raises:
            ValueError: If max_connections < 1.
            BindError: If lazily binding fails.
        """
        if max_connections < 1:
            raise ValueError("max_connections must be >= 1")

        sock = self._ensure_bound()

        # Each loop gets its own stop event; stop_listening() targets the latest
        stop_event = threading.Event()
        self._stop_event = stop_event
        self.accept_error = None

        thread = threading.Thread(
            target=self._accept_loop,
            args=(sock, max_connections, stop_event),
            name=f"Acceptor-{self._port}",
            daemon=True,
        )
        self._accept_thread = thread
        thread.start()
        return thread

    def _accept_loop(self, sock: socket.socket, max_connections: int, stop_event: threading.Event):
        """
        Background accept loop.

        ┌─────────────────────────────────────────────────────────────────┐
        │                     Accept Loop Flow                             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   while accepted < max and not stopped:                          │
        │       │                                                          │
        │       ├──► accept()        (timeout → loop again)                │
        │       ├──► Connection()    starts its receive loop               │
        │       ├──► next_uid()                                            │
        │       ├──► send "UID: <uid>\\n"                                   │
        │       └──► registry.add(uid, conn)                               │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘
        """
        accepted = 0
        logger.info(
            f"Accepting up to {max_connections} connections on "
            f"{self.config.host}:{self._port}"
        )

        while accepted < max_connections and not stop_event.is_set():
            try:
                client_socket, client_address = sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if stop_event.is_set():
                    logger.debug(f"Accept loop interrupted by stop: {e}")
                else:
                    self.accept_error = AcceptError(f"Accept failed: {e}")
                    self.accept_error.__cause__ = e
                    logger.error(f"Accept error: {e}")
                break

            accepted += 1
            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            try:
                self._register(client_socket)
            except (ConnectError, SendError) as e:
                logger.warning(
                    f"Dropping connection from {client_address[0]}:{client_address[1]}: {e}"
                )

        logger.info(f"Accept loop on port {self._port} stopped after {accepted} connections")

    def _register(self, client_socket: socket.socket) -> int:
        try:
            conn = Connection(client_socket, self.config)
        except ConnectError:
            client_socket.close()
            raise

        uid = self.registry.next_uid()
        try:
            conn.send_text(GREETING_FORMAT.format(uid=uid))
        except SendError:
            try:
                conn.disconnect()
            except OSError as e:
                logger.warning(f"Error disconnecting {conn} after failed greeting: {e}")
            raise

        self.registry.add(uid, conn)
        logger.info(f"Registered {conn} as UID {uid}")
        return uid

    def stop_listening(self):
        """
        Ask the background accept loop to stop.

        Returns immediately; the loop exits within poll_interval seconds.
        """
        self._stop_event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the background accept loop to finish.

        Returns:
            True if no loop is running anymore, False on timeout.
        """
        thread = self._accept_thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def close(self):
        """
        Stop accepting, close the listening socket and disconnect every
        registered connection.
        """
        self.stop_listening()
        self.wait(self.config.join_timeout)

        with self._lock:
            if self._socket is not None:
                try:
                    self._socket.close()
                except OSError:
                    pass  # Already closed
                self._socket = None

        for conn in self.registry.clear():
            try:
                conn.disconnect()
            except OSError as e:
                logger.warning(f"Error disconnecting {conn}: {e}")

        logger.info("Acceptor stopped")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# Acceptor turns a listening socket into Connections:
#
# 1. bind() once, to a given port or any free one
# 2. accept() for a single caller-owned Connection
# 3. listen(n) for a background loop that greets and registers peers
# 4. close() stops the loop, closes the socket, disconnects registered peers
# =============================================================================
