"""
=============================================================================
NETWORKER CONFIGURATION
=============================================================================

Centralized configuration for connections and acceptors.

Every knob that changes how sockets are read, written or accepted lives
here, so a Connection and the Acceptor that produced it always agree on
buffer sizes, encodings and polling behaviour.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m networker serve --port 15001                    │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── NETWORKER_PORT=15001 python -m networker serve            │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import codecs
import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class NetworkerConfig:
    """
    Configuration shared by Connection and Acceptor.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog

    RECEIVING
    - buffer_size, encoding

    THREADING
    - poll_interval, join_timeout

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    The address the Acceptor binds to.
    - "127.0.0.1" - Localhost only
    - "0.0.0.0" - All network interfaces
    """

    port: Optional[int] = None
    """
    The port the Acceptor binds to.
    None (or 0) lets the OS pick a free port; read it back from
    Acceptor.port after bind().
    """

    backlog: int = 50
    """
    Maximum number of connections the OS queues before accept() runs.
    """

    # ─────────────────────────────────────────────────────────────────────
    # RECEIVING
    # ─────────────────────────────────────────────────────────────────────

    buffer_size: int = 1024
    """
    Bytes read per recv() call. In binary mode this is also the maximum
    size of one queued chunk.
    """

    encoding: str = "utf-8"
    """
    Text encoding for send_text() and for lines queued in text mode.
    """

    # ─────────────────────────────────────────────────────────────────────
    # THREADING
    # ─────────────────────────────────────────────────────────────────────

    poll_interval: float = 0.2
    """
    Seconds a background loop waits for data (or a new connection)
    before re-checking whether it was asked to stop.
    """

    join_timeout: float = 2.0
    """
    Seconds disconnect() and restart_listening() wait for a receive loop
    thread to exit.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """
    Logging level for the "networker" logger (DEBUG, INFO, WARNING, ERROR).
    """

    @property
    def bind_port(self) -> int:
        """Port passed to bind(); 0 asks the OS for a free one."""
        return self.port or 0

    @classmethod
    def from_env(cls) -> "NetworkerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        NETWORKER_HOST           Bind address (default: 127.0.0.1)
        NETWORKER_PORT           Bind port (default: OS-assigned)
        NETWORKER_BACKLOG        Listen backlog (default: 50)
        NETWORKER_BUFFER_SIZE    Bytes per read (default: 1024)
        NETWORKER_ENCODING       Text encoding (default: utf-8)
        NETWORKER_POLL_INTERVAL  Stop-check interval (default: 0.2)
        NETWORKER_JOIN_TIMEOUT   Thread join timeout (default: 2.0)
        NETWORKER_LOG_LEVEL      Logging level (default: INFO)

        =====================================================================
        """
        port = os.getenv("NETWORKER_PORT")
        return cls(
            host=os.getenv("NETWORKER_HOST", "127.0.0.1"),
            port=int(port) if port else None,
            backlog=int(os.getenv("NETWORKER_BACKLOG", "50")),
            buffer_size=int(os.getenv("NETWORKER_BUFFER_SIZE", "1024")),
            encoding=os.getenv("NETWORKER_ENCODING", "utf-8"),
            poll_interval=float(os.getenv("NETWORKER_POLL_INTERVAL", "0.2")),
            join_timeout=float(os.getenv("NETWORKER_JOIN_TIMEOUT", "2.0")),
            log_level=os.getenv("NETWORKER_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Fail fast: a bad value is reported when the config is built, not
        when the first socket misbehaves.
        """
        if self.port is not None and not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")

        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")

        if self.join_timeout <= 0:
            raise ValueError("join_timeout must be > 0")

        try:
            codecs.lookup(self.encoding)
        except LookupError:
            raise ValueError(f"Unknown encoding: {self.encoding}")
