"""
Exception types raised by networker.

    NetworkerError
    ├── BindError          listening socket could not be set up
    ├── ConnectError       socket unusable when binding a Connection to it
    │   └── DialError      dialling (or re-dialling) a remote failed
    ├── SendError          a write failed
    ├── ReceiveLoopError   a background read failed (logged, never raised)
    └── AcceptError        accepting an incoming socket failed

Every error raised from a socket failure keeps the original OSError as
its __cause__.
"""

from typing import Optional


class NetworkerError(Exception):
    """Base class for all networker errors."""


class BindError(NetworkerError):
    """
    The Acceptor could not bind or listen.

    Attributes:
        host: Address that was requested.
        port: Port that was requested (0 = any free port).
    """

    def __init__(self, message: str, host: str = "", port: int = 0):
        super().__init__(message)
        self.host = host
        self.port = port


class ConnectError(NetworkerError):
    """The socket handed to Connection.connect() cannot be used."""


class DialError(ConnectError):
    """
    Dialling address:port failed.

    Attributes:
        address: Remote host that was dialled.
        port: Remote port that was dialled.
    """

    def __init__(self, message: str, address: str = "", port: int = 0):
        super().__init__(message)
        self.address = address
        self.port = port


class SendError(NetworkerError):
    """Writing to the socket failed. The Connection is left as it was."""


class ReceiveLoopError(NetworkerError):
    """
    A receive loop stopped because of a read failure.

    Never raised to callers; kept on the loop so it can be inspected
    through Connection.receive_error.
    """

    def __init__(self, message: str, connection_id: Optional[str] = None):
        super().__init__(message)
        self.connection_id = connection_id


class AcceptError(NetworkerError):
    """Accepting an incoming connection failed."""
