"""
=============================================================================
NETWORKER - Minimal Bidirectional TCP Connections
=============================================================================

A small layer over TCP sockets with the same API on both ends of a link:

    # server side
    acceptor = Acceptor()
    port = acceptor.bind()
    acceptor.listen(max_connections=10)

    # client side
    conn = Connection.dial("127.0.0.1", port)
    greeting = conn.receive_text()      # "UID: 1718000000001" once it arrived
    conn.send("hello\\n")

=============================================================================
WHAT IT DOES
=============================================================================

1. CONNECTION LIFECYCLE
   - dial, connect, disconnect, reconnect
   - one background receive thread per connection

2. RECEIVING
   - text mode: newline-delimited lines
   - binary mode: raw chunks as read from the socket
   - non-blocking polling from a thread-safe FIFO

3. ACCEPTING
   - synchronous accept() for a single peer
   - background listen(n) that greets each peer with a unique id

=============================================================================
WHAT IT DOES NOT DO
=============================================================================

No framing beyond newlines, no flow control, no authentication or
encryption, no delivery guarantees beyond TCP's, no multiplexing.

=============================================================================
"""

from .config import NetworkerConfig
from .errors import (
    NetworkerError,
    BindError,
    ConnectError,
    DialError,
    SendError,
    ReceiveLoopError,
    AcceptError,
)
from .core import (
    Acceptor,
    Connection,
    ConnectionRegistry,
    MessageQueue,
    ReceiveLoop,
    ReceiveMode,
)

__version__ = "1.0.0"

__all__ = [
    "Acceptor",
    "Connection",
    "ConnectionRegistry",
    "MessageQueue",
    "ReceiveLoop",
    "ReceiveMode",
    "NetworkerConfig",
    "NetworkerError",
    "BindError",
    "ConnectError",
    "DialError",
    "SendError",
    "ReceiveLoopError",
    "AcceptError",
    "__version__",
]
