"""
=============================================================================
NETWORKER CORE
=============================================================================

    ┌──────────────┐  accept()   ┌──────────────┐   owns   ┌──────────────┐
    │   Acceptor   │ ──────────► │  Connection  │ ───────► │ ReceiveLoop  │
    │ + Registry   │             │              │          │   (thread)   │
    └──────────────┘             └──────┬───────┘          └──────┬───────┘
                                        │ poll()                  │ put()
                                        ▼                         ▼
                                 ┌─────────────────────────────────────┐
                                 │       MessageQueue (text / bytes)   │
                                 └─────────────────────────────────────┘

- Acceptor: binds a port, accepts peers, hands out UIDs
- ConnectionRegistry: live connections and the UID map
- Connection: one socket, send/receive, lifecycle
- ReceiveLoop: background thread draining a socket
- MessageQueue: thread-safe FIFO of received units
=============================================================================
"""

from .message_queue import MessageQueue
from .receiver import LineBuffer, ReceiveLoop, ReceiveMode
from .connection import Connection
from .registry import ConnectionRegistry
from .acceptor import Acceptor, GREETING_FORMAT

__all__ = [
    "Acceptor",            # Listening socket, sync and async accept
    "ConnectionRegistry",  # Registered connections by UID
    "Connection",          # One end of a TCP link
    "ReceiveLoop",         # Background reader thread
    "ReceiveMode",         # TEXT or BINARY
    "LineBuffer",          # Splits received bytes into lines
    "MessageQueue",        # Thread-safe FIFO of received units
    "GREETING_FORMAT",     # "UID: {uid}\n"
]
