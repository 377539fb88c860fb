"""
Registry of connections accepted by an Acceptor.

Holds the set of live Connections and the UID → Connection map, and
hands out UIDs. One lock guards all three so that two connections
accepted back to back never share a counter value or corrupt the map.

UID scheme:

    uid = accept_counter + wall_clock_millis

Increasing as long as the clock does not jump backwards; a rollback can
produce a duplicate, which is logged and the newer Connection wins.
"""

import logging
import threading
import time
from typing import Dict, List, Optional, Set, Union

from .connection import Connection


logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Thread-safe set of Connections plus UID lookup."""

    def __init__(self):
        self._lock = threading.Lock()
        self._connections: Set[Connection] = set()
        self._by_uid: Dict[int, Connection] = {}
        self._accept_counter = 0

    @property
    def accepted(self) -> int:
        """Number of UIDs handed out so far."""
        return self._accept_counter

    def next_uid(self) -> int:
        """Take the next UID. Each call advances the accept counter."""
        with self._lock:
            self._accept_counter += 1
            return self._accept_counter + int(time.time() * 1000)

    def add(self, uid: int, connection: Connection) -> None:
        with self._lock:
            previous = self._by_uid.get(uid)
            if previous is not None and previous is not connection:
                logger.warning(f"UID {uid} reused (clock moved backwards?); replacing {previous}")
                self._connections.discard(previous)
            self._by_uid[uid] = connection
            self._connections.add(connection)

    def get(self, uid: int) -> Optional[Connection]:
        with self._lock:
            return self._by_uid.get(uid)

    def remove(self, uid: int) -> Optional[Connection]:
        """Unregister a UID; returns the Connection it pointed to."""
        with self._lock:
            connection = self._by_uid.pop(uid, None)
            if connection is not None:
                self._connections.discard(connection)
            return connection

    @property
    def uids(self) -> List[int]:
        with self._lock:
            return list(self._by_uid)

    @property
    def connections(self) -> List[Connection]:
        """Snapshot of the registered Connections."""
        with self._lock:
            return list(self._connections)

    def clear(self) -> List[Connection]:
        """Drop everything; returns what was registered."""
        with self._lock:
            dropped = list(self._connections)
            self._connections.clear()
            self._by_uid.clear()
            return dropped

    def __contains__(self, item: Union[int, Connection]) -> bool:
        with self._lock:
            if isinstance(item, Connection):
                return item in self._connections
            return item in self._by_uid

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)
