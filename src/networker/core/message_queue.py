"""
Thread-safe FIFO buffer for received messages.

A receive loop thread is the only producer; any number of caller threads
poll or snapshot the queue while it is being filled.

    producer (ReceiveLoop)         consumers (any thread)
           │                               ▲
           │ put()                         │ poll() / peek_all()
           ▼                               │
    ┌──────────────────────────────────────┴──┐
    │  oldest  ──►  ...  ──►  newest            │   guarded by one Lock
    └──────────────────────────────────────────┘

Unlike queue.Queue, polling an empty MessageQueue never blocks: callers
get None and try again later.
"""

import threading
from collections import deque
from typing import Deque, Generic, List, Optional, TypeVar


T = TypeVar("T")


class MessageQueue(Generic[T]):
    """
    Ordered, internally synchronized buffer of received units.

    Usage:
        queue: MessageQueue[str] = MessageQueue()
        queue.put("hello")
        queue.peek_all()   # ["hello"] (copy, queue untouched)
        queue.poll()       # "hello"
        queue.poll()       # None
    """

    def __init__(self):
        self._items: Deque[T] = deque()
        self._lock = threading.Lock()

    def put(self, item: T) -> None:
        """Append a unit at the tail."""
        with self._lock:
            self._items.append(item)

    def poll(self) -> Optional[T]:
        """Remove and return the oldest unit, or None if the queue is empty."""
        with self._lock:
            if not self._items:
                return None
            return self._items.popleft()

    def peek_all(self) -> List[T]:
        """Return a snapshot of every buffered unit, oldest first."""
        with self._lock:
            return list(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __repr__(self) -> str:
        return f"MessageQueue(size={len(self)})"
