"""
Registry of live server connections.

Maps each accepted socket's descriptor to the handler thread serving it.
The accept loop inserts, handlers remove themselves when they finish, and
anyone may ask for a connection to be closed. All of that happens from
different threads, so every access goes through one lock.

    accept loop ──add(fd, handler)──►  ┌──────────────────┐
                                       │ {fd: handler}    │ ◄── lock
    handler exit ──remove(fd)───────►  │                  │
    close(fd) ──pop + handler.stop()─► └──────────────────┘

An entry is removed exactly once: remove() and close() both report
whether they were the one that removed it.
"""

import threading
from typing import TYPE_CHECKING, Dict, List, Optional

if TYPE_CHECKING:
    from .handler import ConnectionHandler


class ConnectionRegistry:
    """Thread-safe mapping of descriptor → ConnectionHandler."""

    def __init__(self):
        self._handlers: Dict[int, "ConnectionHandler"] = {}
        self._lock = threading.Lock()

    def add(self, descriptor: int, handler: "ConnectionHandler") -> None:
        with self._lock:
            if descriptor in self._handlers:
                raise ValueError(f"Descriptor {descriptor} is already registered")
            self._handlers[descriptor] = handler

    def remove(
        self, descriptor: int, handler: Optional["ConnectionHandler"] = None
    ) -> bool:
        """
        Remove an entry.

        Args:
            descriptor: The connection's descriptor.
            handler: If given, only remove the entry if it belongs to this
                     handler.

        Returns:
            True if this call removed the entry.
        """
        with self._lock:
            current = self._handlers.get(descriptor)
            if current is None or (handler is not None and current is not handler):
                return False
            del self._handlers[descriptor]
            return True

    def close(self, descriptor: int) -> bool:
        """
        Remove an entry and tell its handler to stop.

        Returns:
            True if the connection was registered.
        """
        with self._lock:
            handler = self._handlers.pop(descriptor, None)
        if handler is None:
            return False
        # Outside the lock: stop() touches the socket.
        handler.stop()
        return True

    def close_all(self) -> int:
        """Close every registered connection; returns how many were closed."""
        return sum(1 for descriptor in self.descriptors() if self.close(descriptor))

    def get(self, descriptor: int) -> Optional["ConnectionHandler"]:
        with self._lock:
            return self._handlers.get(descriptor)

    def descriptors(self) -> List[int]:
        with self._lock:
            return list(self._handlers)

    def handlers(self) -> List["ConnectionHandler"]:
        with self._lock:
            return list(self._handlers.values())

    def __contains__(self, descriptor: int) -> bool:
        with self._lock:
            return descriptor in self._handlers

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)
