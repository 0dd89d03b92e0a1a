"""A socket wrapper that tracks whether the connection is still open."""

from __future__ import annotations

import socket
import threading
import uuid
from collections.abc import Callable


class TrackedConnection:
    """A connection that knows whether it is open and notifies once on close."""

    def __init__(
        self,
        conn: socket.socket | None,
        close_handler: Callable[[TrackedConnection], None] | None,
    ) -> None:
        self._conn = conn
        self._open = conn is not None
        self._close_handler = close_handler
        self._handler_lock = threading.Lock()
        self._handler_called = False
        self.id = uuid.uuid4()

    def is_open(self) -> bool:
        """Return True when the connection is known to be open."""
        return self._open

    def read(self, size: int) -> bytes:
        return self._socket().recv(size)

    def write(self, data: bytes) -> int:
        self._socket().sendall(data)
        return len(data)

    def close(self) -> None:
        """Mark as closed, run the close handler once in the background and close."""
        self._open = False
        if self._close_handler is not None:
            with self._handler_lock:
                run = not self._handler_called
                self._handler_called = True
            if run:
                threading.Thread(
                    target=self._close_handler, args=(self,), daemon=True
                ).start()
        if self._conn is not None:
            self._conn.close()

    @property
    def local_address(self):
        return self._socket().getsockname()

    @property
    def remote_address(self):
        return self._socket().getpeername()

    def set_timeout(self, seconds: float | None) -> None:
        self._socket().settimeout(seconds)

    def __enter__(self) -> TrackedConnection:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _socket(self) -> socket.socket:
        if self._conn is None:
            raise ConnectionError("Connection was never established")
        return self._conn


def new_failed_connection() -> TrackedConnection:
    """Create a connection that is known to be closed."""
    return TrackedConnection(None, None)