"""
=============================================================================
CONNECTION HANDLER
=============================================================================

One ConnectionHandler thread serves one accepted connection for its whole
life. There is no pool: every accepted connection gets its own thread.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Handler Loop                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   settimeout(receive_timeout)                                        │
    │          │                                                           │
    │          ▼                                                           │
    │   recv(buffer_size) ◄──────────────────────────────┐                │
    │          │                                          │                │
    │          ├── timeout      → "not yet", loop ───────┤                │
    │          │                                          │                │
    │          ├── data         → strip terminator,       │                │
    │          │                  reply = responder(data) │                │
    │          │                          + terminator,   │                │
    │          │                  send until all sent ────┘                │
    │          │                                                           │
    │          ├── b""          → peer closed, exit                        │
    │          │                                                           │
    │          └── other error  → StreamIOError, report, exit              │
    │                                                                      │
    │   finally: remove from registry, close socket                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A failing handler never takes the process down. It stores the error and
hands it to the server's on_error callback; what happens next is the
caller's policy.

=============================================================================
"""

import logging
import socket
import threading
from enum import Enum
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from ..errors import StreamIOError, TransportError
from ..utils import Console, strip_line_ending
from .registry import ConnectionRegistry


ACK_PREFIX = b'Message received: "'
ACK_SUFFIX = b'"'


def acknowledge(payload: bytes) -> bytes:
    """Default responder: Message received: "<payload>"."""
    return ACK_PREFIX + payload + ACK_SUFFIX


Responder = Callable[[bytes], bytes]


class HandlerState(Enum):
    NEW = "new"
    RUNNING = "running"
    STOPPED = "stopped"


class ConnectionHandler(threading.Thread):
    """
    Serves one accepted connection.

    Attributes:
        descriptor: The socket's descriptor at accept time (registry key).
        address: Peer address as returned by accept().
        bytes_received: Total payload bytes received so far.
        messages_handled: Number of replies sent.
        error: The error that ended the handler, if any.
    """

    def __init__(
        self,
        sock: socket.socket,
        address: Tuple,
        registry: ConnectionRegistry,
        config: ServerConfig,
        responder: Responder = acknowledge,
        console: Optional[Console] = None,
        logger: Optional[logging.Logger] = None,
        on_error: Optional[Callable[["ConnectionHandler", TransportError], None]] = None,
    ):
        self.descriptor = sock.fileno()
        # daemon=True: handlers never keep the process alive on their own
        super().__init__(name=f"Handler-{self.descriptor}", daemon=True)

        self.address = address
        self._socket = sock
        self._registry = registry
        self._config = config
        self._responder = responder
        self._console = console or Console()
        self._log = logger or logging.getLogger(__name__)
        self._on_error = on_error

        self.state = HandlerState.NEW
        self._stopping = threading.Event()

        self.bytes_received = 0
        self.messages_handled = 0
        self.error: Optional[TransportError] = None

    def run(self):
        self.state = HandlerState.RUNNING
        self._console.print_address("Incoming connection", self.address)
        try:
            self._serve()
        except TransportError as e:
            self.error = e
            self._log.error(f"Handler {self.descriptor} failed: {e}")
            if self._on_error is not None:
                self._on_error(self, e)
        finally:
            self._registry.remove(self.descriptor, self)
            try:
                self._socket.close()
            except OSError:
                pass  # Already gone
            self.state = HandlerState.STOPPED
            self._log.debug(
                f"Handler {self.descriptor} stopped after {self.messages_handled} messages"
            )

    def _serve(self):
        try:
            self._socket.settimeout(self._config.receive_timeout / 1000.0)
        except OSError as e:
            raise StreamIOError.from_os_error("settimeout()", e) from e

        while True:
            try:
                chunk = self._socket.recv(self._config.buffer_size)
            except (socket.timeout, BlockingIOError, InterruptedError):
                # Nothing yet; keep waiting.
                continue
            except OSError as e:
                if self._stopping.is_set():
                    return
                raise StreamIOError.from_os_error("recv()", e) from e

            if not chunk:
                self._console.print_address("Connection closed", self.address)
                return

            self.bytes_received += len(chunk)
            self._reply(chunk)

    def _reply(self, chunk: bytes):
        terminator = self._config.terminator
        payload = strip_line_ending(chunk, terminator)
        self._console.print_address(f"Rx << {payload.decode('utf-8', 'replace')}", self.address)

        reply = self._responder(payload) + terminator
        view = memoryview(reply)
        sent = 0
        # Make sure all bytes are sent
        while sent < len(reply):
            try:
                sent += self._socket.send(view[sent:])
            except (socket.timeout, BlockingIOError, InterruptedError):
                if self._stopping.is_set():
                    return
                continue
            except OSError as e:
                if self._stopping.is_set():
                    return
                raise StreamIOError.from_os_error("send()", e) from e

        self.messages_handled += 1
        self._console.print_address(
            f"Tx >> {strip_line_ending(reply, terminator).decode('utf-8', 'replace')}",
            self.address,
        )

    def stop(self):
        """
        Ask the handler to finish.

        Shuts the socket down, which wakes a blocked recv() with b"" and
        lets the handler leave through its normal exit path.
        """
        self._stopping.set()
        try:
            self._socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Peer already gone or socket already closed
