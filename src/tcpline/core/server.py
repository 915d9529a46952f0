"""
=============================================================================
LINE SERVER: ACCEPT LOOP
=============================================================================

The server side of the transport. LineServer listens on one address,
accepts connections forever, and starts one ConnectionHandler thread per
accepted connection.

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. getaddrinfo()  Resolve the bind address (IPv4 or IPv6)
    2. socket()       Create the listening socket
    3. setsockopt()   SO_REUSEADDR, so a restart can rebind immediately
    4. bind()         Reserve host:port
    5. listen(10)     Queue up to 10 not-yet-accepted connections
    6. accept()       One new socket per client, forever

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── Created once in start()
                    └───────────┬───────────┘
                                │ accept()
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │ Handler   │         │ Handler   │         │ Handler   │
    │ thread 1  │         │ thread 2  │         │ thread 3  │
    └───────────┘         └───────────┘         └───────────┘
     registry[fd1]         registry[fd2]         registry[fd3]

=============================================================================
WHAT THIS SERVER DOES NOT DO
=============================================================================

- No pooling or admission control: handler count grows with the number of
  open connections.
- shutdown() stops the ACCEPT loop only. Running handlers keep serving
  their peers until the peer hangs up (or close_connection() is called).

=============================================================================
"""

import logging
import signal
import socket
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from ..errors import (
    AcceptError,
    AddressResolutionError,
    BindError,
    OptionError,
    SocketCreationError,
    TransportError,
)
from ..utils import Console
from .handler import ConnectionHandler, Responder, acknowledge
from .registry import ConnectionRegistry


HandlerErrorCallback = Callable[[ConnectionHandler, TransportError], None]


class LineServer:
    """
    Accepts connections and serves each one on its own thread.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      LineServer Internals                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    start()                                                           │
    │        ├──► _open_listener()   resolve, socket, reuse, bind, listen │
    │        ├──► _setup_signals()   (only if asked)                      │
    │        └──► _accept_loop()     BLOCKS here                          │
    │                 └──► accept() → ConnectionHandler                   │
    │                                  → registry.add(fd, handler)        │
    │                                  → handler.start()                  │
    │                                                                      │
    │    shutdown()        Stop accepting (idempotent)                     │
    │    _cleanup()        Restore signals, close listening socket         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        server = LineServer(ServerConfig(port=5555))
        server.start()   # Blocks until shutdown()
    """

    def __init__(
        self,
        config: ServerConfig,
        responder: Responder = acknowledge,
        console: Optional[Console] = None,
        logger: Optional[logging.Logger] = None,
        on_handler_error: Optional[HandlerErrorCallback] = None,
    ):
        """
        Args:
            config: Host, port, backlog, timeouts.
            responder: Builds the reply body for each received payload.
            console: Shared console for traffic lines.
            logger: Where lifecycle events go; defaults to this module's logger.
            on_handler_error: Called from the handler thread when a handler
                              dies on an I/O error. None = log and carry on.

        Raises:
            ConfigurationError: config is invalid.
        """
        config.validate()
        self.config = config
        self._responder = responder
        self._console = console or Console()
        self._log = logger or logging.getLogger(__name__)
        self._on_handler_error = on_handler_error

        self._registry = ConnectionRegistry()
        self._socket: Optional[socket.socket] = None
        self._bound_address: Optional[Tuple] = None

        self._running = False
        self._ready = threading.Event()
        self._shutdown_event = threading.Event()
        self._original_handlers: dict = {}

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port), or the configured one before start()."""
        if self._bound_address is not None:
            return (self._bound_address[0], self._bound_address[1])
        return (self.config.host, self.config.port)

    # =========================================================================
    # LISTENING SOCKET
    # =========================================================================

    def _open_listener(self) -> socket.socket:
        """
        Resolve, create, configure, bind and listen.

        Returns:
            A listening socket. On any failure the socket is closed and a
            TransportError subclass is raised.
        """
        try:
            infos = socket.getaddrinfo(
                self.config.host,
                self.config.port,
                socket.AF_UNSPEC,
                socket.SOCK_STREAM,
                0,
                socket.AI_PASSIVE,
            )
        except socket.gaierror as e:
            raise AddressResolutionError.from_os_error("getaddrinfo()", e) from e
        if not infos:
            raise AddressResolutionError(
                f"getaddrinfo(): no addresses for {self.config.host}:{self.config.port}"
            )
        family, socktype, proto, _, sockaddr = infos[0]

        try:
            sock = socket.socket(family, socktype, proto)
        except OSError as e:
            raise SocketCreationError.from_os_error("socket()", e) from e

        try:
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            except OSError as e:
                raise OptionError.from_os_error("setsockopt(SO_REUSEADDR)", e) from e

            try:
                sock.bind(sockaddr)
            except OSError as e:
                raise BindError.from_os_error(
                    f"bind() to {self.config.host}:{self.config.port}", e
                ) from e

            try:
                sock.listen(self.config.backlog)
            except OSError as e:
                raise BindError.from_os_error("listen()", e) from e

            # accept() wakes up periodically so shutdown() is noticed.
            sock.settimeout(self.config.accept_timeout)
        except Exception:
            sock.close()
            raise

        self._bound_address = sock.getsockname()
        return sock

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def _setup_signals(self):
        """SIGINT/SIGTERM stop the accept loop. Main thread only."""
        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            self._log.info(f"Signal received: {signal_name}, shutting down...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self, install_signal_handlers: bool = False):
        """
        Bind, listen and accept until shutdown().

        Args:
            install_signal_handlers: Route SIGINT/SIGTERM to shutdown().
                                     Only valid from the main thread.

        Raises:
            AddressResolutionError, SocketCreationError, OptionError,
            BindError: The listening socket could not be set up.
            AcceptError: accept() failed while running.
        """
        self._socket = self._open_listener()
        self._running = True
        self._shutdown_event.clear()

        try:
            if install_signal_handlers:
                self._setup_signals()

            host, port = self.address
            self._log.info(f"Server listening on {host}:{port}")
            self._ready.set()

            self._accept_loop()
        finally:
            self._cleanup()

    def _accept_loop(self):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                # Periodic wake-up to re-check self._running.
                continue
            except OSError as e:
                if not self._running:
                    break
                self._log.error(f"accept() failed: {e}")
                raise AcceptError.from_os_error("accept()", e) from e

            self._log.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            # Accepted sockets start out blocking; the handler sets its own timeout.
            client_socket.setblocking(True)

            handler = ConnectionHandler(
                client_socket,
                client_address,
                self._registry,
                self.config,
                responder=self._responder,
                console=self._console,
                logger=self._log,
                on_error=self._on_handler_error,
            )
            self._registry.add(handler.descriptor, handler)
            handler.start()

    def shutdown(self):
        """Stop accepting new connections. Safe to call more than once."""
        if self._running:
            self._log.info("Shutting down line server...")
        self._running = False

    def close_connection(self, descriptor: int) -> bool:
        """Explicitly close one connection; True if it was registered."""
        return self._registry.close(descriptor)

    def _cleanup(self):
        self._running = False
        self._ready.clear()
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass  # Already closed
            self._socket = None

        self._shutdown_event.set()
        self._log.info("Line server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server is listening. True if it is."""
        return self._ready.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until the accept loop has exited. True if it has."""
        return self._shutdown_event.wait(timeout)
