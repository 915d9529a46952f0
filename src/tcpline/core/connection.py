"""
=============================================================================
TCP CONNECTION
=============================================================================

This module implements the client side of the transport: a TcpConnection
owns one socket, a pending-byte buffer and a pair of timeouts, and exposes
the ByteStream capability on top of them.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

    Peer sends:
        send("hello\\n")
        send("world\\n")

    We might receive ANY of these:
        recv() → "hello\\nworld\\n"    (both combined)
        recv() → "hel"               (partial)
        recv() → "lo\\nworld\\n"       (rest of first + second)

TCP only guarantees that bytes arrive IN ORDER and INTACT. So read() hands
out ONE byte at a time from a local buffer, and only goes to the kernel
when that buffer is empty:

    ┌─────────────────────────────────────────────────────────────────┐
    │                         read() Flow                             │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   pending buffer non-empty? ──yes──► pop front, return BYTE      │
    │          │ no                                                    │
    │          ▼                                                       │
    │   select() up to read_timeout ──timeout──► return NO_DATA        │
    │          │ readable                                              │
    │          ▼                                                       │
    │   recv(8192)                                                     │
    │     ├── b""            → peer closed → CLOSED,                   │
    │     │                    raise ConnectionClosedError             │
    │     ├── would block    → return NO_DATA                          │
    │     ├── other error    → raise StreamIOError                     │
    │     └── data           → append to buffer, pop front, BYTE       │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

One recv() of up to 8 KB amortizes the system call over many single-byte
reads, while line parsers built on top get a simple pull interface.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    DISCONNECTED ──connect()──► CONNECTED ──peer closes──────► CLOSED
                                  │   ▲                          ▲
                                  │   │ read() → NO_DATA         │
                                  └───┘                          │
                                  │                              │
                                  └────────disconnect()──────────┘

CLOSED is terminal. To talk to the peer again, build a new TcpConnection.

=============================================================================
"""

import errno
import logging
import select
import socket
import struct
import sys
import time
from collections import deque
from enum import Enum
from typing import Deque, Optional

from ..config import (
    DEFAULT_READ_TIMEOUT,
    DEFAULT_WRITE_TIMEOUT,
    ClientConfig,
    validate_port,
    validate_timeout,
)
from ..errors import (
    AddressResolutionError,
    ConfigurationError,
    ConnectError,
    ConnectionClosedError,
    NotConnectedError,
    OptionError,
    SocketCreationError,
    StreamIOError,
)
from .stream import END_OF_STREAM, NO_DATA, ReadResult


RECEIVE_BUFFER_SIZE = 8192

_WOULD_BLOCK = {errno.EAGAIN, errno.EWOULDBLOCK, errno.EINTR}


class ConnectionState(Enum):
    """Connection lifecycle states."""
    DISCONNECTED = "disconnected"  # Never connected
    CONNECTED = "connected"        # Socket open, I/O allowed
    CLOSED = "closed"              # Peer hung up or disconnect() called


def to_timeval(milliseconds: int) -> bytes:
    """
    Pack a millisecond timeout for SO_RCVTIMEO / SO_SNDTIMEO.

    POSIX expects a struct timeval {seconds, microseconds};
    Windows expects a DWORD of milliseconds.
    """
    if sys.platform == "win32":
        return struct.pack("I", milliseconds)
    seconds, remainder = divmod(milliseconds, 1000)
    return struct.pack("ll", seconds, remainder * 1000)


class TcpConnection:
    """
    A client TCP connection implementing the ByteStream capability.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                  TcpConnection Responsibilities                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. LIFECYCLE                                                        │
    │     └── connect(): resolve, socket(), SO_REUSEADDR, connect(),      │
    │         apply timeouts                                               │
    │     └── disconnect(): close and forget the socket (idempotent)      │
    │     └── with-statement: disconnect on every exit path               │
    │                                                                      │
    │  2. BUFFERED READING                                                 │
    │     └── one byte per read(), one recv() per refill                  │
    │     └── put_back() pushes a byte to the front of the buffer         │
    │                                                                      │
    │  3. BOUNDED WRITING                                                  │
    │     └── non-blocking send(), select() for room, until done or       │
    │         write_timeout elapses                                       │
    │     └── returns bytes actually sent: callers must check it          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        with TcpConnection("127.0.0.1", 5555) as conn:
            conn.write(b"hello\\n")
            result = conn.read()
            if result.is_byte:
                ...
        # Socket closed here, even if the block raised.
    """

    def __init__(
        self,
        host: str,
        port: int,
        read_timeout: int = DEFAULT_READ_TIMEOUT,
        write_timeout: int = DEFAULT_WRITE_TIMEOUT,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            host: Remote host name or IP address (IPv4 or IPv6).
            port: Remote port, 1024..65535.
            read_timeout: Milliseconds read() waits before NO_DATA.
            write_timeout: Milliseconds write() keeps retrying partial sends.
            logger: Where lifecycle events go; defaults to this module's logger.

        Raises:
            ConfigurationError: port is out of range, or a timeout is negative.
        """
        validate_port(port)
        validate_timeout("read_timeout", read_timeout)
        validate_timeout("write_timeout", write_timeout)
        self._host = host
        self._port = port
        self._read_timeout = read_timeout
        self._write_timeout = write_timeout
        self._log = logger or logging.getLogger(__name__)

        self._socket: Optional[socket.socket] = None
        self._pending: Deque[int] = deque()
        self._state = ConnectionState.DISCONNECTED

    @classmethod
    def from_config(
        cls, config: ClientConfig, logger: Optional[logging.Logger] = None
    ) -> "TcpConnection":
        return cls(
            config.host,
            config.port,
            read_timeout=config.read_timeout,
            write_timeout=config.write_timeout,
            logger=logger,
        )

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def host(self) -> str:
        return self._host

    @host.setter
    def host(self, value: str) -> None:
        if self.is_connected:
            raise ConfigurationError(
                "Cannot set host name when already connected (call disconnect() first)"
            )
        self._host = value

    @property
    def port(self) -> int:
        return self._port

    @port.setter
    def port(self, value: int) -> None:
        if self.is_connected:
            raise ConfigurationError(
                "Cannot set port number when already connected (call disconnect() first)"
            )
        validate_port(value)
        self._port = value

    @property
    def read_timeout(self) -> int:
        return self._read_timeout

    @property
    def write_timeout(self) -> int:
        return self._write_timeout

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """True iff a socket is currently held."""
        return self._socket is not None

    @property
    def is_open(self) -> bool:
        return self.is_connected

    @property
    def name(self) -> str:
        return f"[{self._host}:{self._port}]"

    @property
    def pending(self) -> int:
        """Number of bytes buffered locally and not yet read."""
        return len(self._pending)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def connect(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """
        Connect to the remote host.

        Args:
            host: Optionally replace the configured host first.
            port: Optionally replace the configured port first.

        Raises:
            ConfigurationError: Already connected, already closed, or bad port.
                                An existing connection is left untouched.
            AddressResolutionError, SocketCreationError, OptionError,
            ConnectError: The corresponding step failed. The socket, if any,
                          has been closed.
        """
        if self.is_connected:
            raise ConfigurationError(
                f"{self.name}: Cannot connect to new host when already connected "
                "(call disconnect() first)"
            )
        if self._state is ConnectionState.CLOSED:
            raise ConfigurationError(
                f"{self.name}: Connection is closed; create a new TcpConnection to reconnect"
            )
        if port is not None:
            validate_port(port)
            self._port = port
        if host is not None:
            self._host = host

        # ─────────────────────────────────────────────────────────────────
        # RESOLVE: IPv4 or IPv6, whichever the resolver returns first
        # ─────────────────────────────────────────────────────────────────
        try:
            infos = socket.getaddrinfo(
                self._host, self._port, socket.AF_UNSPEC, socket.SOCK_STREAM
            )
        except socket.gaierror as e:
            raise AddressResolutionError.from_os_error("getaddrinfo()", e) from e
        if not infos:
            raise AddressResolutionError(f"getaddrinfo(): no addresses for {self.name}")
        family, socktype, proto, _, sockaddr = infos[0]

        try:
            sock = socket.socket(family, socktype, proto)
        except OSError as e:
            raise SocketCreationError.from_os_error("socket()", e) from e

        try:
            self._configure(sock, sockaddr)
        except Exception:
            sock.close()
            raise

        self._socket = sock
        self._pending.clear()
        self._state = ConnectionState.CONNECTED
        self._log.info(f"Connected to {self.name}")

    def _configure(self, sock: socket.socket, sockaddr) -> None:
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        except OSError as e:
            raise OptionError.from_os_error("setsockopt(SO_REUSEADDR)", e) from e

        # Blocking connect: fail fast, no retry.
        try:
            sock.connect(sockaddr)
        except OSError as e:
            raise ConnectError.from_os_error(f"connect() to {self.name}", e) from e

        try:
            sock.setsockopt(
                socket.SOL_SOCKET, socket.SO_RCVTIMEO, to_timeval(self._read_timeout)
            )
        except OSError as e:
            raise OptionError.from_os_error("setsockopt(SO_RCVTIMEO) set read timeout", e) from e

        try:
            sock.setsockopt(
                socket.SOL_SOCKET, socket.SO_SNDTIMEO, to_timeval(self._write_timeout)
            )
        except OSError as e:
            raise OptionError.from_os_error("setsockopt(SO_SNDTIMEO) set write timeout", e) from e

        # select() paces every recv()/send() from here on. A zero SO_SNDTIMEO
        # means "block forever" to the kernel, so send() must never block.
        try:
            sock.setblocking(False)
        except OSError as e:
            raise OptionError.from_os_error("setblocking(False)", e) from e

    def disconnect(self) -> None:
        """
        Close the socket and drop any buffered bytes.

        Safe to call any number of times, and on a connection that never
        connected.
        """
        sock = self._socket
        if sock is None:
            return
        self._socket = None
        self._pending.clear()
        self._state = ConnectionState.CLOSED
        try:
            sock.close()
        except OSError as e:
            self._log.warning(f"{self.name}: close() failed: {e}")
        self._log.info(f"Disconnected from {self.name}")

    def open(self) -> None:
        if not self.is_connected:
            self.connect()

    def close(self) -> None:
        self.disconnect()

    def flush(self) -> None:
        """Does nothing: TCP sends immediately and keeps no write buffer here."""

    def flush_rx(self) -> None:
        """Does nothing for this transport."""

    def flush_tx(self) -> None:
        """Does nothing for this transport."""

    # =========================================================================
    # READING
    # =========================================================================

    def read(self) -> ReadResult:
        """
        Read one byte.

        Returns:
            ReadResult.byte(value), NO_DATA if the read timeout elapsed, or
            END_OF_STREAM if the connection is already CLOSED.

        Raises:
            ConnectionClosedError: The peer closed the connection during
                                   this call. The connection is now CLOSED.
            StreamIOError: recv() failed.
            NotConnectedError: connect() was never called.
        """
        if self._pending:
            return ReadResult.byte(self._pending.popleft())

        # One snapshot: another thread may disconnect() while we wait.
        sock = self._socket
        if sock is None:
            if self._state is ConnectionState.CLOSED:
                return END_OF_STREAM
            raise NotConnectedError(
                f"{self.name}: Cannot read on closed socket (call connect() first)"
            )

        # ─────────────────────────────────────────────────────────────────
        # READINESS WAIT
        # ─────────────────────────────────────────────────────────────────
        try:
            readable, _, _ = select.select(
                [sock], [], [], self._read_timeout / 1000.0
            )
        except InterruptedError:
            return NO_DATA
        except OSError as e:
            raise StreamIOError.from_os_error("select()", e) from e
        except ValueError as e:
            # fileno() is -1: the socket was closed underneath us.
            raise StreamIOError(f"{self.name}: select(): {e}") from e
        if not readable:
            return NO_DATA

        # ─────────────────────────────────────────────────────────────────
        # RECEIVE
        # ─────────────────────────────────────────────────────────────────
        try:
            chunk = sock.recv(RECEIVE_BUFFER_SIZE)
        except (BlockingIOError, InterruptedError, socket.timeout):
            return NO_DATA
        except OSError as e:
            if e.errno in _WOULD_BLOCK:
                return NO_DATA
            raise StreamIOError.from_os_error("recv()", e) from e

        if not chunk:
            # Orderly shutdown by the peer.
            self.disconnect()
            raise ConnectionClosedError(
                f"Server {self.name} hung up unexpectedly"
            )

        self._pending.extend(chunk)
        return ReadResult.byte(self._pending.popleft())

    def put_back(self, value: int) -> None:
        """Push a byte to the front; the next read() returns it."""
        if not 0 <= value <= 255:
            raise ValueError(f"byte value out of range: {value}")
        self._pending.appendleft(value)

    # =========================================================================
    # WRITING
    # =========================================================================

    def write(self, data: bytes) -> int:
        """
        Send bytes, retrying partial sends until done or out of time.

        The socket is non-blocking, so each send() takes only what fits in
        the kernel buffer. Between attempts select() waits for room, never
        past the write_timeout deadline. A write_timeout of 0 makes exactly
        one attempt.

        Returns:
            Number of bytes actually sent. May be less than len(data) if the
            timeout elapsed.

        Raises:
            NotConnectedError: No connection.
            StreamIOError: send() failed; nothing is retried.
        """
        sock = self._socket
        if sock is None:
            raise NotConnectedError(
                f"{self.name}: Cannot write on closed socket (call connect() first)"
            )

        view = memoryview(bytes(data))
        total = len(view)
        sent = 0
        deadline = time.monotonic() + self._write_timeout / 1000.0

        while sent < total:
            try:
                sent += sock.send(view[sent:])
            except (BlockingIOError, InterruptedError, socket.timeout):
                pass
            except OSError as e:
                if e.errno not in _WOULD_BLOCK:
                    raise StreamIOError.from_os_error("send()", e) from e
            if sent >= total:
                break

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                select.select([], [sock], [], remaining)
            except InterruptedError:
                pass
            except OSError as e:
                raise StreamIOError.from_os_error("select()", e) from e
            except ValueError as e:
                raise StreamIOError(f"{self.name}: select(): {e}") from e

        if sent < total:
            self._log.warning(
                f"{self.name}: write timed out after {sent} of {total} bytes"
            )
        return sent

    def write_byte(self, value: int) -> int:
        return self.write(bytes([value]))

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self) -> "TcpConnection":
        """Connect (if needed) on entry."""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Disconnect on every exit path."""
        self.disconnect()
        return False  # Don't suppress exceptions

    def __repr__(self) -> str:
        return f"TcpConnection({self._host!r}, {self._port}, state={self._state.value})"
