"""
=============================================================================
TRANSPORT ERRORS
=============================================================================

Every failure the transport layer can report has its own exception type, so
callers can decide what to do about each one (reconnect, drop the
connection, or give up) instead of the transport deciding for them.

    TransportError
    ├── ConfigurationError      bad port, connect while connected, ...
    ├── AddressResolutionError  getaddrinfo() failed
    ├── SocketCreationError     socket() failed
    ├── BindError               bind()/listen() failed (server side)
    ├── ConnectError            connect() failed
    ├── OptionError             setsockopt() failed
    ├── StreamIOError           send()/recv() failed
    │   └── NotConnectedError   I/O on a stream that was never connected
    ├── ConnectionClosedError   peer closed the connection (recv() == 0)
    └── AcceptError             accept() failed (server side)

Nothing in the transport retries on these errors except the bounded
send loop inside TcpConnection.write().
=============================================================================
"""

import os
from typing import Optional


class TransportError(Exception):
    """
    Base class for all tcpline errors.

    Attributes:
        error_code: The OS error number, when the error wraps one.
    """

    def __init__(self, message: str, error_code: Optional[int] = None):
        super().__init__(message)
        self.error_code = error_code

    @classmethod
    def from_os_error(cls, operation: str, exc: OSError) -> "TransportError":
        """
        Build an error from a failed system call.

        The message mirrors what the C library would print:

            recv(): error code 104 (Connection reset by peer)
        """
        code = exc.errno
        if code is None:
            return cls(f"{operation}: {exc}")
        reason = exc.strerror or os.strerror(code)
        return cls(f"{operation}: error code {code} ({reason})", error_code=code)


class ConfigurationError(TransportError, ValueError):
    """Invalid configuration, or reconfiguration while connected."""


class AddressResolutionError(TransportError):
    """Host/port could not be resolved."""


class SocketCreationError(TransportError):
    """The OS refused to create a socket."""


class BindError(TransportError):
    """The listening socket could not be bound or put into listen mode."""


class ConnectError(TransportError):
    """Connecting to the remote host failed."""


class OptionError(TransportError):
    """A socket option (timeouts, address reuse) could not be applied."""


class StreamIOError(TransportError):
    """A send or receive failed for a reason other than a timeout."""


class NotConnectedError(StreamIOError):
    """I/O was attempted on a stream that has no connection."""


class ConnectionClosedError(TransportError):
    """The peer performed an orderly shutdown."""


class AcceptError(TransportError):
    """accept() failed on the listening socket."""
