"""
=============================================================================
CONFIGURATION
=============================================================================

Centralized configuration for the client and the server.

The transport itself never parses command lines. It only consumes the
resolved values below (host, port, timeouts). Where those values come from
is decided by the front end:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m tcpline server --port 5555                       │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── TCPLINE_PORT=5555 python -m tcpline server                 │
    │                                                                      │
    │   3. Default values (in these dataclasses)                          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Ports below 1024 are privileged on most systems and are rejected up front.
Validation happens eagerly, before any socket is created.
=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigurationError


MINIMUM_PORT_NUMBER = 1024
MAXIMUM_PORT_NUMBER = 65535

DEFAULT_TERMINATOR = b"\n"
DEFAULT_READ_TIMEOUT = 1000    # ms
DEFAULT_WRITE_TIMEOUT = 1000   # ms
DEFAULT_RECEIVE_TIMEOUT = 1500  # ms, server handlers
DEFAULT_BACKLOG = 10


def validate_port(port: int) -> None:
    """Raise ConfigurationError unless port is an unprivileged TCP port."""
    if not isinstance(port, int) or isinstance(port, bool):
        raise ConfigurationError(f"Port number must be an integer, got {port!r}")
    if port < MINIMUM_PORT_NUMBER:
        raise ConfigurationError(
            f"Port number may not be less than {MINIMUM_PORT_NUMBER} "
            f"({port} < {MINIMUM_PORT_NUMBER})"
        )
    if port > MAXIMUM_PORT_NUMBER:
        raise ConfigurationError(
            f"Port number may not be greater than {MAXIMUM_PORT_NUMBER} ({port})"
        )


def validate_timeout(name: str, milliseconds: int) -> None:
    """Timeouts are whole milliseconds; 0 means a single non-waiting attempt."""
    if not isinstance(milliseconds, int) or isinstance(milliseconds, bool):
        raise ConfigurationError(f"{name} must be an integer, got {milliseconds!r}")
    if milliseconds < 0:
        raise ConfigurationError(f"{name} must be >= 0 ({milliseconds})")


def env_int(name: str, default: int) -> int:
    """Read an integer environment variable, or default when unset."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def validate_terminator(terminator: bytes) -> None:
    if not isinstance(terminator, bytes) or len(terminator) != 1:
        raise ConfigurationError(
            f"Line terminator must be exactly one byte, got {terminator!r}"
        )


@dataclass
class ClientConfig:
    """
    Configuration for a client connection.

    NETWORK SETTINGS
    - host, port

    TIMEOUTS (milliseconds)
    - read_timeout: how long one read() waits for data before NO_DATA
    - write_timeout: wall-clock budget for one write() call

    FRAMING
    - terminator: single byte that ends a line

    FRONT END
    - transport: which ByteStream implementation to use ("tcp")
    - verbose, log_level, log_file
    """

    host: str = "127.0.0.1"
    port: int = 5555
    read_timeout: int = DEFAULT_READ_TIMEOUT
    write_timeout: int = DEFAULT_WRITE_TIMEOUT
    terminator: bytes = DEFAULT_TERMINATOR
    transport: str = "tcp"
    verbose: bool = False
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """
        Create configuration from environment variables.

        TCPLINE_HOST            Remote host (default: 127.0.0.1)
        TCPLINE_PORT            Remote port (default: 5555)
        TCPLINE_READ_TIMEOUT    Read timeout in ms (default: 1000)
        TCPLINE_WRITE_TIMEOUT   Write timeout in ms (default: 1000)
        TCPLINE_LOG_LEVEL       Logging level (default: INFO)

        Raises:
            ConfigurationError: A numeric variable is not an integer.
        """
        return cls(
            host=os.getenv("TCPLINE_HOST", "127.0.0.1"),
            port=env_int("TCPLINE_PORT", 5555),
            read_timeout=env_int("TCPLINE_READ_TIMEOUT", DEFAULT_READ_TIMEOUT),
            write_timeout=env_int("TCPLINE_WRITE_TIMEOUT", DEFAULT_WRITE_TIMEOUT),
            log_level=os.getenv("TCPLINE_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        if not self.host:
            raise ConfigurationError("Please specify a host name to connect to")
        validate_port(self.port)
        validate_terminator(self.terminator)
        validate_timeout("read_timeout", self.read_timeout)
        validate_timeout("write_timeout", self.write_timeout)


@dataclass
class ServerConfig:
    """
    Configuration for the line server.

    NETWORK SETTINGS
    - host, port, backlog, buffer_size

    HANDLERS
    - receive_timeout: per-connection receive timeout in ms
    - terminator: single byte stripped from and appended to replies

    ACCEPT LOOP
    - accept_timeout: seconds accept() waits before re-checking whether
      the server was asked to stop
    """

    host: str = "127.0.0.1"
    port: int = 5555
    backlog: int = DEFAULT_BACKLOG
    buffer_size: int = 1024
    receive_timeout: int = DEFAULT_RECEIVE_TIMEOUT
    terminator: bytes = DEFAULT_TERMINATOR
    accept_timeout: float = 1.0
    verbose: bool = False
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        TCPLINE_HOST             Bind host (default: 127.0.0.1)
        TCPLINE_PORT             Bind port (default: 5555)
        TCPLINE_RECEIVE_TIMEOUT  Handler receive timeout in ms (default: 1500)
        TCPLINE_LOG_LEVEL        Logging level (default: INFO)
        """
        return cls(
            host=os.getenv("TCPLINE_HOST", "127.0.0.1"),
            port=env_int("TCPLINE_PORT", 5555),
            receive_timeout=env_int("TCPLINE_RECEIVE_TIMEOUT", DEFAULT_RECEIVE_TIMEOUT),
            log_level=os.getenv("TCPLINE_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """Fail fast on values that would only blow up after bind()."""
        validate_port(self.port)
        validate_terminator(self.terminator)

        if self.backlog < 1:
            raise ConfigurationError("backlog must be >= 1")

        if self.buffer_size < 2:
            raise ConfigurationError("buffer_size must be >= 2")

        if self.receive_timeout <= 0:
            raise ConfigurationError("receive_timeout must be > 0")

        if self.accept_timeout <= 0:
            raise ConfigurationError("accept_timeout must be > 0")
