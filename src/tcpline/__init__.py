"""
=============================================================================
TCPLINE - Line-Oriented TCP Transport, Server and Client
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       TCPLINE ARCHITECTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. BYTE STREAM TRANSPORT                                          │
    │      - TcpConnection: connect/disconnect, one-byte reads over a    │
    │        buffered recv(), put-back, bounded writes                   │
    │      - Tagged read outcomes: BYTE / NO_DATA / END_OF_STREAM        │
    │                                                                      │
    │   2. LINE SERVER                                                    │
    │      - Accept loop, one handler thread per connection              │
    │      - Locked registry of live connections                         │
    │      - Replies: Message received: "<line>"                         │
    │                                                                      │
    │   3. INTERACTIVE CLIENT                                             │
    │      - Operator input and remote reads on two threads              │
    │      - One blocking queue consumer                                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    tcpline/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m tcpline)
    ├── config.py            # ClientConfig / ServerConfig dataclasses
    ├── errors.py            # Error taxonomy
    ├── log.py               # Logging setup (console + log file)
    ├── transport.py         # Transport selection by name
    ├── utils.py             # Formatter, Console, host helpers
    └── core/
        ├── stream.py        # ByteStream, ReadResult, LineReader
        ├── connection.py    # TcpConnection
        ├── registry.py      # ConnectionRegistry
        ├── handler.py       # ConnectionHandler
        ├── server.py        # LineServer
        └── driver.py        # ClientDriver

=============================================================================
QUICK START
=============================================================================

    # Terminal 1
    python -m tcpline server --host 127.0.0.1 --port 5555

    # Terminal 2
    python -m tcpline client --host 127.0.0.1 --port 5555
    hello
    Rx << Message received: "hello"

    # From code
    from tcpline import TcpConnection, LineReader

    with TcpConnection("127.0.0.1", 5555) as conn:
        reader = LineReader(conn)
        reader.write_line(b"hello")
        print(reader.read_line(timeout=5.0))

=============================================================================
"""

__version__ = "0.1.0"

from .config import ClientConfig, ServerConfig
from .core import (
    ByteStream,
    ClientDriver,
    LineReader,
    LineServer,
    ReadResult,
    TcpConnection,
)
from .errors import (
    ConfigurationError,
    ConnectionClosedError,
    StreamIOError,
    TransportError,
)

__all__ = [
    "ClientConfig",
    "ServerConfig",
    "ByteStream",
    "ReadResult",
    "TcpConnection",
    "LineReader",
    "LineServer",
    "ClientDriver",
    "TransportError",
    "ConfigurationError",
    "ConnectionClosedError",
    "StreamIOError",
    "__version__",
]
