"""
=============================================================================
CORE TRANSPORT COMPONENTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         BYTE STREAM                                  │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • read() → BYTE / NO_DATA / END_OF_STREAM                          │
    │  • write(), put_back(), open(), close(), flush()                    │
    │  • TcpConnection and MemoryStream both provide it                   │
    │  • LineReader builds terminator-delimited lines on top              │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
              ┌─────────────────────┴─────────────────────┐
              ▼                                           ▼
    ┌───────────────────────────┐           ┌───────────────────────────┐
    │  CLIENT                    │           │  SERVER                    │
    │  ───────────────────────  │           │  ───────────────────────  │
    │  TcpConnection             │           │  LineServer (accept loop)  │
    │  ClientDriver (two tasks,  │           │  ConnectionHandler (one    │
    │  one queue consumer)       │           │  thread per connection)    │
    │                            │           │  ConnectionRegistry        │
    └───────────────────────────┘           └───────────────────────────┘

=============================================================================
"""

from .stream import (
    END_OF_STREAM,
    NO_DATA,
    ByteStream,
    LineReader,
    MemoryStream,
    ReadResult,
    ReadStatus,
)
from .connection import ConnectionState, TcpConnection
from .registry import ConnectionRegistry
from .handler import ConnectionHandler, HandlerState, acknowledge
from .server import LineServer
from .driver import ClientDriver

__all__ = [
    "ByteStream",         # Transport capability (Protocol)
    "ReadResult",         # Tagged outcome of read()
    "ReadStatus",
    "NO_DATA",
    "END_OF_STREAM",
    "MemoryStream",       # In-memory ByteStream
    "LineReader",         # Line framing over any ByteStream
    "TcpConnection",      # Client TCP ByteStream
    "ConnectionState",
    "ConnectionRegistry", # Live server connections
    "ConnectionHandler",  # One thread per accepted connection
    "HandlerState",
    "acknowledge",        # Default reply builder
    "LineServer",         # Accept loop
    "ClientDriver",       # Interactive client loop
]
