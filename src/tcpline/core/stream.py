"""
=============================================================================
BYTE STREAMS
=============================================================================

A ByteStream is anything that can hand out bytes one at a time, accept
bytes to send, and take a byte back. The line parser (LineReader) and the
client driver only ever talk to this capability, so they work the same over
TCP or over an in-memory stream.

=============================================================================
THREE WAYS A READ CAN END
=============================================================================

    ┌──────────────────┬──────────────────────────────────────────────────┐
    │ ReadStatus       │ Meaning                                          │
    ├──────────────────┼──────────────────────────────────────────────────┤
    │ BYTE             │ A byte arrived. value is 0..255, and 0 is a      │
    │                  │ perfectly ordinary byte.                         │
    │ NO_DATA          │ Nothing arrived within the read timeout. Try     │
    │                  │ again later; the stream is still usable.         │
    │ END_OF_STREAM    │ The stream is finished and will never produce    │
    │                  │ another byte.                                    │
    └──────────────────┴──────────────────────────────────────────────────┘

A read never returns a bare integer that could mean either "byte 0" or
"nothing yet".

=============================================================================
PUT-BACK
=============================================================================

put_back(b) pushes b to the FRONT of the stream:

    stream:  [c d e]
    put_back(b)  →  [b c d e]
    put_back(a)  →  [a b c d e]
    read() → a, read() → b, read() → c ...

Multiple put-backs come back in reverse push order, then the original
stream resumes. LineReader uses this to hand a partial line back when a
timeout interrupts it, so no byte is ever lost.
=============================================================================
"""

import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from typing_extensions import Protocol, runtime_checkable

from ..config import DEFAULT_TERMINATOR, validate_terminator
from ..errors import ConnectionClosedError, NotConnectedError


class ReadStatus(Enum):
    BYTE = "byte"
    NO_DATA = "no_data"
    END_OF_STREAM = "end_of_stream"


@dataclass(frozen=True)
class ReadResult:
    """Outcome of a single ByteStream.read() call."""

    status: ReadStatus
    value: Optional[int] = None

    @classmethod
    def byte(cls, value: int) -> "ReadResult":
        if not 0 <= value <= 255:
            raise ValueError(f"byte value out of range: {value}")
        return cls(ReadStatus.BYTE, value)

    @property
    def is_byte(self) -> bool:
        return self.status is ReadStatus.BYTE

    @property
    def is_no_data(self) -> bool:
        return self.status is ReadStatus.NO_DATA

    @property
    def is_end_of_stream(self) -> bool:
        return self.status is ReadStatus.END_OF_STREAM


NO_DATA = ReadResult(ReadStatus.NO_DATA)
END_OF_STREAM = ReadResult(ReadStatus.END_OF_STREAM)


@runtime_checkable
class ByteStream(Protocol):
    """
    Byte-level transport capability.

    Implementations: TcpConnection, MemoryStream.
    """

    @property
    def name(self) -> str:
        """Human-readable identity, e.g. "[127.0.0.1:5555]"."""
        ...

    @property
    def is_open(self) -> bool:
        ...

    def read(self) -> ReadResult:
        """Return the next byte, NO_DATA, or END_OF_STREAM."""
        ...

    def write(self, data: bytes) -> int:
        """Send data, returning how many bytes actually went out."""
        ...

    def put_back(self, value: int) -> None:
        """Make value the next byte read() returns."""
        ...

    def open(self) -> None:
        """Open the stream; does nothing if already open."""
        ...

    def close(self) -> None:
        """Close the stream; does nothing if already closed."""
        ...

    def flush(self) -> None:
        """
        Push out anything the stream buffers.

        TcpConnection and MemoryStream buffer nothing on the way out, so
        for both this is a no-op.
        """
        ...


class MemoryStream:
    """
    In-memory ByteStream.

    Inbound bytes are queued with feed(); everything written is collected
    in ``written``. Once finish() is called and the queue drains, read()
    returns END_OF_STREAM. Handy for exercising code layered on ByteStream
    without a network.
    """

    def __init__(self, inbound: bytes = b"", name: str = "[memory]"):
        self._name = name
        self._inbound = deque(inbound)
        self._open = True
        self._finished = False
        self.written = bytearray()

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_open(self) -> bool:
        return self._open

    def feed(self, data: bytes) -> None:
        self._inbound.extend(data)

    def finish(self) -> None:
        """No more inbound data will arrive."""
        self._finished = True

    def read(self) -> ReadResult:
        if self._inbound:
            return ReadResult.byte(self._inbound.popleft())
        if self._finished or not self._open:
            return END_OF_STREAM
        return NO_DATA

    def write(self, data: bytes) -> int:
        if not self._open:
            raise NotConnectedError(f"{self._name}: cannot write on closed stream")
        self.written.extend(data)
        return len(data)

    def put_back(self, value: int) -> None:
        self._inbound.appendleft(value)

    def open(self) -> None:
        self._open = True

    def close(self) -> None:
        self._open = False

    def flush(self) -> None:
        """No-op: writes land in ``written`` immediately."""


# =============================================================================
# LINE FRAMING
# =============================================================================

def put_back_all(stream: ByteStream, data: Iterable[int]) -> None:
    """Put back a run of bytes so they are re-read in their original order."""
    for value in reversed(list(data)):
        stream.put_back(value)


class LineReader:
    """
    Reads terminator-delimited lines from any ByteStream.

        reader = LineReader(conn)
        line = reader.read_line(timeout=2.0)   # b"hello" or None
        reader.write_line(b"hello")            # sends b"hello\\n"
    """

    def __init__(self, stream: ByteStream, terminator: bytes = DEFAULT_TERMINATOR):
        validate_terminator(terminator)
        self.stream = stream
        self.terminator = terminator
        self._terminator_value = terminator[0]

    def read_line(self, timeout: Optional[float] = None) -> Optional[bytes]:
        """
        Read one line, without its terminator.

        Args:
            timeout: Seconds to keep waiting past NO_DATA results.
                     None waits forever, 0 gives up on the first NO_DATA.

        Returns:
            The line, or None if the timeout elapsed first. In that case
            any partial line is put back on the stream.

        Raises:
            ConnectionClosedError: The stream ended (or the peer closed).
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        line: List[int] = []

        while True:
            try:
                result = self.stream.read()
            except ConnectionClosedError:
                if line:
                    put_back_all(self.stream, line)
                raise

            if result.is_byte:
                if result.value == self._terminator_value:
                    return bytes(line)
                line.append(result.value)
                continue

            if result.is_end_of_stream:
                raise ConnectionClosedError(f"{self.stream.name}: end of stream")

            if deadline is not None and time.monotonic() >= deadline:
                put_back_all(self.stream, line)
                return None

    def write_line(self, data: bytes) -> int:
        """Write data followed by the terminator; returns bytes sent."""
        return self.stream.write(data + self.terminator)
