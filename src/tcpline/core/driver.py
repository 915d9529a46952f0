"""
=============================================================================
CLIENT DRIVER
=============================================================================

The interactive client runs two long-lived tasks side by side:

    ┌──────────────────────┐                 ┌──────────────────────┐
    │  local input thread  │                 │  remote read thread  │
    │  readline() blocks   │                 │  LineReader.read_line│
    │  until a line        │                 │  loops past NO_DATA  │
    └──────────┬───────────┘                 └───────────┬──────────┘
               │  DriverEvent(LOCAL_LINE)                │  DriverEvent(REMOTE_LINE)
               ▼                                         ▼
             ┌─────────────────────────────────────────────┐
             │                 queue.Queue                  │
             └──────────────────────┬──────────────────────┘
                                    │ get() blocks
                                    ▼
                         run(): single consumer
                           LOCAL_LINE  → write to stream
                           REMOTE_LINE → print "Rx << ..."
                           LOCAL_EOF   → return
                           REMOTE_ERROR→ raise to caller

The consumer blocks on the queue, so nothing spins while both sides are
quiet.
=============================================================================
"""

import logging
import queue
import sys
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional, TextIO

from ..config import DEFAULT_TERMINATOR
from ..errors import TransportError
from ..utils import Console
from .stream import ByteStream, LineReader


class DriverEventKind(Enum):
    LOCAL_LINE = "local_line"
    LOCAL_EOF = "local_eof"
    REMOTE_LINE = "remote_line"
    REMOTE_ERROR = "remote_error"


@dataclass
class DriverEvent:
    kind: DriverEventKind
    line: Optional[str] = None
    error: Optional[BaseException] = None


class ClientDriver:
    """
    Forwards operator input to a ByteStream and prints what comes back.

    Usage:
        with TcpConnection("127.0.0.1", 5555) as conn:
            ClientDriver(conn).run()   # until stdin hits EOF
    """

    def __init__(
        self,
        stream: ByteStream,
        input_stream: Optional[TextIO] = None,
        console: Optional[Console] = None,
        terminator: bytes = DEFAULT_TERMINATOR,
        encoding: str = "utf-8",
        poll_interval: float = 0.5,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            stream: Connected stream to talk to.
            input_stream: Where operator lines come from (default stdin).
            console: Where received lines are printed.
            terminator: Line terminator on the wire.
            encoding: Text encoding between the operator and the wire.
            poll_interval: How long one read_line() attempt waits before the
                           remote thread re-checks whether to stop.
            logger: Defaults to this module's logger.
        """
        self.stream = stream
        self._input = input_stream if input_stream is not None else sys.stdin
        self._console = console or Console()
        self._reader = LineReader(stream, terminator)
        self._encoding = encoding
        self._poll_interval = poll_interval
        self._log = logger or logging.getLogger(__name__)

        self._events: "queue.Queue[DriverEvent]" = queue.Queue()
        self._stop = threading.Event()
        self._threads = []

    # =========================================================================
    # PRODUCERS
    # =========================================================================

    def _local_task(self):
        """Post each line typed by the operator; EOF ends the session."""
        while not self._stop.is_set():
            line = self._input.readline()
            if not line:
                self._events.put(DriverEvent(DriverEventKind.LOCAL_EOF))
                return
            self._events.put(DriverEvent(DriverEventKind.LOCAL_LINE, line=line.rstrip("\r\n")))

    def _remote_task(self):
        """Post each non-empty line received from the stream."""
        while not self._stop.is_set():
            try:
                raw = self._reader.read_line(timeout=self._poll_interval)
            except TransportError as e:
                self._events.put(DriverEvent(DriverEventKind.REMOTE_ERROR, error=e))
                return
            if not raw:
                continue
            self._events.put(
                DriverEvent(
                    DriverEventKind.REMOTE_LINE,
                    line=raw.decode(self._encoding, errors="replace"),
                )
            )

    # =========================================================================
    # CONSUMER
    # =========================================================================

    def run(self):
        """
        Drive the session until local EOF or stop().

        Raises:
            TransportError: The remote side failed (peer closed, I/O error).
                            The caller decides whether that is fatal.
        """
        self._stop.clear()
        self._threads = [
            threading.Thread(target=self._local_task, name="driver-local", daemon=True),
            threading.Thread(target=self._remote_task, name="driver-remote", daemon=True),
        ]
        for thread in self._threads:
            thread.start()

        try:
            while not self._stop.is_set():
                event = self._events.get()
                if event.kind is DriverEventKind.REMOTE_LINE:
                    self._console.print(f"Rx << {event.line}")
                elif event.kind is DriverEventKind.LOCAL_LINE:
                    self._send(event.line)
                elif event.kind is DriverEventKind.REMOTE_ERROR:
                    raise event.error
                else:
                    self._log.info("End of input, closing session")
                    return
        finally:
            self._stop.set()

    def _send(self, line: str):
        data = line.encode(self._encoding)
        expected = len(data) + len(self._reader.terminator)
        sent = self._reader.write_line(data)
        if sent < expected:
            self._log.warning(f"Only sent {sent} of {expected} bytes to {self.stream.name}")

    def stop(self):
        """End run() and both producer loops."""
        self._stop.set()
        # Wake the consumer if it is waiting on the queue.
        self._events.put(DriverEvent(DriverEventKind.LOCAL_EOF))
