"""
Unit tests for the error taxonomy.
"""

import errno

from tcpline.errors import (
    ConnectionClosedError,
    NotConnectedError,
    StreamIOError,
    TransportError,
)


def test_from_os_error_message():
    exc = OSError(errno.ECONNRESET, "Connection reset by peer")
    error = StreamIOError.from_os_error("recv()", exc)

    assert isinstance(error, StreamIOError)
    assert error.error_code == errno.ECONNRESET
    assert str(error) == f"recv(): error code {errno.ECONNRESET} (Connection reset by peer)"


def test_from_os_error_without_errno():
    error = StreamIOError.from_os_error("select()", OSError("bad file"))
    assert error.error_code is None
    assert str(error) == "select(): bad file"


def test_hierarchy():
    assert issubclass(NotConnectedError, StreamIOError)
    assert issubclass(StreamIOError, TransportError)
    assert issubclass(ConnectionClosedError, TransportError)
    assert not issubclass(ConnectionClosedError, StreamIOError)
