"""
Unit tests for byte streams and line framing.
"""

import pytest

from tcpline.core.stream import (
    END_OF_STREAM,
    NO_DATA,
    ByteStream,
    LineReader,
    MemoryStream,
    ReadResult,
    ReadStatus,
    put_back_all,
)
from tcpline.errors import ConfigurationError, ConnectionClosedError, NotConnectedError


class TestReadResult:
    """Tests for ReadResult."""

    def test_byte(self):
        result = ReadResult.byte(65)
        assert result.status is ReadStatus.BYTE
        assert result.value == 65
        assert result.is_byte
        assert not result.is_no_data
        assert not result.is_end_of_stream

    def test_zero_is_an_ordinary_byte(self):
        """Byte 0 must never be confused with 'nothing arrived'."""
        result = ReadResult.byte(0)
        assert result.is_byte
        assert result.value == 0
        assert result != NO_DATA

    def test_no_data_and_end_of_stream(self):
        assert NO_DATA.is_no_data
        assert NO_DATA.value is None
        assert END_OF_STREAM.is_end_of_stream
        assert NO_DATA != END_OF_STREAM

    @pytest.mark.parametrize("value", [-1, 256, 1000])
    def test_out_of_range(self, value):
        with pytest.raises(ValueError):
            ReadResult.byte(value)


class TestMemoryStream:
    """Tests for MemoryStream."""

    def test_satisfies_byte_stream(self):
        assert isinstance(MemoryStream(), ByteStream)

    def test_reads_in_order(self):
        stream = MemoryStream(b"abc")
        assert [stream.read().value for _ in range(3)] == [ord("a"), ord("b"), ord("c")]

    def test_no_data_while_open(self):
        stream = MemoryStream()
        assert stream.read() == NO_DATA

    def test_end_of_stream_after_finish(self):
        stream = MemoryStream(b"x")
        stream.finish()
        assert stream.read().value == ord("x")
        assert stream.read() == END_OF_STREAM
        assert stream.read() == END_OF_STREAM

    def test_put_back_reverse_order(self):
        """put_back(b) then put_back(a) reads a, b, then the stream."""
        stream = MemoryStream(b"c")
        stream.put_back(ord("b"))
        stream.put_back(ord("a"))
        assert bytes(stream.read().value for _ in range(3)) == b"abc"

    def test_put_back_all_keeps_order(self):
        stream = MemoryStream(b"def")
        put_back_all(stream, b"abc")
        assert bytes(stream.read().value for _ in range(6)) == b"abcdef"

    def test_write_collects(self):
        stream = MemoryStream()
        assert stream.write(b"hello") == 5
        assert bytes(stream.written) == b"hello"

    def test_flush_is_a_no_op(self):
        stream = MemoryStream()
        stream.write(b"hi")
        assert stream.flush() is None
        assert bytes(stream.written) == b"hi"
        assert ByteStream.flush.__doc__

    def test_write_after_close(self):
        stream = MemoryStream()
        stream.close()
        assert not stream.is_open
        with pytest.raises(NotConnectedError):
            stream.write(b"x")

    def test_close_ends_stream(self):
        stream = MemoryStream()
        stream.close()
        assert stream.read() == END_OF_STREAM


class TestLineReader:
    """Tests for LineReader."""

    def test_read_lines(self):
        stream = MemoryStream(b"hello\nworld\n")
        reader = LineReader(stream)
        assert reader.read_line() == b"hello"
        assert reader.read_line() == b"world"

    def test_empty_line(self):
        reader = LineReader(MemoryStream(b"\n"))
        assert reader.read_line() == b""

    def test_binary_payload_with_zero_bytes(self):
        reader = LineReader(MemoryStream(b"\x00a\x00\n"))
        assert reader.read_line() == b"\x00a\x00"

    def test_custom_terminator(self):
        reader = LineReader(MemoryStream(b"one;two;"), terminator=b";")
        assert reader.read_line() == b"one"
        assert reader.read_line() == b"two"

    def test_invalid_terminator(self):
        with pytest.raises(ConfigurationError):
            LineReader(MemoryStream(), terminator=b"\r\n")

    def test_timeout_puts_partial_line_back(self):
        """A timed-out read loses nothing: the partial line is re-read later."""
        stream = MemoryStream(b"hel")
        reader = LineReader(stream)

        assert reader.read_line(timeout=0) is None

        stream.feed(b"lo\n")
        assert reader.read_line(timeout=0) == b"hello"

    def test_end_of_stream_raises(self):
        stream = MemoryStream(b"")
        stream.finish()
        with pytest.raises(ConnectionClosedError):
            LineReader(stream).read_line()

    def test_end_of_stream_mid_line_raises(self):
        stream = MemoryStream(b"partial")
        stream.finish()
        with pytest.raises(ConnectionClosedError):
            LineReader(stream).read_line()

    def test_write_line_appends_terminator(self):
        stream = MemoryStream()
        sent = LineReader(stream).write_line(b"hello")
        assert sent == 6
        assert bytes(stream.written) == b"hello\n"
