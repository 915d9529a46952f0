"""
Integration tests for the line server, driven through TcpConnection.
"""

import re
import threading
import time

import pytest

from tcpline import LineServer
from tcpline.core.connection import TcpConnection
from tcpline.core.handler import ConnectionHandler, HandlerState, acknowledge
from tcpline.core.stream import LineReader
from tcpline.errors import (
    BindError,
    ConnectError,
    ConnectionClosedError,
    StreamIOError,
)


REPLY = re.compile(rb'Message received: "(.*)"', re.DOTALL)


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_acknowledge():
    assert acknowledge(b"hello") == b'Message received: "hello"'
    assert acknowledge(b"") == b'Message received: ""'


class TestLineServer:
    """End-to-end tests for LineServer."""

    def test_hello(self, line_server, console_output):
        with TcpConnection("127.0.0.1", line_server.port) as conn:
            reader = LineReader(conn)
            reader.write_line(b"hello")

            assert reader.read_line(timeout=5.0) == b'Message received: "hello"'

        # Tx is printed once the reply is fully sent, which may trail the client.
        assert wait_for(lambda: "Tx >>" in console_output.getvalue())
        output = console_output.getvalue()
        assert "Incoming connection - [127.0.0.1:" in output
        assert "Rx << hello - [127.0.0.1:" in output
        assert 'Tx >> Message received: "hello" - [127.0.0.1:' in output

    def test_several_messages_on_one_connection(self, line_server):
        with TcpConnection("127.0.0.1", line_server.port) as conn:
            reader = LineReader(conn)
            for word in (b"one", b"two", b"three"):
                reader.write_line(word)
                assert reader.read_line(timeout=5.0) == acknowledge(word)

    def test_concurrent_clients(self, line_server):
        results = {}

        def client(n):
            with TcpConnection("127.0.0.1", line_server.port) as conn:
                reader = LineReader(conn)
                reader.write_line(f"client-{n}".encode())
                results[n] = reader.read_line(timeout=5.0)

        threads = [threading.Thread(target=client, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10.0)

        assert results == {n: acknowledge(f"client-{n}".encode()) for n in range(4)}

    def test_large_payload_is_fully_received(self, line_server):
        """Every byte of a long line reaches the server, whatever the chunking."""
        payload = b"x" * 20000

        with TcpConnection("127.0.0.1", line_server.port) as conn:
            reader = LineReader(conn)
            assert reader.write_line(payload) == len(payload) + 1

            registry = line_server.server.registry
            assert wait_for(
                lambda: sum(h.bytes_received for h in registry.handlers()) == len(payload) + 1
            )

            # One reply per chunk the server received; their bodies add up
            # to the payload.
            echoed = b""
            while len(echoed) < len(payload):
                line = reader.read_line(timeout=5.0)
                assert line is not None
                match = REPLY.fullmatch(line)
                assert match is not None
                echoed += match.group(1)
            assert echoed == payload

    def test_many_small_writes_without_terminator(self, line_server):
        """20000 bytes in 100 writes of 200, no terminator, all received in order."""
        payload = bytes(ord("a") + i % 26 for i in range(20000))

        with TcpConnection("127.0.0.1", line_server.port) as conn:
            for offset in range(0, len(payload), 200):
                assert conn.write(payload[offset:offset + 200]) == 200

            registry = line_server.server.registry
            assert wait_for(lambda: len(registry) == 1)
            handler = registry.handlers()[0]
            assert wait_for(lambda: handler.bytes_received == len(payload))

            reader = LineReader(conn)
            echoed = b""
            while len(echoed) < len(payload):
                line = reader.read_line(timeout=5.0)
                assert line is not None
                match = REPLY.fullmatch(line)
                assert match is not None
                echoed += match.group(1)
            assert echoed == payload

    def test_registry_tracks_connections(self, line_server, console_output):
        registry = line_server.server.registry

        conn = TcpConnection("127.0.0.1", line_server.port)
        conn.connect()
        assert wait_for(lambda: len(registry) == 1)

        handler = registry.handlers()[0]
        assert isinstance(handler, ConnectionHandler)
        assert wait_for(lambda: handler.state is HandlerState.RUNNING)

        conn.disconnect()
        assert wait_for(lambda: len(registry) == 0)
        assert wait_for(lambda: "Connection closed - [127.0.0.1:" in console_output.getvalue())
        handler.join(timeout=5.0)
        assert handler.state is HandlerState.STOPPED
        assert handler.error is None

    def test_server_side_close_reaches_client(self, line_server):
        """Closing a connection on the server is seen by the client's next reads."""
        registry = line_server.server.registry

        with TcpConnection("127.0.0.1", line_server.port, read_timeout=200) as conn:
            assert wait_for(lambda: len(registry) == 1)
            descriptor = registry.descriptors()[0]

            assert line_server.server.close_connection(descriptor) is True
            assert descriptor not in registry

            with pytest.raises(ConnectionClosedError):
                LineReader(conn).read_line(timeout=5.0)
            assert not conn.is_connected

    def test_close_unknown_connection(self, line_server):
        assert line_server.server.close_connection(123456) is False

    def test_custom_responder(self, server_factory):
        test_srv = server_factory(responder=lambda payload: payload.upper())

        with TcpConnection("127.0.0.1", test_srv.port) as conn:
            reader = LineReader(conn)
            reader.write_line(b"shout")
            assert reader.read_line(timeout=5.0) == b"SHOUT"

    def test_handler_error_goes_to_callback(self, server_factory):
        failures = []
        reported = threading.Event()

        def broken(payload: bytes) -> bytes:
            raise StreamIOError("send(): simulated failure")

        def on_error(handler, error):
            failures.append((handler, error))
            reported.set()

        test_srv = server_factory(responder=broken, on_handler_error=on_error)

        with TcpConnection("127.0.0.1", test_srv.port) as conn:
            LineReader(conn).write_line(b"hello")
            assert reported.wait(timeout=5.0)

        handler, error = failures[0]
        assert isinstance(error, StreamIOError)
        assert handler.error is error
        assert wait_for(lambda: len(test_srv.server.registry) == 0)
        # The server itself keeps running.
        assert test_srv.server.is_running

    def test_shutdown_stops_accepting(self, line_server):
        server = line_server.server
        server.shutdown()

        assert server.wait_for_shutdown(timeout=5.0)
        assert not server.is_running
        with pytest.raises(ConnectError):
            TcpConnection("127.0.0.1", line_server.port).connect()

    def test_port_in_use(self, line_server, server_config):
        with pytest.raises(BindError):
            LineServer(server_config).start()
