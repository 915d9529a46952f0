"""
pytest configuration and fixtures.
"""

import io
import socket
import threading
from typing import Generator, List, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tcpline import LineServer, ServerConfig
from tcpline.utils import Console


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def console_output() -> io.StringIO:
    """Buffer that captures everything printed through the console fixture."""
    return io.StringIO()


@pytest.fixture
def console(console_output: io.StringIO) -> Console:
    """Console writing into console_output instead of stdout."""
    return Console(console_output)


@pytest.fixture
def server_config(free_port: int) -> ServerConfig:
    """Server configuration with short timeouts so tests stay fast."""
    return ServerConfig(
        host="127.0.0.1",
        port=free_port,
        receive_timeout=200,
        accept_timeout=0.1,
        log_level="WARNING",
    )


class TestServer:
    """Test server helper that runs in a background thread."""

    # Not a test class, despite the name.
    __test__ = False

    def __init__(self, server: LineServer):
        self.server = server
        self.errors: List[BaseException] = []
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def _run(self):
        try:
            self.server.start()
        except BaseException as e:
            self.errors.append(e)

    def start(self):
        """Start server in background thread."""
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError(f"Server failed to start: {self.errors}")

    def stop(self):
        """Stop the server and every open connection."""
        self.server.shutdown()
        self.server.registry.close_all()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def server_factory(server_config: ServerConfig, console: Console):
    """
    Start line servers with custom responders or error callbacks.

        test_srv = server_factory(responder=lambda p: p.upper())
    """
    started: List[TestServer] = []

    def factory(**kwargs) -> TestServer:
        test_srv = TestServer(LineServer(server_config, console=console, **kwargs))
        test_srv.start()
        started.append(test_srv)
        return test_srv

    yield factory

    for test_srv in started:
        test_srv.stop()


@pytest.fixture
def line_server(server_factory) -> TestServer:
    """A running line server bound to a free local port."""
    return server_factory()


@pytest.fixture
def peer_listener() -> Generator[socket.socket, None, None]:
    """
    A bare listening socket for driving TcpConnection against.

    Tests accept() on it themselves and play the remote side by hand.
    """
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    listener.bind(('127.0.0.1', 0))
    listener.listen(1)
    listener.settimeout(5.0)

    yield listener

    listener.close()
