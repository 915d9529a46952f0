"""
Unit tests for configuration and validation.
"""

import pytest

from tcpline.config import (
    DEFAULT_BACKLOG,
    DEFAULT_RECEIVE_TIMEOUT,
    ClientConfig,
    ServerConfig,
    validate_port,
    validate_terminator,
)
from tcpline.errors import ConfigurationError, TransportError


class TestValidatePort:
    """Tests for validate_port()."""

    @pytest.mark.parametrize("port", [1024, 5555, 65535])
    def test_valid(self, port):
        validate_port(port)

    @pytest.mark.parametrize("port", [0, 80, 1023])
    def test_privileged_rejected(self, port):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_port(port)
        assert "1024" in str(exc_info.value)

    def test_too_large(self):
        with pytest.raises(ConfigurationError):
            validate_port(65536)

    @pytest.mark.parametrize("port", ["5555", 5555.0, True, None])
    def test_not_an_int(self, port):
        with pytest.raises(ConfigurationError):
            validate_port(port)

    def test_is_a_value_error(self):
        """ConfigurationError can be caught as ValueError or TransportError."""
        with pytest.raises(ValueError):
            validate_port(1)
        with pytest.raises(TransportError):
            validate_port(1)


class TestValidateTerminator:
    """Tests for validate_terminator()."""

    def test_single_byte(self):
        validate_terminator(b"\n")
        validate_terminator(b"\x00")

    @pytest.mark.parametrize("terminator", [b"", b"\r\n", "\n"])
    def test_invalid(self, terminator):
        with pytest.raises(ConfigurationError):
            validate_terminator(terminator)


class TestClientConfig:
    """Tests for ClientConfig."""

    def test_defaults(self):
        config = ClientConfig()
        assert config.port == 5555
        assert config.read_timeout == 1000
        assert config.write_timeout == 1000
        assert config.terminator == b"\n"
        assert config.transport == "tcp"
        config.validate()

    def test_empty_host(self):
        with pytest.raises(ConfigurationError):
            ClientConfig(host="").validate()

    def test_negative_timeout(self):
        with pytest.raises(ConfigurationError):
            ClientConfig(read_timeout=-1).validate()
        with pytest.raises(ConfigurationError):
            ClientConfig(write_timeout=-1).validate()

    def test_zero_timeout_allowed(self):
        ClientConfig(read_timeout=0, write_timeout=0).validate()

    def test_timeout_must_be_int(self):
        with pytest.raises(ConfigurationError):
            ClientConfig(write_timeout=0.5).validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("TCPLINE_HOST", "10.0.0.1")
        monkeypatch.setenv("TCPLINE_PORT", "6000")
        monkeypatch.setenv("TCPLINE_READ_TIMEOUT", "250")

        config = ClientConfig.from_env()
        assert config.host == "10.0.0.1"
        assert config.port == 6000
        assert config.read_timeout == 250
        assert config.write_timeout == 1000

    def test_from_env_not_a_number(self, monkeypatch):
        monkeypatch.setenv("TCPLINE_WRITE_TIMEOUT", "soon")
        with pytest.raises(ConfigurationError) as exc_info:
            ClientConfig.from_env()
        assert "TCPLINE_WRITE_TIMEOUT" in str(exc_info.value)


class TestServerConfig:
    """Tests for ServerConfig."""

    def test_defaults(self):
        config = ServerConfig()
        assert config.backlog == DEFAULT_BACKLOG == 10
        assert config.buffer_size == 1024
        assert config.receive_timeout == DEFAULT_RECEIVE_TIMEOUT == 1500
        config.validate()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"port": 80},
            {"backlog": 0},
            {"buffer_size": 1},
            {"receive_timeout": 0},
            {"accept_timeout": 0},
            {"terminator": b""},
        ],
    )
    def test_invalid(self, overrides):
        with pytest.raises(ConfigurationError):
            ServerConfig(**overrides).validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("TCPLINE_PORT", "7000")
        monkeypatch.setenv("TCPLINE_RECEIVE_TIMEOUT", "300")
        monkeypatch.delenv("TCPLINE_HOST", raising=False)

        config = ServerConfig.from_env()
        assert config.host == "127.0.0.1"
        assert config.port == 7000
        assert config.receive_timeout == 300

    def test_from_env_bad_port(self, monkeypatch):
        monkeypatch.setenv("TCPLINE_PORT", "http")
        with pytest.raises(ConfigurationError):
            ServerConfig.from_env()
