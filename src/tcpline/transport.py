"""
Transport selection.

The client front end picks a ByteStream implementation by name. Only TCP
is wired up today; the table is where another transport would go.
"""

import logging
from typing import Callable, Dict, Optional

from .config import ClientConfig
from .core import ByteStream, TcpConnection
from .errors import ConfigurationError


TRANSPORTS: Dict[str, Callable[[ClientConfig, Optional[logging.Logger]], ByteStream]] = {
    "tcp": TcpConnection.from_config,
}


def create_stream(config: ClientConfig, logger: Optional[logging.Logger] = None) -> ByteStream:
    """
    Build (but do not open) the stream named by config.transport.

    Raises:
        ConfigurationError: Unknown transport or invalid config.
    """
    config.validate()
    factory = TRANSPORTS.get(config.transport)
    if factory is None:
        raise ConfigurationError(
            f"Unknown transport {config.transport!r} "
            f"(available: {', '.join(sorted(TRANSPORTS))})"
        )
    return factory(config, logger)
