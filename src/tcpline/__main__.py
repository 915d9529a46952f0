"""
=============================================================================
TCPLINE CLI ENTRY POINT
=============================================================================

    # Run the server on a local 192.* address (or 127.0.0.1), port 5555
    python -m tcpline server --port 5555

    # Positional shortcuts: an IP-looking token is the host, anything else
    # is the port
    python -m tcpline server 127.0.0.1 5555
    python -m tcpline client 127.0.0.1 5555

    # Keep serving other clients when one handler fails
    python -m tcpline server -p 5555 --keep-going

This is the only layer allowed to end the process. Everything below it
raises; here we decide what is fatal:

    - Bad configuration          → CRITICAL log, exit 1
    - Server handler I/O error   → stop accepting, exit 1
                                   (or log and continue with --keep-going)
    - Client transport error     → CRITICAL log, exit 1

=============================================================================
"""

import argparse
import logging
import sys
from typing import List, Optional, Tuple

from . import __version__
from .config import (
    DEFAULT_READ_TIMEOUT,
    DEFAULT_RECEIVE_TIMEOUT,
    DEFAULT_WRITE_TIMEOUT,
    ClientConfig,
    ServerConfig,
)
from .core import ClientDriver, ConnectionHandler, LineServer
from .errors import ConfigurationError, TransportError
from .log import setup_logging
from .transport import TRANSPORTS, create_stream
from .utils import PROGRAM_NAME, format_message, get_default_host_name, looks_like_ip


logger = logging.getLogger("tcpline")


class FatalError(Exception):
    """Raised inside the CLI to end the process with exit code 1."""


def fatal(message: str) -> "FatalError":
    logger.critical(message)
    return FatalError(message)


def display_version():
    logger.info(format_message("{0}, v{1}", PROGRAM_NAME, __version__))
    logger.info(format_message("Python {0}", sys.version.split()[0]))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROGRAM_NAME,
        description="Line-oriented TCP server and interactive client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m tcpline server --port 5555              # Serve on default host
  python -m tcpline server 0.0.0.0 5555 --verbose   # Positional host/port
  python -m tcpline client --host 127.0.0.1 -p 5555 # Interactive client
        """,
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"{PROGRAM_NAME} {__version__}",
    )

    # Shared options live on a parent parser so they can follow the subcommand.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "targets",
        nargs="*",
        metavar="HOST|PORT",
        help="Positional host (IP address) and/or port",
    )
    common.add_argument("--host", "-n", default=None, help="Host name or IP address")
    common.add_argument("--port", "-p", type=int, default=None, help="Port number (>= 1024)")
    common.add_argument(
        "--verbose", "-e",
        action="store_true",
        help="Enable verbose (DEBUG) output",
    )
    common.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    common.add_argument(
        "--log-file",
        default=None,
        help="Append log records to this file (default: <tmp>/tcpline/tcpline.log)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    server = subparsers.add_parser("server", parents=[common], help="Run the line server")
    server.add_argument(
        "--receive-timeout",
        type=int,
        default=DEFAULT_RECEIVE_TIMEOUT,
        help=f"Handler receive timeout in ms (default: {DEFAULT_RECEIVE_TIMEOUT})",
    )
    server.add_argument(
        "--keep-going",
        action="store_true",
        help="Log handler errors and keep serving instead of exiting",
    )

    client = subparsers.add_parser("client", parents=[common], help="Run the interactive client")
    client.add_argument(
        "--read-timeout",
        type=int,
        default=DEFAULT_READ_TIMEOUT,
        help=f"Read timeout in ms (default: {DEFAULT_READ_TIMEOUT})",
    )
    client.add_argument(
        "--write-timeout",
        type=int,
        default=DEFAULT_WRITE_TIMEOUT,
        help=f"Write timeout in ms (default: {DEFAULT_WRITE_TIMEOUT})",
    )
    client.add_argument(
        "--transport", "-t",
        choices=sorted(TRANSPORTS),
        default="tcp",
        help="Transport to use (default: tcp)",
    )

    return parser


def resolve_targets(
    targets: List[str], host: Optional[str], port: Optional[int]
) -> Tuple[Optional[str], Optional[int]]:
    """
    Fill host/port from positional tokens where the options left them unset.

    Raises:
        ConfigurationError: A non-IP token is not a port number.
    """
    for token in targets:
        if looks_like_ip(token):
            if host is None:
                host = token
        elif port is None:
            try:
                port = int(token)
            except ValueError:
                raise ConfigurationError(f"Not a host address or port number: {token!r}") from None
    return host, port


def run_server(args: argparse.Namespace) -> int:
    host, port = resolve_targets(args.targets, args.host, args.port)
    if port is None:
        raise fatal("Please specify a port number to bind to")
    if host is None:
        host = get_default_host_name()

    logger.info(format_message("Using host name {0}", host))
    logger.info(format_message("Using port number {0}", port))

    config = ServerConfig(
        host=host,
        port=port,
        receive_timeout=args.receive_timeout,
        verbose=args.verbose,
        log_level=args.log_level,
        log_file=args.log_file,
    )

    failures: List[TransportError] = []
    server: Optional[LineServer] = None

    def escalate(handler: ConnectionHandler, error: TransportError):
        failures.append(error)
        if server is not None:
            server.shutdown()

    try:
        server = LineServer(
            config,
            on_handler_error=None if args.keep_going else escalate,
        )
        server.start(install_signal_handlers=True)
    except TransportError as e:
        raise fatal(str(e))

    if failures:
        raise fatal(format_message("Handler failed: {0}", failures[0]))
    return 0


def run_client(args: argparse.Namespace) -> int:
    host, port = resolve_targets(args.targets, args.host, args.port)
    if port is None:
        raise fatal("Please specify a port number to connect to")
    if host is None:
        raise fatal("Please specify a host name to connect to")

    logger.info(format_message("Using host name {0}", host))
    logger.info(format_message("Using port number {0}", port))

    config = ClientConfig(
        host=host,
        port=port,
        read_timeout=args.read_timeout,
        write_timeout=args.write_timeout,
        transport=args.transport,
        verbose=args.verbose,
        log_level=args.log_level,
        log_file=args.log_file,
    )

    try:
        stream = create_stream(config)
        stream.open()
    except TransportError as e:
        raise fatal(str(e))

    logger.info("Enter message to send")
    try:
        ClientDriver(stream, terminator=config.terminator).run()
    except TransportError as e:
        raise fatal(str(e))
    finally:
        stream.close()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_path = setup_logging(args.log_level, verbose=args.verbose, log_file=args.log_file)
    display_version()
    logger.info(format_message("Using log file {0}", log_path))

    try:
        if args.command == "server":
            return run_server(args)
        return run_client(args)
    except ConfigurationError as e:
        logger.critical(str(e))
        return 1
    except FatalError:
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 1


if __name__ == "__main__":
    sys.exit(main())
