"""
Small helpers shared by the client and the server front ends.

- format_message(): positional-token formatter ("{0} of {1}")
- Console: serialized printing from many threads
- host helpers: looks_like_ip(), get_local_addresses(), get_default_host_name()
- get_log_file_path(): where the append-only log file lives
"""

import ipaddress
import re
import socket
import sys
import tempfile
import threading
from pathlib import Path
from typing import Any, List, Optional, TextIO, Tuple


PROGRAM_NAME = "tcpline"

_TOKEN = re.compile(r"\{([0-9]+)\}")


def _to_text(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def format_message(template: str, *args: Any) -> str:
    """
    Replace positional tokens with the matching argument.

    Tokens are a brace-wrapped index and may repeat:

        format_message("{0} sent {1} bytes to {0}", "alice", 12)
        → "alice sent 12 bytes to alice"

    Raises:
        ValueError: A token has no matching argument, or an argument is
                    never referenced by the template.
    """
    used = set()

    def substitute(match: "re.Match[str]") -> str:
        index = int(match.group(1))
        if index >= len(args):
            raise ValueError(
                f"Formatted string is invalid (token {{{index}}} has no argument, "
                f"template = {template!r})"
            )
        used.add(index)
        return _to_text(args[index])

    result = _TOKEN.sub(substitute, template)

    unused = set(range(len(args))) - used
    if unused:
        raise ValueError(
            f"Formatted string is invalid (argument(s) {sorted(unused)} unused, "
            f"template = {template!r})"
        )
    return result


def strip_line_ending(data: bytes, terminator: bytes = b"\n") -> bytes:
    """Drop one trailing terminator, if present."""
    if data.endswith(terminator):
        return data[: -len(terminator)]
    return data


def address_to_string(address: Tuple) -> str:
    """("127.0.0.1", 5555) → "[127.0.0.1:5555]"."""
    return f"[{address[0]}:{address[1]}]"


# =============================================================================
# CONSOLE
# =============================================================================

class Console:
    """
    Line-oriented console output shared between threads.

    Every handler thread and both client tasks print through one Console,
    so its lock keeps lines from interleaving mid-line.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream if stream is not None else sys.stdout
        self._lock = threading.Lock()

    def print(self, message: str) -> None:
        with self._lock:
            self._stream.write(message + "\n")
            self._stream.flush()

    def print_address(self, message: str, address: Tuple) -> None:
        """Print a message tagged with the peer it concerns."""
        self.print(format_message("{0} - {1}", message, address_to_string(address)))


# =============================================================================
# HOST HELPERS
# =============================================================================

def looks_like_ip(text: str) -> bool:
    """True for a literal IPv4 or IPv6 address (scoped IPv6 included)."""
    try:
        ipaddress.ip_address(text.split("%", 1)[0])
    except ValueError:
        return False
    return True


def get_local_addresses() -> List[Tuple[str, str]]:
    """
    Return (family, address) pairs for this host's addresses.

    Resolves the host's own name, so the result depends on the resolver
    configuration; loopback is always included.
    """
    found: List[Tuple[str, str]] = []
    names = {socket.gethostname(), "localhost"}
    for name in names:
        try:
            infos = socket.getaddrinfo(name, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
        except socket.gaierror:
            continue
        for family, _, _, _, sockaddr in infos:
            family_name = "IPv6" if family == socket.AF_INET6 else "IPv4"
            entry = (family_name, sockaddr[0])
            if entry not in found:
                found.append(entry)
    return found


def get_default_host_name() -> str:
    """First local 192.* address, falling back to loopback."""
    for _, address in get_local_addresses():
        if address.startswith("192"):
            return address
    return "127.0.0.1"


def get_log_file_path() -> Path:
    """
    Location of the append-only log file.

    <tempdir>/tcpline/tcpline.log; the directory is created on demand.
    """
    log_dir = Path(tempfile.gettempdir()) / PROGRAM_NAME
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / f"{PROGRAM_NAME}.log"
