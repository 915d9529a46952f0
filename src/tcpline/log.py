"""
Logging setup for the command-line front end.

Library code never configures logging; each module just does
``logger = logging.getLogger(__name__)`` and every component accepts an
explicit ``logger`` argument. Only the CLI calls setup_logging(), which
sends records both to the console and to an append-only log file.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

from .utils import get_log_file_path


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: str = "INFO",
    verbose: bool = False,
    log_file: Optional[Union[str, Path]] = None,
) -> Path:
    """
    Configure the root logger.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        verbose: Force DEBUG regardless of level.
        log_file: Path of the log file; defaults to get_log_file_path().

    Returns:
        The path of the log file in use.
    """
    resolved = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    path = Path(log_file) if log_file else get_log_file_path()

    file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    console_handler = logging.StreamHandler(sys.stderr)

    logging.basicConfig(
        level=resolved,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=[console_handler, file_handler],
        force=True,
    )
    logging.getLogger("tcpline").setLevel(resolved)
    return path
