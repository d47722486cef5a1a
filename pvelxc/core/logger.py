"""Logging for pvelxc: rich console output plus an optional log file.

Every module logger lives under the ``pvelxc`` logger. Console output is
attached there once, so a record is printed once however many modules
log. ``setup_file_logging`` adds a plain-text file handler for the audit
trail of gateway calls, retries and rollbacks.
"""
import logging
import os
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

console = Console()

ROOT_LOGGER = "pvelxc"
LOG_FILE = Path("/var/log/pvelxc/pvelxc.log")
FALLBACK_LOG_FILE = Path("/tmp/pvelxc.log")
FILE_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"

_file_handler: Optional[logging.FileHandler] = None


def _package_logger() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        handler = RichHandler(console=console, show_path=False, markup=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler.setLevel(logging.INFO)
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    return root


def get_logger(name: str) -> logging.Logger:
    """Return a logger in the ``pvelxc`` hierarchy.

    Names outside the package (``__main__``, test modules) are nested
    under it so their records reach the same handlers.
    """
    _package_logger()
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def _open_log_file(path: Path) -> logging.FileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path)


def setup_file_logging(log_file: Optional[str] = None, verbose: bool = False) -> Path:
    """Also write lifecycle logs to a file.

    The target is ``log_file``, else ``PVELXC_LOG_FILE``, else
    /var/log/pvelxc/pvelxc.log; an unwritable target falls back to
    /tmp/pvelxc.log. ``verbose`` records debug messages in the file
    (polls, request URLs) while the console stays at info.

    Returns:
        Path of the log file in use
    """
    global _file_handler

    if _file_handler is not None:
        return Path(_file_handler.baseFilename)

    target = Path(log_file or os.getenv("PVELXC_LOG_FILE") or LOG_FILE)
    try:
        handler = _open_log_file(target)
    except OSError:
        target = FALLBACK_LOG_FILE
        handler = _open_log_file(target)

    handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = _package_logger()
    root.addHandler(handler)
    if verbose:
        root.setLevel(logging.DEBUG)
    _file_handler = handler

    root.info(f"pvelxc logging to {target}")
    return target


def reset_file_logging() -> None:
    """Detach and close the file handler, restoring console-only logging."""
    global _file_handler

    if _file_handler is None:
        return
    root = logging.getLogger(ROOT_LOGGER)
    root.removeHandler(_file_handler)
    _file_handler.close()
    root.setLevel(logging.INFO)
    _file_handler = None
