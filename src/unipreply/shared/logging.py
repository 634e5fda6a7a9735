"""
Logging Module - Rich console logging for the server and CLI.
=============================================================

All modules log through ``get_logger(__name__)``. The first call installs
default handlers; the CLI reinstalls them from settings with
``setup_logging_from_settings``.

The chat endpoint logs through a ``RequestLogger`` so the lines of one
request share a short request id.
"""

import logging
import sys
import uuid
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Loggers that are chatty at INFO (HTTP clients, the Gemini SDK, access logs)
QUIET_LOGGERS = (
    "httpx",
    "httpcore",
    "urllib3",
    "google",
    "grpc",
    "uvicorn.access",
)

_logging_configured = False
_console = Console(stderr=True)


def _build_handlers(
    level: int,
    use_rich: bool,
    log_file: Optional[str],
    log_format: str,
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []

    if use_rich:
        console_handler: logging.Handler = RichHandler(
            console=_console,
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(log_format))
    handlers.append(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(log_format))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)
    return handlers


def setup_logging(
    level: str = "INFO",
    use_rich: bool = True,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    force: bool = False,
) -> None:
    """
    Install root handlers.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        use_rich: Rich console handler instead of a plain stream handler
        log_file: Also append plain-format records to this file
        log_format: Format for plain and file handlers
        force: Replace handlers installed by an earlier call
    """
    global _logging_configured

    if _logging_configured and not force:
        return

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()
    for handler in _build_handlers(numeric_level, use_rich, log_file, log_format or DEFAULT_FORMAT):
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _logging_configured = True
    logging.getLogger(__name__).debug(
        f"Logging configured: level={level}, rich={use_rich}, file={log_file or '-'}"
    )


def setup_logging_from_settings() -> None:
    """Reinstall handlers from the ``logging`` config section."""
    from unipreply.shared.config import get_settings

    settings = get_settings()
    setup_logging(
        level=settings.get_effective_log_level(),
        use_rich=settings.logging.rich_console,
        log_file=settings.logging.file or None,
        log_format=settings.logging.format,
        force=True,
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a named logger, installing default handlers on first use.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Resolving candidates")
    """
    if not _logging_configured:
        setup_logging()
    return logging.getLogger(name)


class RequestLogger(logging.LoggerAdapter):
    """
    Prefixes messages with a per-request id.

    Example:
        >>> log = RequestLogger(get_logger(__name__))
        >>> log.info("Stream opened")   # "[a1b2c3d4] Stream opened"
    """

    def __init__(self, logger: logging.Logger, request_id: Optional[str] = None):
        self.request_id = request_id or uuid.uuid4().hex[:8]
        super().__init__(logger, {"request_id": self.request_id})

    def process(self, msg, kwargs):
        return f"[{self.request_id}] {msg}", kwargs
