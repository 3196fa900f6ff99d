"""
Structured logging for the Book Review API using structlog.
Provides JSON or console output and an optional log file.
"""

import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

import structlog
from structlog.stdlib import LoggerFactory


def build_processors(log_format: str = "json", debug: bool = False) -> List:
    """Processor chain shared by every logger; the renderer comes last."""
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if debug:
        processors.append(structlog.processors.CallsiteParameterAdder())

    if log_format == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.append(structlog.processors.JSONRenderer())
    return processors


def attach_file_handler(log_file: str, level: int) -> logging.FileHandler:
    """
    Send root log records to ``log_file`` as well.

    Building the app more than once in a process reuses the handler already
    writing to that path.
    """
    path = Path(log_file).resolve()
    root = logging.getLogger()
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename).resolve() == path:
            handler.setLevel(level)
            return handler

    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    debug: bool = False
) -> None:
    """
    Configure stdlib logging and structlog for the API process.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_file: Optional log file path
        debug: Add call-site information to every event
    """
    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger().setLevel(level)

    structlog.configure(
        processors=build_processors(log_format, debug),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    if log_file:
        attach_file_handler(log_file, level)

    structlog.get_logger(__name__).debug(
        "Logging configured", level=log_level, format=log_format, file=log_file, debug=debug
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class RequestLogger:
    """
    Access logger for HTTP requests, one event per completed request.
    """

    def __init__(self, name: str = "bookreview_api.access"):
        self.logger = structlog.get_logger(name)

    def start(self) -> float:
        """Return the timer reference for a request."""
        return time.perf_counter()

    def log_request(self, method: str, path: str, status_code: int, started: float) -> None:
        """Log a completed request; server errors go out at error level."""
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        level = "error" if status_code >= 500 else "info"
        getattr(self.logger, level)(
            "Request completed",
            method=method,
            path=path,
            status_code=status_code,
            duration_ms=duration_ms
        )
