"""
Logging system using structlog.
Provides structured logging with different output formats and levels.
"""

import logging
import sys
import uuid
from pathlib import Path
from typing import Optional, Union
import structlog
from structlog.stdlib import LoggerFactory

# Libraries that log every heartbeat or hash round at INFO/DEBUG
QUIET_LOGGERS = ("pymongo", "passlib", "PIL", "multipart")


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[Union[str, Path]] = None,
    debug: bool = False
) -> None:
    """
    Set up structured logging with configurable output formats.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_file: Optional log file path
        debug: Add call site information to every event
    """
    level = getattr(logging, log_level.upper())

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if debug:
        processors.append(structlog.processors.CallsiteParameterAdder())

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter('%(message)s'))

        logging.getLogger().addHandler(file_handler)

    logger = structlog.get_logger(__name__)
    logger.info(
        "Logging system initialized",
        level=log_level,
        format=log_format,
        file=str(log_file) if log_file else None,
        debug=debug
    )


class RequestLogger:
    """
    Logger for one HTTP request, carrying its method, path and request id.
    """

    def __init__(self, method: str, path: str, request_id: Optional[str] = None, name: str = "api.requests"):
        self.logger = structlog.get_logger(name)
        self.request_id = request_id or uuid.uuid4().hex[:12]
        self.context = {"method": method, "path": path, "request_id": self.request_id}

    def bind_context(self, **kwargs) -> 'RequestLogger':
        """Add fields to every event logged for this request."""
        self.context.update(kwargs)
        return self

    def log_completed(self, status_code: int, duration_ms: float) -> None:
        """Log a handled request; client errors at info, server errors at warning."""
        level = "warning" if status_code >= 500 else "info"
        getattr(self.logger, level)(
            "Request handled",
            status_code=status_code,
            duration_ms=round(duration_ms, 2),
            **self.context
        )

    def log_failed(self, error: str, duration_ms: float) -> None:
        """Log a request that raised past every exception handler."""
        self.logger.error(
            "Request failed",
            error=error,
            duration_ms=round(duration_ms, 2),
            **self.context
        )
