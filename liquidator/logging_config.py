"""
Logging setup for the liquidator.

structlog renders every record, including the stdlib loggers used by the
providers, builder and signers. Logs go to stderr; stdout belongs to the CLI's
progress lines and plan tables.
"""

import logging
import sys
from typing import Optional, TextIO

import structlog

from .config import settings

LOG_FORMATS = ("auto", "json", "console")

# Third-party loggers that narrate every request
QUIET_LOGGERS = ("httpcore", "httpx")


def resolve_format(log_format: str, level: int, stream: TextIO) -> str:
    """Pick a concrete renderer name. "auto" means console on a terminal or at DEBUG, else JSON."""
    if log_format not in LOG_FORMATS:
        raise ValueError(f"unknown log format {log_format!r}; expected one of {', '.join(LOG_FORMATS)}")
    if log_format != "auto":
        return log_format
    is_tty = getattr(stream, "isatty", lambda: False)()
    return "console" if is_tty or level == logging.DEBUG else "json"


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """Route structlog and stdlib logging through one handler.

    Args:
        log_level: Override settings.log_level
        log_format: "auto", "json" or "console" (default: settings.log_format)
        stream: Destination (default: stderr)
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    stream = stream or sys.stderr
    fmt = resolve_format((log_format or settings.log_format).lower(), level, stream)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if fmt == "console":
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(
            colors=getattr(stream, "isatty", lambda: False)()
        )
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
