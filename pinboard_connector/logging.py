"""Structured logging setup using structlog."""

from __future__ import annotations

import logging
import sys

import structlog

# Third-party loggers that are noisy below WARNING (PIL logs every PNG chunk).
_QUIET_LOGGERS = ("PIL", "uvicorn.access")


def setup_logging(
    *,
    json: bool = True,
    level: str = "INFO",
    crawler: str | None = None,
) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Parameters
    ----------
    json:
        Render JSON lines (default) or, if *False*, the console renderer.
    level:
        Root log level name, case-insensitive.  ``DEBUG`` includes the
        POP3 wire traffic.
    crawler:
        If given, bound as ``crawler=<name>`` on every event of this
        process.
    """
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        timestamper,
    ]

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: structlog.types.Processor
    if json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    # foreign_pre_chain formats records from plain stdlib loggers (uvicorn)
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.contextvars.clear_contextvars()
    if crawler:
        structlog.contextvars.bind_contextvars(crawler=crawler)
