"""Structured logging configuration using structlog.

Call ``configure_logging()`` once at startup (the CLI does this before every
command).  Modules then log through structlog::

    import structlog
    logger = structlog.get_logger(__name__)
    logger.warning("navigation_timeout", url=url, cluster=key)

Records go to stderr so that stdout stays reserved for crawl output.
"""

from __future__ import annotations

import logging
import sys

import structlog


def configure_logging(log_level: str = "INFO", *, json: bool = False) -> None:
    """Configure structlog and the stdlib root logger.

    Uses structlog's ``ConsoleRenderer`` by default and newline-delimited JSON
    when *json* is true.  Safe to call more than once; previously attached root
    handlers are replaced.

    Args:
        log_level: Logging verbosity string (``"DEBUG"``, ``"INFO"``, ...).
            Case-insensitive; unknown values fall back to ``INFO``.
        json: Emit JSON lines instead of human-readable console output.
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json:
        final_renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        final_renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            final_renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    # httpx and asyncio are chatty below WARNING.
    if numeric_level > logging.DEBUG:
        for noisy_logger in ("httpx", "httpcore", "asyncio"):
            logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
