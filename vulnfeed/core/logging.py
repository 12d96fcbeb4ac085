"""structlog setup for the API, the scheduler and CLI sync runs.

Sync code binds the feed source it is working on with :func:`source_context`
so every line of a run (upserts, parse errors, index rebuilds) carries it.
"""

import logging
import sys
from contextlib import AbstractContextManager

import structlog

from vulnfeed.core.config import get_settings

# Per-request loggers that would flood the output during incremental and hash runs
_QUIET_LOGGERS = ("httpx", "httpcore", "neo4j", "aiosqlite")

_configured = False


def configure_logging() -> None:
    """Configure structlog once per process: console lines in debug, JSON otherwise."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.app_debug:
        renderer: list[structlog.types.Processor] = [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        renderer = [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=shared_processors + renderer,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    _configured = True


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


def source_context(source: str, **extra: str) -> AbstractContextManager:
    """Bind ``source`` (an OSV ecosystem or ``nvd``) to every log line in the block."""
    return structlog.contextvars.bound_contextvars(source=source, **extra)
