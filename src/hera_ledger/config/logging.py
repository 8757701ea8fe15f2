"""Structured logging for the ledger posting job."""

import logging
import sys
from typing import Literal

import structlog

from hera_ledger.config.settings import get_settings

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
) -> None:
    """Route structlog through stdlib logging on stdout.

    JSON output is meant for the scheduled runs, where each posting event is
    shipped to a log store; tracebacks are then rendered as structured
    ``exception`` fields instead of text.

    Args:
        level: Log level. Defaults to ``LOG_LEVEL``.
        format: ``json`` or ``console``. Defaults to ``LOG_FORMAT``.
    """
    settings = get_settings()
    log_level = getattr(logging, level or settings.log_level)
    log_format = format or settings.log_format

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if log_format == "json":
        processors += [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stdout.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service="hera-ledger")
