from __future__ import annotations

import logging
import sys

import structlog

from dissect.execution.helpers.logging import TRACE_LEVEL

# Shared by structlog events and records from plain ``logging`` loggers
ATTR_PROCESSORS = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]


def traceback_only_when_debugging(
    logger: structlog.types.WrappedLogger,
    name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Replace ``exc_info`` with the exception message unless the logger is at ``DEBUG`` or below.

    Decoders log failed artifacts with ``exc_info``, a full traceback per corrupt file is only useful when debugging.
    """
    exc_info = event_dict.get("exc_info")
    if exc_info and logger.getEffectiveLevel() > logging.DEBUG:
        del event_dict["exc_info"]
        exc = exc_info if isinstance(exc_info, BaseException) else sys.exc_info()[1]
        event_dict["exc"] = str(exc)
    return event_dict


def level_for(verbose_value: int, be_quiet: bool) -> int:
    if be_quiet:
        return logging.CRITICAL
    return {0: logging.WARNING, 1: logging.INFO, 2: logging.DEBUG}.get(verbose_value, TRACE_LEVEL)


def configure_logging(verbose_value: int, be_quiet: bool, as_plain_text: bool = True) -> None:
    """Route all ``dissect`` logging through structlog and set the ``dissect`` logger level.

    Plain text goes to stderr, colored when it is a terminal. Otherwise every log line is a JSON object.
    """
    renderer = (
        structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty(), pad_event=10)
        if as_plain_text
        else structlog.processors.JSONRenderer(sort_keys=True)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *ATTR_PROCESSORS,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            traceback_only_when_debugging,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.captureWarnings(True)
    logging.getLogger("dissect").setLevel(level_for(verbose_value, be_quiet))

    handler = logging.StreamHandler()
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=ATTR_PROCESSORS))
    logging.getLogger().handlers = [handler]
