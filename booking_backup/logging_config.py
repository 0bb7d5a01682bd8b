from __future__ import annotations

import logging
import sys
from typing import Any, Callable, MutableMapping, cast

import structlog

from booking_backup.config import LOG_LEVEL

EventDict = MutableMapping[str, Any]
Processor = Callable[[Any, str, EventDict], Any]

# Guest data that must never reach a log line
PII_KEYS = frozenset({"guestName", "guest_name", "email", "phone", "birthDate", "record", "data"})

NOISY_LOGGERS = ("urllib3", "botocore", "boto3", "s3transfer", "uvicorn.access")


def redact_pii(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Replace guest-identifying values in an event with a placeholder."""
    for key in PII_KEYS.intersection(event_dict):
        event_dict[key] = "[redacted]"
    return event_dict


def setup_logging(level: str | None = None) -> None:
    """
    Configure stdlib logging and structlog for the service and the scripts.

    INFO and above render JSON lines for log aggregation; DEBUG renders
    colored console output.

    Args:
        level: Log level name, defaults to LOG_LEVEL from the environment
    """
    level_name = (level or LOG_LEVEL).upper()

    logging.basicConfig(
        format="[%(asctime)s] %(levelname)s in %(name)s:%(lineno)d: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        level=level_name,
    )

    # botocore logs every request at DEBUG, including signed headers
    for noisy_logger in NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    renderer = cast(
        Processor,
        (
            structlog.dev.ConsoleRenderer(colors=True)
            if level_name == "DEBUG"
            else structlog.processors.JSONRenderer(ensure_ascii=False)
        ),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            redact_pii,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level_name)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
