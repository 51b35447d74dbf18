"""structlog setup shared by the API process and the tick script."""

from __future__ import annotations

import logging

import structlog

from app.config import settings


def configure_logging(level: str | None = None, json_output: bool | None = None) -> None:
    level_name = (level or settings.log_level).upper()
    numeric_level = logging.getLevelName(level_name)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    use_json = settings.log_json if json_output is None else json_output

    logging.basicConfig(format='%(message)s', level=numeric_level)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt='iso', utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if use_json:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        # ConsoleRenderer formats tracebacks itself.
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=True,
    )
