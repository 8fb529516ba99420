"""
Structured logging configuration using structlog.

JSON lines in production, a console renderer everywhere else. Context bound
with structlog.contextvars (request_id from the middleware, sweep_id from the
expiry sweeper) is merged into every line, including lines emitted through
the stdlib bridge by uvicorn and SQLAlchemy.
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

from courtside.core.config import get_settings

MASK = "***"

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore")


class SecretMasker:
    """
    Replaces configured credentials anywhere they appear in a log line.
    The Telegram bot token is part of the request URL, so it leaks into
    exception messages from httpx.
    """

    def __init__(self, secrets: list[str]):
        self.secrets = [s for s in secrets if s]

    def _mask(self, value: Any) -> Any:
        if isinstance(value, str):
            for secret in self.secrets:
                value = value.replace(secret, MASK)
        return value

    def __call__(self, logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        if not self.secrets:
            return event_dict
        return {key: self._mask(value) for key, value in event_dict.items()}


def _processors(production: bool) -> list[Processor]:
    settings = get_settings()
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if production:
        processors.append(structlog.processors.format_exc_info)
    processors.append(SecretMasker([settings.YOOKASSA_SECRET_KEY, settings.TELEGRAM_BOT_TOKEN]))
    return processors


def setup_logging(level: Optional[str] = None) -> None:
    """Configure structlog and the stdlib root logger. `level` overrides LOG_LEVEL."""
    settings = get_settings()
    production = settings.ENVIRONMENT == "production"
    shared = _processors(production)

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if production
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
