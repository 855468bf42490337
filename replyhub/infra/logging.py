"""Structured logging configuration."""

import logging
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger

from replyhub.infra.config import config

# Context fields attached through ``extra`` by the pipeline and event logger
CONTEXT_FIELDS = (
    "tenant_id",
    "conversation_id",
    "event_type",
    "status",
    "latency_ms",
    "payload",
)

NOISY_LOGGERS = {
    "uvicorn": logging.INFO,
    "sqlalchemy": logging.WARNING,
    "httpx": logging.WARNING,
    "openai": logging.WARNING,
}


class ReplyHubJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that always emits the request context keys, null when unset."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        for name in CONTEXT_FIELDS:
            log_record.setdefault(name, getattr(record, name, None))


def build_formatter() -> ReplyHubJsonFormatter:
    return ReplyHubJsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        rename_fields={"levelname": "level", "name": "logger"},
        static_fields={"service": "replyhub", "env": config.APP_ENV},
    )


def setup_logging(stream: Optional[object] = None) -> logging.Logger:
    """
    Configure JSON output for the ``replyhub`` logger tree.

    Pipeline events (``replyhub.events``) and module loggers share one
    handler, so every record carries tenant and conversation ids when known.
    """
    logger = logging.getLogger("replyhub")
    logger.setLevel(logging.DEBUG if config.DEBUG else logging.INFO)
    logger.handlers = []

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(build_formatter())
    logger.addHandler(handler)

    for name, level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    return logger


app_logger = setup_logging()
