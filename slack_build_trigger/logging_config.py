"""Structlog configuration for the webhook and connect endpoints."""

from __future__ import annotations

import logging
import os

import structlog

from slack_build_trigger.redaction import PLACEHOLDER

DEFAULT_LOG_LEVEL = "INFO"
SECRET_FIELDS = frozenset({"signing_secret", "client_secret", "code"})


def mask_secret_fields(_logger, _method_name, event_dict):
    """Replace the value of any event key that names a credential."""

    for key in SECRET_FIELDS.intersection(event_dict):
        event_dict[key] = PLACEHOLDER
    return event_dict


def configure_logging(level: str | None = None) -> None:
    """Configure structlog to emit one JSON object per event.

    The level comes from *level*, then ``LOG_LEVEL``, then defaults to INFO.
    """

    level_name = (level or os.getenv("LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            mask_secret_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=getattr(logging, level_name, logging.INFO))
