"""Logging configuration and Prometheus counters for the assistant core."""

from __future__ import annotations

import logging
import os

import structlog
from prometheus_client import REGISTRY, Counter


def configure_logging(level: str | None = None) -> None:
    """Configure stdlib logging and structlog to emit JSON lines."""

    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, log_level, logging.INFO), format="%(message)s")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def bind_session_context(**values: object) -> None:
    """Attach ``values`` (operator id, session id) to every subsequent log line."""

    structlog.contextvars.bind_contextvars(**values)


def clear_session_context() -> None:
    structlog.contextvars.clear_contextvars()


def _get_or_create_metric(metric_cls, name: str, documentation: str, labelnames):
    existing = REGISTRY._names_to_collectors.get(name)
    if existing is not None:
        return existing
    return metric_cls(name, documentation, labelnames=labelnames)


MODEL_CALLS = _get_or_create_metric(
    Counter,
    "clinassist_model_calls_total",
    "Generative model invocations by operation and outcome",
    ["operation", "outcome"],
)
CACHE_LOOKUPS = _get_or_create_metric(
    Counter,
    "clinassist_cache_lookups_total",
    "Model response cache lookups by operation and hit state",
    ["operation", "state"],
)
RATE_LIMITED = _get_or_create_metric(
    Counter,
    "clinassist_rate_limited_total",
    "Model calls refused by the rate limiter",
    ["operation"],
)
MODEL_TOKENS = _get_or_create_metric(
    Counter,
    "clinassist_model_tokens_total",
    "Estimated model tokens by direction",
    ["direction"],
)


__all__ = [
    "configure_logging",
    "bind_session_context",
    "clear_session_context",
    "MODEL_CALLS",
    "CACHE_LOOKUPS",
    "RATE_LIMITED",
    "MODEL_TOKENS",
]
