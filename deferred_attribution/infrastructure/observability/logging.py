"""
Structured logging setup for deferred attribution.
Provides JSON-formatted logs with consistent fields for install-time diagnostics.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

REDACTED_PREFIX_LENGTH = 6


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_sdk_context,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _add_sdk_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Tag every entry with the component that produced it."""
    event_dict.setdefault("component", "deferred_attribution")
    return event_dict


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def redact(value: str | None) -> str | None:
    """Keep only a short prefix of an identifier so it can be correlated, not replayed."""
    if not value:
        return value
    if len(value) <= REDACTED_PREFIX_LENGTH:
        return "***"
    return f"{value[:REDACTED_PREFIX_LENGTH]}***"


# Convenience functions for common log patterns
def log_attempt(operation: str, attempt: int, outcome: str, error: str = None, status_code: int = None):
    """Log a single network attempt with consistent fields."""
    logger = get_logger("retry")

    log_data = {
        "operation": operation,
        "attempt": attempt,
        "outcome": outcome,
        "event_type": "network_attempt",
    }

    if status_code is not None:
        log_data["status_code"] = status_code
    if error:
        log_data["error"] = error

    if outcome == "success":
        logger.debug("Attempt succeeded", **log_data)
    else:
        logger.warning("Attempt failed", **log_data)


def log_resolution(outcome) -> None:
    """Log the final resolution outcome with consistent fields."""
    logger = get_logger("resolution")

    log_data = {
        "status": outcome.status.value,
        "referrer_attempted": outcome.referrer_attempted,
        "fingerprint_attempted": outcome.fingerprint_attempted,
        "event_type": "attribution_resolved",
    }

    if outcome.result is not None:
        log_data["method"] = outcome.result.method.value
        log_data["confidence"] = outcome.result.confidence.value
        log_data["score"] = outcome.result.score
        log_data["link_id"] = outcome.result.link_id

    if outcome.error:
        log_data["error"] = outcome.error

    if outcome.status.value == "exhausted":
        logger.warning("Attribution resolution exhausted", **log_data)
    else:
        logger.info("Attribution resolution finished", **log_data)
