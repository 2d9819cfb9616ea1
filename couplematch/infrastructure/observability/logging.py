"""
Structured logging for the cycle jobs and the service process.

Production output is one JSON object per line; `json_logs=False` switches to
structlog's console renderer for local runs.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

SERVICE_NAME = "couplematch"


def setup_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """
    Configure structlog on top of stdlib logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render JSON lines instead of the human-readable console format
    """
    renderer = (
        structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _add_service_context,
            structlog.processors.format_exc_info,
            renderer,
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

    # Pool maintenance chatter
    logging.getLogger("psycopg.pool").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _add_service_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_phase_outcome(phase: str, metrics: dict[str, Any]) -> None:
    """Log the closing line of a cycle phase with consistent fields."""
    logger = get_logger("match_cycle")

    log_data = {k: v for k, v in metrics.items() if k != "errors"}
    log_data["event_type"] = "cycle_phase"

    if metrics.get("errors_count"):
        logger.warning("Match cycle phase finished with errors", phase=phase, **log_data)
    else:
        logger.info("Match cycle phase finished", phase=phase, **log_data)
