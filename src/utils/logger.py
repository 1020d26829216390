"""
Structured Logger Module

Configures structlog for JSON-formatted structured logging with correlation IDs.
All components use this logger so one generation session can be traced
across the coordinator, the content client and the cache store.

Example Usage:
    from src.utils.logger import get_logger

    logger = get_logger(
        correlation_id="a1b2c3d4-e5f6-7890-abcd-ef1234567890",
        phase="generation",
        component="generation_coordinator",
    )

    logger.info("Stage ready", stage="roadmap", degraded=False)
    logger.warning("Autosave failed, continuing in memory", namespace="ai_generated_content")
    logger.error("Stage failed", stage="roadmap", error="Content service error: 503")

Log Levels:
    - DEBUG: Request bodies sizes, template rendering, cache reads/writes
    - INFO: Stage transitions, autosave flushes, session restore
    - WARNING: Degraded parses, purged cache records, swallowed storage failures
    - ERROR: Content service failures surfaced to the caller
"""

import logging
import sys
import uuid
from pathlib import Path
from typing import Any, Optional

import structlog
from structlog.types import BindableLogger, EventDict, WrappedLogger

SENSITIVE_FIELDS = {
    "password",
    "api_key",
    "apikey",
    "token",
    "secret",
    "credential",
    "auth",
    "authorization",
}

MASK = "***MASKED***"


def _is_sensitive(key: str) -> bool:
    key_lower = key.lower().replace("-", "_")
    for sensitive in SENSITIVE_FIELDS:
        if (
            key_lower == sensitive
            or key_lower.endswith(f"_{sensitive}")
            or key_lower.startswith(f"{sensitive}_")
        ):
            return True
    return False


def _mask_value(key: str, value: Any) -> Any:
    if _is_sensitive(key):
        return MASK
    if isinstance(value, dict):
        return {k: _mask_value(str(k), v) for k, v in value.items()}
    return value


def mask_credentials(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """
    Processor to mask sensitive credentials in log output.

    Masks password, api_key, token, secret, credential, auth and authorization
    fields (exact name or underscore/hyphen word boundary, so "x-api-key" and
    "access_token" match). Nested dicts such as request headers are masked
    recursively.
    """
    for key in list(event_dict.keys()):
        event_dict[key] = _mask_value(key, event_dict[key])

    return event_dict


def configure_logging(
    log_file: str = "logs/career-pipeline.log", log_level: str = "INFO"
) -> None:
    """
    Configure structlog with JSON output and file logging.

    Args:
        log_file: Path to log file (default: "logs/career-pipeline.log")
        log_level: Logging level (default: "INFO")
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(exist_ok=True)

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
        handlers=[logging.FileHandler(log_file), logging.StreamHandler(sys.stdout)],
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            mask_credentials,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(
    correlation_id: Optional[str] = None,
    phase: Optional[str] = None,
    component: Optional[str] = None,
) -> BindableLogger:
    """
    Get structured logger with bound context.

    Args:
        correlation_id: Correlation ID for request tracing (generates UUID if not provided)
        phase: Pipeline phase (e.g., "generation", "session")
        component: Component name (e.g., "generation_coordinator", "cache_store")

    Returns:
        BoundLogger with correlation_id, phase, and component bound to context
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())

    logger = structlog.get_logger()

    if correlation_id:
        logger = logger.bind(correlation_id=correlation_id)
    if phase:
        logger = logger.bind(phase=phase)
    if component:
        logger = logger.bind(component=component)

    return logger


# Initialize logging on module import with default settings
configure_logging()
