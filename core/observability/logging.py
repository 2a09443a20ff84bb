"""
Structured Logging with Correlation IDs

Provides logging utilities that automatically include:
- delivery_note_id: Links logs to a specific delivery note
- line_id: Links logs to a specific delivery line
- establishment_id / supplier_id: Receiving site and supplier of the note
- workflow_id / activity_id: Links logs to Temporal executions

Usage:
    from core.observability.logging import get_logger, with_correlation

    logger = get_logger(__name__)

    with with_correlation(delivery_note_id=42, establishment_id=3):
        logger.info("Reconciliation started")  # Includes both IDs
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from core import config


# =============================================================================
# Correlation Context
# =============================================================================

@dataclass
class CorrelationContext:
    """Context for correlating logs across one reconciliation run."""
    delivery_note_id: Optional[int] = None
    establishment_id: Optional[int] = None
    supplier_id: Optional[int] = None
    line_id: Optional[int] = None
    workflow_id: Optional[str] = None
    workflow_run_id: Optional[str] = None
    activity_id: Optional[str] = None
    activity_name: Optional[str] = None
    task_queue: Optional[str] = None
    stage: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict, excluding None values."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "CorrelationContext":
        """Create a new context with merged values."""
        data = self.to_dict()
        data.update({k: v for k, v in kwargs.items() if v is not None})
        return CorrelationContext(**data)


_correlation_context: ContextVar[CorrelationContext] = ContextVar(
    "correlation_context",
    default=CorrelationContext()
)


def get_correlation_context() -> CorrelationContext:
    """Get the current correlation context."""
    return _correlation_context.get()


@contextmanager
def with_correlation(**kwargs):
    """
    Context manager to set correlation IDs for logging.

    Usage:
        with with_correlation(delivery_note_id=42, line_id=7):
            logger.info("Checking line")
    """
    old_ctx = get_correlation_context()
    new_ctx = old_ctx.merge(**kwargs)
    token = _correlation_context.set(new_ctx)
    try:
        yield new_ctx
    finally:
        _correlation_context.reset(token)


# =============================================================================
# Formatters
# =============================================================================

class StructuredFormatter(logging.Formatter):
    """
    JSON formatter that includes correlation context.

    Output format:
    {
        "timestamp": "2026-01-31T12:00:00.000000Z",
        "level": "INFO",
        "logger": "reconciliation.engine",
        "message": "Reconciliation finished",
        "delivery_note_id": 42,
        "alert_count": 2
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        ctx = get_correlation_context()
        log_data.update(ctx.to_dict())

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter that includes key correlation IDs.

    Output format:
    2026-01-31 12:00:00 [INFO ] reconciliation.engine [note:42/line:7]: Checking line
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_correlation_context()

        correlation_parts = []
        if ctx.delivery_note_id is not None:
            correlation_parts.append(f"note:{ctx.delivery_note_id}")
        if ctx.workflow_id:
            wf_short = ctx.workflow_id[:12] if len(ctx.workflow_id) > 12 else ctx.workflow_id
            correlation_parts.append(wf_short)
        if ctx.line_id is not None:
            correlation_parts.append(f"line:{ctx.line_id}")

        correlation = "/".join(correlation_parts) if correlation_parts else "-"

        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        msg = f"{timestamp} [{record.levelname:5}] {record.name} [{correlation}]: {record.getMessage()}"

        extra = getattr(record, "extra_fields", None)
        if extra:
            msg += " " + " ".join(f"{k}={v}" for k, v in extra.items())

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


# =============================================================================
# Logger with Correlation Support
# =============================================================================

class CorrelatedLogger:
    """
    Wraps a stdlib logger. Every call may pass ``extra_fields``, which the
    formatters print next to the correlation context.
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def _log(self, level: int, msg: str, args: tuple, extra_fields: Optional[Dict[str, Any]] = None,
             exc_info=None):
        if not self._logger.isEnabledFor(level):
            return
        if exc_info is True:
            exc_info = sys.exc_info()

        record = self._logger.makeRecord(self._logger.name, level, "(unknown file)", 0, msg, args, exc_info)
        record.extra_fields = extra_fields or {}
        self._logger.handle(record)

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log(logging.ERROR, msg, args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        kwargs["exc_info"] = True
        self._log(logging.ERROR, msg, args, **kwargs)

    def setLevel(self, level):
        self._logger.setLevel(level)


# =============================================================================
# Logger Factory
# =============================================================================

_loggers: Dict[str, CorrelatedLogger] = {}
_configured = False


def configure_logging(
    level: Optional[int] = None,
    json_format: Optional[bool] = None,
):
    """
    Configure logging for the application.

    Args:
        level: Logging level (defaults to LOG_LEVEL)
        json_format: If True, use JSON format (defaults to LOG_JSON)
    """
    global _configured

    if _configured:
        return

    if level is None:
        level = logging.getLevelName(config.LOG_LEVEL)
        if not isinstance(level, int):
            level = logging.INFO
    if json_format is None:
        json_format = config.LOG_JSON

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    if json_format:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanReadableFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)

    for logger_name in ["activities", "workflows", "reconciliation", "price_catalog", "storage", "core"]:
        logging.getLogger(logger_name).setLevel(level)

    logging.getLogger("temporalio").setLevel(logging.INFO)

    _configured = True


def get_logger(name: str) -> CorrelatedLogger:
    """
    Get a correlated logger for the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        CorrelatedLogger instance
    """
    if name not in _loggers:
        if not _configured:
            configure_logging()

        base_logger = logging.getLogger(name)
        _loggers[name] = CorrelatedLogger(base_logger)

    return _loggers[name]
