"""
Observability Module for Delivery-Note Reconciliation

Provides:
- Structured logging with correlation IDs
- Metrics collection (reconciliation runs, alerts, processing times)
"""

from core.observability.metrics import (
    MetricsCollector,
    get_metrics,
    record_reconciliation_completed,
    record_reconciliation_failed,
    record_processing_time,
)

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    with_correlation,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "record_reconciliation_completed",
    "record_reconciliation_failed",
    "record_processing_time",
    # Logging
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "with_correlation",
]
