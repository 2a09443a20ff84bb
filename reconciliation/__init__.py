"""Delivery-note reconciliation against negotiated prices."""

from reconciliation.engine import (
    ReconciliationEngine,
    ReconciliationReport,
    classify_line_status,
    deviation_pct,
)

__all__ = [
    "ReconciliationEngine",
    "ReconciliationReport",
    "classify_line_status",
    "deviation_pct",
]
