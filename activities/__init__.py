"""Activity definitions module."""

from activities.reconcile import (
    reconcile_delivery_note,
    validate_delivery_note,
    build_summary,
    InvalidStatusTransitionError,
    ValidationOutcome,
    ReconcileDeliveryNoteInput,
    ReconcileDeliveryNoteOutput,
)

__all__ = [
    # Validation use case
    "validate_delivery_note",
    "build_summary",
    "InvalidStatusTransitionError",
    "ValidationOutcome",
    # Activities
    "reconcile_delivery_note",
    "ReconcileDeliveryNoteInput",
    "ReconcileDeliveryNoteOutput",
]
