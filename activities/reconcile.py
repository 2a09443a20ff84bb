"""Delivery-note validation activities.

Moving a delivery note from DRAFT to VALIDATED runs reconciliation exactly
once. The transition, the alerts and the resulting statuses are committed
together or not at all.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional

from temporalio import activity

from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import record_reconciliation_completed, record_reconciliation_failed
from models.delivery import DeliveryNote, DeliveryNoteStatus
from price_catalog.lookup import PriceCatalogLookup, SqlitePriceCatalog
from reconciliation.engine import ReconciliationEngine
from storage.delivery_notes import DeliveryNoteStore

logger = get_logger(__name__)


class InvalidStatusTransitionError(Exception):
    """Raised when a delivery note cannot move to the requested status."""

    def __init__(self, note_id: int, current: DeliveryNoteStatus, target: DeliveryNoteStatus):
        super().__init__(
            f"Delivery note {note_id} cannot move from {current.value} to {target.value}"
        )
        self.note_id = note_id
        self.current = current
        self.target = target


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class ValidationOutcome:
    """Result of validating a delivery note.

    Attributes:
        note_id: Validated delivery note
        status: Final note status (VALIDATED or ANOMALY)
        alert_count: Alerts raised by reconciliation
        line_statuses: Number of lines per control status
        summary: Notification text for the establishment
    """
    note_id: int
    status: str
    alert_count: int
    line_statuses: Dict[str, int] = field(default_factory=dict)
    summary: str = ""


@dataclass
class ReconcileDeliveryNoteInput:
    """Input for reconcile_delivery_note activity.

    Attributes:
        note_id: Delivery note to validate
        validated_by: User who triggered the validation
        db_path: SQLite database (defaults to DELIVERY_CONTROL_DB_PATH)
    """
    note_id: int
    validated_by: Optional[str] = None
    db_path: Optional[str] = None


@dataclass
class ReconcileDeliveryNoteOutput:
    """Output from reconcile_delivery_note activity."""
    note_id: int
    status: str
    alert_count: int
    line_statuses: Dict[str, int] = field(default_factory=dict)
    summary: str = ""


# =============================================================================
# Use Case
# =============================================================================

def build_summary(note: DeliveryNote, alert_count: int) -> str:
    """Notification text sent once a note has been validated."""
    reference = note.reference()
    if alert_count > 0:
        return f"Anomaly detected on {reference} ({alert_count} alert(s))."
    return f"{reference[0].upper()}{reference[1:]} validated without anomaly."


def validate_delivery_note(
    note_id: int,
    store: DeliveryNoteStore,
    catalog: PriceCatalogLookup,
    validated_by: Optional[str] = None,
    clock: Callable[[], date] = date.today,
) -> ValidationOutcome:
    """
    Validate a DRAFT delivery note and reconcile it.

    Args:
        note_id: Delivery note to validate
        store: Delivery note persistence
        catalog: Negotiated price lookup
        validated_by: User who triggered the validation
        clock: Date used for notes without a delivery date

    Returns:
        ValidationOutcome with the final status and alert count

    Raises:
        DeliveryNoteNotFoundError: If the note does not exist
        InvalidStatusTransitionError: If the note is not DRAFT
    """
    with with_correlation(delivery_note_id=note_id, stage="validation"):
        try:
            note = store.get_delivery_note(note_id)

            if note.status != DeliveryNoteStatus.DRAFT:
                raise InvalidStatusTransitionError(note_id, note.status, DeliveryNoteStatus.VALIDATED)

            engine = ReconciliationEngine(catalog, clock=clock)

            with store.unit_of_work() as uow:
                note.status = DeliveryNoteStatus.VALIDATED
                note.validated_at = datetime.now(timezone.utc)
                note.validated_by = validated_by
                if note.total_excl_tax is None:
                    note.total_excl_tax = note.compute_total_excl_tax()
                uow.update_note(note)

                report = engine.run(note, uow)

        except Exception as e:
            logger.exception(
                "Delivery note validation failed",
                extra_fields={"error_type": type(e).__name__},
            )
            record_reconciliation_failed(note_id, f"{type(e).__name__}: {e}")
            raise

        # Counted only once the unit of work has committed
        record_reconciliation_completed(
            report.note_id,
            report.alert_count,
            alerts_by_kind=report.alerts_by_kind,
            lines_by_status=report.lines_by_status,
            duration_ms=report.duration_ms,
        )

        alert_count = report.alert_count
        outcome = ValidationOutcome(
            note_id=note.id,
            status=note.status.value,
            alert_count=alert_count,
            line_statuses=report.lines_by_status,
            summary=build_summary(note, alert_count),
        )

        if alert_count > 0:
            logger.warning(outcome.summary, extra_fields={"alert_count": alert_count})
        else:
            logger.info(outcome.summary)

        return outcome


# =============================================================================
# Activity Definition
# =============================================================================

@activity.defn
async def reconcile_delivery_note(input: ReconcileDeliveryNoteInput) -> ReconcileDeliveryNoteOutput:
    """Validate a delivery note and reconcile it against the price catalog.

    Args:
        input: ReconcileDeliveryNoteInput with the note ID

    Returns:
        ReconcileDeliveryNoteOutput with the final status and alert count
    """
    info = activity.info()
    db_path = Path(input.db_path) if input.db_path else None

    with with_correlation(
        workflow_id=info.workflow_id,
        workflow_run_id=info.workflow_run_id,
        activity_id=info.activity_id,
        activity_name=info.activity_type,
        task_queue=info.task_queue,
    ):
        activity.logger.info(f"Validating delivery note {input.note_id}")

        store = DeliveryNoteStore(db_path)
        catalog = SqlitePriceCatalog(store.db_path)

        outcome = validate_delivery_note(
            input.note_id,
            store,
            catalog,
            validated_by=input.validated_by,
        )

    return ReconcileDeliveryNoteOutput(
        note_id=outcome.note_id,
        status=outcome.status,
        alert_count=outcome.alert_count,
        line_statuses=outcome.line_statuses,
        summary=outcome.summary,
    )
