"""
Delivery Note Validation Workflow

Runs the DRAFT → VALIDATED transition of one delivery note, which reconciles
its lines against the negotiated price catalog.

Missing notes and notes that are no longer DRAFT fail immediately; storage
errors are retried.
"""

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from activities.reconcile import (
        reconcile_delivery_note,
        ReconcileDeliveryNoteInput,
        ReconcileDeliveryNoteOutput,
    )


VALIDATION_RETRY_POLICY = RetryPolicy(
    maximum_attempts=3,
    initial_interval=timedelta(seconds=1),
    maximum_interval=timedelta(seconds=30),
    backoff_coefficient=2.0,
    non_retryable_error_types=["DeliveryNoteNotFoundError", "InvalidStatusTransitionError"],
)


@workflow.defn
class DeliveryNoteValidationWorkflow:
    """Validate one delivery note and report the reconciliation outcome."""

    @workflow.run
    async def run(self, input: ReconcileDeliveryNoteInput) -> ReconcileDeliveryNoteOutput:
        workflow.logger.info(f"Starting validation of delivery note {input.note_id}")

        result = await workflow.execute_activity(
            reconcile_delivery_note,
            input,
            start_to_close_timeout=timedelta(seconds=60),
            retry_policy=VALIDATION_RETRY_POLICY,
        )

        workflow.logger.info(
            f"Delivery note {result.note_id} is {result.status} ({result.alert_count} alert(s))"
        )
        return result
