"""Workflow definitions module."""

from workflows.delivery_note_workflow import (
    DeliveryNoteValidationWorkflow,
    VALIDATION_RETRY_POLICY,
)

__all__ = ["DeliveryNoteValidationWorkflow", "VALIDATION_RETRY_POLICY"]
