"""Persistence gateway for delivery notes and reconciliation writes."""

from storage.unit_of_work import UnitOfWork, InMemoryUnitOfWork
from storage.delivery_notes import (
    DeliveryNoteStore,
    DeliveryNoteNotFoundError,
    SqliteUnitOfWork,
)

__all__ = [
    "UnitOfWork",
    "InMemoryUnitOfWork",
    "DeliveryNoteStore",
    "DeliveryNoteNotFoundError",
    "SqliteUnitOfWork",
]
