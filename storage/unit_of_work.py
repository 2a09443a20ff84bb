"""Unit of work consumed by the reconciliation engine.

The engine stages alert creations/removals and line/note updates here and
never commits. Whoever owns the unit of work applies everything at once.
"""

from abc import ABC, abstractmethod
from typing import List

from models.delivery import ControlAlert, DeliveryLine, DeliveryNote


class UnitOfWork(ABC):
    """Staging area for reconciliation writes."""

    @abstractmethod
    def add_alert(self, alert: ControlAlert) -> None:
        """Stage creation of a new alert."""

    @abstractmethod
    def remove_alert(self, alert: ControlAlert) -> None:
        """Stage deletion of an existing alert."""

    @abstractmethod
    def update_line(self, line: DeliveryLine) -> None:
        """Stage the line's new control status."""

    @abstractmethod
    def update_note(self, note: DeliveryNote) -> None:
        """Stage the note's new status."""


class InMemoryUnitOfWork(UnitOfWork):
    """Unit of work that only records what was staged.

    Removing an alert that is still staged for creation cancels the
    creation instead of recording a removal.
    """

    def __init__(self):
        self.new_alerts: List[ControlAlert] = []
        self.removed_alerts: List[ControlAlert] = []
        self.dirty_lines: List[DeliveryLine] = []
        self.dirty_notes: List[DeliveryNote] = []

    def add_alert(self, alert: ControlAlert) -> None:
        if not any(a is alert for a in self.new_alerts):
            self.new_alerts.append(alert)

    def remove_alert(self, alert: ControlAlert) -> None:
        for idx, staged in enumerate(self.new_alerts):
            if staged is alert:
                del self.new_alerts[idx]
                return
        if not any(a is alert for a in self.removed_alerts):
            self.removed_alerts.append(alert)

    def update_line(self, line: DeliveryLine) -> None:
        if not any(l is line for l in self.dirty_lines):
            self.dirty_lines.append(line)

    def update_note(self, note: DeliveryNote) -> None:
        if not any(n is note for n in self.dirty_notes):
            self.dirty_notes.append(note)

    @property
    def is_empty(self) -> bool:
        return not (self.new_alerts or self.removed_alerts or self.dirty_lines or self.dirty_notes)

    def clear(self) -> None:
        self.new_alerts.clear()
        self.removed_alerts.clear()
        self.dirty_lines.clear()
        self.dirty_notes.clear()
