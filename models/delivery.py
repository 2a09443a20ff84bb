"""Delivery-note models.

A delivery note (bon de livraison) is one shipment received by an
establishment from a supplier. Each line is one product row as printed on
the paper note, optionally matched to a catalog SupplierProduct. Control
alerts are attached to lines by the reconciliation engine.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.catalog import SupplierProduct
from models.values import DateValue, DecimalValue


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================

class DeliveryNoteStatus(str, Enum):
    """Lifecycle of a delivery note."""
    DRAFT = "DRAFT"
    VALIDATED = "VALIDATED"
    ANOMALY = "ANOMALY"
    ARCHIVED = "ARCHIVED"

    @property
    def label(self) -> str:
        return {
            "DRAFT": "Draft",
            "VALIDATED": "Validated",
            "ANOMALY": "Anomaly",
            "ARCHIVED": "Archived",
        }[self.value]


class ControlStatus(str, Enum):
    """Outcome of reconciling one delivery line."""
    OK = "OK"
    QUANTITY_VARIANCE = "QUANTITY_VARIANCE"
    PRICE_VARIANCE = "PRICE_VARIANCE"
    MULTIPLE_VARIANCE = "MULTIPLE_VARIANCE"
    UNCONTROLLED = "UNCONTROLLED"

    @property
    def label(self) -> str:
        return {
            "OK": "OK",
            "QUANTITY_VARIANCE": "Quantity variance",
            "PRICE_VARIANCE": "Price variance",
            "MULTIPLE_VARIANCE": "Multiple variances",
            "UNCONTROLLED": "Uncontrolled",
        }[self.value]


class AlertKind(str, Enum):
    """Kind of discrepancy detected on a line."""
    QUANTITY_VARIANCE = "QUANTITY_VARIANCE"
    PRICE_VARIANCE = "PRICE_VARIANCE"
    UNKNOWN_PRODUCT = "UNKNOWN_PRODUCT"
    MISSING_PRICE = "MISSING_PRICE"


class AlertStatus(str, Enum):
    """Review state of an alert. ACCEPTED and REFUSED mean a human acted on it."""
    NEW = "NEW"
    SEEN = "SEEN"
    ACCEPTED = "ACCEPTED"
    REFUSED = "REFUSED"


TREATED_ALERT_STATUSES = frozenset({AlertStatus.ACCEPTED, AlertStatus.REFUSED})


# =============================================================================
# Entities
# =============================================================================

class DeliveryBase(BaseModel):
    """Base model for delivery-note entities."""
    model_config = ConfigDict(populate_by_name=True)


class ControlAlert(DeliveryBase):
    """One discrepancy detected on a delivery line.

    Attributes:
        id: Database ID (None until persisted)
        line_id: Owning delivery line
        kind: Alert kind
        message: Human-readable description
        expected_value: Ordered quantity or negotiated price
        received_value: Delivered quantity or billed price
        deviation_pct: Signed percentage deviation (variance kinds only)
        status: Review state
        comment: Reviewer comment
        created_at: When reconciliation raised the alert
        treated_at: When a reviewer accepted or refused it
        treated_by: Reviewer identifier
    """
    id: Optional[int] = None
    line_id: Optional[int] = None
    kind: AlertKind
    message: str
    expected_value: Optional[DecimalValue] = None
    received_value: Optional[DecimalValue] = None
    deviation_pct: Optional[DecimalValue] = None
    status: AlertStatus = AlertStatus.NEW
    comment: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    treated_at: Optional[datetime] = None
    treated_by: Optional[str] = None

    @property
    def is_treated(self) -> bool:
        return self.status in TREATED_ALERT_STATUSES

    def treat(self, user: str, status: AlertStatus, comment: Optional[str] = None) -> None:
        """Record a reviewer decision on the alert."""
        self.status = status
        self.treated_by = user
        self.treated_at = _utcnow()
        self.comment = comment


class DeliveryLine(DeliveryBase):
    """One product row of a delivery note."""
    id: Optional[int] = None
    note_id: Optional[int] = None
    position: int = 0
    product_code: Optional[str] = None
    designation: str
    ordered_quantity: Optional[DecimalValue] = None
    delivered_quantity: DecimalValue
    unit_price: DecimalValue
    line_total: Optional[DecimalValue] = None
    unit: Optional[str] = None
    control_status: ControlStatus = ControlStatus.UNCONTROLLED
    supplier_product: Optional[SupplierProduct] = None
    alerts: List[ControlAlert] = Field(default_factory=list)

    def compute_line_total(self) -> Decimal:
        """Delivered quantity times unit price, to 4 decimal places."""
        if self.delivered_quantity is None or self.unit_price is None:
            return Decimal("0")
        return (self.delivered_quantity * self.unit_price).quantize(
            Decimal("0.0001"), rounding=ROUND_HALF_UP
        )


class DeliveryNote(DeliveryBase):
    """A delivered shipment and its lines."""
    id: Optional[int] = None
    number: Optional[str] = None
    order_number: Optional[str] = None
    establishment_id: Optional[int] = None
    supplier_id: Optional[int] = None
    delivery_date: Optional[DateValue] = None
    status: DeliveryNoteStatus = DeliveryNoteStatus.DRAFT
    total_excl_tax: Optional[DecimalValue] = None
    validated_at: Optional[datetime] = None
    validated_by: Optional[str] = None
    lines: List[DeliveryLine] = Field(default_factory=list)

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def compute_total_excl_tax(self) -> Decimal:
        """Sum of line totals, to 2 decimal places."""
        total = Decimal("0")
        for line in self.lines:
            line_total = line.line_total if line.line_total is not None else line.compute_line_total()
            total += line_total
        return total.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    def reference(self) -> str:
        """Short human reference used in messages."""
        if self.number:
            return f"delivery note {self.number}"
        if self.id is not None:
            return f"delivery note #{self.id}"
        return "delivery note"
