"""Reconciliation engine for delivery-note control.

Exposes high-level entry point:
- ReconciliationEngine(price_catalog).reconcile(note) -> alert count

Each line goes through ordered checks:
1. Unknown product (short-circuits the remaining checks)
2. Quantity variance against the ordered quantity
3. Negotiated price existence
4. Price variance against the negotiated price (only when a price exists)

Untreated alerts from a previous pass are purged before a line is checked;
treated alerts are kept as they are. All writes are staged on a unit of work
and never committed here. Completed-run metrics are left to the caller, once
the unit of work has been committed.
"""

import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Callable, Dict, Iterable, List, Optional

from core import config
from core.observability.logging import get_logger, with_correlation
from models.delivery import (
    AlertKind,
    ControlAlert,
    ControlStatus,
    DeliveryLine,
    DeliveryNote,
    DeliveryNoteStatus,
)
from price_catalog.lookup import PriceCatalogLookup
from storage.unit_of_work import InMemoryUnitOfWork, UnitOfWork

logger = get_logger(__name__)


# =============================================================================
# Configuration
# =============================================================================

QUANTITY_EPSILON = Decimal("0.001")
ZERO_EXPECTED_EPSILON = Decimal("0.0001")
HUNDRED = Decimal("100")


# =============================================================================
# Utility Functions
# =============================================================================

def deviation_pct(expected: Decimal, received: Decimal) -> Decimal:
    """Signed deviation of received vs expected, in percent, to 2 places.

    When expected is (nearly) zero the result is 100.00 if something was
    received and 0.00 otherwise.
    """
    if abs(expected) < ZERO_EXPECTED_EPSILON:
        return Decimal("100.00") if received > 0 else Decimal("0.00")
    pct = (received - expected) / expected * HUNDRED
    with localcontext() as ctx:
        # quantize needs every integer digit plus the two decimals
        ctx.prec = max(ctx.prec, pct.adjusted() + 3)
        return pct.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def classify_line_status(alerts: Iterable[ControlAlert]) -> ControlStatus:
    """Control status of a line from the alerts raised on it."""
    kinds = {alert.kind for alert in alerts}
    if not kinds:
        return ControlStatus.OK

    has_quantity = AlertKind.QUANTITY_VARIANCE in kinds
    has_price = AlertKind.PRICE_VARIANCE in kinds

    if has_quantity and has_price:
        return ControlStatus.MULTIPLE_VARIANCE
    if has_quantity:
        return ControlStatus.QUANTITY_VARIANCE
    if has_price:
        return ControlStatus.PRICE_VARIANCE
    # Unknown product or missing price
    return ControlStatus.UNCONTROLLED


def _fmt(value: Decimal, places: int, signed: bool = False) -> str:
    """Format a decimal half-up to a fixed number of places."""
    quantum = Decimal(1).scaleb(-places)
    rounded = Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)
    return f"{rounded:+.{places}f}" if signed else f"{rounded:.{places}f}"


# =============================================================================
# Individual Check Functions
# =============================================================================

def check_unknown_product(line: DeliveryLine) -> Optional[ControlAlert]:
    """Alert when the line is not linked to a catalog product."""
    if line.supplier_product is not None:
        return None

    return ControlAlert(
        line_id=line.id,
        kind=AlertKind.UNKNOWN_PRODUCT,
        message=f"Unreferenced product: {line.designation} (code: {line.product_code or 'none'})",
    )


def check_quantity(line: DeliveryLine) -> Optional[ControlAlert]:
    """Alert when the delivered quantity differs from the ordered one."""
    ordered = line.ordered_quantity
    delivered = line.delivered_quantity

    # No purchase order quantity to compare against
    if ordered is None or ordered == 0:
        return None

    if abs(ordered - delivered) < QUANTITY_EPSILON:
        return None

    pct = deviation_pct(ordered, delivered)
    unit = line.unit or ""

    return ControlAlert(
        line_id=line.id,
        kind=AlertKind.QUANTITY_VARIANCE,
        expected_value=ordered,
        received_value=delivered,
        deviation_pct=pct,
        message=(
            f"Delivered {_fmt(delivered, 3)} {unit} instead of "
            f"{_fmt(ordered, 3)} {unit} ordered ({_fmt(pct, 1, signed=True)}%)"
        ),
    )


def missing_price_alert(line: DeliveryLine, on_date: date) -> ControlAlert:
    """Alert for a catalog product without a negotiated price on the date."""
    return ControlAlert(
        line_id=line.id,
        kind=AlertKind.MISSING_PRICE,
        message=(
            f"No negotiated price found for {line.supplier_product.supplier_designation} "
            f"on {on_date.strftime('%d/%m/%Y')}"
        ),
    )


def check_price(line: DeliveryLine, negotiated_price: Decimal, threshold_pct: Decimal) -> Optional[ControlAlert]:
    """Alert when the billed price deviates beyond the entry's threshold."""
    billed = line.unit_price
    pct = deviation_pct(negotiated_price, billed)

    if abs(pct) <= threshold_pct:
        return None

    unit = line.unit or ""
    currency = config.CURRENCY_SYMBOL
    direction = "higher" if pct > 0 else "lower"

    return ControlAlert(
        line_id=line.id,
        kind=AlertKind.PRICE_VARIANCE,
        expected_value=negotiated_price,
        received_value=billed,
        deviation_pct=pct,
        message=(
            f"Billed price {_fmt(billed, 4)} {currency}/{unit} {direction} than negotiated price "
            f"{_fmt(negotiated_price, 4)} {currency}/{unit} ({_fmt(pct, 1, signed=True)}%). "
            f"Alert threshold: {_fmt(threshold_pct, 1)}%"
        ),
    )


# =============================================================================
# Engine
# =============================================================================

@dataclass
class ReconciliationReport:
    """Counts from one reconciliation pass.

    Attributes:
        note_id: Reconciled delivery note
        alert_count: Alerts raised by the pass
        alerts_by_kind: Raised alerts per AlertKind value
        lines_by_status: Lines per resulting ControlStatus value
        duration_ms: Wall time of the pass
    """
    note_id: Optional[int]
    alert_count: int = 0
    alerts_by_kind: Dict[str, int] = field(default_factory=dict)
    lines_by_status: Dict[str, int] = field(default_factory=dict)
    duration_ms: float = 0.0


class ReconciliationEngine:
    """
    Reconciles delivery notes against the negotiated price catalog.

    Usage:
        engine = ReconciliationEngine(SqlitePriceCatalog(db_path))
        with store.unit_of_work() as uow:
            report = engine.run(note, uow)
        record_reconciliation_completed(report.note_id, report.alert_count, ...)
    """

    def __init__(
        self,
        price_catalog: PriceCatalogLookup,
        clock: Callable[[], date] = date.today,
    ):
        """
        Initialize the engine.

        Args:
            price_catalog: Negotiated price lookup
            clock: Returns the date used when a note has no delivery date
        """
        self.price_catalog = price_catalog
        self.clock = clock

    def reconcile(self, note: DeliveryNote, unit_of_work: Optional[UnitOfWork] = None) -> int:
        """
        Run every check on every line of the note.

        Lines and the note are mutated in place; alert removals/creations and
        status changes are staged on the unit of work. The note becomes
        ANOMALY when at least one alert was raised, otherwise its status is
        left as is.

        Args:
            note: Delivery note with its lines loaded
            unit_of_work: Where writes are staged (a throwaway in-memory one
                when omitted)

        Returns:
            Number of alerts raised by this pass
        """
        return self.run(note, unit_of_work).alert_count

    def run(self, note: DeliveryNote, unit_of_work: Optional[UnitOfWork] = None) -> ReconciliationReport:
        """Same pass as reconcile(), returning the per-kind and per-status counts."""
        uow = unit_of_work if unit_of_work is not None else InMemoryUnitOfWork()
        start = time.perf_counter()

        with with_correlation(
            delivery_note_id=note.id,
            establishment_id=note.establishment_id,
            supplier_id=note.supplier_id,
            stage="reconciliation",
        ):
            logger.info("Reconciliation started", extra_fields={"line_count": note.line_count})

            alert_count = 0
            alerts_by_kind: Counter = Counter()
            lines_by_status: Counter = Counter()

            for line in note.lines:
                alerts = self.reconcile_line(line, note, uow)
                alert_count += len(alerts)
                alerts_by_kind.update(alert.kind.value for alert in alerts)
                lines_by_status[line.control_status.value] += 1

            if alert_count > 0:
                note.status = DeliveryNoteStatus.ANOMALY
                uow.update_note(note)

            duration_ms = (time.perf_counter() - start) * 1000

            logger.info(
                "Reconciliation finished",
                extra_fields={
                    "alert_count": alert_count,
                    "note_status": note.status.value,
                    "duration_ms": round(duration_ms, 2),
                },
            )

        return ReconciliationReport(
            note_id=note.id,
            alert_count=alert_count,
            alerts_by_kind=dict(alerts_by_kind),
            lines_by_status=dict(lines_by_status),
            duration_ms=duration_ms,
        )

    def reconcile_line(self, line: DeliveryLine, note: DeliveryNote, uow: UnitOfWork) -> List[ControlAlert]:
        """Check one line and return the alerts raised on it."""
        with with_correlation(line_id=line.id):
            self._purge_untreated_alerts(line, uow)

            alerts = self._run_checks(line, note)

            for alert in alerts:
                line.alerts.append(alert)
                uow.add_alert(alert)

            line.control_status = classify_line_status(alerts)
            uow.update_line(line)

            if alerts:
                logger.debug(
                    "Line has alerts",
                    extra_fields={
                        "kinds": [alert.kind.value for alert in alerts],
                        "control_status": line.control_status.value,
                    },
                )

        return alerts

    def _purge_untreated_alerts(self, line: DeliveryLine, uow: UnitOfWork) -> None:
        kept = []
        for alert in line.alerts:
            if alert.is_treated:
                kept.append(alert)
            else:
                uow.remove_alert(alert)
        line.alerts = kept

    def _run_checks(self, line: DeliveryLine, note: DeliveryNote) -> List[ControlAlert]:
        # 1. Unknown product
        unknown = check_unknown_product(line)
        if unknown is not None:
            return [unknown]

        alerts = []

        # 2. Quantity
        quantity_alert = check_quantity(line)
        if quantity_alert is not None:
            alerts.append(quantity_alert)

        # 3. Negotiated price
        on_date = note.delivery_date or self.clock()
        entry = self.price_catalog.resolve(line.supplier_product, note.establishment_id, on_date)
        if entry is None:
            alerts.append(missing_price_alert(line, on_date))
            return alerts

        # 4. Price variance
        price_alert = check_price(line, entry.negotiated_price, entry.alert_threshold_pct)
        if price_alert is not None:
            alerts.append(price_alert)

        return alerts
