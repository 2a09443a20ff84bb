"""SQLite store for delivery notes, lines and control alerts.

Loads the full note aggregate (lines, linked catalog products, alerts) and
applies reconciliation writes staged on a unit of work in a single
transaction.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from core import config
from core.observability.logging import get_logger
from models.catalog import SupplierProduct
from models.delivery import ControlAlert, DeliveryLine, DeliveryNote
from price_catalog import db as catalog_db
from storage.unit_of_work import InMemoryUnitOfWork

logger = get_logger(__name__)


class DeliveryNoteNotFoundError(Exception):
    """Raised when no delivery note exists for an ID."""

    def __init__(self, note_id: int):
        super().__init__(f"Delivery note {note_id} not found")
        self.note_id = note_id


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _text(value) -> Optional[str]:
    return str(value) if value is not None else None


class SqliteUnitOfWork(InMemoryUnitOfWork):
    """Unit of work whose staged writes are applied by a DeliveryNoteStore."""

    def apply(self, conn: sqlite3.Connection) -> None:
        """Write every staged operation on the given connection (no commit)."""
        cursor = conn.cursor()

        for alert in self.removed_alerts:
            if alert.id is not None:
                cursor.execute("DELETE FROM control_alert WHERE id = ?", (alert.id,))

        for line in self.dirty_lines:
            cursor.execute(
                "UPDATE delivery_line SET control_status = ? WHERE id = ?",
                (line.control_status.value, line.id),
            )

        for note in self.dirty_notes:
            cursor.execute("""
                UPDATE delivery_note
                SET status = ?, validated_at = ?, validated_by = ?, total_excl_tax = ?,
                    updated_at = ?
                WHERE id = ?
            """, (
                note.status.value,
                _iso(note.validated_at),
                note.validated_by,
                _text(note.total_excl_tax),
                datetime.now(timezone.utc).isoformat(),
                note.id,
            ))

        for alert in self.new_alerts:
            if alert.line_id is None:
                raise ValueError(f"Cannot persist {alert.kind.value} alert without a line")
            alert.id = _insert_alert(cursor, alert)


def _insert_alert(cursor: sqlite3.Cursor, alert: ControlAlert) -> int:
    cursor.execute("""
        INSERT INTO control_alert
        (line_id, kind, message, expected_value, received_value, deviation_pct,
         status, comment, created_at, treated_at, treated_by)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, (
        alert.line_id,
        alert.kind.value,
        alert.message,
        _text(alert.expected_value),
        _text(alert.received_value),
        _text(alert.deviation_pct),
        alert.status.value,
        alert.comment,
        _iso(alert.created_at),
        _iso(alert.treated_at),
        alert.treated_by,
    ))
    return cursor.lastrowid


class DeliveryNoteStore:
    """
    Persistence gateway for delivery notes.

    Usage:
        store = DeliveryNoteStore(db_path)
        note = store.get_delivery_note(42)
        with store.unit_of_work() as uow:
            engine.reconcile(note, uow)
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = db_path or config.DB_PATH
        self.init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def init_db(self) -> None:
        """Create the delivery-note tables (and the catalog tables they reference)."""
        catalog_db.init_price_catalog_db(self.db_path)

        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS delivery_note (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    number TEXT,
                    order_number TEXT,
                    establishment_id INTEGER,
                    supplier_id INTEGER,
                    delivery_date TEXT,
                    status TEXT NOT NULL DEFAULT 'DRAFT'
                        CHECK(status IN ('DRAFT', 'VALIDATED', 'ANOMALY', 'ARCHIVED')),
                    total_excl_tax TEXT,
                    validated_at TEXT,
                    validated_by TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS delivery_line (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    note_id INTEGER NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0,
                    product_code TEXT,
                    designation TEXT NOT NULL,
                    ordered_quantity TEXT,
                    delivered_quantity TEXT NOT NULL,
                    unit_price TEXT NOT NULL,
                    line_total TEXT,
                    unit TEXT,
                    control_status TEXT NOT NULL DEFAULT 'UNCONTROLLED',
                    supplier_product_id INTEGER,
                    FOREIGN KEY (note_id) REFERENCES delivery_note(id) ON DELETE CASCADE,
                    FOREIGN KEY (supplier_product_id) REFERENCES supplier_product(id)
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS control_alert (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    line_id INTEGER NOT NULL,
                    kind TEXT NOT NULL,
                    message TEXT NOT NULL,
                    expected_value TEXT,
                    received_value TEXT,
                    deviation_pct TEXT,
                    status TEXT NOT NULL DEFAULT 'NEW',
                    comment TEXT,
                    created_at TEXT NOT NULL,
                    treated_at TEXT,
                    treated_by TEXT,
                    FOREIGN KEY (line_id) REFERENCES delivery_line(id) ON DELETE CASCADE
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_delivery_line_note ON delivery_line(note_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_control_alert_line ON control_alert(line_id)")
            conn.commit()
        finally:
            conn.close()

    # =========================================================================
    # Catalog products
    # =========================================================================

    def add_supplier_product(self, product: SupplierProduct) -> SupplierProduct:
        return catalog_db.add_supplier_product(product, self.db_path)

    def get_supplier_product(self, product_id: int) -> Optional[SupplierProduct]:
        return catalog_db.get_supplier_product(product_id, self.db_path)

    # =========================================================================
    # Delivery notes
    # =========================================================================

    def create_delivery_note(self, note: DeliveryNote) -> DeliveryNote:
        """
        Insert a note with its lines and any alerts they already carry.

        IDs are assigned in place on the note, lines and alerts.
        """
        now = datetime.now(timezone.utc).isoformat()
        conn = self._connect()
        try:
            with conn:
                cursor = conn.cursor()
                cursor.execute("""
                    INSERT INTO delivery_note
                    (number, order_number, establishment_id, supplier_id, delivery_date,
                     status, total_excl_tax, validated_at, validated_by, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    note.number,
                    note.order_number,
                    note.establishment_id,
                    note.supplier_id,
                    _iso(note.delivery_date),
                    note.status.value,
                    _text(note.total_excl_tax),
                    _iso(note.validated_at),
                    note.validated_by,
                    now,
                    now,
                ))
                note.id = cursor.lastrowid

                for position, line in enumerate(note.lines, start=1):
                    if not line.position:
                        line.position = position
                    line.note_id = note.id
                    cursor.execute("""
                        INSERT INTO delivery_line
                        (note_id, position, product_code, designation, ordered_quantity,
                         delivered_quantity, unit_price, line_total, unit, control_status,
                         supplier_product_id)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """, (
                        note.id,
                        line.position,
                        line.product_code,
                        line.designation,
                        _text(line.ordered_quantity),
                        str(line.delivered_quantity),
                        str(line.unit_price),
                        _text(line.line_total),
                        line.unit,
                        line.control_status.value,
                        line.supplier_product.id if line.supplier_product else None,
                    ))
                    line.id = cursor.lastrowid

                    for alert in line.alerts:
                        alert.line_id = line.id
                        alert.id = _insert_alert(cursor, alert)
        finally:
            conn.close()

        logger.debug(
            "Delivery note created",
            extra_fields={"delivery_note_id": note.id, "line_count": note.line_count},
        )
        return note

    def get_delivery_note(self, note_id: int) -> DeliveryNote:
        """
        Load a note with its lines, linked catalog products and alerts.

        Raises:
            DeliveryNoteNotFoundError: If the note does not exist
        """
        conn = self._connect()
        try:
            note_row = conn.execute("SELECT * FROM delivery_note WHERE id = ?", (note_id,)).fetchone()
            if note_row is None:
                raise DeliveryNoteNotFoundError(note_id)

            line_rows = conn.execute("""
                SELECT l.*,
                       sp.supplier_id AS sp_supplier_id,
                       sp.code AS sp_code,
                       sp.supplier_designation AS sp_supplier_designation,
                       sp.unit AS sp_unit
                FROM delivery_line l
                LEFT JOIN supplier_product sp ON sp.id = l.supplier_product_id
                WHERE l.note_id = ?
                ORDER BY l.position, l.id
            """, (note_id,)).fetchall()

            alert_rows = conn.execute("""
                SELECT a.* FROM control_alert a
                JOIN delivery_line l ON l.id = a.line_id
                WHERE l.note_id = ?
                ORDER BY a.id
            """, (note_id,)).fetchall()
        finally:
            conn.close()

        alerts_by_line = {}
        for row in alert_rows:
            alerts_by_line.setdefault(row["line_id"], []).append(_row_to_alert(row))

        lines = [
            _row_to_line(row, alerts_by_line.get(row["id"], []))
            for row in line_rows
        ]

        return DeliveryNote(
            id=note_row["id"],
            number=note_row["number"],
            order_number=note_row["order_number"],
            establishment_id=note_row["establishment_id"],
            supplier_id=note_row["supplier_id"],
            delivery_date=note_row["delivery_date"],
            status=note_row["status"],
            total_excl_tax=note_row["total_excl_tax"],
            validated_at=note_row["validated_at"],
            validated_by=note_row["validated_by"],
            lines=lines,
        )

    def save_alert_treatment(self, alert: ControlAlert) -> None:
        """Persist a reviewer decision recorded with ControlAlert.treat()."""
        if alert.id is None:
            raise ValueError("Cannot save treatment of an alert that was never persisted")

        conn = self._connect()
        try:
            with conn:
                conn.execute("""
                    UPDATE control_alert
                    SET status = ?, comment = ?, treated_at = ?, treated_by = ?
                    WHERE id = ?
                """, (
                    alert.status.value,
                    alert.comment,
                    _iso(alert.treated_at),
                    alert.treated_by,
                    alert.id,
                ))
        finally:
            conn.close()

    @contextmanager
    def unit_of_work(self) -> Iterator[SqliteUnitOfWork]:
        """
        Stage writes and apply them in one transaction on normal exit.

        If the block raises, nothing is written and the exception propagates.
        """
        uow = SqliteUnitOfWork()
        yield uow

        conn = self._connect()
        try:
            with conn:
                uow.apply(conn)
        finally:
            conn.close()

        logger.debug(
            "Unit of work committed",
            extra_fields={
                "alerts_created": len(uow.new_alerts),
                "alerts_removed": len(uow.removed_alerts),
                "lines_updated": len(uow.dirty_lines),
                "notes_updated": len(uow.dirty_notes),
            },
        )


def _row_to_line(row: sqlite3.Row, alerts) -> DeliveryLine:
    product = None
    if row["supplier_product_id"] is not None:
        product = SupplierProduct(
            id=row["supplier_product_id"],
            supplier_id=row["sp_supplier_id"],
            code=row["sp_code"],
            supplier_designation=row["sp_supplier_designation"],
            unit=row["sp_unit"],
        )

    return DeliveryLine(
        id=row["id"],
        note_id=row["note_id"],
        position=row["position"],
        product_code=row["product_code"],
        designation=row["designation"],
        ordered_quantity=row["ordered_quantity"],
        delivered_quantity=row["delivered_quantity"],
        unit_price=row["unit_price"],
        line_total=row["line_total"],
        unit=row["unit"],
        control_status=row["control_status"],
        supplier_product=product,
        alerts=alerts,
    )


def _row_to_alert(row: sqlite3.Row) -> ControlAlert:
    return ControlAlert(
        id=row["id"],
        line_id=row["line_id"],
        kind=row["kind"],
        message=row["message"],
        expected_value=row["expected_value"],
        received_value=row["received_value"],
        deviation_pct=row["deviation_pct"],
        status=row["status"],
        comment=row["comment"],
        created_at=row["created_at"],
        treated_at=row["treated_at"],
        treated_by=row["treated_by"],
    )
