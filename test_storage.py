"""
Storage Tests

Delivery-note store round trips and atomic application of staged writes.
"""

import sqlite3
from datetime import date
from decimal import Decimal

import pytest

from models import AlertKind, AlertStatus, ControlAlert, ControlStatus, DeliveryNoteStatus
from reconciliation.engine import ReconciliationEngine
from storage.delivery_notes import DeliveryNoteNotFoundError
from storage.unit_of_work import InMemoryUnitOfWork


def count_rows(db_path, table):
    conn = sqlite3.connect(str(db_path))
    try:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    finally:
        conn.close()


class TestInMemoryUnitOfWork:
    """Staging without a database."""

    def test_removing_staged_alert_cancels_creation(self):
        uow = InMemoryUnitOfWork()
        alert = ControlAlert(kind=AlertKind.MISSING_PRICE, message="x")

        uow.add_alert(alert)
        uow.remove_alert(alert)

        assert uow.new_alerts == []
        assert uow.removed_alerts == []
        assert uow.is_empty

    def test_operations_are_deduplicated(self, make_line, make_note):
        uow = InMemoryUnitOfWork()
        line = make_line()
        note = make_note([line])

        uow.update_line(line)
        uow.update_line(line)
        uow.update_note(note)
        uow.update_note(note)

        assert len(uow.dirty_lines) == 1
        assert len(uow.dirty_notes) == 1
        uow.clear()
        assert uow.is_empty


class TestDeliveryNoteStore:
    """Loading and saving the note aggregate."""

    def test_create_and_load(self, store, tomatoes, make_line, make_note):
        note = make_note([
            make_line(tomatoes, ordered="10,000", delivered="8.000", price="2.50"),
            make_line(None, designation="Basilic botte", product_code=None, ordered=None, delivered="3"),
        ], order_number="CMD-881")

        store.create_delivery_note(note)
        loaded = store.get_delivery_note(note.id)

        assert loaded.number == "BL-2025-0042"
        assert loaded.order_number == "CMD-881"
        assert loaded.delivery_date == date(2025, 3, 14)
        assert loaded.status == DeliveryNoteStatus.DRAFT
        assert [line.position for line in loaded.lines] == [1, 2]

        first, second = loaded.lines
        assert first.id == note.lines[0].id
        assert first.ordered_quantity == Decimal("10.000")
        assert first.delivered_quantity == Decimal("8.000")
        assert first.unit_price == Decimal("2.50")
        assert first.supplier_product.supplier_designation == "Tomates grappe"
        assert first.control_status == ControlStatus.UNCONTROLLED
        assert second.supplier_product is None
        assert second.ordered_quantity is None

    def test_missing_note(self, store):
        with pytest.raises(DeliveryNoteNotFoundError) as exc_info:
            store.get_delivery_note(404)
        assert exc_info.value.note_id == 404

    def test_existing_alerts_are_inserted(self, store, make_line, make_note):
        alert = ControlAlert(kind=AlertKind.UNKNOWN_PRODUCT, message="Unreferenced product: Basilic (code: none)")
        note = store.create_delivery_note(make_note([make_line(alerts=[alert])]))

        loaded = store.get_delivery_note(note.id)

        assert alert.id is not None
        assert loaded.lines[0].alerts[0].message == alert.message
        assert loaded.lines[0].alerts[0].status == AlertStatus.NEW

    def test_save_alert_treatment(self, store, make_line, make_note):
        alert = ControlAlert(kind=AlertKind.MISSING_PRICE, message="No negotiated price")
        note = store.create_delivery_note(make_note([make_line(alerts=[alert])]))

        alert.treat("gerant@bistrot.fr", AlertStatus.REFUSED, "Avoir demandé")
        store.save_alert_treatment(alert)

        reloaded = store.get_delivery_note(note.id).lines[0].alerts[0]
        assert reloaded.status == AlertStatus.REFUSED
        assert reloaded.treated_by == "gerant@bistrot.fr"
        assert reloaded.comment == "Avoir demandé"
        assert reloaded.treated_at is not None
        assert reloaded.is_treated

    def test_save_treatment_requires_persisted_alert(self, store):
        with pytest.raises(ValueError):
            store.save_alert_treatment(ControlAlert(kind=AlertKind.MISSING_PRICE, message="x"))


class TestStoreUnitOfWork:
    """Reconciliation writes applied through the store."""

    def test_reconciliation_is_persisted(self, store, catalog, tomatoes, negotiated_price, make_line, make_note):
        negotiated_price("3.00")
        note = store.create_delivery_note(make_note([
            make_line(tomatoes, ordered="10", delivered="8", price="4.00"),
        ]))
        note = store.get_delivery_note(note.id)

        with store.unit_of_work() as uow:
            ReconciliationEngine(catalog).reconcile(note, uow)

        loaded = store.get_delivery_note(note.id)
        assert loaded.status == DeliveryNoteStatus.ANOMALY
        assert loaded.lines[0].control_status == ControlStatus.MULTIPLE_VARIANCE
        assert [a.kind for a in loaded.lines[0].alerts] == [AlertKind.QUANTITY_VARIANCE, AlertKind.PRICE_VARIANCE]
        assert loaded.lines[0].alerts[1].deviation_pct == Decimal("33.33")
        assert all(a.id is not None for a in note.lines[0].alerts)

    def test_rerun_replaces_untreated_and_keeps_treated(self, store, catalog, tomatoes, make_line, make_note):
        note = store.create_delivery_note(make_note([make_line(tomatoes, ordered="10", delivered="8")]))
        engine = ReconciliationEngine(catalog)

        with store.unit_of_work() as uow:
            engine.reconcile(store.get_delivery_note(note.id), uow)
        assert count_rows(store.db_path, "control_alert") == 2

        first_pass = store.get_delivery_note(note.id)
        quantity_alert = first_pass.lines[0].alerts[0]
        quantity_alert.treat("chef", AlertStatus.ACCEPTED)
        store.save_alert_treatment(quantity_alert)

        with store.unit_of_work() as uow:
            engine.reconcile(store.get_delivery_note(note.id), uow)

        alerts = store.get_delivery_note(note.id).lines[0].alerts
        assert count_rows(store.db_path, "control_alert") == 3
        assert alerts[0].id == quantity_alert.id
        assert alerts[0].status == AlertStatus.ACCEPTED
        assert sorted(a.kind.value for a in alerts if not a.is_treated) == ["MISSING_PRICE", "QUANTITY_VARIANCE"]

    def test_nothing_written_when_block_raises(self, store, catalog, tomatoes, make_line, make_note):
        note = store.create_delivery_note(make_note([make_line(tomatoes, ordered="10", delivered="8")]))
        loaded = store.get_delivery_note(note.id)

        with pytest.raises(RuntimeError):
            with store.unit_of_work() as uow:
                ReconciliationEngine(catalog).reconcile(loaded, uow)
                raise RuntimeError("notification service down")

        assert count_rows(store.db_path, "control_alert") == 0
        assert store.get_delivery_note(note.id).status == DeliveryNoteStatus.DRAFT
