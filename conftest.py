"""Shared pytest fixtures: temporary database, seeded catalog, note factory, recording catalog."""

from datetime import date
from decimal import Decimal

import pytest

from core.observability.metrics import MetricsCollector
from models import DeliveryLine, DeliveryNote, PriceEntry, SupplierProduct
from price_catalog import add_price_entry
from price_catalog.lookup import PriceCatalogLookup, SqlitePriceCatalog
from storage.delivery_notes import DeliveryNoteStore


DELIVERY_DATE = date(2025, 3, 14)
ESTABLISHMENT_ID = 3
SUPPLIER_ID = 7


class RecordingCatalog(PriceCatalogLookup):
    """Catalog keyed by establishment scope (None = group) that records queries."""

    def __init__(self, prices=None):
        self.prices = prices or {}
        self.calls = []

    def find_valid_price(self, supplier_product_id, establishment_id, on_date):
        self.calls.append((supplier_product_id, establishment_id, on_date))
        return self.prices.get(establishment_id)


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with empty counters."""
    MetricsCollector.instance().reset()
    yield
    MetricsCollector.instance().reset()


@pytest.fixture
def temp_db(tmp_path):
    """Path to an empty SQLite database file."""
    return tmp_path / "delivery_control_test.db"


@pytest.fixture
def store(temp_db):
    return DeliveryNoteStore(temp_db)


@pytest.fixture
def catalog(temp_db):
    return SqlitePriceCatalog(temp_db)


@pytest.fixture
def tomatoes(store):
    """Catalog product sold per kg."""
    return store.add_supplier_product(SupplierProduct(
        supplier_id=SUPPLIER_ID,
        code="TOM-01",
        supplier_designation="Tomates grappe",
        unit="kg",
    ))


@pytest.fixture
def negotiated_price(temp_db, tomatoes):
    """Add a negotiated price for the tomatoes and return it."""
    def _add(price, establishment_id=None, start=date(2025, 1, 1), end=None, threshold="5.00"):
        return add_price_entry(PriceEntry(
            supplier_product_id=tomatoes.id,
            establishment_id=establishment_id,
            negotiated_price=Decimal(str(price)),
            start_date=start,
            end_date=end,
            alert_threshold_pct=Decimal(threshold),
        ), temp_db)
    return _add


@pytest.fixture
def make_line():
    """Build a delivery line with sensible defaults."""
    def _make(product=None, ordered="10.000", delivered="10.000", price="2.50", **kwargs):
        kwargs.setdefault("designation", product.supplier_designation if product else "Produit inconnu")
        kwargs.setdefault("product_code", product.code if product else None)
        kwargs.setdefault("unit", "kg")
        return DeliveryLine(
            ordered_quantity=ordered,
            delivered_quantity=delivered,
            unit_price=price,
            supplier_product=product,
            **kwargs,
        )
    return _make


@pytest.fixture
def make_note():
    """Build a DRAFT delivery note for the default establishment."""
    def _make(lines, **kwargs):
        kwargs.setdefault("number", "BL-2025-0042")
        kwargs.setdefault("establishment_id", ESTABLISHMENT_ID)
        kwargs.setdefault("supplier_id", SUPPLIER_ID)
        kwargs.setdefault("delivery_date", DELIVERY_DATE)
        return DeliveryNote(lines=lines, **kwargs)
    return _make
