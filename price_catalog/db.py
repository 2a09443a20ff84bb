"""
Price Catalog Database

Creates and manages the catalog tables:
- supplier_product: products referenced in supplier catalogs
- price_entry: negotiated prices (mercuriale), scoped to one establishment
  or group-wide (establishment_id IS NULL), with a validity window and an
  alert threshold

Decimals are stored as TEXT and dates as ISO strings, so date comparisons in
SQL are plain string comparisons.
"""

import sqlite3
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import List, Optional

from core import config
from core.observability.logging import get_logger
from models.catalog import PriceEntry, SupplierProduct

logger = get_logger(__name__)


def get_db_connection(db_path: Optional[Path] = None) -> sqlite3.Connection:
    """Get database connection with row factory"""
    conn = sqlite3.connect(str(db_path or config.DB_PATH))
    conn.row_factory = sqlite3.Row
    return conn


def init_price_catalog_db(db_path: Optional[Path] = None) -> None:
    """
    Initialize the price catalog tables.

    Creates:
    - supplier_product: Catalog products
    - price_entry: Negotiated prices per product and scope
    """
    conn = get_db_connection(db_path)
    try:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS supplier_product (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                supplier_id INTEGER,
                code TEXT,
                supplier_designation TEXT NOT NULL,
                unit TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS price_entry (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                supplier_product_id INTEGER NOT NULL,
                establishment_id INTEGER,
                negotiated_price TEXT NOT NULL,
                start_date TEXT NOT NULL,
                end_date TEXT,
                alert_threshold_pct TEXT NOT NULL DEFAULT '5.00',
                notes TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

                FOREIGN KEY (supplier_product_id) REFERENCES supplier_product(id)
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_price_entry_lookup
            ON price_entry(supplier_product_id, establishment_id, start_date)
        """)

        conn.commit()
    finally:
        conn.close()

    logger.debug("Price catalog tables initialized")


# =============================================================================
# Supplier Product CRUD Operations
# =============================================================================

def add_supplier_product(product: SupplierProduct, db_path: Optional[Path] = None) -> SupplierProduct:
    """Insert a catalog product and return it with its ID."""
    conn = get_db_connection(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO supplier_product (supplier_id, code, supplier_designation, unit)
            VALUES (?, ?, ?, ?)
        """, (
            product.supplier_id,
            product.code,
            product.supplier_designation,
            product.unit,
        ))
        product.id = cursor.lastrowid
        conn.commit()
    finally:
        conn.close()

    return product


def get_supplier_product(product_id: int, db_path: Optional[Path] = None) -> Optional[SupplierProduct]:
    """Get a catalog product by ID."""
    conn = get_db_connection(db_path)
    try:
        row = conn.execute(
            "SELECT * FROM supplier_product WHERE id = ?", (product_id,)
        ).fetchone()
    finally:
        conn.close()

    return row_to_supplier_product(row) if row else None


def row_to_supplier_product(row: sqlite3.Row) -> SupplierProduct:
    return SupplierProduct(
        id=row["id"],
        supplier_id=row["supplier_id"],
        code=row["code"],
        supplier_designation=row["supplier_designation"],
        unit=row["unit"],
    )


# =============================================================================
# Price Entry CRUD Operations
# =============================================================================

def add_price_entry(entry: PriceEntry, db_path: Optional[Path] = None) -> PriceEntry:
    """
    Add a negotiated price.

    Args:
        entry: PriceEntry to add

    Returns:
        PriceEntry with its ID
    """
    conn = get_db_connection(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO price_entry
            (supplier_product_id, establishment_id, negotiated_price, start_date,
             end_date, alert_threshold_pct, notes)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            entry.supplier_product_id,
            entry.establishment_id,
            str(entry.negotiated_price),
            entry.start_date.isoformat(),
            entry.end_date.isoformat() if entry.end_date else None,
            str(entry.alert_threshold_pct),
            entry.notes,
        ))
        entry.id = cursor.lastrowid
        conn.commit()
    finally:
        conn.close()

    return entry


def get_price_entry(entry_id: int, db_path: Optional[Path] = None) -> Optional[PriceEntry]:
    """Get a price entry by ID."""
    conn = get_db_connection(db_path)
    try:
        row = conn.execute("SELECT * FROM price_entry WHERE id = ?", (entry_id,)).fetchone()
    finally:
        conn.close()

    return _row_to_price_entry(row) if row else None


def find_valid_price(
    supplier_product_id: int,
    establishment_id: Optional[int],
    on_date: date,
    db_path: Optional[Path] = None,
) -> Optional[PriceEntry]:
    """
    Find the price valid on a date for exactly one scope.

    With an establishment, only prices scoped to that establishment are
    considered; with None, only group prices. When several entries of the
    scope are valid, the most recently started one wins.

    Args:
        supplier_product_id: Catalog product
        establishment_id: Establishment scope, or None for group prices
        on_date: Date the price must be valid on

    Returns:
        PriceEntry if found, None otherwise
    """
    day = on_date.isoformat()
    params: list = [supplier_product_id, day, day]

    if establishment_id is not None:
        scope_clause = "establishment_id = ?"
        params.append(establishment_id)
    else:
        scope_clause = "establishment_id IS NULL"

    conn = get_db_connection(db_path)
    try:
        row = conn.execute(f"""
            SELECT * FROM price_entry
            WHERE supplier_product_id = ?
              AND start_date <= ?
              AND (end_date IS NULL OR end_date >= ?)
              AND {scope_clause}
            ORDER BY start_date DESC, id DESC
            LIMIT 1
        """, params).fetchone()
    finally:
        conn.close()

    return _row_to_price_entry(row) if row else None


def list_prices_for_establishment(
    establishment_id: Optional[int] = None,
    db_path: Optional[Path] = None,
) -> List[PriceEntry]:
    """
    List the prices visible to an establishment.

    Returns the establishment's own prices plus the group prices, ordered by
    product designation. With None, every price is returned.
    """
    conn = get_db_connection(db_path)
    try:
        if establishment_id is not None:
            rows = conn.execute("""
                SELECT pe.* FROM price_entry pe
                JOIN supplier_product sp ON sp.id = pe.supplier_product_id
                WHERE pe.establishment_id = ? OR pe.establishment_id IS NULL
                ORDER BY sp.supplier_designation ASC, pe.start_date DESC
            """, (establishment_id,)).fetchall()
        else:
            rows = conn.execute("""
                SELECT pe.* FROM price_entry pe
                JOIN supplier_product sp ON sp.id = pe.supplier_product_id
                ORDER BY sp.supplier_designation ASC, pe.start_date DESC
            """).fetchall()
    finally:
        conn.close()

    return [_row_to_price_entry(row) for row in rows]


def count_active_prices(on_date: Optional[date] = None, db_path: Optional[Path] = None) -> int:
    """Count price entries valid on a date (today by default)."""
    day = (on_date or date.today()).isoformat()
    conn = get_db_connection(db_path)
    try:
        row = conn.execute("""
            SELECT COUNT(*) FROM price_entry
            WHERE start_date <= ? AND (end_date IS NULL OR end_date >= ?)
        """, (day, day)).fetchone()
    finally:
        conn.close()

    return row[0]


def _row_to_price_entry(row: sqlite3.Row) -> PriceEntry:
    """Convert database row to PriceEntry"""
    return PriceEntry(
        id=row["id"],
        supplier_product_id=row["supplier_product_id"],
        establishment_id=row["establishment_id"],
        negotiated_price=Decimal(row["negotiated_price"]),
        start_date=row["start_date"],
        end_date=row["end_date"],
        alert_threshold_pct=Decimal(row["alert_threshold_pct"]),
        notes=row["notes"],
    )
