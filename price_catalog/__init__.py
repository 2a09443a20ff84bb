"""
Price Catalog Module

Negotiated prices (mercuriale) per supplier product, scoped to an
establishment or to the whole group, and the lookup rule the
reconciliation engine relies on.
"""

from .lookup import PriceCatalogLookup, SqlitePriceCatalog
from .db import (
    init_price_catalog_db,
    add_supplier_product,
    get_supplier_product,
    add_price_entry,
    get_price_entry,
    find_valid_price,
    list_prices_for_establishment,
    count_active_prices,
)

__all__ = [
    "PriceCatalogLookup",
    "SqlitePriceCatalog",
    "init_price_catalog_db",
    "add_supplier_product",
    "get_supplier_product",
    "add_price_entry",
    "get_price_entry",
    "find_valid_price",
    "list_prices_for_establishment",
    "count_active_prices",
]
