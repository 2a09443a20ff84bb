"""
Negotiated Price Lookup

Resolves the price that applies to a catalog product for an establishment
on a date:
1. Price scoped to the establishment (when the note has one)
2. Group price (establishment_id IS NULL)

The establishment price wins outright when it exists, whichever of the two
is more favorable. Prices are never merged or averaged.
"""

from abc import ABC, abstractmethod
from datetime import date
from pathlib import Path
from typing import Optional

from core.observability.logging import get_logger
from models.catalog import PriceEntry, SupplierProduct
from price_catalog import db

logger = get_logger(__name__)


class PriceCatalogLookup(ABC):
    """Source of negotiated prices used by the reconciliation engine."""

    @abstractmethod
    def find_valid_price(
        self,
        supplier_product_id: int,
        establishment_id: Optional[int],
        on_date: date,
    ) -> Optional[PriceEntry]:
        """Price valid on the date for exactly this scope (None = group only)."""

    def resolve(
        self,
        product: SupplierProduct,
        establishment_id: Optional[int],
        on_date: date,
    ) -> Optional[PriceEntry]:
        """
        Find the applicable negotiated price.

        Args:
            product: Catalog product of the delivery line
            establishment_id: Receiving establishment, if known
            on_date: Delivery date

        Returns:
            PriceEntry if found, None otherwise
        """
        # 1. Establishment price
        if establishment_id is not None:
            entry = self.find_valid_price(product.id, establishment_id, on_date)
            if entry is not None:
                logger.debug(
                    "Establishment price found",
                    extra_fields={"supplier_product_id": product.id, "price_entry_id": entry.id},
                )
                return entry

        # 2. Group price
        entry = self.find_valid_price(product.id, None, on_date)
        if entry is not None:
            logger.debug(
                "Group price found",
                extra_fields={"supplier_product_id": product.id, "price_entry_id": entry.id},
            )
        return entry


class SqlitePriceCatalog(PriceCatalogLookup):
    """Price lookup backed by the price_entry table."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = db_path
        db.init_price_catalog_db(db_path)

    def find_valid_price(
        self,
        supplier_product_id: int,
        establishment_id: Optional[int],
        on_date: date,
    ) -> Optional[PriceEntry]:
        return db.find_valid_price(supplier_product_id, establishment_id, on_date, self.db_path)
