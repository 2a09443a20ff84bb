"""Catalog models: supplier products and negotiated prices (mercuriale)."""

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from core import config
from models.values import DateValue, DecimalValue


class CatalogBase(BaseModel):
    """Base model for catalog records."""
    model_config = ConfigDict(populate_by_name=True)


class SupplierProduct(CatalogBase):
    """A product as referenced in a supplier's catalog.

    Attributes:
        id: Database ID
        supplier_id: Supplier offering the product
        code: Supplier product code
        supplier_designation: Product name as the supplier writes it
        unit: Unit code (kg, L, pc...)
    """
    id: Optional[int] = None
    supplier_id: Optional[int] = None
    code: Optional[str] = None
    supplier_designation: str
    unit: Optional[str] = None


class PriceEntry(CatalogBase):
    """A negotiated price for a supplier product.

    A price is either scoped to one establishment or, when establishment_id
    is None, applies to the whole group. It is valid from start_date
    (inclusive) to end_date (inclusive, None = open ended).
    """
    id: Optional[int] = None
    supplier_product_id: int
    establishment_id: Optional[int] = None
    negotiated_price: DecimalValue
    start_date: DateValue
    end_date: Optional[DateValue] = None
    alert_threshold_pct: DecimalValue = Field(default_factory=lambda: config.DEFAULT_ALERT_THRESHOLD_PCT)
    notes: Optional[str] = None

    @property
    def is_group_price(self) -> bool:
        return self.establishment_id is None

    def is_active(self, on_date: Optional[date] = None) -> bool:
        """Whether the price applies on the given date (today by default)."""
        on_date = on_date or date.today()
        if self.start_date > on_date:
            return False
        if self.end_date is not None and self.end_date < on_date:
            return False
        return True
