"""Models Package.

Data models for delivery-note reconciliation:
- Delivery notes, lines and control alerts
- Catalog supplier products and negotiated price entries
- Decimal/date parsers tolerant of French formatting
"""

from models.catalog import (
    SupplierProduct,
    PriceEntry,
)

from models.delivery import (
    DeliveryNote,
    DeliveryLine,
    ControlAlert,
    DeliveryNoteStatus,
    ControlStatus,
    AlertKind,
    AlertStatus,
)

from models.values import (
    DecimalValue,
    DateValue,
    parse_decimal,
    parse_date,
)

__all__ = [
    # Catalog
    "SupplierProduct",
    "PriceEntry",

    # Delivery notes
    "DeliveryNote",
    "DeliveryLine",
    "ControlAlert",

    # Enums
    "DeliveryNoteStatus",
    "ControlStatus",
    "AlertKind",
    "AlertStatus",

    # Parsers
    "DecimalValue",
    "DateValue",
    "parse_decimal",
    "parse_date",
]
