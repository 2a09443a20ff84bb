"""Value parsers shared by the domain models.

Delivery notes arrive from extraction and imports with French number
formatting ("2,50", "1 250,000", "3,00 €"), so decimals are parsed here
instead of relying on Decimal(str) alone.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


def parse_decimal(value):
    """Parse decimal from various formats (strings with € or spaces, decimal comma, floats)."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Cannot parse decimal: {value!r}")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        s = s.replace("€", "").replace("\u00a0", "").replace("\u202f", "").replace(" ", "")
        if "," in s and "." in s:
            # "1.250,50" or "1,250.50": the last separator is the decimal one
            if s.rfind(",") > s.rfind("."):
                s = s.replace(".", "").replace(",", ".")
            else:
                s = s.replace(",", "")
        else:
            s = s.replace(",", ".")
        if s.startswith("(") and s.endswith(")"):
            s = "-" + s[1:-1]
        try:
            return Decimal(s)
        except InvalidOperation:
            raise ValueError(f"Cannot parse decimal: {value!r}")
    return value


def parse_date(value):
    """Parse date from ISO or French (dd/mm/YYYY) strings."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y"):
            try:
                return datetime.strptime(s, fmt).date()
            except ValueError:
                continue
        raise ValueError(f"Cannot parse date: {s}")
    return value


DecimalValue = Annotated[Decimal, BeforeValidator(parse_decimal)]
DateValue = Annotated[date, BeforeValidator(parse_date)]
