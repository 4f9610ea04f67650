from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any


def to_price(value: Any) -> Decimal:
    """
    Coerce a backend or config price into a Decimal.
    Accepts numbers and currency-formatted strings such as "$1,234.50".
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"not a price: {value!r}")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        # str() keeps the shortest repr, avoiding binary float noise.
        return Decimal(str(value))
    if isinstance(value, str):
        cleaned = value.strip().replace(",", "").replace("$", "").replace("USD", "").strip()
        try:
            return Decimal(cleaned)
        except InvalidOperation as exc:
            raise ValueError(f"not a price: {value!r}") from exc
    raise ValueError(f"not a price: {value!r}")


def first_scalar(value: Any) -> Any:
    """
    Unwrap attribute values that the backend sometimes nests,
    e.g. ``["Ideal"]`` or ``{"value": "Ideal", "label": "Ideal Cut"}``.
    """
    while True:
        if isinstance(value, (list, tuple)):
            if not value:
                return None
            value = value[0]
            continue
        if isinstance(value, dict):
            for key in ("value", "name", "label"):
                if key in value:
                    value = value[key]
                    break
            else:
                return None
            continue
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value


def quantize_to_step(value: Decimal, step: Decimal) -> Decimal:
    """Snap a price down onto the grid defined by ``step``."""
    return (value // step) * step
