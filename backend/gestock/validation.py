from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .errors import ValidationError


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

LINE_TYPE_PRODUCT = "PRODUCT"
LINE_TYPE_SERVICE = "SERVICE"
LINE_TYPES = (LINE_TYPE_PRODUCT, LINE_TYPE_SERVICE)


def require_fields(data: Any, *fields: str) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(
            f"Missing required field(s): {', '.join(missing)}",
            {"missing": missing},
        )
    return data


def coerce_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """
    Strict integer coercion.

    Accepts ints and plain digit strings. Rejects bools, floats, decimals
    and scientific notation instead of silently truncating them.
    """
    if value is None:
        raise ValidationError(f"{field} is required", {"field": field})

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", {"field": field})

    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", {"field": field})
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", {"field": field})
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(
                f"{field} must be a plain integer (scientific notation not allowed)",
                {"field": field},
            )
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", {"field": field})
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", {"field": field})
    else:
        raise ValidationError(f"{field} must be an integer", {"field": field})

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", {"field": field, "value": result})
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} must be <= {maximum}", {"field": field, "value": result})
    return result


def coerce_positive_int(value: Any, field: str) -> int:
    return coerce_int(value, field, minimum=1)


def coerce_price_cents(value: Any, field: str) -> int:
    return coerce_int(value, field, minimum=0, maximum=MAX_PRICE_CENTS)


def coerce_bool(value: Any, field: str) -> bool:
    """Strict boolean: only JSON true/false, never strings such as "false"."""
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false", {"field": field, "value": value})
    return value


def coerce_choice(value: Any, field: str, choices) -> str:
    if not isinstance(value, str) or value.strip().upper() not in choices:
        raise ValidationError(
            f"{field} must be one of: {', '.join(choices)}",
            {"field": field, "value": value},
        )
    return value.strip().upper()


def coerce_text(value: Any, field: str, *, max_length: int = 255, required: bool = True) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required", {"field": field})
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", {"field": field})
    stripped = value.strip()
    if len(stripped) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", {"field": field})
    return stripped


@dataclass(frozen=True)
class SaleLineInput:
    """
    One requested sale line.

    kind selects which catalog table ref_id points into: PRODUCT lines
    reference a StockItem, SERVICE lines reference a Service. A line never
    references both.
    """
    kind: str
    ref_id: str
    quantity: int
    unit_price_cents: int | None = None
    name: str | None = None

    @property
    def is_product(self) -> bool:
        return self.kind == LINE_TYPE_PRODUCT


@dataclass(frozen=True)
class DeliveryLineInput:
    item_id: str
    quantity: int


def parse_sale_lines(raw: Any) -> list[SaleLineInput]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("items must be a non-empty list")

    lines = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{index}] must be an object")
        kind = coerce_choice(entry.get("type", LINE_TYPE_PRODUCT), f"items[{index}].type", LINE_TYPES)
        ref_id = entry.get("product_id")
        if not ref_id or not isinstance(ref_id, str):
            raise ValidationError(f"items[{index}].product_id is required", {"index": index})
        quantity = coerce_positive_int(entry.get("quantity"), f"items[{index}].quantity")
        price = entry.get("unit_price_cents")
        unit_price_cents = None if price is None else coerce_price_cents(price, f"items[{index}].unit_price_cents")
        name = coerce_text(entry.get("name"), f"items[{index}].name", required=False)
        lines.append(SaleLineInput(kind, ref_id, quantity, unit_price_cents, name))
    return lines


def parse_delivery_lines(raw: Any) -> list[DeliveryLineInput]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("items must be a non-empty list")

    lines = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{index}] must be an object")
        item_id = entry.get("item_id")
        if not item_id or not isinstance(item_id, str):
            raise ValidationError(f"items[{index}].item_id is required", {"index": index})
        quantity = coerce_positive_int(entry.get("qty_to_deliver"), f"items[{index}].qty_to_deliver")
        lines.append(DeliveryLineInput(item_id, quantity))
    return lines


def parse_return_map(raw: Any) -> dict[str, int]:
    """Map of sale item id -> quantity the operator wants back on the shelf."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError("return_to_stock must be an object keyed by sale item id")
    return {
        str(item_id): coerce_int(qty, f"return_to_stock[{item_id}]", minimum=0)
        for item_id, qty in raw.items()
    }
