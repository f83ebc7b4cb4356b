"""
Request payload coercion for the JSON API.

Routes pass raw JSON through these helpers before calling the engine, so the
services only ever see integers where they expect integers. Problems are
raised as the same ValidationError the services use, which keeps a single
400 path in the routes.
"""
from __future__ import annotations

from typing import Any, Iterable

from .services.errors import ValidationError

# Largest amount accepted from clients: 9 999 999,99 MAD
MAX_AMOUNT_CENTS = 999_999_999

INT_FIELDS = {
    "amount_cents",
    "quantity",
    "actual_quantity",
    "unit_price_cents",
    "vat_rate_bps",
    "discount_cents",
    "rate_bps",
    "priority",
    "percentage_bps",
    "fiscal_stamp_amount_cents",
    "reminder_days",
    "days",
    "limit",
}

ID_FIELDS = {
    "client_id",
    "product_id",
    "invoice_id",
    "target_invoice_id",
    "location_id",
    "stock_location_id",
    "from_location_id",
    "to_location_id",
}

LINE_FIELDS = ("product_id", "description", "quantity", "unit_price_cents", "vat_rate_bps", "discount_cents")


def coerce_int(field: str, value: Any) -> int:
    """
    Strict integer coercion: ints and plain digit strings only.

    Floats, decimals and scientific notation are rejected; money is always
    sent in centimes.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", field=field)
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)", field=field)
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", field=field)
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", field=field)
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", field=field)
    else:
        raise ValidationError(f"{field} must be an integer", field=field)

    if field.endswith("_cents") and abs(result) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds the maximum amount", field=field)
    return result


def _coerce(field: str, value: Any) -> Any:
    if value is None:
        return None
    if field in INT_FIELDS or field in ID_FIELDS:
        return coerce_int(field, value)
    if field == "items":
        return coerce_items(value)
    return value


def coerce_items(items: Any) -> list[dict]:
    if not isinstance(items, list):
        raise ValidationError("items must be a list", field="items")
    cleaned = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError("line items must be objects", field=f"items[{index}]")
        unknown = set(item) - set(LINE_FIELDS)
        if unknown:
            raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}", field=f"items[{index}]")
        cleaned.append({k: _coerce(k, v) for k, v in item.items()})
    return cleaned


def payload_fields(
    payload: Any,
    *,
    required: Iterable[str] = (),
    optional: Iterable[str] = (),
) -> dict:
    """
    Validate and normalize a JSON body.

    - required fields must be present
    - fields outside required + optional are rejected
    - integers, ids and line items are coerced strictly
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = tuple(required)
    allowed = set(required) | set(optional)

    missing = [name for name in required if payload.get(name) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])
    for key in payload:
        if key not in allowed:
            raise ValidationError(f"Field not allowed: {key}", field=key)

    return {key: _coerce(key, value) for key, value in payload.items()}
