from __future__ import annotations

from datetime import date
from typing import Any

from .errors import InvalidInputError
from .services.pricing_service import to_cents


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


def coerce_int(key: str, value: Any) -> int:
    """
    Strict integer coercion for JSON input: ints and plain digit strings
    only. Floats, decimals, scientific notation and booleans are rejected.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise InvalidInputError(f"{key} must be an integer")
        if "e" in stripped.lower():
            raise InvalidInputError(f"{key} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise InvalidInputError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise InvalidInputError(f"{key} must be an integer")
    if isinstance(value, float):
        raise InvalidInputError(f"{key} must be an integer, not a decimal")
    raise InvalidInputError(f"{key} must be an integer")


def get_int(
    payload: dict,
    key: str,
    *,
    required: bool = False,
    default: int | None = None,
    minimum: int | None = None,
) -> int | None:
    value = payload.get(key)
    if value is None:
        if required:
            raise InvalidInputError(f"{key} required")
        return default
    number = coerce_int(key, value)
    if minimum is not None and number < minimum:
        raise InvalidInputError(f"{key} must be at least {minimum}", details={key: number})
    return number


def get_cents(payload: dict, key: str, *, required: bool = False, default: int | None = 0) -> int | None:
    """
    Read a money field. "<name>_cents" takes integer cents; "<name>"
    (without the suffix) takes a decimal currency amount.
    """
    cents_key = key if key.endswith("_cents") else f"{key}_cents"
    amount_key = cents_key[: -len("_cents")]

    if payload.get(cents_key) is not None:
        cents = coerce_int(cents_key, payload[cents_key])
    elif payload.get(amount_key) is not None:
        cents = to_cents(payload[amount_key])
    elif required:
        raise InvalidInputError(f"{cents_key} required")
    else:
        return default

    if cents < 0:
        raise InvalidInputError(f"{cents_key} cannot be negative")
    if cents > MAX_PRICE_CENTS:
        raise InvalidInputError(f"{cents_key} exceeds maximum ({MAX_PRICE_CENTS})")
    return cents


def get_str(payload: dict, key: str, *, required: bool = False, max_length: int = 255) -> str | None:
    value = payload.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise InvalidInputError(f"{key} required")
        return None
    if not isinstance(value, str):
        raise InvalidInputError(f"{key} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise InvalidInputError(f"{key} must be at most {max_length} characters")
    return value


def get_bool(payload: dict, key: str, default: bool | None = None) -> bool | None:
    value = payload.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false", "1", "0"}:
        return value.strip().lower() in {"true", "1"}
    raise InvalidInputError(f"{key} must be a boolean")


def get_date(payload: dict, key: str) -> date | None:
    value = payload.get(key)
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise InvalidInputError(f"{key} must be an ISO date (YYYY-MM-DD)")


def parse_units(raw_units) -> list[dict]:
    """Normalize a unit list from JSON ({type, base_quantity, price_cents|price})."""
    if not isinstance(raw_units, list) or not raw_units:
        raise InvalidInputError("units must be a non-empty list")
    units = []
    for i, raw in enumerate(raw_units):
        if not isinstance(raw, dict):
            raise InvalidInputError("each unit must be an object", details={"index": i})
        units.append({
            "type": get_str(raw, "type", required=True, max_length=32),
            "base_quantity": get_int(raw, "base_quantity", required=True, minimum=1),
            "price_cents": get_cents(raw, "price_cents", default=0),
        })
    return units
