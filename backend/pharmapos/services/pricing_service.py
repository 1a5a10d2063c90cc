# Overview: Multi-unit pricing model; derives every unit's price from one source unit.

"""
Unit Pricing Model

A catalog item sells in several units (single, strip, box, ...). Each unit
declares base_quantity, the number of atomic units it contains. Prices scale
linearly with base_quantity from a single source unit:

    price_per_base = source_price / source_base_quantity
    unit_price     = round_half_up(price_per_base * unit.base_quantity)

All money is in cents. price_per_base is kept as an unrounded Decimal; each
unit is rounded to the nearest cent independently, so three singles need not
equal one strip to the cent. That is the retail rounding rule.

Duplicate unit types on one item are a caller error this module does not
detect; derivation is still deterministic.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from ..errors import InvalidInputError, UnitNotFoundError
from ..models.catalog import normalize_unit_type


@dataclass(frozen=True)
class UnitSpec:
    """Unit shape used before it is attached to a catalog item."""
    type: str
    base_quantity: int
    price_cents: int = 0


def round_cents(value: Decimal) -> int:
    """Round a Decimal amount of cents to whole cents, ties away from zero."""
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_cents(amount) -> int:
    """
    Convert a decimal currency amount (e.g. "12.50", 12.5) to cents.

    Raises InvalidInputError for non-numeric or negative input.
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise InvalidInputError(f"invalid money amount: {amount!r}")
    if not value.is_finite():
        raise InvalidInputError(f"invalid money amount: {amount!r}")
    if value < 0:
        raise InvalidInputError("money amount cannot be negative")
    return round_cents(value * 100)


def derive_price_per_base(source_unit_price_cents: int, source_base_quantity: int) -> Decimal:
    """Price of one atomic unit, in (unrounded) cents."""
    if source_base_quantity is None or source_base_quantity <= 0:
        raise InvalidInputError(
            "source base quantity must be positive",
            details={"source_base_quantity": source_base_quantity},
        )
    if source_unit_price_cents is None or source_unit_price_cents < 0:
        raise InvalidInputError(
            "source unit price cannot be negative",
            details={"source_unit_price_cents": source_unit_price_cents},
        )
    return Decimal(source_unit_price_cents) / Decimal(source_base_quantity)


def derive_all_unit_prices(price_per_base: Decimal, units) -> list[UnitSpec]:
    """Return a priced copy of every unit, in the order given."""
    return [
        UnitSpec(
            type=normalize_unit_type(unit.type),
            base_quantity=unit.base_quantity,
            price_cents=round_cents(Decimal(price_per_base) * unit.base_quantity),
        )
        for unit in units
    ]


def reprice_units(units, source_unit_type: str, source_price_cents: int) -> list[UnitSpec]:
    """Derive all unit prices from the named source unit's new price."""
    wanted = normalize_unit_type(source_unit_type)
    source = next((u for u in units if normalize_unit_type(u.type) == wanted), None)
    if source is None:
        raise UnitNotFoundError(
            f"source unit {wanted} is not among the item's units",
            details={"unit_type": wanted},
        )
    price_per_base = derive_price_per_base(source_price_cents, source.base_quantity)
    return derive_all_unit_prices(price_per_base, units)


def validate_unit_layout(units) -> None:
    """
    Check the structural unit invariant: at least one unit, exactly one
    atomic unit (base_quantity == 1) and every other unit above 1.
    """
    if not units:
        raise InvalidInputError("an item needs at least one unit")
    for unit in units:
        if not normalize_unit_type(unit.type):
            raise InvalidInputError("unit type is required")
        if not isinstance(unit.base_quantity, int) or isinstance(unit.base_quantity, bool) or unit.base_quantity < 1:
            raise InvalidInputError(
                "unit base quantity must be a positive integer",
                details={"unit_type": unit.type, "base_quantity": unit.base_quantity},
            )
    atomic = [u for u in units if u.base_quantity == 1]
    if len(atomic) != 1:
        raise InvalidInputError(
            "exactly one unit must have base quantity 1",
            details={"atomic_units": [normalize_unit_type(u.type) for u in atomic]},
        )


def markup_percent(cost_price_cents: int, selling_price_cents: int) -> float:
    """(selling - cost) / cost * 100; NaN when cost is zero (shown as N/A)."""
    if not cost_price_cents:
        return float("nan")
    return (selling_price_cents - cost_price_cents) / cost_price_cents * 100


def format_markup(cost_price_cents: int, selling_price_cents: int) -> str:
    value = markup_percent(cost_price_cents, selling_price_cents)
    if math.isnan(value):
        return "N/A"
    return f"{value:.1f}%"
