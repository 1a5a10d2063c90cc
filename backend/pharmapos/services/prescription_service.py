# Overview: Prescription store and the best-effort prescription-to-cart resolver.

"""
Prescription Resolver

Turns free-text prescription items ("Panadol", "2 tablets", "Three times
daily", "5 days") into cart lines:

    total = dosage_quantity * frequency_per_day * duration_days

This is a keyword heuristic, not a clinical calculator. Frequency rules are
an ordered table evaluated first-match-wins; ambiguous phrases resolve by
table order. Quantities are capped to stock on hand rather than failing,
and the shortfall is reported back so the till can show it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from ..errors import InvalidInputError, InvalidStateError, NotFoundError
from ..extensions import db
from ..identity import OperatorContext
from ..models import CatalogItem, Prescription, PrescriptionItem
from ..models.prescriptions import (
    PRESCRIPTION_CANCELLED,
    PRESCRIPTION_DISPENSED,
    PRESCRIPTION_PENDING,
)
from ..time_utils import utcnow
from .cart_service import CartLine, get_cart_store
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

_FIRST_INT = re.compile(r"(\d+)")


def _first_int(text: str | None) -> int | None:
    match = _FIRST_INT.search(text or "")
    return int(match.group(1)) if match else None


def _contains_any(*phrases):
    return lambda text: any(p in text for p in phrases)


def _both(first, second):
    return lambda text: first(text) and second(text)


_ONCE = _contains_any("once", "1 time", "daily")
_TWICE = _contains_any("twice", "two times", "2 times")
_THRICE = _contains_any("three times", "3 times", "thrice")
_FOUR = _contains_any("four times", "4 times")

# (predicate, times per day); first match wins. "daily" phrases default to
# once a day unless a multiplier phrase appears in the same text.
FREQUENCY_RULES = [
    (_both(_ONCE, _TWICE), 2),
    (_both(_ONCE, _THRICE), 3),
    (_both(_ONCE, _FOUR), 4),
    (_ONCE, 1),
    (_contains_any("twice", "two times", "2 times", "bd", "b.d"), 2),
    (_contains_any("three times", "3 times", "thrice", "tds", "t.d.s"), 3),
    (_contains_any("four times", "4 times", "qds", "q.d.s"), 4),
    (_contains_any("every 6 hours", "6 hourly"), 4),
    (_contains_any("every 8 hours", "8 hourly"), 3),
    (_contains_any("every 12 hours", "12 hourly"), 2),
]

DURATION_MULTIPLIERS = [
    ("week", 7),
    ("month", 30),
]


def parse_dosage_quantity(text: str | None) -> int:
    """First integer in the text ("2 tablets" -> 2); 1 when there is none."""
    value = _first_int(text)
    return value if value is not None else 1


def parse_frequency_per_day(text: str | None) -> int:
    lower = (text or "").lower()
    for predicate, per_day in FREQUENCY_RULES:
        if predicate(lower):
            return per_day
    value = _first_int(lower)
    return value if value is not None else 1


def parse_duration_days(text: str | None) -> int:
    """"7 days" -> 7, "2 weeks" -> 14, "1 month" -> 30; bare numbers are days."""
    lower = (text or "").lower()
    value = _first_int(lower)
    days = value if value is not None else 1
    for keyword, multiplier in DURATION_MULTIPLIERS:
        if keyword in lower:
            return days * multiplier
    return days


def resolve_item(medicine_text: str | None, catalog) -> CatalogItem | None:
    """
    First catalog item whose name contains the prescribed text or is
    contained in it (case-insensitive). None when nothing matches or the
    first match has no stock.
    """
    wanted = (medicine_text or "").strip().lower()
    if not wanted:
        return None
    for item in catalog:
        name = (item.name or "").lower()
        if not name:
            continue
        if wanted in name or name in wanted:
            if (item.on_hand_quantity or 0) <= 0:
                return None
            return item
    return None


@dataclass
class ResolvedLine:
    line: CartLine
    medicine_text: str
    dosage_quantity: int
    frequency_per_day: int
    duration_days: int
    requested_quantity: int

    @property
    def shortfall(self) -> int:
        return max(self.requested_quantity - self.line.quantity, 0)

    def to_dict(self) -> dict:
        return {
            "line": self.line.to_dict(),
            "medicine": self.medicine_text,
            "dosage_quantity": self.dosage_quantity,
            "frequency_per_day": self.frequency_per_day,
            "duration_days": self.duration_days,
            "requested_quantity": self.requested_quantity,
            "shortfall": self.shortfall,
        }


@dataclass
class PrescriptionResolution:
    lines: list[ResolvedLine] = field(default_factory=list)
    unmatched: list[str] = field(default_factory=list)

    @property
    def unmatched_count(self) -> int:
        return len(self.unmatched)

    @property
    def cart_lines(self) -> list[CartLine]:
        return [resolved.line for resolved in self.lines]

    def to_dict(self) -> dict:
        return {
            "lines": [resolved.to_dict() for resolved in self.lines],
            "unmatched": list(self.unmatched),
            "unmatched_count": self.unmatched_count,
        }


def resolve_line(item: CatalogItem, *, dosage_text=None, frequency_text=None, duration_text=None, medicine_text="") -> ResolvedLine | None:
    """
    Build a cart line in the item's first declared unit, capped to what is
    on hand. None when not even one unit can be supplied.
    """
    dosage = parse_dosage_quantity(dosage_text)
    per_day = parse_frequency_per_day(frequency_text)
    days = parse_duration_days(duration_text)
    requested = dosage * per_day * days

    unit = item.units[0]
    available = (item.on_hand_quantity or 0) // unit.base_quantity
    quantity = min(requested, available)
    if quantity <= 0:
        return None

    line = CartLine(
        item_id=item.id,
        item_name=item.name,
        unit_type=unit.type,
        unit_base_quantity=unit.base_quantity,
        quantity=quantity,
        unit_price_cents=unit.price_cents,
        unit_cost_cents=(item.cost_price_cents or 0) * unit.base_quantity,
    )
    return ResolvedLine(
        line=line,
        medicine_text=medicine_text,
        dosage_quantity=dosage,
        frequency_per_day=per_day,
        duration_days=days,
        requested_quantity=requested,
    )


def resolve_prescription(items, catalog) -> PrescriptionResolution:
    """
    Resolve every prescription item against the catalog. Items with no match
    or no stock are counted as unmatched; an empty result is not an error.
    """
    catalog = list(catalog)
    resolution = PrescriptionResolution()
    for rx_item in items:
        item = resolve_item(rx_item.medicine_text, catalog)
        resolved = None
        if item is not None and item.units:
            resolved = resolve_line(
                item,
                dosage_text=rx_item.dosage_text,
                frequency_text=rx_item.frequency_text,
                duration_text=rx_item.duration_text,
                medicine_text=rx_item.medicine_text,
            )
        if resolved is None:
            resolution.unmatched.append(rx_item.medicine_text)
        else:
            resolution.lines.append(resolved)
    return resolution


# =============================================================================
# PRESCRIPTION STORE
# =============================================================================

def create_prescription(
    operator: OperatorContext,
    *,
    patient_name: str,
    items: list[dict],
    patient_phone: str | None = None,
    diagnosis: str | None = None,
    notes: str | None = None,
) -> Prescription:
    if not patient_name or not patient_name.strip():
        raise InvalidInputError("patient_name is required")
    if not items:
        raise InvalidInputError("a prescription needs at least one item")

    rx_items = []
    for i, raw in enumerate(items):
        medicine = (raw.get("medicine") or "").strip()
        if not medicine:
            raise InvalidInputError("each prescription item needs a medicine", details={"index": i})
        rx_items.append(PrescriptionItem(
            position=i,
            medicine_text=medicine,
            dosage_text=raw.get("dosage"),
            frequency_text=raw.get("frequency"),
            duration_text=raw.get("duration"),
            instructions=raw.get("instructions"),
        ))

    prescription = Prescription(
        patient_name=patient_name.strip(),
        patient_phone=patient_phone,
        diagnosis=diagnosis,
        notes=notes,
        status=PRESCRIPTION_PENDING,
        created_by=operator.operator_id,
        created_by_name=operator.name,
        created_at=utcnow(),
    )
    prescription.items = rx_items
    db.session.add(prescription)
    db.session.commit()
    return prescription


def get_prescription(prescription_id: int) -> Prescription:
    prescription = db.session.get(Prescription, prescription_id)
    if prescription is None:
        raise NotFoundError("prescription not found", details={"prescription_id": prescription_id})
    return prescription


def list_pending() -> list[Prescription]:
    return (
        Prescription.query.filter_by(status=PRESCRIPTION_PENDING)
        .order_by(Prescription.created_at.asc(), Prescription.id.asc())
        .all()
    )


def _transition(prescription_id: int, status: str, *, dispensed_by: str | None = None, commit: bool = True) -> Prescription:
    prescription = lock_for_update(db.session.query(Prescription).filter_by(id=prescription_id)).first()
    if prescription is None:
        raise NotFoundError("prescription not found", details={"prescription_id": prescription_id})
    if prescription.status != PRESCRIPTION_PENDING:
        raise InvalidStateError(
            f"Cannot mark a {prescription.status} prescription as {status}",
            details={"prescription_id": prescription_id, "status": prescription.status},
        )
    prescription.status = status
    if status == PRESCRIPTION_DISPENSED:
        prescription.dispensed_by = dispensed_by
        prescription.dispensed_at = utcnow()
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return prescription


def mark_dispensed(prescription_id: int, dispensed_by: str, *, commit: bool = True) -> Prescription:
    if not commit:
        return _transition(prescription_id, PRESCRIPTION_DISPENSED, dispensed_by=dispensed_by, commit=False)
    return run_with_retry(
        lambda: _transition(prescription_id, PRESCRIPTION_DISPENSED, dispensed_by=dispensed_by)
    )


def cancel_prescription(prescription_id: int) -> Prescription:
    return run_with_retry(lambda: _transition(prescription_id, PRESCRIPTION_CANCELLED))


def resolution_catalog() -> list[CatalogItem]:
    """Active catalog in insertion order; the resolver's first-match order."""
    return (
        CatalogItem.query.filter(CatalogItem.is_active.is_(True))
        .order_by(CatalogItem.id.asc())
        .all()
    )


def load_into_cart(operator: OperatorContext, prescription_id: int) -> PrescriptionResolution:
    """
    Replace the operator's cart with the resolved prescription, take the
    patient as the customer and remember the prescription for checkout.
    The cart is left untouched when nothing resolves.
    """
    prescription = get_prescription(prescription_id)
    if prescription.status != PRESCRIPTION_PENDING:
        raise InvalidStateError(
            "Only PENDING prescriptions can be loaded",
            details={"prescription_id": prescription_id, "status": prescription.status},
        )

    resolution = resolve_prescription(prescription.items, resolution_catalog())
    if not resolution.lines:
        logger.info("Prescription %s matched no stocked items", prescription_id)
        return resolution

    store = get_cart_store()
    cart = store.get(operator.operator_id)
    cart.replace_lines(resolution.cart_lines)
    cart.set_customer(prescription.patient_name, prescription.patient_phone)
    cart.source_prescription_id = prescription.id
    store.save(cart)
    return resolution
