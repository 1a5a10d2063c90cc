# Overview: Per-operator cart state and the keyed cart store that holds it.

"""
Cart Service

WHY: The till builds an order line by line before anything touches stock.
Each operator has exactly one cart; it lives in process memory (a keyed
CartStore) and is not persisted, so a restart loses in-progress carts.

DESIGN PRINCIPLES:
- Single writer per cart (one operator); no locking inside Cart itself.
- Stock is NOT checked when lines are added; checkout enforces it.
- Unit price, unit cost and line total are captured when the line is added.
- Money is integer cents.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app

from ..errors import InvalidInputError, NotFoundError, UnitNotFoundError
from ..identity import OperatorContext
from ..time_utils import to_utc_z, utcnow

CART_STORE_KEY = "pharmapos.carts"


@dataclass
class CartLine:
    item_id: int
    item_name: str
    unit_type: str
    unit_base_quantity: int
    quantity: int
    unit_price_cents: int
    unit_cost_cents: int
    line_total_cents: int = 0
    line_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def __post_init__(self):
        self.recompute()

    def recompute(self) -> None:
        self.line_total_cents = self.quantity * self.unit_price_cents

    @property
    def base_quantity_total(self) -> int:
        """Atomic units this line takes out of stock."""
        return self.quantity * self.unit_base_quantity

    def to_dict(self) -> dict:
        return {
            "line_id": self.line_id,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "unit_type": self.unit_type,
            "unit_base_quantity": self.unit_base_quantity,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
        }


@dataclass(frozen=True)
class CartTotals:
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
        }


def _require_int(name: str, value) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidInputError(f"{name} must be an integer", details={name: value})
    return value


@dataclass
class Cart:
    operator_id: str
    lines: list[CartLine] = field(default_factory=list)
    customer_name: str | None = None
    customer_phone: str | None = None
    payment_method: str | None = None
    source_prescription_id: int | None = None
    updated_at: datetime | None = None

    def _touch(self) -> None:
        self.updated_at = utcnow()

    def find_line(self, line_id: str) -> CartLine:
        for line in self.lines:
            if line.line_id == line_id:
                return line
        raise NotFoundError("cart line not found", details={"line_id": line_id})

    def add_line(self, item, unit_type: str, quantity_delta: int = 1) -> CartLine | None:
        """
        Add an item in the given unit, merging with an existing line for the
        same (item, unit). A merge that brings the quantity to zero or below
        removes the line and returns None.
        """
        _require_int("quantity", quantity_delta)
        unit = item.find_unit(unit_type)
        if unit is None:
            raise UnitNotFoundError(
                f"unit {unit_type} is not defined on {item.name}",
                details={"item_id": item.id, "unit_type": unit_type},
            )

        for line in self.lines:
            if line.item_id == item.id and line.unit_type == unit.type:
                line.quantity += quantity_delta
                if line.quantity <= 0:
                    self.lines.remove(line)
                    self._touch()
                    return None
                line.recompute()
                self._touch()
                return line

        line = CartLine(
            item_id=item.id,
            item_name=item.name,
            unit_type=unit.type,
            unit_base_quantity=unit.base_quantity,
            quantity=max(quantity_delta, 1),
            unit_price_cents=unit.price_cents,
            unit_cost_cents=(item.cost_price_cents or 0) * unit.base_quantity,
        )
        self.lines.append(line)
        self._touch()
        return line

    def adjust_quantity(self, line_id: str, delta: int) -> CartLine | None:
        """Change a line's quantity by delta; at zero or below the line is removed."""
        _require_int("delta", delta)
        line = self.find_line(line_id)
        new_quantity = line.quantity + delta
        if new_quantity <= 0:
            self.lines.remove(line)
            self._touch()
            return None
        line.quantity = new_quantity
        line.recompute()
        self._touch()
        return line

    def remove_line(self, line_id: str) -> CartLine:
        line = self.find_line(line_id)
        self.lines.remove(line)
        self._touch()
        return line

    def replace_lines(self, lines: list[CartLine]) -> None:
        self.lines = list(lines)
        self._touch()

    def set_customer(self, name: str | None, phone: str | None) -> None:
        self.customer_name = name or None
        self.customer_phone = phone or None
        self._touch()

    def set_payment_method(self, method: str | None) -> None:
        self.payment_method = (method or "").strip().lower() or None
        self._touch()

    def clear(self) -> None:
        self.lines = []
        self.customer_name = None
        self.customer_phone = None
        self.source_prescription_id = None
        self._touch()

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def totals(self, discount_cents: int = 0, tax_cents: int = 0) -> CartTotals:
        """
        subtotal is the sum of line totals; tax is passed through from the
        caller (no tax rules here); total = subtotal - discount + tax.
        """
        _require_int("discount_cents", discount_cents)
        _require_int("tax_cents", tax_cents)
        if discount_cents < 0 or tax_cents < 0:
            raise InvalidInputError("discount and tax cannot be negative")
        subtotal = sum(line.line_total_cents for line in self.lines)
        return CartTotals(
            subtotal_cents=subtotal,
            discount_cents=discount_cents,
            tax_cents=tax_cents,
            total_cents=subtotal - discount_cents + tax_cents,
        )

    def to_dict(self) -> dict:
        return {
            "operator_id": self.operator_id,
            "lines": [line.to_dict() for line in self.lines],
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "payment_method": self.payment_method,
            "source_prescription_id": self.source_prescription_id,
            "totals": self.totals().to_dict(),
            "updated_at": to_utc_z(self.updated_at),
        }


class CartStore:
    """Keyed cart storage. Swap in a durable backend to survive restarts."""

    def get(self, operator_id: str) -> Cart:
        raise NotImplementedError

    def save(self, cart: Cart) -> None:
        raise NotImplementedError

    def discard(self, operator_id: str) -> None:
        raise NotImplementedError


class InMemoryCartStore(CartStore):
    """Process-local carts; the lock guards the map, not the carts."""

    def __init__(self):
        self._carts: dict[str, Cart] = {}
        self._lock = threading.Lock()

    def get(self, operator_id: str) -> Cart:
        with self._lock:
            cart = self._carts.get(operator_id)
            if cart is None:
                cart = Cart(operator_id=operator_id)
                self._carts[operator_id] = cart
            return cart

    def save(self, cart: Cart) -> None:
        with self._lock:
            self._carts[cart.operator_id] = cart

    def discard(self, operator_id: str) -> None:
        with self._lock:
            self._carts.pop(operator_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._carts)


def get_cart_store() -> CartStore:
    return current_app.extensions[CART_STORE_KEY]


def get_cart(operator: OperatorContext) -> Cart:
    return get_cart_store().get(operator.operator_id)


def add_line(operator: OperatorContext, item_id: int, unit_type: str, quantity_delta: int = 1) -> CartLine | None:
    from .catalog_service import get_item

    store = get_cart_store()
    cart = store.get(operator.operator_id)
    line = cart.add_line(get_item(item_id), unit_type, quantity_delta)
    store.save(cart)
    return line


def adjust_quantity(operator: OperatorContext, line_id: str, delta: int) -> CartLine | None:
    store = get_cart_store()
    cart = store.get(operator.operator_id)
    line = cart.adjust_quantity(line_id, delta)
    store.save(cart)
    return line


def remove_line(operator: OperatorContext, line_id: str) -> CartLine:
    store = get_cart_store()
    cart = store.get(operator.operator_id)
    line = cart.remove_line(line_id)
    store.save(cart)
    return line


def set_customer(operator: OperatorContext, name: str | None, phone: str | None) -> Cart:
    store = get_cart_store()
    cart = store.get(operator.operator_id)
    cart.set_customer(name, phone)
    store.save(cart)
    return cart


def clear_cart(operator: OperatorContext) -> Cart:
    store = get_cart_store()
    cart = store.get(operator.operator_id)
    cart.clear()
    store.save(cart)
    return cart


def set_payment_method(operator: OperatorContext, method: str | None) -> Cart:
    store = get_cart_store()
    cart = store.get(operator.operator_id)
    cart.set_payment_method(method)
    store.save(cart)
    return cart
