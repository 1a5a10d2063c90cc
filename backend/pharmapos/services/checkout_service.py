# Overview: Checkout engine; turns an operator's cart into a committed sale with stock and credit effects.

"""
Checkout Engine

State machine per attempt:
    DRAFT -> VALIDATING -> COMMITTED
    DRAFT -> VALIDATING -> REJECTED

COMMIT STEPS:
1. Snapshot the cart lines into a PENDING Sale.
2. Append one SALE stock event per line (quantity x unit base quantity).
3. Deferred-payment methods open a PENDING CreditAccount for the total.
4. A cart loaded from a prescription marks that prescription DISPENSED.
5. Mark the sale COMMITTED and clear the cart.

PARTIAL-FAILURE POLICY:
Stock is deducted item by item; there is no cross-item transaction. A line
can still lose a race after validation passed. The engine stops at the first
failing line and never rolls back deductions already applied.
- Default: the sale is marked FAILED and StockRaceError reports the failed
  line and the lines already deducted. compensate_sale() issues the
  offsetting RETURN events. Any other error during deduction also marks
  the sale FAILED before it propagates.
- accept_partial=True: the deducted prefix becomes the sale (status
  PARTIAL); the lines that did not go through stay in the cart.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import (
    EmptyCartError,
    InsufficientStockError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    StockRaceError,
)
from ..extensions import db
from ..identity import OperatorContext
from ..models import CreditAccount, Sale, SaleLine
from ..models.sales import (
    SALE_STATUS_COMMITTED,
    SALE_STATUS_COMPENSATED,
    SALE_STATUS_FAILED,
    SALE_STATUS_PARTIAL,
    SALE_STATUS_PENDING,
)
from ..models.stock import REASON_RETURN, REASON_SALE
from ..time_utils import utcnow
from . import credit_service, prescription_service, stock_service
from .cart_service import Cart, get_cart_store
from .concurrency import begin_immediate, run_with_retry

logger = logging.getLogger(__name__)


STATE_DRAFT = "DRAFT"
STATE_VALIDATING = "VALIDATING"
STATE_COMMITTED = "COMMITTED"
STATE_REJECTED = "REJECTED"

REJECT_EMPTY_CART = "EMPTY_CART"
REJECT_STOCK_RACE = "STOCK_RACE"
REJECT_DEDUCTION_ERROR = "DEDUCTION_ERROR"

IMMEDIATE_PAYMENT_METHODS = ["cash", "mpesa", "card"]

WALK_IN_CUSTOMER = "Walk-in"


@dataclass(frozen=True)
class Rejection:
    reason: str
    details: dict = field(default_factory=dict)


def credit_payment_methods() -> list[str]:
    return list(current_app.config.get("CREDIT_PAYMENT_METHODS") or ["credit"])


def is_deferred_payment(method: str) -> bool:
    return method in credit_payment_methods()


def _normalize_payment_method(method: str | None) -> str:
    m = (method or "cash").strip().lower()
    valid = IMMEDIATE_PAYMENT_METHODS + credit_payment_methods()
    if m not in valid:
        raise InvalidInputError(f"Invalid payment method: {method}. Must be one of {valid}")
    return m


def validate_cart(cart: Cart) -> Rejection | None:
    """
    None when the cart can be committed. Otherwise EMPTY_CART, or
    STOCK_RACE listing every item whose requested base units exceed the
    ledger balance right now (the cart may have been built on stale stock).
    """
    if cart.is_empty:
        return Rejection(REJECT_EMPTY_CART)

    requested: dict[int, int] = {}
    for line in cart.lines:
        requested[line.item_id] = requested.get(line.item_id, 0) + line.base_quantity_total

    insufficient = []
    for item_id, qty in requested.items():
        on_hand = stock_service.balance_as_of(item_id)
        if on_hand < qty:
            insufficient.append({
                "item_id": item_id,
                "item_name": next(l.item_name for l in cart.lines if l.item_id == item_id),
                "requested_quantity": qty,
                "on_hand": on_hand,
            })

    if insufficient:
        return Rejection(REJECT_STOCK_RACE, {"items": insufficient})
    return None


def _line_summary(line: SaleLine) -> dict:
    return {
        "line_number": line.line_number,
        "item_id": line.item_id,
        "item_name": line.item_name,
        "unit_type": line.unit_type,
        "quantity": line.quantity,
        "base_quantity": line.base_quantity_total,
        "stock_event_id": line.stock_event_id,
    }


@dataclass
class CheckoutResult:
    state: str
    sale: Sale
    credit_account: CreditAccount | None = None
    failed_lines: list[dict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return self.sale.status == SALE_STATUS_PARTIAL

    def to_dict(self) -> dict:
        return {
            "state": self.state,
            "sale": self.sale.to_dict(),
            "credit_account": self.credit_account.to_dict() if self.credit_account else None,
            "failed_lines": self.failed_lines,
            "warnings": self.warnings,
        }


class CheckoutAttempt:
    """One pass of a cart through validation and commit."""

    def __init__(
        self,
        cart: Cart,
        operator: OperatorContext,
        *,
        payment_method: str | None = None,
        discount_cents: int = 0,
        tax_cents: int = 0,
        accept_partial: bool = False,
    ):
        self.cart = cart
        self.operator = operator
        self.payment_method = payment_method
        self.discount_cents = discount_cents
        self.tax_cents = tax_cents
        self.accept_partial = accept_partial
        self.state = STATE_DRAFT
        self.rejection: Rejection | None = None

    def _reject(self, rejection: Rejection) -> None:
        self.state = STATE_REJECTED
        self.rejection = rejection

    def validate(self) -> Rejection | None:
        self.state = STATE_VALIDATING
        rejection = validate_cart(self.cart)
        if rejection is not None:
            self._reject(rejection)
        return rejection

    def run(self) -> CheckoutResult:
        rejection = self.validate()
        if rejection is not None:
            if rejection.reason == REJECT_EMPTY_CART:
                raise EmptyCartError("Cannot check out an empty cart")
            raise StockRaceError(
                "Insufficient stock to check out",
                details={**rejection.details, "deducted_lines": [], "sale_id": None},
            )

        try:
            method = _normalize_payment_method(self.payment_method or self.cart.payment_method)
            totals = self.cart.totals(self.discount_cents, self.tax_cents)
            if totals.discount_cents > totals.subtotal_cents:
                raise InvalidInputError(
                    "discount cannot exceed subtotal",
                    details={"subtotal_cents": totals.subtotal_cents, "discount_cents": totals.discount_cents},
                )
        except InvalidInputError:
            self.state = STATE_DRAFT
            raise

        sale = self._snapshot(method, totals)
        failure = self._deduct_lines(sale)
        if failure is not None:
            return self._handle_failure(sale, method, *failure)
        return self._finish(sale, method)

    def commit(self) -> Sale:
        return self.run().sale

    def _snapshot(self, method: str, totals) -> Sale:
        cart = self.cart

        def _op():
            sale = Sale(
                status=SALE_STATUS_PENDING,
                subtotal_cents=totals.subtotal_cents,
                discount_cents=totals.discount_cents,
                tax_cents=totals.tax_cents,
                total_cents=totals.total_cents,
                payment_method=method,
                cashier_id=self.operator.operator_id,
                cashier_name=self.operator.name,
                customer_name=cart.customer_name or WALK_IN_CUSTOMER,
                customer_phone=cart.customer_phone,
                source_prescription_id=cart.source_prescription_id,
                created_at=utcnow(),
            )
            sale.lines = [
                SaleLine(
                    line_number=i + 1,
                    item_id=line.item_id,
                    item_name=line.item_name,
                    unit_type=line.unit_type,
                    unit_base_quantity=line.unit_base_quantity,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    line_total_cents=line.line_total_cents,
                    unit_cost_cents=line.unit_cost_cents,
                )
                for i, line in enumerate(cart.lines)
            ]
            db.session.add(sale)
            db.session.flush()
            sale.document_number = f"INV-{sale.id:06d}"
            db.session.commit()
            return sale

        return run_with_retry(_op)

    def _deduct_line(self, sale: Sale, line: SaleLine) -> None:
        def _op():
            begin_immediate()
            event = stock_service.append_stock_event(
                item_id=line.item_id,
                delta=-line.base_quantity_total,
                reason=REASON_SALE,
                performed_by=self.operator.display_name,
                performed_by_role=self.operator.role,
                reference_id=sale.document_number,
                unit_type=line.unit_type,
                note=f"Sale {sale.document_number}",
                commit=False,
            )
            line.stock_event_id = event.id
            db.session.commit()

        try:
            run_with_retry(_op)
        except InsufficientStockError:
            db.session.rollback()
            raise

    def _deduct_lines(self, sale: Sale):
        """
        Deduct in line order; (failed line, error) on the first stock failure.

        Any other error marks the sale FAILED (so its deducted lines can be
        compensated) and propagates.
        """
        lines = list(sale.lines)
        sale_id = sale.id
        # end the read so each line's deduction takes the write lock first
        db.session.commit()

        for line in lines:
            try:
                self._deduct_line(sale, line)
            except InsufficientStockError as exc:
                return line, exc
            except Exception:
                self._abandon(sale, sale_id, line)
                raise
        return None

    def _abandon(self, sale: Sale, sale_id: int, failed: SaleLine) -> None:
        db.session.rollback()
        try:
            sale.status = SALE_STATUS_FAILED
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Could not mark sale %s FAILED after a deduction error", sale_id)
            return
        self._reject(Rejection(REJECT_DEDUCTION_ERROR, {"failed_line": _line_summary(failed)}))
        logger.error(
            "Checkout of sale %s aborted at line %s; %s line(s) already deducted",
            sale.document_number,
            failed.line_number,
            sum(1 for l in sale.lines if l.stock_event_id is not None),
        )

    def _handle_failure(self, sale: Sale, method: str, failed: SaleLine, exc: InsufficientStockError) -> CheckoutResult:
        deducted = [l for l in sale.lines if l.stock_event_id is not None]
        undeducted = [l for l in sale.lines if l.stock_event_id is None]
        failed_summary = {**_line_summary(failed), **exc.details}

        if self.accept_partial and deducted:
            return self._commit_partial(sale, method, deducted, undeducted, failed_summary)

        sale.status = SALE_STATUS_FAILED
        db.session.commit()
        self._reject(Rejection(REJECT_STOCK_RACE, {"failed_line": failed_summary}))
        logger.warning(
            "Checkout of sale %s failed at line %s; %s line(s) already deducted",
            sale.document_number, failed.line_number, len(deducted),
        )
        raise StockRaceError(
            "Stock changed during checkout; sale not completed",
            details={
                "sale_id": sale.id,
                "document_number": sale.document_number,
                "failed_line": failed_summary,
                "deducted_lines": [_line_summary(l) for l in deducted],
            },
        )

    def _commit_partial(self, sale, method, deducted, undeducted, failed_summary) -> CheckoutResult:
        undeducted_keys = {(l.item_id, l.unit_type) for l in undeducted}
        for line in undeducted:
            sale.lines.remove(line)
        sale.subtotal_cents = sum(l.line_total_cents for l in deducted)
        sale.discount_cents = min(sale.discount_cents, sale.subtotal_cents)
        sale.total_cents = sale.subtotal_cents - sale.discount_cents + sale.tax_cents
        sale.status = SALE_STATUS_PARTIAL

        account = None
        if is_deferred_payment(method):
            account = credit_service.open_account(sale, commit=False)
        db.session.commit()

        # Lines that did not go through stay in the cart for the operator
        store = get_cart_store()
        self.cart.replace_lines([l for l in self.cart.lines if (l.item_id, l.unit_type) in undeducted_keys])
        store.save(self.cart)

        self.state = STATE_COMMITTED
        logger.warning(
            "Sale %s committed partially; %s line(s) left in cart",
            sale.document_number, len(undeducted),
        )
        return CheckoutResult(
            state=self.state,
            sale=sale,
            credit_account=account,
            failed_lines=[failed_summary] + [
                _line_summary(l) for l in undeducted if l.line_number != failed_summary["line_number"]
            ],
            warnings=["Sale committed partially; prescription left pending"] if sale.source_prescription_id else [],
        )

    def _finish(self, sale: Sale, method: str) -> CheckoutResult:
        warnings = []
        account = None
        if is_deferred_payment(method):
            account = credit_service.open_account(sale, commit=False)

        if sale.source_prescription_id is not None:
            try:
                prescription_service.mark_dispensed(
                    sale.source_prescription_id,
                    dispensed_by=self.operator.display_name,
                    commit=False,
                )
            except (InvalidStateError, NotFoundError) as exc:
                logger.warning("Sale %s: prescription not marked dispensed: %s", sale.document_number, exc)
                warnings.append(f"Prescription {sale.source_prescription_id} not marked dispensed: {exc}")

        sale.status = SALE_STATUS_COMMITTED
        db.session.commit()

        store = get_cart_store()
        self.cart.clear()
        self.cart.payment_method = None
        store.save(self.cart)

        self.state = STATE_COMMITTED
        return CheckoutResult(state=self.state, sale=sale, credit_account=account, warnings=warnings)


def checkout(
    operator: OperatorContext,
    *,
    payment_method: str | None = None,
    discount_cents: int = 0,
    tax_cents: int = 0,
    accept_partial: bool | None = None,
) -> CheckoutResult:
    """Check out the operator's current cart."""
    if accept_partial is None:
        accept_partial = bool(current_app.config.get("CHECKOUT_ACCEPT_PARTIAL", False))
    cart = get_cart_store().get(operator.operator_id)
    attempt = CheckoutAttempt(
        cart,
        operator,
        payment_method=payment_method,
        discount_cents=discount_cents,
        tax_cents=tax_cents,
        accept_partial=accept_partial,
    )
    return attempt.run()


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("sale not found", details={"sale_id": sale_id})
    return sale


def list_sales(cashier_id: str | None = None, limit: int = 100) -> list[Sale]:
    q = Sale.query
    if cashier_id:
        q = q.filter(Sale.cashier_id == cashier_id)
    return q.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()


def compensate_sale(sale_id: int, operator: OperatorContext) -> Sale:
    """
    Return the stock of every deducted line of a FAILED sale with offsetting
    RETURN events, and mark the sale COMPENSATED.
    """
    def _op():
        sale = db.session.get(Sale, sale_id)
        if sale is None:
            raise NotFoundError("sale not found", details={"sale_id": sale_id})
        if sale.status != SALE_STATUS_FAILED:
            raise InvalidStateError(
                "Only FAILED sales can be compensated",
                details={"sale_id": sale_id, "status": sale.status},
            )

        for line in sale.lines:
            if line.stock_event_id is None:
                continue
            stock_service.append_stock_event(
                item_id=line.item_id,
                delta=line.base_quantity_total,
                reason=REASON_RETURN,
                performed_by=operator.display_name,
                performed_by_role=operator.role,
                reference_id=sale.document_number,
                unit_type=line.unit_type,
                note=f"Compensation for failed sale {sale.document_number}",
                commit=False,
            )

        sale.status = SALE_STATUS_COMPENSATED
        db.session.commit()
        logger.info("Compensated failed sale %s", sale.document_number)
        return sale

    return run_with_retry(_op)
