"""Checkout: validation, commit effects, stock races, partial commits and compensation."""

import pytest
from sqlalchemy.exc import OperationalError

from pharmapos.errors import EmptyCartError, InvalidInputError, InvalidStateError, StockRaceError
from pharmapos.extensions import db
from pharmapos.models import Sale, StockEvent
from pharmapos.models.credit import CREDIT_STATUS_PENDING
from pharmapos.models.prescriptions import PRESCRIPTION_DISPENSED
from pharmapos.models.sales import (
    SALE_STATUS_COMMITTED,
    SALE_STATUS_COMPENSATED,
    SALE_STATUS_FAILED,
    SALE_STATUS_PARTIAL,
    SALE_STATUS_PENDING,
)
from pharmapos.models.stock import REASON_LOSS, REASON_RETURN, REASON_SALE
from pharmapos.services import cart_service, checkout_service, concurrency, prescription_service, stock_service
from pharmapos.services.checkout_service import (
    REJECT_EMPTY_CART,
    REJECT_STOCK_RACE,
    STATE_COMMITTED,
    STATE_DRAFT,
    STATE_REJECTED,
    CheckoutAttempt,
)


def _lose(item, quantity, manager):
    stock_service.record_movement(
        item_id=item.id, quantity=quantity, reason=REASON_LOSS,
        performed_by=manager.display_name, performed_by_role=manager.role,
    )


@pytest.fixture
def stale_validation(monkeypatch):
    """Let validation pass so the race shows up during deduction instead."""
    monkeypatch.setattr(checkout_service, "validate_cart", lambda cart: None)


class TestValidation:

    def test_empty_cart(self, db_session, cashier):
        attempt = CheckoutAttempt(cart_service.get_cart(cashier), cashier)
        assert attempt.validate().reason == REJECT_EMPTY_CART
        assert attempt.state == STATE_REJECTED
        with pytest.raises(EmptyCartError):
            checkout_service.checkout(cashier)

    def test_stock_is_aggregated_in_base_units_across_lines(self, panadol, cashier):
        cart_service.add_line(cashier, panadol.id, "SINGLE", 15)
        cart_service.add_line(cashier, panadol.id, "STRIP")

        rejection = CheckoutAttempt(cart_service.get_cart(cashier), cashier).validate()
        assert rejection.reason == REJECT_STOCK_RACE
        assert rejection.details["items"][0]["requested_quantity"] == 25
        assert rejection.details["items"][0]["on_hand"] == 20

        with pytest.raises(StockRaceError) as exc:
            checkout_service.checkout(cashier)
        assert exc.value.details["sale_id"] is None
        assert exc.value.details["deducted_lines"] == []
        assert db.session.query(Sale).count() == 0

    def test_empty_cart_is_reported_before_a_bad_payment_method(self, db_session, cashier):
        with pytest.raises(EmptyCartError):
            checkout_service.checkout(cashier, payment_method="barter")

    @pytest.mark.parametrize("kwargs", [
        {"tax_cents": -1},
        {"discount_cents": -5},
        {"payment_method": "barter"},
    ])
    def test_bad_input_returns_the_attempt_to_draft(self, panadol, cashier, kwargs):
        cart_service.add_line(cashier, panadol.id, "SINGLE")
        attempt = CheckoutAttempt(cart_service.get_cart(cashier), cashier, **kwargs)
        with pytest.raises(InvalidInputError):
            attempt.run()
        assert attempt.state == STATE_DRAFT
        assert db.session.query(Sale).count() == 0

    def test_discount_cannot_exceed_subtotal(self, panadol, cashier):
        cart_service.add_line(cashier, panadol.id, "SINGLE")
        with pytest.raises(InvalidInputError):
            checkout_service.checkout(cashier, discount_cents=11)

    def test_unknown_payment_method(self, panadol, cashier):
        cart_service.add_line(cashier, panadol.id, "SINGLE")
        with pytest.raises(InvalidInputError):
            checkout_service.checkout(cashier, payment_method="barter")


class TestCommit:

    def test_credit_sale_opens_pending_account(self, panadol, syrup, cashier):
        cart_service.add_line(cashier, panadol.id, "STRIP", 2)
        cart_service.add_line(cashier, syrup.id, "BOTTLE")
        cart_service.set_customer(cashier, "Mary Wanjiku", "0722000000")

        result = checkout_service.checkout(cashier, payment_method="credit", discount_cents=50)

        assert result.state == STATE_COMMITTED
        sale = result.sale
        assert sale.status == SALE_STATUS_COMMITTED
        assert (sale.subtotal_cents, sale.discount_cents, sale.tax_cents, sale.total_cents) == (500, 50, 0, 450)
        assert sale.document_number == f"INV-{sale.id:06d}"
        assert sale.cashier_id == cashier.operator_id
        assert sale.cashier_name == cashier.name

        account = result.credit_account
        assert account.total_cents == 450
        assert account.balance_cents == 450
        assert account.paid_cents == 0
        assert account.status == CREDIT_STATUS_PENDING
        assert account.customer_name == "Mary Wanjiku"

    def test_stock_is_deducted_in_base_units(self, panadol, syrup, cashier):
        cart_service.add_line(cashier, panadol.id, "STRIP")
        cart_service.add_line(cashier, panadol.id, "SINGLE", 3)
        cart_service.add_line(cashier, syrup.id, "BOTTLE", 2)

        sale = checkout_service.checkout(cashier, payment_method="cash").sale

        assert stock_service.balance_as_of(panadol.id) == 7
        assert stock_service.balance_as_of(syrup.id) == 8
        events = db.session.query(StockEvent).filter_by(reason=REASON_SALE).all()
        assert sorted(e.delta for e in events) == [-10, -3, -2]
        assert all(e.reference_id == sale.document_number for e in events)
        assert all(line.stock_event_id is not None for line in sale.lines)
        assert all(e.performed_by == cashier.name for e in events)

    def test_cash_sale_has_no_account_and_clears_cart(self, panadol, cashier):
        cart_service.add_line(cashier, panadol.id, "SINGLE")
        cart_service.set_customer(cashier, "Jane", None)

        result = checkout_service.checkout(cashier, payment_method="cash")
        assert result.credit_account is None
        assert result.sale.customer_name == "Jane"
        cart = cart_service.get_cart(cashier)
        assert cart.is_empty
        assert cart.customer_name is None

    def test_missing_customer_is_walk_in(self, panadol, cashier):
        cart_service.add_line(cashier, panadol.id, "SINGLE")
        sale = checkout_service.checkout(cashier).sale
        assert sale.customer_name == "Walk-in"
        assert sale.payment_method == "cash"

    def test_cart_payment_method_is_used_by_default(self, panadol, cashier):
        cart_service.add_line(cashier, panadol.id, "SINGLE")
        cart_service.set_payment_method(cashier, "MPESA")
        assert checkout_service.checkout(cashier).sale.payment_method == "mpesa"

    def test_prescription_is_marked_dispensed(self, panadol, pharmacist, cashier):
        rx = prescription_service.create_prescription(
            pharmacist,
            patient_name="John Doe",
            items=[{"medicine": "Panadol", "dosage": "1", "frequency": "twice daily", "duration": "3 days"}],
        )
        prescription_service.load_into_cart(cashier, rx.id)

        result = checkout_service.checkout(cashier)

        assert result.warnings == []
        assert result.sale.source_prescription_id == rx.id
        assert result.sale.customer_name == "John Doe"
        assert result.sale.lines[0].quantity == 6
        dispensed = prescription_service.get_prescription(rx.id)
        assert dispensed.status == PRESCRIPTION_DISPENSED
        assert dispensed.dispensed_by == cashier.name

    def test_already_cancelled_prescription_is_a_warning(self, panadol, pharmacist, cashier):
        rx = prescription_service.create_prescription(
            pharmacist, patient_name="John Doe", items=[{"medicine": "Panadol", "dosage": "1"}],
        )
        prescription_service.load_into_cart(cashier, rx.id)
        prescription_service.cancel_prescription(rx.id)

        result = checkout_service.checkout(cashier)
        assert result.sale.status == SALE_STATUS_COMMITTED
        assert len(result.warnings) == 1


class TestStockRace:

    def test_second_checkout_of_the_last_units_is_rejected(self, gloves, cashier, other_cashier, stale_validation):
        cart_service.add_line(cashier, gloves.id, "PAIR", 5)
        cart_service.add_line(other_cashier, gloves.id, "PAIR", 5)

        first = checkout_service.checkout(cashier)
        assert first.sale.status == SALE_STATUS_COMMITTED

        with pytest.raises(StockRaceError) as exc:
            checkout_service.checkout(other_cashier)
        assert exc.value.details["failed_line"]["on_hand"] == 0
        assert exc.value.details["deducted_lines"] == []

        assert stock_service.balance_as_of(gloves.id) == 0
        assert db.session.query(StockEvent).filter_by(item_id=gloves.id, reason=REASON_SALE).count() == 1

    def test_failure_mid_checkout_keeps_deducted_lines_and_reports_them(
        self, panadol, syrup, gloves, cashier, manager, stale_validation
    ):
        cart_service.add_line(cashier, syrup.id, "BOTTLE", 2)
        cart_service.add_line(cashier, gloves.id, "PAIR", 5)
        cart_service.add_line(cashier, panadol.id, "SINGLE")
        _lose(gloves, 3, manager)

        with pytest.raises(StockRaceError) as exc:
            checkout_service.checkout(cashier)

        details = exc.value.details
        assert details["failed_line"]["item_id"] == gloves.id
        assert [line["item_id"] for line in details["deducted_lines"]] == [syrup.id]

        sale = db.session.get(Sale, details["sale_id"])
        assert sale.status == SALE_STATUS_FAILED
        assert stock_service.balance_as_of(syrup.id) == 8
        assert stock_service.balance_as_of(gloves.id) == 2
        assert stock_service.balance_as_of(panadol.id) == 20
        # The cart is kept so the operator can reconcile
        assert len(cart_service.get_cart(cashier).lines) == 3

    def test_compensation_returns_deducted_stock(self, syrup, gloves, cashier, manager, stale_validation):
        cart_service.add_line(cashier, syrup.id, "BOTTLE", 2)
        cart_service.add_line(cashier, gloves.id, "PAIR", 5)
        _lose(gloves, 1, manager)

        with pytest.raises(StockRaceError) as exc:
            checkout_service.checkout(cashier)
        sale_id = exc.value.details["sale_id"]

        sale = checkout_service.compensate_sale(sale_id, manager)
        assert sale.status == SALE_STATUS_COMPENSATED
        assert stock_service.balance_as_of(syrup.id) == 10
        returns = db.session.query(StockEvent).filter_by(reason=REASON_RETURN).all()
        assert [(e.item_id, e.delta) for e in returns] == [(syrup.id, 2)]

        with pytest.raises(InvalidStateError):
            checkout_service.compensate_sale(sale_id, manager)

    def test_unexpected_error_mid_checkout_marks_the_sale_failed(self, panadol, syrup, cashier, manager, monkeypatch):
        cart_service.add_line(cashier, syrup.id, "BOTTLE", 2)
        cart_service.add_line(cashier, panadol.id, "STRIP")
        real_append = stock_service.append_stock_event

        def locked_for_panadol(**kwargs):
            if kwargs["item_id"] == panadol.id:
                raise OperationalError("INSERT INTO stock_events", {}, Exception("database is locked"))
            return real_append(**kwargs)

        monkeypatch.setattr(stock_service, "append_stock_event", locked_for_panadol)
        monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)

        with pytest.raises(OperationalError):
            checkout_service.checkout(cashier)

        sale = db.session.query(Sale).one()
        assert sale.status == SALE_STATUS_FAILED
        assert [line.stock_event_id is not None for line in sale.lines] == [True, False]
        assert stock_service.balance_as_of(syrup.id) == 8
        assert stock_service.balance_as_of(panadol.id) == 20
        assert len(cart_service.get_cart(cashier).lines) == 2

        monkeypatch.undo()
        assert checkout_service.compensate_sale(sale.id, manager).status == SALE_STATUS_COMPENSATED
        assert stock_service.balance_as_of(syrup.id) == 10

    def test_sale_is_pending_until_its_stock_is_deducted(self, panadol, syrup, cashier, monkeypatch):
        cart_service.add_line(cashier, syrup.id, "BOTTLE")
        cart_service.add_line(cashier, panadol.id, "STRIP")
        real_append = stock_service.append_stock_event
        seen = []

        def watching_append(**kwargs):
            seen.append(db.session.query(Sale.status).scalar())
            return real_append(**kwargs)

        monkeypatch.setattr(stock_service, "append_stock_event", watching_append)

        result = checkout_service.checkout(cashier)
        assert seen == [SALE_STATUS_PENDING, SALE_STATUS_PENDING]
        assert result.sale.status == SALE_STATUS_COMMITTED

    def test_each_line_deduction_takes_the_write_lock_first(self, panadol, syrup, cashier, monkeypatch):
        cart_service.add_line(cashier, syrup.id, "BOTTLE")
        cart_service.add_line(cashier, panadol.id, "STRIP")
        real_begin = checkout_service.begin_immediate
        already_open = []

        def recording_begin():
            already_open.append(db.session().in_transaction())
            real_begin()

        monkeypatch.setattr(checkout_service, "begin_immediate", recording_begin)

        checkout_service.checkout(cashier)
        assert already_open == [False, False]

    def test_committed_sale_cannot_be_compensated(self, panadol, cashier, manager):
        cart_service.add_line(cashier, panadol.id, "SINGLE")
        sale = checkout_service.checkout(cashier).sale
        with pytest.raises(InvalidStateError):
            checkout_service.compensate_sale(sale.id, manager)


class TestPartialCommit:

    def test_deducted_prefix_becomes_the_sale(self, panadol, syrup, gloves, cashier, manager, stale_validation):
        cart_service.add_line(cashier, syrup.id, "BOTTLE", 2)
        cart_service.add_line(cashier, gloves.id, "PAIR", 5)
        cart_service.add_line(cashier, panadol.id, "SINGLE")
        _lose(gloves, 3, manager)

        result = checkout_service.checkout(cashier, payment_method="credit", accept_partial=True)

        assert result.is_partial
        sale = result.sale
        assert sale.status == SALE_STATUS_PARTIAL
        assert [line.item_id for line in sale.lines] == [syrup.id]
        assert sale.subtotal_cents == sale.total_cents == 600
        assert result.credit_account.balance_cents == 600
        assert [line["item_id"] for line in result.failed_lines] == [gloves.id, panadol.id]

        remaining = cart_service.get_cart(cashier).lines
        assert [line.item_id for line in remaining] == [gloves.id, panadol.id]
        assert stock_service.balance_as_of(syrup.id) == 8

    def test_nothing_deducted_is_still_a_failure(self, gloves, syrup, cashier, manager, stale_validation):
        cart_service.add_line(cashier, gloves.id, "PAIR", 5)
        cart_service.add_line(cashier, syrup.id, "BOTTLE")
        _lose(gloves, 1, manager)

        with pytest.raises(StockRaceError):
            checkout_service.checkout(cashier, accept_partial=True)


class TestSaleQueries:

    def test_list_sales_by_cashier(self, panadol, cashier, other_cashier):
        cart_service.add_line(cashier, panadol.id, "SINGLE")
        mine = checkout_service.checkout(cashier).sale
        cart_service.add_line(other_cashier, panadol.id, "SINGLE")
        checkout_service.checkout(other_cashier)

        assert [s.id for s in checkout_service.list_sales(cashier_id=cashier.operator_id)] == [mine.id]
        assert len(checkout_service.list_sales()) == 2
