"""Stock ledger: append-only events and ledger-derived balances."""

import threading
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from pharmapos import create_app
from pharmapos.errors import InsufficientStockError, InvalidInputError, UnitNotFoundError
from pharmapos.extensions import db
from pharmapos.models import StockEvent
from pharmapos.models.stock import (
    REASON_ADJUSTMENT,
    REASON_EXPIRED,
    REASON_INTERNAL_USE,
    REASON_LOSS,
    REASON_PURCHASE,
    REASON_RETURN,
    REASON_SALE,
)
from pharmapos.services import catalog_service, stock_service
from pharmapos.services.concurrency import begin_immediate
from pharmapos.time_utils import utcnow


def _append(item, delta, reason=REASON_SALE):
    return stock_service.append_stock_event(
        item_id=item.id,
        delta=delta,
        reason=reason,
        performed_by="tester",
        performed_by_role="manager",
    )


def _ledger_sum(item):
    return sum(e.delta for e in db.session.query(StockEvent).filter_by(item_id=item.id))


class TestAppend:

    def test_opening_stock_is_a_purchase_event(self, panadol):
        events = stock_service.list_events(panadol.id)
        assert len(events) == 1
        assert events[0].reason == REASON_PURCHASE
        assert events[0].delta == 20
        assert events[0].balance_after == 20

    def test_balance_equals_sum_of_deltas(self, panadol):
        _append(panadol, 30, REASON_PURCHASE)
        _append(panadol, -7)
        _append(panadol, 2, REASON_RETURN)
        _append(panadol, -5, REASON_ADJUSTMENT)

        balance = stock_service.balance_as_of(panadol.id)
        assert balance == 40
        assert balance == _ledger_sum(panadol)
        db.session.refresh(panadol)
        assert panadol.on_hand_quantity == balance

    def test_deduction_to_exactly_zero_is_allowed(self, gloves):
        event = _append(gloves, -5)
        assert event.balance_after == 0

    def test_negative_balance_rejected_and_not_recorded(self, gloves):
        before = db.session.query(StockEvent).count()
        with pytest.raises(InsufficientStockError) as exc:
            _append(gloves, -6)
        assert exc.value.details["on_hand"] == 5
        assert exc.value.details["requested"] == 6
        assert db.session.query(StockEvent).count() == before
        assert stock_service.balance_as_of(gloves.id) == 5

    @pytest.mark.parametrize("reason", [REASON_LOSS, REASON_EXPIRED, REASON_INTERNAL_USE, REASON_ADJUSTMENT])
    def test_every_deducting_reason_is_checked(self, gloves, reason):
        with pytest.raises(InsufficientStockError):
            _append(gloves, -100, reason)

    def test_purchase_has_no_upper_bound(self, gloves):
        assert _append(gloves, 1_000_000, REASON_PURCHASE).balance_after == 1_000_005

    def test_sign_must_match_reason(self, gloves):
        with pytest.raises(InvalidInputError):
            _append(gloves, -1, REASON_PURCHASE)
        with pytest.raises(InvalidInputError):
            _append(gloves, 1, REASON_SALE)
        with pytest.raises(InvalidInputError):
            _append(gloves, 0, REASON_ADJUSTMENT)

    def test_unknown_reason_rejected(self, gloves):
        with pytest.raises(InvalidInputError):
            _append(gloves, 1, "GIFT")


class TestLastUnitsRace:

    def test_only_one_of_two_deductions_of_the_last_units_succeeds(self, gloves):
        first = _append(gloves, -5)
        assert first.balance_after == 0

        with pytest.raises(InsufficientStockError):
            _append(gloves, -5)

        assert stock_service.balance_as_of(gloves.id) == 0
        sales = db.session.query(StockEvent).filter_by(item_id=gloves.id, reason=REASON_SALE).count()
        assert sales == 1


class TestBeginImmediate:

    def test_takes_the_write_lock_on_a_fresh_session(self, db_session):
        db.session.commit()
        begin_immediate()
        assert db.session().in_transaction()
        db.session.rollback()


class TestConcurrentDeductions:

    def test_two_tills_race_for_the_last_units(self, tmp_path):
        race_app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'race.sqlite3'}",
            "LOG_LEVEL": "WARNING",
        })
        with race_app.app_context():
            db.create_all()
            item = catalog_service.create_item(
                name="Surgical Gloves",
                units=[{"type": "PAIR", "base_quantity": 1}],
                source_unit_type="PAIR",
                source_price_cents=40,
                opening_quantity=5,
            )
            item_id = item.id

        barrier = threading.Barrier(2)
        outcomes = []
        outcomes_lock = threading.Lock()

        def sell_last_units():
            with race_app.app_context():
                barrier.wait()
                try:
                    stock_service.append_stock_event(
                        item_id=item_id,
                        delta=-5,
                        reason=REASON_SALE,
                        performed_by="till",
                        performed_by_role="cashier",
                    )
                    outcome = "ok"
                except InsufficientStockError:
                    outcome = "insufficient"
                except Exception as exc:
                    outcome = repr(exc)
                with outcomes_lock:
                    outcomes.append(outcome)

        threads = [threading.Thread(target=sell_last_units) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert sorted(outcomes) == ["insufficient", "ok"]
        with race_app.app_context():
            assert stock_service.balance_as_of(item_id) == 0
            assert db.session.query(StockEvent).filter_by(item_id=item_id, reason=REASON_SALE).count() == 1
            db.engine.dispose()


class TestBalanceAsOf:

    def test_as_of_is_inclusive(self, gloves):
        event = _append(gloves, 10, REASON_PURCHASE)
        assert stock_service.balance_as_of(gloves.id, event.occurred_at) == 15
        assert stock_service.balance_as_of(gloves.id, event.occurred_at - timedelta(days=1)) == 0
        assert stock_service.balance_as_of(gloves.id, utcnow() + timedelta(days=1)) == 15


class TestRecordMovement:

    def test_loss_takes_positive_quantity(self, panadol, manager):
        event = stock_service.record_movement(
            item_id=panadol.id,
            quantity=3,
            reason=REASON_LOSS,
            performed_by=manager.display_name,
            performed_by_role=manager.role,
        )
        assert event.delta == -3
        assert event.balance_after == 17

    def test_quantity_in_a_unit_converts_to_base_units(self, panadol, manager):
        event = stock_service.record_movement(
            item_id=panadol.id,
            quantity=2,
            reason=REASON_PURCHASE,
            unit_type="box",
            performed_by=manager.display_name,
            performed_by_role=manager.role,
        )
        assert event.delta == 200
        assert event.unit_type == "BOX"
        assert event.balance_after == 220

    def test_adjustment_is_signed(self, panadol, manager):
        event = stock_service.record_movement(
            item_id=panadol.id,
            quantity=-4,
            reason=REASON_ADJUSTMENT,
            performed_by=manager.display_name,
            performed_by_role=manager.role,
        )
        assert event.delta == -4

    def test_sale_is_not_a_manual_movement(self, panadol, manager):
        with pytest.raises(InvalidInputError):
            stock_service.record_movement(
                item_id=panadol.id, quantity=1, reason=REASON_SALE,
                performed_by=manager.display_name, performed_by_role=manager.role,
            )

    def test_unknown_unit_rejected(self, panadol, manager):
        with pytest.raises(UnitNotFoundError):
            stock_service.record_movement(
                item_id=panadol.id, quantity=1, reason=REASON_PURCHASE, unit_type="BOTTLE",
                performed_by=manager.display_name, performed_by_role=manager.role,
            )


class TestStockReports:

    def test_low_and_out_of_stock(self, panadol, syrup, gloves):
        _append(gloves, -5)
        low = stock_service.low_stock_items()
        out = stock_service.out_of_stock_items()
        assert [item.name for item in low] == ["Surgical Gloves"]
        assert [item.name for item in out] == ["Surgical Gloves"]

        # Panadol at 20 with reorder level 5 is fine until it drops to 5
        _append(panadol, -15)
        assert {item.name for item in stock_service.low_stock_items()} == {"Surgical Gloves", "Panadol 500mg"}

    def test_stock_value_uses_single_unit_price(self, panadol, syrup):
        assert stock_service.stock_value_cents(panadol) == 20 * 10
        assert stock_service.stock_value_cents(syrup) == 10 * 300

    def test_stock_value_rounds_half_up_to_whole_cents(self):
        unit = SimpleNamespace(price_cents=25, price_per_base_unit=Decimal("12.5"))
        item = SimpleNamespace(on_hand_quantity=3, base_unit=unit, cost_price_cents=0)
        assert stock_service.stock_value_cents(item) == 38

    def test_stock_audit_totals(self, panadol):
        _append(panadol, -3)
        _append(panadol, -2, REASON_LOSS)
        _append(panadol, -1, REASON_EXPIRED)
        _append(panadol, -4, REASON_INTERNAL_USE)
        _append(panadol, 1, REASON_RETURN)
        _append(panadol, 2, REASON_ADJUSTMENT)

        row = next(r for r in stock_service.stock_audit() if r["item_id"] == panadol.id)
        assert row["total_sold"] == 3
        assert row["total_purchased"] == 20
        assert row["total_lost"] == 3
        assert row["total_internal_use"] == 4
        assert row["total_returned"] == 1
        assert row["total_adjusted"] == 2
        assert row["current_stock"] == stock_service.balance_as_of(panadol.id) == 13
