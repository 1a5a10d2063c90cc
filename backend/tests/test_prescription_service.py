"""Prescription parsing, resolution against the catalog, and the prescription store."""

from types import SimpleNamespace

import pytest

from pharmapos.errors import InvalidInputError, InvalidStateError
from pharmapos.models.prescriptions import PRESCRIPTION_CANCELLED, PRESCRIPTION_DISPENSED, PRESCRIPTION_PENDING
from pharmapos.services import cart_service, prescription_service, stock_service
from pharmapos.services.prescription_service import (
    parse_dosage_quantity,
    parse_duration_days,
    parse_frequency_per_day,
    resolve_item,
    resolve_prescription,
)


def rx_item(medicine, dosage=None, frequency=None, duration=None):
    return SimpleNamespace(
        medicine_text=medicine,
        dosage_text=dosage,
        frequency_text=frequency,
        duration_text=duration,
    )


class TestParsers:

    @pytest.mark.parametrize("text,expected", [
        ("2 tablets", 2),
        ("take 10ml", 10),
        ("one tablet", 1),
        ("", 1),
        (None, 1),
    ])
    def test_dosage(self, text, expected):
        assert parse_dosage_quantity(text) == expected

    @pytest.mark.parametrize("text,expected", [
        ("Once daily", 1),
        ("1 time a day", 1),
        ("Twice daily", 2),
        ("Three times daily", 3),
        ("four times daily", 4),
        ("BD", 2),
        ("tds", 3),
        ("q.d.s", 4),
        ("every 6 hours", 4),
        ("8 hourly", 3),
        ("every 12 hours", 2),
        ("2 times", 2),
        ("5 per day", 5),
        ("as needed", 1),
        (None, 1),
    ])
    def test_frequency(self, text, expected):
        assert parse_frequency_per_day(text) == expected

    @pytest.mark.parametrize("text,expected", [
        ("5 days", 5),
        ("2 weeks", 14),
        ("1 month", 30),
        ("week", 7),
        ("10", 10),
        (None, 1),
    ])
    def test_duration(self, text, expected):
        assert parse_duration_days(text) == expected


class TestResolveItem:

    def test_match_in_either_direction(self, panadol, syrup):
        catalog = prescription_service.resolution_catalog()
        assert resolve_item("panadol", catalog).id == panadol.id
        assert resolve_item("Cough Syrup 100ml bottle", catalog).id == syrup.id
        assert resolve_item("Ibuprofen", catalog) is None

    def test_blank_text_never_matches(self, panadol):
        assert resolve_item("   ", prescription_service.resolution_catalog()) is None

    def test_first_match_without_stock_resolves_to_none(self, gloves, manager):
        stock_service.append_stock_event(
            item_id=gloves.id, delta=-5, reason="SALE",
            performed_by=manager.display_name, performed_by_role=manager.role,
        )
        assert resolve_item("gloves", prescription_service.resolution_catalog()) is None


class TestResolvePrescription:

    def test_quantity_is_capped_to_stock_with_shortfall(self, panadol):
        resolution = resolve_prescription(
            [rx_item("Panadol", "2 tablets", "Three times daily", "5 days")],
            prescription_service.resolution_catalog(),
        )
        assert resolution.unmatched_count == 0
        resolved = resolution.lines[0]
        assert resolved.requested_quantity == 30
        assert resolved.line.quantity == 20
        assert resolved.shortfall == 10
        assert resolved.line.unit_type == "SINGLE"
        assert resolved.line.line_total_cents == 200

    def test_unmatched_items_are_counted_not_raised(self, panadol):
        resolution = resolve_prescription(
            [rx_item("Panadol", "1", "once", "3 days"), rx_item("Unobtainium")],
            prescription_service.resolution_catalog(),
        )
        assert [r.line.quantity for r in resolution.lines] == [3]
        assert resolution.unmatched == ["Unobtainium"]

    def test_nothing_matched_is_an_empty_result(self, db_session):
        resolution = resolve_prescription([rx_item("Anything")], [])
        assert resolution.lines == []
        assert resolution.unmatched_count == 1


class TestPrescriptionStore:

    def _create(self, pharmacist, **kwargs):
        items = kwargs.pop("items", [
            {"medicine": "Panadol", "dosage": "2 tablets", "frequency": "Three times daily", "duration": "5 days"},
        ])
        return prescription_service.create_prescription(
            pharmacist, patient_name="John Doe", patient_phone="0711111111", items=items, **kwargs,
        )

    def test_create_and_list_pending(self, db_session, pharmacist):
        rx = self._create(pharmacist, diagnosis="Fever")
        assert rx.status == PRESCRIPTION_PENDING
        assert rx.created_by == pharmacist.operator_id
        assert [p.id for p in prescription_service.list_pending()] == [rx.id]

    def test_create_requires_items(self, db_session, pharmacist):
        with pytest.raises(InvalidInputError):
            self._create(pharmacist, items=[])
        with pytest.raises(InvalidInputError):
            self._create(pharmacist, items=[{"medicine": "  "}])

    def test_only_pending_can_be_dispensed_or_cancelled(self, db_session, pharmacist):
        rx = self._create(pharmacist)
        prescription_service.cancel_prescription(rx.id)
        assert prescription_service.get_prescription(rx.id).status == PRESCRIPTION_CANCELLED
        with pytest.raises(InvalidStateError):
            prescription_service.mark_dispensed(rx.id, "Phil")

        rx2 = self._create(pharmacist)
        dispensed = prescription_service.mark_dispensed(rx2.id, "Phil")
        assert dispensed.status == PRESCRIPTION_DISPENSED
        assert dispensed.dispensed_by == "Phil"
        with pytest.raises(InvalidStateError):
            prescription_service.cancel_prescription(rx2.id)
        assert prescription_service.list_pending() == []

    def test_load_into_cart(self, panadol, pharmacist, cashier):
        rx = self._create(pharmacist)
        cart_service.add_line(cashier, panadol.id, "BOX")

        resolution = prescription_service.load_into_cart(cashier, rx.id)
        cart = cart_service.get_cart(cashier)
        assert [line.quantity for line in cart.lines] == [20]
        assert cart.customer_name == "John Doe"
        assert cart.source_prescription_id == rx.id
        assert resolution.lines[0].shortfall == 10

    def test_load_with_no_match_leaves_cart_alone(self, panadol, pharmacist, cashier):
        rx = self._create(pharmacist, items=[{"medicine": "Unobtainium"}])
        cart_service.add_line(cashier, panadol.id, "BOX")

        resolution = prescription_service.load_into_cart(cashier, rx.id)
        assert resolution.lines == []
        cart = cart_service.get_cart(cashier)
        assert [line.unit_type for line in cart.lines] == ["BOX"]
        assert cart.source_prescription_id is None
