# Overview: Flask API routes for prescriptions; parses input and returns JSON responses.

# backend/pharmapos/routes/prescriptions.py
"""
Prescription routes.

Prescriptions are written by pharmacists (or managers/admins) and picked
up at the till by loading them into a cart (see /api/cart/prescriptions).
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_operator, require_role
from ..errors import InvalidInputError, PosError
from ..identity import ROLE_ADMIN, ROLE_MANAGER, ROLE_PHARMACIST
from ..services import prescription_service
from ..validation import get_str

prescriptions_bp = Blueprint("prescriptions", __name__, url_prefix="/api/prescriptions")

PRESCRIBERS = (ROLE_ADMIN, ROLE_MANAGER, ROLE_PHARMACIST)


@prescriptions_bp.post("")
@require_operator
@require_role(*PRESCRIBERS)
def create_prescription_route():
    """
    Body:
    - patient_name (required), patient_phone, diagnosis, notes
    - items (required): [{medicine, dosage, frequency, duration, instructions}]
    """
    payload = request.get_json(silent=True) or {}

    try:
        items = payload.get("items")
        if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
            raise InvalidInputError("items must be a list of objects")
        prescription = prescription_service.create_prescription(
            g.operator,
            patient_name=get_str(payload, "patient_name", required=True),
            items=items,
            patient_phone=get_str(payload, "patient_phone", max_length=32),
            diagnosis=get_str(payload, "diagnosis", max_length=500),
            notes=get_str(payload, "notes", max_length=1000),
        )
        return jsonify({"prescription": prescription.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create prescription")
        return jsonify({"error": "Internal server error"}), 500


@prescriptions_bp.get("/pending")
@require_operator
def list_pending_route():
    prescriptions = prescription_service.list_pending()
    return jsonify({"prescriptions": [p.to_dict() for p in prescriptions]}), 200


@prescriptions_bp.get("/<int:prescription_id>")
@require_operator
def get_prescription_route(prescription_id: int):
    try:
        prescription = prescription_service.get_prescription(prescription_id)
        return jsonify({"prescription": prescription.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@prescriptions_bp.post("/<int:prescription_id>/cancel")
@require_operator
@require_role(*PRESCRIBERS)
def cancel_prescription_route(prescription_id: int):
    try:
        prescription = prescription_service.cancel_prescription(prescription_id)
        return jsonify({"prescription": prescription.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
