from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


PRESCRIPTION_PENDING = "PENDING"
PRESCRIPTION_DISPENSED = "DISPENSED"
PRESCRIPTION_CANCELLED = "CANCELLED"


class Prescription(db.Model):
    """Prescription written by a pharmacist/doctor, waiting to be dispensed at the till."""
    __tablename__ = "prescriptions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    patient_name = db.Column(db.String(255), nullable=False)
    patient_phone = db.Column(db.String(64), nullable=True)
    diagnosis = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=PRESCRIPTION_PENDING, index=True)

    created_by = db.Column(db.String(128), nullable=False)
    created_by_name = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    dispensed_by = db.Column(db.String(255), nullable=True)
    dispensed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    items = db.relationship(
        "PrescriptionItem",
        order_by="PrescriptionItem.position",
        cascade="all, delete-orphan",
        back_populates="prescription",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "patient_name": self.patient_name,
            "patient_phone": self.patient_phone,
            "diagnosis": self.diagnosis,
            "notes": self.notes,
            "status": self.status,
            "items": [item.to_dict() for item in self.items],
            "created_by": self.created_by,
            "created_by_name": self.created_by_name,
            "created_at": to_utc_z(self.created_at),
            "dispensed_by": self.dispensed_by,
            "dispensed_at": to_utc_z(self.dispensed_at),
        }


class PrescriptionItem(db.Model):
    __tablename__ = "prescription_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    prescription_id = db.Column(db.Integer, db.ForeignKey("prescriptions.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    medicine_text = db.Column(db.String(255), nullable=False)
    dosage_text = db.Column(db.String(255), nullable=True)
    frequency_text = db.Column(db.String(255), nullable=True)
    duration_text = db.Column(db.String(255), nullable=True)
    instructions = db.Column(db.Text, nullable=True)

    prescription = db.relationship("Prescription", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "medicine": self.medicine_text,
            "dosage": self.dosage_text,
            "frequency": self.frequency_text,
            "duration": self.duration_text,
            "instructions": self.instructions,
        }
