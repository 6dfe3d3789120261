import enum
from datetime import datetime
from models.db import db


class InterventionStatus(str, enum.Enum):
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = (InterventionStatus.COMPLETED, InterventionStatus.CANCELLED)


class Intervention(db.Model):
    __tablename__ = "interventions"

    id = db.Column(db.Integer, primary_key=True)

    claim_id = db.Column(db.Integer, db.ForeignKey("claims.id"), nullable=True, index=True)
    technician_id = db.Column(db.Integer, db.ForeignKey("technicians.id"), nullable=False, index=True)
    scheduled_at = db.Column(db.DateTime, nullable=False, index=True)

    status = db.Column(
        db.Enum(InterventionStatus, native_enum=False, length=20),
        nullable=False,
        default=InterventionStatus.PLANNED,
        index=True,
    )

    # amounts are stored in smallest currency unit
    labor_amount = db.Column(db.Integer, nullable=False, default=0)
    total_amount = db.Column(db.Integer, nullable=False, default=0)
    # decided once at creation from the warranty check, never re-evaluated
    is_free = db.Column(db.Boolean, nullable=False, default=False)

    comment = db.Column(db.Text, nullable=True)
    bill_snapshot_json = db.Column(db.Text, nullable=True)
    invoice_number = db.Column(db.String(30), nullable=True, unique=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)

    technician = db.relationship("Technician")
    parts = db.relationship(
        "ConsumedPart",
        back_populates="intervention",
        order_by="ConsumedPart.id",
    )

    __table_args__ = (
        db.CheckConstraint("labor_amount >= 0", name="ck_intervention_labor_non_negative"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ConsumedPart(db.Model):
    __tablename__ = "consumed_parts"

    id = db.Column(db.Integer, primary_key=True)
    intervention_id = db.Column(db.Integer, db.ForeignKey("interventions.id"), nullable=False, index=True)
    part_id = db.Column(db.Integer, db.ForeignKey("parts.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)  # price at time of use
    subtotal = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    intervention = db.relationship("Intervention", back_populates="parts")
    part = db.relationship("Part")

    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_consumed_part_quantity_positive"),
    )
