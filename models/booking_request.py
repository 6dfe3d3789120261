import enum
from datetime import datetime
from models.db import db


class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REFUSED = "REFUSED"
    CANCELLED = "CANCELLED"


class PreferredMoment(str, enum.Enum):
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"
    EVENING = "EVENING"


class BookingRequest(db.Model):
    __tablename__ = "booking_requests"

    id = db.Column(db.Integer, primary_key=True)

    client_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    claim_id = db.Column(db.Integer, db.ForeignKey("claims.id"), nullable=True, index=True)

    motive = db.Column(db.String(255), nullable=False)
    desired_date = db.Column(db.Date, nullable=False)
    preferred_moment = db.Column(db.Enum(PreferredMoment, native_enum=False, length=20), nullable=True)
    comment = db.Column(db.Text, nullable=True)

    # chosen at submission, (re)set at acceptance; reserved only on acceptance
    slot_id = db.Column(db.Integer, db.ForeignKey("slots.id"), nullable=True, index=True)
    intervention_id = db.Column(db.Integer, db.ForeignKey("interventions.id"), nullable=True)

    status = db.Column(
        db.Enum(RequestStatus, native_enum=False, length=20),
        nullable=False,
        default=RequestStatus.PENDING,
        index=True,
    )

    assigned_responsable_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    processed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    processed_at = db.Column(db.DateTime, nullable=True)
    refusal_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    slot = db.relationship("Slot", foreign_keys=[slot_id])
    intervention = db.relationship("Intervention", foreign_keys=[intervention_id])
