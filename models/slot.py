from datetime import datetime
from models.db import db

class Slot(db.Model):
    __tablename__ = "slots"

    id = db.Column(db.Integer, primary_key=True)

    technician_id = db.Column(db.Integer, db.ForeignKey("technicians.id"), nullable=False, index=True)
    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False)

    # only changed through services.slot_store (compare-and-set)
    is_reserved = db.Column(db.Boolean, default=False, nullable=False)
    intervention_id = db.Column(db.Integer, db.ForeignKey("interventions.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    technician = db.relationship("Technician")

    __table_args__ = (
        # Prevent duplicate slot times for same technician
        db.UniqueConstraint("technician_id", "start_time", "end_time", name="uq_technician_timeslot"),
        db.CheckConstraint("end_time > start_time", name="ck_slot_positive_duration"),
    )
