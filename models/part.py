import enum
from datetime import datetime

from sqlalchemy import event

from models.db import db


class MovementKind(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


class Part(db.Model):
    __tablename__ = "parts"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    reference = db.Column(db.String(64), nullable=False, unique=True, index=True)

    unit_price = db.Column(db.Integer, nullable=False, default=0)  # smallest currency unit
    # only changed through services.inventory, each change paired with a StockMovement
    stock = db.Column(db.Integer, nullable=False, default=0)
    alert_threshold = db.Column(db.Integer, nullable=False, default=10)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_part_stock_non_negative"),
    )


class StockMovement(db.Model):
    __tablename__ = "stock_movements"

    id = db.Column(db.Integer, primary_key=True)
    part_id = db.Column(db.Integer, db.ForeignKey("parts.id"), nullable=False, index=True)

    kind = db.Column(db.Enum(MovementKind, native_enum=False, length=20), nullable=False)
    delta = db.Column(db.Integer, nullable=False)  # signed
    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    intervention_id = db.Column(db.Integer, db.ForeignKey("interventions.id"), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    part = db.relationship("Part")

    __table_args__ = (
        db.CheckConstraint("stock_after = stock_before + delta", name="ck_movement_balanced"),
    )


@event.listens_for(StockMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise RuntimeError(f"StockMovement {target.id} is append-only and cannot be modified")


@event.listens_for(StockMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise RuntimeError(f"StockMovement {target.id} is append-only and cannot be deleted")
