"""
Inventory ledger: part stock and its append-only movement history.

Stock is only changed by conditional UPDATEs scoped to one part
(``stock = stock - q WHERE stock >= q``), so concurrent consumers of the
same part serialize on the row and can never drive the stock negative.
Every change appends exactly one StockMovement.
"""
import logging
from datetime import datetime
from typing import List, Optional

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from models import db
from models.part import MovementKind, Part, StockMovement
from services import transaction
from services.errors import InsufficientStock, InvalidState, NotFound, ValidationFailed

logger = logging.getLogger(__name__)

ADJUST_MAX_ATTEMPTS = 3


def _positive_quantity(quantity) -> int:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValidationFailed("quantity must be a positive integer", quantity=quantity)
    return quantity


def _is_count(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _record_movement(part_id, kind, delta, stock_before, stock_after, reason, intervention_id=None) -> StockMovement:
    movement = StockMovement(
        part_id=part_id,
        kind=kind,
        delta=delta,
        stock_before=stock_before,
        stock_after=stock_after,
        reason=reason,
        intervention_id=intervention_id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def get_part(part_id: int) -> Part:
    part = db.session.get(Part, part_id)
    if part is None:
        raise NotFound("Part not found", part_id=part_id)
    return part


def create_part(name: str, reference: str, unit_price: int, stock: int = 0, alert_threshold: Optional[int] = None) -> Part:
    name = (name or "").strip()
    reference = (reference or "").strip()
    if not name or not reference:
        raise ValidationFailed("name and reference are required")
    if not _is_count(unit_price):
        raise ValidationFailed("unit_price must be a non-negative integer", unit_price=unit_price)
    if not _is_count(stock):
        raise ValidationFailed("stock must be a non-negative integer", stock=stock)
    if alert_threshold is None:
        alert_threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 10)
    elif not _is_count(alert_threshold):
        raise ValidationFailed("alert_threshold must be a non-negative integer", alert_threshold=alert_threshold)

    with transaction():
        part = Part(name=name, reference=reference, unit_price=unit_price, stock=stock, alert_threshold=alert_threshold)
        db.session.add(part)
        try:
            db.session.flush()
        except IntegrityError:
            raise ValidationFailed("A part with this reference already exists", reference=reference)
        if stock:
            _record_movement(part.id, MovementKind.IN, stock, 0, stock, "Initial stock")

    logger.info("Part %s (%s) created with stock %s", part.id, reference, stock)
    return part


def consume(part_id: int, quantity: int, intervention_id: Optional[int] = None, reason: str = "Used in intervention") -> int:
    """
    Take ``quantity`` units out of stock. Returns the unit price used for
    the line. Fails with InsufficientStock, changing nothing, when the
    available stock is lower than requested.
    """
    _positive_quantity(quantity)
    with transaction():
        result = db.session.execute(
            update(Part)
            .where(Part.id == part_id, Part.stock >= quantity)
            .values(stock=Part.stock - quantity, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            part = get_part(part_id)
            logger.info("Insufficient stock for part %s: available %s, requested %s", part_id, part.stock, quantity)
            raise InsufficientStock(
                "Not enough stock for this part",
                part_id=part_id,
                available=part.stock,
                requested=quantity,
            )

        # row is write-locked by the UPDATE until commit
        part = db.session.get(Part, part_id, populate_existing=True)
        _record_movement(
            part_id, MovementKind.OUT, -quantity, part.stock + quantity, part.stock, reason, intervention_id
        )
        return part.unit_price


def restock(part_id: int, quantity: int, reason: str = "Restock") -> Part:
    _positive_quantity(quantity)
    with transaction():
        result = db.session.execute(
            update(Part)
            .where(Part.id == part_id)
            .values(stock=Part.stock + quantity, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFound("Part not found", part_id=part_id)

        part = db.session.get(Part, part_id, populate_existing=True)
        _record_movement(part_id, MovementKind.IN, quantity, part.stock - quantity, part.stock, reason or "Restock")

    logger.info("Part %s restocked by %s (now %s)", part_id, quantity, part.stock)
    return part


def adjust_stock(part_id: int, new_stock: int, reason: str) -> Part:
    """Set the stock to an audited level (inventory count correction)."""
    if not isinstance(new_stock, int) or isinstance(new_stock, bool) or new_stock < 0:
        raise ValidationFailed("new_stock must be a non-negative integer")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed("reason is required for a stock adjustment")

    with transaction():
        for _ in range(ADJUST_MAX_ATTEMPTS):
            part = db.session.get(Part, part_id, populate_existing=True)
            if part is None:
                raise NotFound("Part not found", part_id=part_id)
            before = part.stock
            if before == new_stock:
                return part

            result = db.session.execute(
                update(Part)
                .where(Part.id == part_id, Part.stock == before)
                .values(stock=new_stock, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                _record_movement(part_id, MovementKind.ADJUSTMENT, new_stock - before, before, new_stock, reason)
                part = db.session.get(Part, part_id, populate_existing=True)
                logger.info("Part %s stock adjusted %s -> %s (%s)", part_id, before, new_stock, reason)
                return part

        raise InvalidState("Stock changed concurrently, please retry the adjustment", part_id=part_id)


def list_parts() -> List[Part]:
    return Part.query.order_by(Part.name.asc()).all()


def low_stock_parts() -> List[Part]:
    return (
        Part.query
        .filter(Part.stock <= Part.alert_threshold)
        .order_by(Part.stock.asc(), Part.name.asc())
        .all()
    )


def list_movements(part_id: int, limit: int = 50) -> List[StockMovement]:
    get_part(part_id)
    return (
        StockMovement.query
        .filter(StockMovement.part_id == part_id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
