"""
Slot store: single source of truth for "is this slot free".

Reservation state is only ever changed through ``reserve_slot`` /
``release_slot``, each a single conditional UPDATE, so two concurrent
reservations of the same slot cannot both succeed.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update

from models import db
from models.slot import Slot
from models.technician import Technician
from services.errors import NotFound, SlotAlreadyReserved

logger = logging.getLogger(__name__)


def get_slot(slot_id: int) -> Slot:
    slot = db.session.get(Slot, slot_id)
    if slot is None:
        raise NotFound("Slot not found", slot_id=slot_id)
    return slot


def lock_technician(technician_id: int) -> Technician:
    """Row lock serializing every writer of one technician's slots."""
    technician = Technician.query.filter(Technician.id == technician_id).with_for_update().first()
    if technician is None:
        raise NotFound("Technician not found", technician_id=technician_id)
    return technician


def list_slots(
    technician_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    free_only: bool = False,
) -> List[Slot]:
    q = Slot.query
    if technician_id:
        q = q.filter(Slot.technician_id == technician_id)
    if start:
        q = q.filter(Slot.start_time >= start)
    if end:
        q = q.filter(Slot.end_time <= end)
    if free_only:
        q = q.filter(Slot.is_reserved.is_(False))
    return q.order_by(Slot.start_time.asc(), Slot.technician_id.asc()).all()


def reserve_slot(slot_id: int, intervention_id: int) -> Slot:
    """Compare-and-set the reservation flag and link the consuming intervention."""
    result = db.session.execute(
        update(Slot)
        .where(Slot.id == slot_id, Slot.is_reserved.is_(False))
        .values(is_reserved=True, intervention_id=intervention_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        get_slot(slot_id)
        logger.info("Slot %s already reserved, reservation for intervention %s rejected", slot_id, intervention_id)
        raise SlotAlreadyReserved("This slot was just taken, please pick another one", slot_id=slot_id)

    return db.session.get(Slot, slot_id, populate_existing=True)


def release_slot(slot_id: int) -> Slot:
    """Free the slot. Releasing an already free slot is a no-op."""
    result = db.session.execute(
        update(Slot)
        .where(Slot.id == slot_id)
        .values(is_reserved=False, intervention_id=None)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFound("Slot not found", slot_id=slot_id)
    return db.session.get(Slot, slot_id, populate_existing=True)


def release_slots_of_intervention(intervention_id: int) -> int:
    result = db.session.execute(
        update(Slot)
        .where(Slot.intervention_id == intervention_id)
        .values(is_reserved=False, intervention_id=None)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info("Released %s slot(s) held by intervention %s", result.rowcount, intervention_id)
    return result.rowcount


def move_reservation(slot_id: int, technician_id: int) -> Slot:
    """
    Hand a reserved slot over to another technician.

    Their free slot covering exactly the same time takes the reservation; if
    they have no slot at all at that time, the slot itself changes hands.
    Any other overlap would double-book them and raises SlotAlreadyReserved.
    Returns the slot now holding the reservation.
    """
    slot = get_slot(slot_id)
    lock_technician(technician_id)
    clashing = Slot.query.filter(
        Slot.technician_id == technician_id,
        Slot.start_time < slot.end_time,
        Slot.end_time > slot.start_time,
    ).all()

    if not clashing:
        slot.technician_id = technician_id
        db.session.flush()
        logger.info("Slot %s handed over to technician %s", slot.id, technician_id)
        return slot

    twin = clashing[0]
    if len(clashing) > 1 or (twin.start_time, twin.end_time) != (slot.start_time, slot.end_time):
        raise SlotAlreadyReserved(
            "The technician already has a slot overlapping this time",
            slot_id=slot.id,
            technician_id=technician_id,
        )

    intervention_id = slot.intervention_id
    release_slot(slot.id)
    moved = reserve_slot(twin.id, intervention_id)
    logger.info("Reservation of intervention %s moved from slot %s to slot %s", intervention_id, slot.id, twin.id)
    return moved
