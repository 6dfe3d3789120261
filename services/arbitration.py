"""
Responsable-facing arbitration of booking requests.

``accept`` is one unit of work: request PENDING -> CONFIRMED, intervention
creation and slot reservation either all persist or none does. Both state
changes are compare-and-set statements, so two responsables accepting the
same request (or the same slot) concurrently end with exactly one winner.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update

from models import db
from models.booking_request import BookingRequest, RequestStatus
from models.slot import Slot
from services import interventions, transaction
from services.collaborators import Collaborators
from services.errors import NotFound, RequestNotPending, SlotAlreadyReserved, ValidationFailed
from services.slot_store import get_slot, reserve_slot

logger = logging.getLogger(__name__)


def _claim_pending(request_id: int, new_status: RequestStatus, **values) -> BookingRequest:
    result = db.session.execute(
        update(BookingRequest)
        .where(BookingRequest.id == request_id, BookingRequest.status == RequestStatus.PENDING)
        .values(status=new_status, **values)
        .execution_options(synchronize_session=False)
    )
    req = db.session.get(BookingRequest, request_id, populate_existing=True)
    if req is None:
        raise NotFound("Request not found", request_id=request_id)
    if result.rowcount != 1:
        logger.info("Request %s is %s, not pending", request_id, req.status.value)
        raise RequestNotPending(
            "This request has already been processed",
            request_id=request_id,
            status=req.status.value,
        )
    return req


def accept(
    request_id: int,
    collaborators: Collaborators,
    slot_id: Optional[int] = None,
    responsable_id: Optional[int] = None,
    labor_amount: int = 0,
) -> BookingRequest:
    """
    Confirm a pending request on ``slot_id`` (defaults to the slot the
    client chose). Fails with RequestNotPending or SlotAlreadyReserved,
    leaving the request PENDING in the latter case.
    """
    with transaction():
        now = datetime.utcnow()
        req = _claim_pending(
            request_id,
            RequestStatus.CONFIRMED,
            processed_by=responsable_id,
            processed_at=now,
        )

        slot_id = slot_id if slot_id is not None else req.slot_id
        if slot_id is None:
            raise ValidationFailed("A slot is required to accept this request", request_id=request_id)
        slot: Slot = get_slot(slot_id)
        if slot.start_time <= now:
            raise ValidationFailed("Cannot book a slot in the past", slot_id=slot_id)
        if slot.is_reserved:
            raise SlotAlreadyReserved("This slot was just taken, please pick another one", slot_id=slot_id)

        intervention = interventions.create_intervention(
            claim_id=req.claim_id,
            technician_id=slot.technician_id,
            scheduled_at=slot.start_time,
            collaborators=collaborators,
            labor_amount=labor_amount,
            comment=req.motive,
        )
        # the flag may still flip between the read above and here; the
        # conditional UPDATE is what decides
        reserve_slot(slot.id, intervention.id)

        req.slot_id = slot.id
        req.intervention_id = intervention.id

    logger.info(
        "Request %s accepted by %s: slot %s, intervention %s",
        request_id, responsable_id, slot_id, req.intervention_id,
    )
    return req


def refuse(request_id: int, reason: str, responsable_id: Optional[int] = None) -> BookingRequest:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed("A reason is required to refuse a request")

    with transaction():
        req = _claim_pending(
            request_id,
            RequestStatus.REFUSED,
            refusal_reason=reason,
            processed_by=responsable_id,
            processed_at=datetime.utcnow(),
        )

    logger.info("Request %s refused by %s", request_id, responsable_id)
    return req


def list_pending(responsable_id: Optional[int] = None) -> List[BookingRequest]:
    """Oldest first. With ``responsable_id``, only the requests routed to them."""
    q = BookingRequest.query.filter(BookingRequest.status == RequestStatus.PENDING)
    if responsable_id:
        q = q.filter(BookingRequest.assigned_responsable_id == responsable_id)
    return q.order_by(BookingRequest.created_at.asc(), BookingRequest.id.asc()).all()
