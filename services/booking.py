"""
Client-facing booking workflow.

A request only *names* a slot; the slot is reserved when a responsable
accepts the request (see services.arbitration). Two clients may therefore
ask for the same free slot and the second acceptance fails late with
SlotAlreadyReserved.
"""
import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import or_, update

from models import db
from models.booking_request import BookingRequest, PreferredMoment, RequestStatus
from models.intervention import TERMINAL_STATUSES, Intervention
from models.slot import Slot
from models.user import User
from services import transaction
from services.collaborators import Collaborators
from services.errors import (
    ActiveRequestExists,
    InvalidState,
    NotFound,
    SlotAlreadyReserved,
    ValidationFailed,
)

logger = logging.getLogger(__name__)


def find_active_request(client_id: int) -> Optional[BookingRequest]:
    """
    A request is active while it is PENDING, or CONFIRMED for a slot that has
    not ended yet and whose intervention is still open.
    """
    pending = (
        BookingRequest.query
        .filter(BookingRequest.client_id == client_id, BookingRequest.status == RequestStatus.PENDING)
        .first()
    )
    if pending:
        return pending

    now = datetime.utcnow()
    return (
        BookingRequest.query
        .join(Slot, Slot.id == BookingRequest.slot_id)
        .outerjoin(Intervention, Intervention.id == BookingRequest.intervention_id)
        .filter(
            BookingRequest.client_id == client_id,
            BookingRequest.status == RequestStatus.CONFIRMED,
            Slot.end_time > now,
            or_(Intervention.id.is_(None), Intervention.status.notin_(TERMINAL_STATUSES)),
        )
        .first()
    )


def _lock_client(client_id: int) -> User:
    # serializes submissions of the same client until commit
    client = (
        User.query
        .filter(User.id == client_id)
        .with_for_update()
        .first()
    )
    if client is None or not client.is_active:
        raise NotFound("Client not found", client_id=client_id)
    return client


def _parse_moment(preferred_moment) -> Optional[PreferredMoment]:
    if preferred_moment is None or isinstance(preferred_moment, PreferredMoment):
        return preferred_moment
    try:
        return PreferredMoment(str(preferred_moment).upper())
    except ValueError:
        raise ValidationFailed(
            "preferred_moment must be one of MORNING, AFTERNOON, EVENING",
            preferred_moment=preferred_moment,
        )


def submit_request(
    client_id: int,
    motive: str,
    desired_date: date,
    collaborators: Collaborators,
    slot_id: Optional[int] = None,
    claim_id: Optional[int] = None,
    comment: Optional[str] = None,
    preferred_moment=None,
) -> BookingRequest:
    motive = (motive or "").strip()
    if not motive:
        raise ValidationFailed("motive is required")
    if not isinstance(desired_date, date):
        raise ValidationFailed("desired_date is required")
    moment = _parse_moment(preferred_moment)

    with transaction():
        _lock_client(client_id)

        active = find_active_request(client_id)
        if active is not None:
            logger.info("Client %s already has active request %s", client_id, active.id)
            raise ActiveRequestExists(
                "You already have an active booking request",
                request_id=active.id,
                status=active.status.value,
            )

        if slot_id is not None:
            slot = db.session.get(Slot, slot_id)
            if slot is None:
                raise NotFound("Slot not found", slot_id=slot_id)
            if slot.start_time <= datetime.utcnow():
                raise ValidationFailed("Cannot request a slot in the past", slot_id=slot_id)
            if slot.is_reserved:
                raise SlotAlreadyReserved("This slot is already taken, please pick another one", slot_id=slot_id)

        if claim_id is not None:
            claim = collaborators.claims.get_claim(claim_id)
            if claim is None or claim.client_id != client_id:
                raise ValidationFailed("Unknown claim for this client", claim_id=claim_id)

        req = BookingRequest(
            client_id=client_id,
            claim_id=claim_id,
            motive=motive,
            desired_date=desired_date,
            preferred_moment=moment,
            comment=comment,
            slot_id=slot_id,
            status=RequestStatus.PENDING,
            assigned_responsable_id=collaborators.responsables.pick_available_responsable(),
        )
        db.session.add(req)
        db.session.flush()

    logger.info(
        "Request %s submitted by client %s (slot %s, routed to responsable %s)",
        req.id, client_id, slot_id, req.assigned_responsable_id,
    )
    return req


def cancel_request(request_id: int, client_id: int) -> BookingRequest:
    with transaction():
        req = db.session.get(BookingRequest, request_id)
        # another client's request is reported as missing
        if req is None or req.client_id != client_id:
            raise NotFound("Request not found", request_id=request_id)

        result = db.session.execute(
            update(BookingRequest)
            .where(BookingRequest.id == request_id, BookingRequest.status == RequestStatus.PENDING)
            .values(status=RequestStatus.CANCELLED, cancelled_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.refresh(req)
            raise InvalidState(
                "Only pending requests can be cancelled",
                request_id=request_id,
                status=req.status.value,
            )
        req = db.session.get(BookingRequest, request_id, populate_existing=True)

    logger.info("Request %s cancelled by client %s", request_id, client_id)
    return req


def get_request(request_id: int) -> BookingRequest:
    req = db.session.get(BookingRequest, request_id)
    if req is None:
        raise NotFound("Request not found", request_id=request_id)
    return req


def list_client_requests(client_id: int, limit: int = 100) -> List[BookingRequest]:
    return (
        BookingRequest.query
        .filter(BookingRequest.client_id == client_id)
        .order_by(BookingRequest.created_at.desc(), BookingRequest.id.desc())
        .limit(limit)
        .all()
    )


def expire_stale_requests(max_age_hours: int) -> int:
    """Cancel PENDING requests older than ``max_age_hours``. Returns how many were expired."""
    if not isinstance(max_age_hours, int) or max_age_hours <= 0:
        raise ValidationFailed("max_age_hours must be a positive integer")

    now = datetime.utcnow()
    cutoff = now - timedelta(hours=max_age_hours)
    with transaction():
        result = db.session.execute(
            update(BookingRequest)
            .where(BookingRequest.status == RequestStatus.PENDING, BookingRequest.created_at < cutoff)
            .values(status=RequestStatus.CANCELLED, cancelled_at=now, refusal_reason="Expired")
            .execution_options(synchronize_session=False)
        )
        expired = result.rowcount

    if expired:
        logger.info("Expired %s pending request(s) older than %sh", expired, max_age_hours)
    return expired
