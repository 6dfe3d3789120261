"""
Intervention lifecycle.

    PLANNED -> IN_PROGRESS -> COMPLETED
    PLANNED | IN_PROGRESS -> CANCELLED

COMPLETED and CANCELLED are terminal. Each mutation locks the intervention
row for the duration of the call only.
"""
import logging
from datetime import datetime
from typing import List, Optional

from flask import current_app

from models import db
from models.booking_request import BookingRequest
from models.claim import ClaimStatus
from models.intervention import TERMINAL_STATUSES, ConsumedPart, Intervention, InterventionStatus
from models.payment import Payment
from models.slot import Slot
from models.technician import Technician
from services import billing, inventory, transaction
from services.collaborators import Collaborators
from services.errors import (
    InterventionClosed,
    InvalidState,
    InvalidTransition,
    NotFound,
    ValidationFailed,
)
from services.slot_store import move_reservation, release_slots_of_intervention

logger = logging.getLogger(__name__)


VALID_TRANSITIONS = {
    InterventionStatus.PLANNED: [InterventionStatus.IN_PROGRESS, InterventionStatus.CANCELLED],
    InterventionStatus.IN_PROGRESS: [InterventionStatus.COMPLETED, InterventionStatus.CANCELLED],
    InterventionStatus.COMPLETED: [],  # TERMINAL
    InterventionStatus.CANCELLED: [],  # TERMINAL
}

CLAIM_STATUS_FOR = {
    InterventionStatus.PLANNED: ClaimStatus.IN_PROGRESS,
    InterventionStatus.IN_PROGRESS: ClaimStatus.IN_PROGRESS,
    InterventionStatus.COMPLETED: ClaimStatus.RESOLVED,
    InterventionStatus.CANCELLED: ClaimStatus.REJECTED,
}


def _non_negative_amount(amount) -> int:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
        raise ValidationFailed("amount must be a non-negative integer", amount=amount)
    return amount


def _load_for_update(intervention_id: int) -> Intervention:
    intervention = (
        Intervention.query
        .filter(Intervention.id == intervention_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if intervention is None:
        raise NotFound("Intervention not found", intervention_id=intervention_id)
    return intervention


def _get_technician(technician_id: int) -> Technician:
    technician = db.session.get(Technician, technician_id)
    if technician is None:
        raise NotFound("Technician not found", technician_id=technician_id)
    return technician


def _transition(intervention: Intervention, target: InterventionStatus) -> None:
    if target not in VALID_TRANSITIONS[intervention.status]:
        logger.info(
            "Rejected transition of intervention %s: %s -> %s",
            intervention.id, intervention.status.value, target.value,
        )
        raise InvalidTransition(
            f"Cannot move intervention from {intervention.status.value} to {target.value}",
            intervention_id=intervention.id,
            current=intervention.status.value,
            target=target.value,
        )
    intervention.status = target


def _ensure_open(intervention: Intervention) -> None:
    if intervention.is_terminal:
        raise InterventionClosed(
            f"Intervention is {intervention.status.value}",
            intervention_id=intervention.id,
        )


def _refresh_availability(technician_id: Optional[int]) -> None:
    """A technician is available when none of their interventions is still open."""
    if technician_id is None:
        return
    technician = db.session.get(Technician, technician_id)
    if technician is None:
        return
    busy = (
        db.session.query(Intervention.id)
        .filter(
            Intervention.technician_id == technician_id,
            Intervention.status.notin_(TERMINAL_STATUSES),
        )
        .first()
    )
    technician.is_available = busy is None


def _sync_claim(intervention: Intervention, collaborators: Collaborators) -> None:
    if intervention.claim_id is None:
        return
    status = CLAIM_STATUS_FOR[intervention.status]
    if collaborators.claims.update_status(intervention.claim_id, status):
        logger.info("Claim %s moved to %s", intervention.claim_id, status.value)
    else:
        logger.warning("Could not sync claim %s to %s", intervention.claim_id, status.value)


def create_intervention(
    claim_id: Optional[int],
    technician_id: int,
    scheduled_at: datetime,
    collaborators: Collaborators,
    labor_amount: int = 0,
    comment: Optional[str] = None,
) -> Intervention:
    """
    Create a PLANNED intervention. Whether it is free is decided here, once,
    by asking the warranty evaluator about the claim's purchased article.
    """
    _non_negative_amount(labor_amount)
    if scheduled_at is None:
        raise ValidationFailed("scheduled_at is required")

    with transaction():
        technician = _get_technician(technician_id)

        is_free = False
        if claim_id is not None:
            claim = collaborators.claims.get_claim(claim_id)
            if claim is None:
                raise NotFound("Claim not found", claim_id=claim_id)
            is_free = collaborators.warranty.is_under_warranty(claim.purchased_article_id, datetime.utcnow())

        intervention = Intervention(
            claim_id=claim_id,
            technician_id=technician.id,
            scheduled_at=scheduled_at,
            status=InterventionStatus.PLANNED,
            labor_amount=labor_amount,
            is_free=is_free,
            comment=comment,
        )
        db.session.add(intervention)
        db.session.flush()
        billing.refresh_total(intervention)

        technician.is_available = False
        _sync_claim(intervention, collaborators)

    logger.info(
        "Intervention %s created for claim %s, technician %s at %s (free=%s)",
        intervention.id, claim_id, technician_id, scheduled_at, is_free,
    )
    return intervention


def get_intervention(intervention_id: int) -> Intervention:
    intervention = db.session.get(Intervention, intervention_id)
    if intervention is None:
        raise NotFound("Intervention not found", intervention_id=intervention_id)
    return intervention


def list_interventions(
    status: Optional[InterventionStatus] = None,
    technician_id: Optional[int] = None,
    claim_id: Optional[int] = None,
    limit: int = 200,
) -> List[Intervention]:
    q = Intervention.query
    if status:
        q = q.filter(Intervention.status == status)
    if technician_id:
        q = q.filter(Intervention.technician_id == technician_id)
    if claim_id:
        q = q.filter(Intervention.claim_id == claim_id)
    return q.order_by(Intervention.scheduled_at.desc()).limit(limit).all()


def start(intervention_id: int, collaborators: Collaborators) -> Intervention:
    with transaction():
        intervention = _load_for_update(intervention_id)
        _transition(intervention, InterventionStatus.IN_PROGRESS)
        intervention.started_at = datetime.utcnow()
        _sync_claim(intervention, collaborators)
    return intervention


def complete(intervention_id: int, collaborators: Collaborators) -> Intervention:
    """Close the intervention, freeze its bill and assign an invoice number when billable."""
    with transaction():
        intervention = _load_for_update(intervention_id)
        _transition(intervention, InterventionStatus.COMPLETED)
        intervention.completed_at = datetime.utcnow()

        billing.refresh_total(intervention)
        intervention.bill_snapshot_json = billing.bill_snapshot(intervention)
        if billing.is_billable(intervention):
            intervention.invoice_number = billing.invoice_number(intervention)

        _refresh_availability(intervention.technician_id)
        _sync_claim(intervention, collaborators)

    logger.info(
        "Intervention %s completed, total %s (free=%s, invoice=%s)",
        intervention.id, intervention.total_amount, intervention.is_free, intervention.invoice_number,
    )
    return intervention


def cancel(intervention_id: int, collaborators: Collaborators) -> Intervention:
    with transaction():
        intervention = _load_for_update(intervention_id)
        _transition(intervention, InterventionStatus.CANCELLED)
        intervention.cancelled_at = datetime.utcnow()

        release_slots_of_intervention(intervention.id)
        _refresh_availability(intervention.technician_id)
        _sync_claim(intervention, collaborators)

    logger.info("Intervention %s cancelled", intervention.id)
    return intervention


def add_part(intervention_id: int, part_id: int, quantity: int) -> ConsumedPart:
    """Take the part out of stock and bill it at its current unit price."""
    with transaction():
        intervention = _load_for_update(intervention_id)
        _ensure_open(intervention)

        unit_price = inventory.consume(
            part_id, quantity, intervention_id=intervention.id, reason=f"Intervention #{intervention.id}"
        )
        line = ConsumedPart(
            part_id=part_id,
            quantity=quantity,
            unit_price=unit_price,
            subtotal=quantity * unit_price,
        )
        intervention.parts.append(line)
        db.session.flush()
        billing.refresh_total(intervention)

    logger.info(
        "Part %s x%s added to intervention %s (subtotal %s, total %s)",
        part_id, quantity, intervention_id, line.subtotal, intervention.total_amount,
    )
    return line


def reassign_technician(intervention_id: int, technician_id: int) -> Intervention:
    """
    Give an open intervention to another technician. Its reserved slots go
    with it (see ``slot_store.move_reservation``); if the new technician is
    already booked at that time, SlotAlreadyReserved and nothing changes.
    """
    with transaction():
        intervention = _load_for_update(intervention_id)
        _ensure_open(intervention)
        technician = _get_technician(technician_id)

        if intervention.technician_id != technician.id:
            previous = intervention.technician_id
            for slot in Slot.query.filter(Slot.intervention_id == intervention.id).all():
                moved = move_reservation(slot.id, technician.id)
                if moved.id != slot.id:
                    for req in BookingRequest.query.filter_by(intervention_id=intervention.id, slot_id=slot.id):
                        req.slot_id = moved.id

            intervention.technician_id = technician.id
            db.session.flush()
            _refresh_availability(previous)
            _refresh_availability(technician.id)
            logger.info(
                "Intervention %s reassigned from technician %s to %s", intervention.id, previous, technician.id
            )
    return intervention


def set_labor(intervention_id: int, amount: int) -> Intervention:
    _non_negative_amount(amount)
    with transaction():
        intervention = _load_for_update(intervention_id)
        _ensure_open(intervention)
        intervention.labor_amount = amount
        billing.refresh_total(intervention)
    return intervention


def mark_paid(
    intervention_id: int,
    currency: Optional[str] = None,
    recorded_by: Optional[int] = None,
    provider: str = "MANUAL",
    reference: Optional[str] = None,
) -> Payment:
    """Record that the bill of a completed intervention has been settled."""
    currency = currency or current_app.config.get("CURRENCY", "EUR")
    with transaction():
        intervention = _load_for_update(intervention_id)
        if not billing.is_billable(intervention):
            raise InvalidState(
                "Only completed, non-free interventions with an amount due can be paid",
                intervention_id=intervention.id,
            )
        if intervention.paid_at is not None:
            raise InvalidState("Intervention already paid", intervention_id=intervention.id)

        now = datetime.utcnow()
        payment = Payment(
            intervention_id=intervention.id,
            provider=provider,
            reference=reference,
            amount=intervention.total_amount,
            currency=currency,
            status="PAID",
            recorded_by=recorded_by,
            paid_at=now,
        )
        db.session.add(payment)
        intervention.paid_at = now

    logger.info("Intervention %s marked paid (%s %s)", intervention_id, payment.amount, currency)
    return payment
