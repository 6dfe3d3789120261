from flask import Blueprint, request, jsonify, g

from models.intervention import InterventionStatus
from routes.serializers import consumed_part_to_dict, intervention_to_dict
from security.rbac import can_mutate_intervention, current_technician, has_role, require_roles
from services import interventions
from services.collaborators import get_collaborators
from services.errors import InsufficientStock
from utils.audit import log_event
from utils.auth_context import login_required
from utils.parsing import parse_int, parse_iso

interventions_bp = Blueprint("interventions", __name__, url_prefix="/interventions")


def _load_mutable(intervention_id: int):
    """Returns (intervention, None) or (None, error response)."""
    intervention = interventions.get_intervention(intervention_id)
    if not can_mutate_intervention(intervention):
        return None, (jsonify(error="Forbidden"), 403)
    return intervention, None


# ---------- RESPONSABLE: direct creation (no booking request) ----------
@interventions_bp.post("")
@require_roles("RESPONSABLE")
def create_intervention():
    data = request.get_json(silent=True) or {}
    try:
        technician_id = parse_int(data.get("technician_id"), "technician_id")
        scheduled_at = parse_iso(data.get("scheduled_at"))
        claim_id = parse_int(data["claim_id"], "claim_id") if data.get("claim_id") is not None else None
        labor_amount = parse_int(data.get("labor_amount"), "labor_amount", default=0)
    except ValueError as exc:
        return jsonify(error=str(exc) or "technician_id and scheduled_at are required"), 400

    intervention = interventions.create_intervention(
        claim_id,
        technician_id,
        scheduled_at,
        collaborators=get_collaborators(),
        labor_amount=labor_amount,
        comment=(data.get("comment") or "").strip() or None,
    )

    log_event("INTERVENTION_CREATE", user_id=g.user.id, entity="intervention", entity_id=intervention.id,
              metadata={"claim_id": claim_id, "is_free": intervention.is_free})
    return jsonify(intervention_to_dict(intervention, with_parts=True)), 201


@interventions_bp.get("")
@require_roles("RESPONSABLE", "TECHNICIAN")
def list_interventions():
    status = request.args.get("status")
    technician_id = request.args.get("technician_id", type=int)
    if status:
        try:
            status = InterventionStatus(status.upper())
        except ValueError:
            return jsonify(error="Unknown status"), 400

    # technicians only see their own schedule
    if not has_role("RESPONSABLE"):
        tech = current_technician()
        if tech is None:
            return jsonify([]), 200
        technician_id = tech.id

    rows = interventions.list_interventions(status=status or None, technician_id=technician_id)
    return jsonify([intervention_to_dict(i) for i in rows]), 200


@interventions_bp.get("/<int:intervention_id>")
@login_required
def get_intervention(intervention_id: int):
    intervention = interventions.get_intervention(intervention_id)
    if not can_mutate_intervention(intervention):
        return jsonify(error="Forbidden"), 403
    return jsonify(intervention_to_dict(intervention, with_parts=True)), 200


# ---------- ASSIGNED TECHNICIAN / RESPONSABLE: lifecycle ----------
@interventions_bp.post("/<int:intervention_id>/start")
@login_required
def start_intervention(intervention_id: int):
    _, failure = _load_mutable(intervention_id)
    if failure:
        return failure

    intervention = interventions.start(intervention_id, collaborators=get_collaborators())

    log_event("INTERVENTION_START", user_id=g.user.id, entity="intervention", entity_id=intervention_id)
    return jsonify(intervention_to_dict(intervention)), 200


@interventions_bp.post("/<int:intervention_id>/complete")
@login_required
def complete_intervention(intervention_id: int):
    _, failure = _load_mutable(intervention_id)
    if failure:
        return failure

    intervention = interventions.complete(intervention_id, collaborators=get_collaborators())

    log_event("INTERVENTION_COMPLETE", user_id=g.user.id, entity="intervention", entity_id=intervention_id,
              metadata={"total_amount": intervention.total_amount, "invoice_number": intervention.invoice_number})
    return jsonify(intervention_to_dict(intervention, with_parts=True)), 200


@interventions_bp.post("/<int:intervention_id>/cancel")
@login_required
def cancel_intervention(intervention_id: int):
    _, failure = _load_mutable(intervention_id)
    if failure:
        return failure

    intervention = interventions.cancel(intervention_id, collaborators=get_collaborators())

    log_event("INTERVENTION_CANCEL", user_id=g.user.id, entity="intervention", entity_id=intervention_id)
    return jsonify(intervention_to_dict(intervention)), 200


@interventions_bp.post("/<int:intervention_id>/parts")
@login_required
def add_part(intervention_id: int):
    _, failure = _load_mutable(intervention_id)
    if failure:
        return failure

    data = request.get_json(silent=True) or {}
    try:
        part_id = parse_int(data.get("part_id"), "part_id")
        quantity = parse_int(data.get("quantity"), "quantity")
    except ValueError as exc:
        return jsonify(error=str(exc)), 400

    try:
        line = interventions.add_part(intervention_id, part_id, quantity)
    except InsufficientStock as exc:
        log_event("PART_ADD_FAIL_STOCK", user_id=g.user.id, entity="intervention", entity_id=intervention_id,
                  metadata=exc.details)
        return jsonify(exc.to_dict()), exc.status_code

    intervention = interventions.get_intervention(intervention_id)
    log_event("PART_ADD", user_id=g.user.id, entity="intervention", entity_id=intervention_id,
              metadata={"part_id": part_id, "quantity": quantity, "subtotal": line.subtotal})
    return jsonify(line=consumed_part_to_dict(line), intervention=intervention_to_dict(intervention)), 201


@interventions_bp.put("/<int:intervention_id>/labor")
@login_required
def set_labor(intervention_id: int):
    _, failure = _load_mutable(intervention_id)
    if failure:
        return failure

    data = request.get_json(silent=True) or {}
    try:
        amount = parse_int(data.get("labor_amount"), "labor_amount")
    except ValueError as exc:
        return jsonify(error=str(exc)), 400

    intervention = interventions.set_labor(intervention_id, amount)

    log_event("INTERVENTION_SET_LABOR", user_id=g.user.id, entity="intervention", entity_id=intervention_id,
              metadata={"labor_amount": amount})
    return jsonify(intervention_to_dict(intervention)), 200


# ---------- RESPONSABLE only ----------
@interventions_bp.put("/<int:intervention_id>/technician")
@require_roles("RESPONSABLE")
def reassign_technician(intervention_id: int):
    data = request.get_json(silent=True) or {}
    try:
        technician_id = parse_int(data.get("technician_id"), "technician_id")
    except ValueError as exc:
        return jsonify(error=str(exc)), 400

    intervention = interventions.reassign_technician(intervention_id, technician_id)

    log_event("INTERVENTION_REASSIGN", user_id=g.user.id, entity="intervention", entity_id=intervention_id,
              metadata={"technician_id": technician_id})
    return jsonify(intervention_to_dict(intervention)), 200


@interventions_bp.post("/<int:intervention_id>/pay")
@require_roles("RESPONSABLE")
def mark_paid(intervention_id: int):
    data = request.get_json(silent=True) or {}
    reference = (data.get("reference") or "").strip() or None

    payment = interventions.mark_paid(intervention_id, recorded_by=g.user.id, reference=reference)

    log_event("INTERVENTION_PAID", user_id=g.user.id, entity="intervention", entity_id=intervention_id,
              metadata={"amount": payment.amount, "currency": payment.currency, "reference": reference})
    return jsonify(
        id=payment.id,
        intervention_id=intervention_id,
        amount=payment.amount,
        currency=payment.currency,
        status=payment.status,
        paid_at=payment.paid_at.isoformat(),
    ), 201
