from flask import Blueprint, request, jsonify, g

from routes.serializers import request_to_dict
from security.rbac import require_roles
from services import arbitration, booking
from services.collaborators import get_collaborators
from services.errors import ActiveRequestExists, RequestNotPending, SlotAlreadyReserved
from utils.audit import log_event
from utils.auth_context import login_required
from utils.parsing import parse_date, parse_int

booking_bp = Blueprint("booking", __name__, url_prefix="/requests")


# ---------- CLIENTS: submit a request ----------
@booking_bp.post("")
@require_roles("CLIENT")
def submit_request():
    data = request.get_json(silent=True) or {}
    motive = (data.get("motive") or "").strip()
    if not motive:
        return jsonify(error="motive required"), 400

    try:
        desired_date = parse_date(data.get("desired_date"))
        slot_id = parse_int(data["slot_id"], "slot_id") if data.get("slot_id") is not None else None
        claim_id = parse_int(data["claim_id"], "claim_id") if data.get("claim_id") is not None else None
    except ValueError as exc:
        return jsonify(error=str(exc) or "Invalid date. Use YYYY-MM-DD"), 400

    try:
        req = booking.submit_request(
            g.user.id,
            motive,
            desired_date,
            collaborators=get_collaborators(),
            slot_id=slot_id,
            claim_id=claim_id,
            comment=(data.get("comment") or "").strip() or None,
            preferred_moment=data.get("preferred_moment"),
        )
    except ActiveRequestExists as exc:
        log_event("REQUEST_FAIL_ACTIVE_EXISTS", user_id=g.user.id, entity="booking_request",
                  entity_id=exc.details.get("request_id"))
        return jsonify(exc.to_dict()), exc.status_code

    log_event("REQUEST_SUBMIT", user_id=g.user.id, entity="booking_request", entity_id=req.id,
              metadata={"slot_id": slot_id})
    return jsonify(request_to_dict(req)), 201


# ---------- CLIENTS: my requests ----------
@booking_bp.get("/me")
@login_required
def my_requests():
    rows = booking.list_client_requests(g.user.id)
    return jsonify([request_to_dict(r) for r in rows]), 200


@booking_bp.post("/<int:request_id>/cancel")
@require_roles("CLIENT")
def cancel_request(request_id: int):
    req = booking.cancel_request(request_id, g.user.id)

    log_event("REQUEST_CANCEL", user_id=g.user.id, entity="booking_request", entity_id=req.id)
    return jsonify(request_to_dict(req)), 200


# ---------- RESPONSABLE: arbitration ----------
@booking_bp.get("/pending")
@require_roles("RESPONSABLE")
def list_pending():
    # ?mine=1 restricts to the requests routed to the caller
    mine = (request.args.get("mine") or "").lower() in ("1", "true", "yes")
    rows = arbitration.list_pending(responsable_id=g.user.id if mine else None)
    return jsonify([request_to_dict(r) for r in rows]), 200


@booking_bp.post("/<int:request_id>/accept")
@require_roles("RESPONSABLE")
def accept_request(request_id: int):
    data = request.get_json(silent=True) or {}
    try:
        slot_id = parse_int(data["slot_id"], "slot_id") if data.get("slot_id") is not None else None
        labor_amount = parse_int(data.get("labor_amount"), "labor_amount", default=0)
    except ValueError as exc:
        return jsonify(error=str(exc)), 400

    try:
        req = arbitration.accept(
            request_id,
            collaborators=get_collaborators(),
            slot_id=slot_id,
            responsable_id=g.user.id,
            labor_amount=labor_amount,
        )
    except SlotAlreadyReserved as exc:
        # the request stays pending; the responsable can retry with another slot
        log_event("REQUEST_ACCEPT_FAIL_SLOT_TAKEN", user_id=g.user.id, entity="booking_request",
                  entity_id=request_id, metadata={"slot_id": exc.details.get("slot_id")})
        return jsonify(exc.to_dict()), exc.status_code
    except RequestNotPending as exc:
        log_event("REQUEST_ACCEPT_FAIL_NOT_PENDING", user_id=g.user.id, entity="booking_request",
                  entity_id=request_id)
        return jsonify(exc.to_dict()), exc.status_code

    log_event("REQUEST_ACCEPT", user_id=g.user.id, entity="booking_request", entity_id=req.id,
              metadata={"slot_id": req.slot_id, "intervention_id": req.intervention_id})
    return jsonify(request_to_dict(req)), 200


@booking_bp.post("/<int:request_id>/refuse")
@require_roles("RESPONSABLE")
def refuse_request(request_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()
    if not reason:
        return jsonify(error="reason required"), 400

    req = arbitration.refuse(request_id, reason, responsable_id=g.user.id)

    log_event("REQUEST_REFUSE", user_id=g.user.id, entity="booking_request", entity_id=req.id,
              metadata={"reason": reason})
    return jsonify(request_to_dict(req)), 200
