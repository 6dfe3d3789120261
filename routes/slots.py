from datetime import datetime, timedelta

from flask import Blueprint, request, jsonify, current_app, g

from routes.serializers import slot_to_dict
from security.rbac import require_roles
from services import slot_generator, slot_store
from utils.audit import log_event
from utils.auth_context import login_required
from utils.parsing import parse_date, parse_hour, parse_int, parse_iso

slots_bp = Blueprint("slots", __name__, url_prefix="/slots")


# ---------- ANYONE LOGGED IN: browse slots ----------
@slots_bp.get("")
@login_required
def list_slots():
    # optional filters: technician_id, start, end (ISO), date (YYYY-MM-DD), free_only
    technician_id = request.args.get("technician_id", type=int)
    free_only = (request.args.get("free_only") or "").lower() in ("1", "true", "yes")

    try:
        start = parse_iso(request.args["start"]) if request.args.get("start") else None
        end = parse_iso(request.args["end"]) if request.args.get("end") else None
        if request.args.get("date"):
            day = parse_date(request.args["date"])
            start = datetime(day.year, day.month, day.day)
            end = start + timedelta(days=1)
    except ValueError:
        return jsonify(error="Invalid date. Use ISO e.g. 2026-01-20T18:00:00 or YYYY-MM-DD"), 400

    slots = slot_store.list_slots(technician_id=technician_id, start=start, end=end, free_only=free_only)
    return jsonify([slot_to_dict(s) for s in slots]), 200


# ---------- RESPONSABLE: recurring generation ----------
@slots_bp.post("/generate")
@require_roles("RESPONSABLE")
def generate_slots():
    data = request.get_json(silent=True) or {}
    default_duration = current_app.config.get("SLOT_DEFAULT_DURATION_MINUTES", 60)

    try:
        technician_id = parse_int(data.get("technician_id"), "technician_id")
        date_start = parse_date(data.get("date_start"))
        date_end = parse_date(data.get("date_end") or data.get("date_start"))
        hour_start = parse_hour(data.get("hour_start"))
        hour_end = parse_hour(data.get("hour_end"))
        duration = parse_int(data.get("duration_minutes"), "duration_minutes", default=default_duration)
        weekdays = data.get("weekdays")
        if weekdays is not None:
            weekdays = [parse_int(d, "weekdays") for d in weekdays]
    except (ValueError, TypeError) as exc:
        return jsonify(error=str(exc) or "Invalid parameters"), 400

    created = slot_generator.generate_slots(
        technician_id, date_start, date_end, hour_start, hour_end, duration, weekdays=weekdays
    )

    log_event(
        "SLOTS_GENERATE",
        user_id=g.user.id,
        entity="technician",
        entity_id=technician_id,
        metadata={"date_start": date_start, "date_end": date_end, "created": created},
    )
    return jsonify(created=created), 201


# ---------- RESPONSABLE: one-off slot ----------
@slots_bp.post("")
@require_roles("RESPONSABLE")
def create_slot():
    data = request.get_json(silent=True) or {}
    try:
        technician_id = parse_int(data.get("technician_id"), "technician_id")
        st = parse_iso(data.get("start_time"))
        et = parse_iso(data.get("end_time"))
    except ValueError:
        return jsonify(error="technician_id, start_time, end_time are required (ISO e.g. 2026-01-20T18:00:00)"), 400

    slot = slot_generator.create_slot(technician_id, st, et)

    log_event("SLOT_CREATE", user_id=g.user.id, entity="slot", entity_id=slot.id)
    return jsonify(slot_to_dict(slot)), 201


@slots_bp.delete("/<int:slot_id>")
@require_roles("RESPONSABLE")
def delete_slot(slot_id: int):
    slot_generator.delete_slot(slot_id)

    log_event("SLOT_DELETE", user_id=g.user.id, entity="slot", entity_id=slot_id)
    return jsonify(message="Slot deleted"), 200
