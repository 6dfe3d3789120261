from flask import Blueprint, request, jsonify, g

from routes.serializers import movement_to_dict, part_to_dict
from security.rbac import require_roles
from services import inventory
from utils.audit import log_event
from utils.parsing import parse_int

inventory_bp = Blueprint("inventory", __name__, url_prefix="/parts")


# ---------- TECHNICIAN / RESPONSABLE: stock views ----------
@inventory_bp.get("")
@require_roles("RESPONSABLE", "TECHNICIAN")
def list_parts():
    return jsonify([part_to_dict(p) for p in inventory.list_parts()]), 200


@inventory_bp.get("/low-stock")
@require_roles("RESPONSABLE", "TECHNICIAN")
def low_stock():
    return jsonify([part_to_dict(p) for p in inventory.low_stock_parts()]), 200


@inventory_bp.get("/<int:part_id>/movements")
@require_roles("RESPONSABLE")
def list_movements(part_id: int):
    limit = request.args.get("limit", type=int) or 50
    limit = max(1, min(limit, 500))
    rows = inventory.list_movements(part_id, limit=limit)
    return jsonify([movement_to_dict(m) for m in rows]), 200


# ---------- RESPONSABLE: stock changes ----------
@inventory_bp.post("")
@require_roles("RESPONSABLE")
def create_part():
    data = request.get_json(silent=True) or {}
    try:
        unit_price = parse_int(data.get("unit_price"), "unit_price")
        stock = parse_int(data.get("stock"), "stock", default=0)
        threshold = parse_int(data["alert_threshold"], "alert_threshold") if data.get("alert_threshold") is not None else None
    except ValueError as exc:
        return jsonify(error=str(exc)), 400

    part = inventory.create_part(
        data.get("name"), data.get("reference"), unit_price, stock=stock, alert_threshold=threshold
    )

    log_event("PART_CREATE", user_id=g.user.id, entity="part", entity_id=part.id,
              metadata={"reference": part.reference, "stock": stock})
    return jsonify(part_to_dict(part)), 201


@inventory_bp.post("/<int:part_id>/restock")
@require_roles("RESPONSABLE")
def restock(part_id: int):
    data = request.get_json(silent=True) or {}
    try:
        quantity = parse_int(data.get("quantity"), "quantity")
    except ValueError as exc:
        return jsonify(error=str(exc)), 400

    part = inventory.restock(part_id, quantity, reason=(data.get("reason") or "").strip() or "Restock")

    log_event("STOCK_RESTOCK", user_id=g.user.id, entity="part", entity_id=part_id,
              metadata={"quantity": quantity, "stock": part.stock})
    return jsonify(part_to_dict(part)), 200


@inventory_bp.post("/<int:part_id>/adjust")
@require_roles("RESPONSABLE")
def adjust(part_id: int):
    data = request.get_json(silent=True) or {}
    try:
        new_stock = parse_int(data.get("stock"), "stock")
    except ValueError as exc:
        return jsonify(error=str(exc)), 400
    reason = (data.get("reason") or "").strip()
    if not reason:
        return jsonify(error="reason required"), 400

    part = inventory.adjust_stock(part_id, new_stock, reason)

    log_event("STOCK_ADJUST", user_id=g.user.id, entity="part", entity_id=part_id,
              metadata={"stock": new_stock, "reason": reason})
    return jsonify(part_to_dict(part)), 200
