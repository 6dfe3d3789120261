import json


def _iso(value):
    return value.isoformat() if value else None


def _enum(value):
    return value.value if value is not None else None


def slot_to_dict(s):
    return {
        "id": s.id,
        "technician_id": s.technician_id,
        "start_time": _iso(s.start_time),
        "end_time": _iso(s.end_time),
        "is_reserved": s.is_reserved,
        "intervention_id": s.intervention_id,
    }


def request_to_dict(r):
    return {
        "id": r.id,
        "client_id": r.client_id,
        "claim_id": r.claim_id,
        "motive": r.motive,
        "desired_date": _iso(r.desired_date),
        "preferred_moment": _enum(r.preferred_moment),
        "comment": r.comment,
        "slot_id": r.slot_id,
        "intervention_id": r.intervention_id,
        "status": r.status.value,
        "assigned_responsable_id": r.assigned_responsable_id,
        "processed_by": r.processed_by,
        "processed_at": _iso(r.processed_at),
        "refusal_reason": r.refusal_reason,
        "created_at": _iso(r.created_at),
        "cancelled_at": _iso(r.cancelled_at),
    }


def consumed_part_to_dict(line):
    return {
        "id": line.id,
        "part_id": line.part_id,
        "quantity": line.quantity,
        "unit_price": line.unit_price,
        "subtotal": line.subtotal,
    }


def intervention_to_dict(i, with_parts=False):
    out = {
        "id": i.id,
        "claim_id": i.claim_id,
        "technician_id": i.technician_id,
        "scheduled_at": _iso(i.scheduled_at),
        "status": i.status.value,
        "labor_amount": i.labor_amount,
        "total_amount": i.total_amount,
        "is_free": i.is_free,
        "comment": i.comment,
        "invoice_number": i.invoice_number,
        "started_at": _iso(i.started_at),
        "completed_at": _iso(i.completed_at),
        "cancelled_at": _iso(i.cancelled_at),
        "paid_at": _iso(i.paid_at),
    }
    if with_parts:
        out["parts"] = [consumed_part_to_dict(line) for line in i.parts]
        out["bill"] = json.loads(i.bill_snapshot_json) if i.bill_snapshot_json else None
    return out


def part_to_dict(p):
    return {
        "id": p.id,
        "name": p.name,
        "reference": p.reference,
        "unit_price": p.unit_price,
        "stock": p.stock,
        "alert_threshold": p.alert_threshold,
        "low_stock": p.stock <= p.alert_threshold,
    }


def movement_to_dict(m):
    return {
        "id": m.id,
        "part_id": m.part_id,
        "kind": m.kind.value,
        "delta": m.delta,
        "stock_before": m.stock_before,
        "stock_after": m.stock_after,
        "reason": m.reason,
        "intervention_id": m.intervention_id,
        "created_at": _iso(m.created_at),
    }
