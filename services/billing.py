import json
from typing import Iterable

from flask import current_app

from models.intervention import Intervention, InterventionStatus


def compute_total(is_free: bool, labor_amount: int, subtotals: Iterable[int]) -> int:
    """Warranty absorbs the whole bill: a free intervention always totals 0."""
    if is_free:
        return 0
    return (labor_amount or 0) + sum(subtotals)


def refresh_total(intervention: Intervention) -> int:
    intervention.total_amount = compute_total(
        intervention.is_free,
        intervention.labor_amount,
        (line.subtotal for line in intervention.parts),
    )
    return intervention.total_amount


def is_billable(intervention: Intervention) -> bool:
    return (
        not intervention.is_free
        and intervention.status == InterventionStatus.COMPLETED
        and intervention.total_amount > 0
    )


def invoice_number(intervention: Intervention) -> str:
    prefix = current_app.config.get("INVOICE_PREFIX", "INV")
    return f"{prefix}-{intervention.id:06d}"


def bill_snapshot(intervention: Intervention) -> str:
    return json.dumps({
        "intervention_id": intervention.id,
        "is_free": intervention.is_free,
        "labor_amount": intervention.labor_amount,
        "lines": [
            {
                "part_id": line.part_id,
                "reference": line.part.reference if line.part else None,
                "name": line.part.name if line.part else None,
                "quantity": line.quantity,
                "unit_price": line.unit_price,
                "subtotal": line.subtotal,
            }
            for line in intervention.parts
        ],
        "total_amount": intervention.total_amount,
        "currency": current_app.config.get("CURRENCY", "EUR"),
    })
