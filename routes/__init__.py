from flask import Blueprint, jsonify

from .admin import admin_bp
from .booking import booking_bp
from .interventions import interventions_bp
from .inventory import inventory_bp
from .slots import slots_bp

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
def health():
    return jsonify(status="ok"), 200
