from functools import wraps
from flask import g, jsonify

from models.technician import Technician

# passes every role gate
SUPERUSER_ROLE = "ADMIN"


def has_role(role_name: str) -> bool:
    user = getattr(g, "user", None)
    if not user:
        return False
    return any(r.name in (role_name, SUPERUSER_ROLE) for r in user.roles)


def require_roles(*role_names: str):
    """
    Usage: @require_roles("RESPONSABLE")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required"), 401

            user_roles = {r.name for r in user.roles}
            if SUPERUSER_ROLE not in user_roles and not user_roles.intersection(set(role_names)):
                return jsonify(error="Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator


def current_technician():
    """Technician profile linked to the logged-in user, if any."""
    user = getattr(g, "user", None)
    if user is None:
        return None
    return Technician.query.filter_by(user_id=user.id).first()


def can_mutate_intervention(intervention) -> bool:
    # a responsable, or the technician the intervention is assigned to
    if has_role("RESPONSABLE"):
        return True
    if not has_role("TECHNICIAN"):
        return False
    tech = current_technician()
    return tech is not None and tech.id == intervention.technician_id
