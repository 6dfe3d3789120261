"""
Typed results of the booking / intervention core.

Business-rule violations are recoverable and carry a stable ``code`` so a
caller (the HTTP layer, a CLI) can react to them, e.g. "this slot was just
taken, pick another". Infrastructure failures are reported separately as
``PersistenceError``.
"""


class ServiceError(Exception):
    """Base class of every business-rule violation."""

    code = "service_error"
    status_code = 400

    def __init__(self, message: str = None, **details):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or (self.__class__.__doc__ or self.code).strip()
        self.details = details

    def to_dict(self) -> dict:
        out = {"error": self.message, "code": self.code}
        if self.details:
            out["details"] = self.details
        return out


class InvalidSchedule(ServiceError):
    """Invalid slot generation parameters."""

    code = "invalid_schedule"
    status_code = 400


class ScheduleConflict(InvalidSchedule):
    """Another writer created overlapping slots for this technician."""

    code = "schedule_conflict"
    status_code = 409


class SlotAlreadyReserved(ServiceError):
    """This slot has already been reserved."""

    code = "slot_already_reserved"
    status_code = 409


class SlotInUse(ServiceError):
    """This slot is referenced and cannot be removed."""

    code = "slot_in_use"
    status_code = 409


class ActiveRequestExists(ServiceError):
    """The client already has an active booking request."""

    code = "active_request_exists"
    status_code = 409


class RequestNotPending(ServiceError):
    """The booking request is no longer pending."""

    code = "request_not_pending"
    status_code = 409


class InvalidState(ServiceError):
    """The operation is not allowed in the current state."""

    code = "invalid_state"
    status_code = 409


class InvalidTransition(ServiceError):
    """Illegal intervention status change."""

    code = "invalid_transition"
    status_code = 409


class InterventionClosed(ServiceError):
    """The intervention is completed or cancelled."""

    code = "intervention_closed"
    status_code = 409


class InsufficientStock(ServiceError):
    """Not enough stock for this part."""

    code = "insufficient_stock"
    status_code = 409


class NotFound(ServiceError):
    """Resource not found."""

    code = "not_found"
    status_code = 404


class ValidationFailed(ServiceError):
    """Invalid input."""

    code = "validation_failed"
    status_code = 400


class PersistenceError(Exception):
    """Storage unavailable or failing. Not a business-rule violation; callers may retry."""

    code = "persistence_unavailable"
    status_code = 503

    def __init__(self, message: str = "Storage temporarily unavailable, please retry"):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}
