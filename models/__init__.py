from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .technician import Technician
from .claim import Claim, ClaimStatus, PurchasedArticle
from .slot import Slot
from .booking_request import BookingRequest, RequestStatus, PreferredMoment
from .intervention import Intervention, InterventionStatus, ConsumedPart, TERMINAL_STATUSES
from .part import Part, StockMovement, MovementKind
from .payment import Payment
