"""
Collaborators consumed by the core (warranty, claims, responsable routing).

They are injected explicitly instead of being looked up as global state:
``create_app`` stores a ``Collaborators`` container in
``app.extensions["sav_collaborators"]`` and routes pass it to services.
Tests (or another deployment) replace any of them.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy import func

from models import db
from models.booking_request import BookingRequest, RequestStatus
from models.claim import Claim, ClaimStatus, PurchasedArticle
from models.user import Role, User

logger = logging.getLogger(__name__)

EXTENSION_KEY = "sav_collaborators"


@dataclass(frozen=True)
class ClaimInfo:
    claim_id: int
    client_id: int
    purchased_article_id: int


class WarrantyEvaluator:
    """Decides whether a purchased article is covered at a given instant."""

    def is_under_warranty(self, purchased_article_id: int, at: datetime) -> bool:
        article = db.session.get(PurchasedArticle, purchased_article_id)
        if article is None:
            logger.warning("Purchased article %s not found, treating as not covered", purchased_article_id)
            return False
        covered_until = article.purchased_at + timedelta(days=article.warranty_days or 0)
        return at < covered_until


class ClaimRegistry:
    """Lookup of claims (owned by the claims CRUD) and status sync."""

    def get_claim(self, claim_id: int) -> Optional[ClaimInfo]:
        claim = db.session.get(Claim, claim_id)
        if claim is None:
            return None
        return ClaimInfo(
            claim_id=claim.id,
            client_id=claim.client_id,
            purchased_article_id=claim.purchased_article_id,
        )

    def update_status(self, claim_id: int, status: ClaimStatus) -> bool:
        claim = db.session.get(Claim, claim_id)
        if claim is None:
            return False
        claim.status = status
        if status in (ClaimStatus.RESOLVED, ClaimStatus.REJECTED):
            claim.resolved_at = datetime.utcnow()
        return True


class ResponsablePicker:
    """Routes new requests to the RESPONSABLE with the lightest pending queue."""

    def pick_available_responsable(self) -> Optional[int]:
        pending = (
            db.session.query(
                BookingRequest.assigned_responsable_id.label("user_id"),
                func.count(BookingRequest.id).label("n"),
            )
            .filter(BookingRequest.status == RequestStatus.PENDING)
            .group_by(BookingRequest.assigned_responsable_id)
            .subquery()
        )
        row = (
            db.session.query(User.id)
            .join(User.roles)
            .outerjoin(pending, pending.c.user_id == User.id)
            .filter(Role.name == "RESPONSABLE", User.is_active.is_(True))
            .order_by(func.coalesce(pending.c.n, 0).asc(), User.id.asc())
            .first()
        )
        return row[0] if row else None


@dataclass
class Collaborators:
    warranty: WarrantyEvaluator = field(default_factory=WarrantyEvaluator)
    claims: ClaimRegistry = field(default_factory=ClaimRegistry)
    responsables: ResponsablePicker = field(default_factory=ResponsablePicker)


def get_collaborators() -> Collaborators:
    return current_app.extensions[EXTENSION_KEY]
