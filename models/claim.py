import enum
from datetime import datetime
from models.db import db


class ClaimStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    REJECTED = "REJECTED"


class PurchasedArticle(db.Model):
    """Read model of the catalog's purchased-article record (warranty data only)."""

    __tablename__ = "purchased_articles"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    label = db.Column(db.String(160), nullable=True)
    purchased_at = db.Column(db.DateTime, nullable=False)
    warranty_days = db.Column(db.Integer, nullable=False, default=0)


class Claim(db.Model):
    __tablename__ = "claims"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    purchased_article_id = db.Column(db.Integer, db.ForeignKey("purchased_articles.id"), nullable=False)
    description = db.Column(db.Text, nullable=True)

    status = db.Column(
        db.Enum(ClaimStatus, native_enum=False, length=20),
        nullable=False,
        default=ClaimStatus.PENDING,
    )
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    resolved_at = db.Column(db.DateTime, nullable=True)
