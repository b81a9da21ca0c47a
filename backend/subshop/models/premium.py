from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class PremiumMembership(db.Model):
    """
    Paid premium membership request / grant.

    STATUS: pending -> approved | rejected; approved -> revoked | expired.
    expires_at is NULL for lifetime plans.
    """
    __tablename__ = "premium_memberships"
    __table_args__ = (
        db.Index("ix_premium_memberships_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    plan_type = db.Column(db.String(16), nullable=False)  # 5_year, 10_year, lifetime
    price_paid_paise = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(32), nullable=False, default="UPI")
    transaction_id = db.Column(db.String(128), nullable=True)
    payment_proof_url = db.Column(db.String(512), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "plan_type": self.plan_type,
            "price_paid_paise": self.price_paid_paise,
            "payment_method": self.payment_method,
            "transaction_id": self.transaction_id,
            "payment_proof_url": self.payment_proof_url,
            "status": self.status,
            "requested_at": to_utc_z(self.requested_at),
            "approved_at": to_utc_z(self.approved_at),
            "approved_by": self.approved_by,
            "expires_at": to_utc_z(self.expires_at),
            "rejection_reason": self.rejection_reason,
            "notes": self.notes,
            "profile": {
                "id": self.user.id,
                "email": self.user.email,
                "full_name": self.user.full_name,
            } if self.user else None,
        }


class PremiumContent(db.Model):
    """Members-only tricks, guides, offers and resources."""
    __tablename__ = "premium_content"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    content_type = db.Column(db.String(16), nullable=False, default="guide")  # trick, guide, offer, resource
    content_url = db.Column(db.String(512), nullable=True)
    content_body = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "content_type": self.content_type,
            "content_url": self.content_url,
            "content_body": self.content_body,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
