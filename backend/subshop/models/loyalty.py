from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class LoyaltyAccount(db.Model):
    """
    Per-user points balance.

    INVARIANTS:
    - total_points >= 0 (spendable balance, enforced by check constraint)
    - lifetime_points never decreases (redemptions only touch total_points)
    - tier is derived from lifetime_points, so it never drops
    """
    __tablename__ = "loyalty_accounts"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_loyalty_accounts_user"),
        db.CheckConstraint("total_points >= 0", name="ck_loyalty_total_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    total_points = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points = db.Column(db.Integer, nullable=False, default=0)
    tier = db.Column(db.String(16), nullable=False, default="bronze")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", backref=db.backref("loyalty_account", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "total_points": self.total_points,
            "lifetime_points": self.lifetime_points,
            "tier": self.tier,
            "updated_at": to_utc_z(self.updated_at),
        }


class PointTransaction(db.Model):
    """
    Append-only ledger of point events.

    TRANSACTION TYPES:
    - earned: points from a completed order
    - redeemed: points spent (negative)
    - referral: reward to a referrer
    - bonus: welcome bonus to a referred user

    An order earns at most once: (order_id, type) is unique.
    """
    __tablename__ = "point_transactions"
    __table_args__ = (
        db.UniqueConstraint("order_id", "type", name="uq_point_transactions_order_type"),
        db.Index("ix_point_transactions_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    points = db.Column(db.Integer, nullable=False)  # Positive for earn, negative for redeem
    type = db.Column(db.String(16), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=True)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    referral_id = db.Column(db.Integer, db.ForeignKey("referrals.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "points": self.points,
            "type": self.type,
            "description": self.description,
            "order_id": self.order_id,
            "created_at": to_utc_z(self.created_at),
        }


class Coupon(db.Model):
    """Fixed-value discount coupon issued in exchange for points."""
    __tablename__ = "coupons"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_coupons_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    code = db.Column(db.String(32), nullable=False)
    discount_paise = db.Column(db.Integer, nullable=False)
    points_used = db.Column(db.Integer, nullable=False, default=0)

    is_used = db.Column(db.Boolean, nullable=False, default=False)
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "code": self.code,
            "discount_paise": self.discount_paise,
            "points_used": self.points_used,
            "is_used": self.is_used,
            "used_at": to_utc_z(self.used_at),
            "order_id": self.order_id,
            "expires_at": to_utc_z(self.expires_at),
            "created_at": to_utc_z(self.created_at),
        }


class ReferralCode(db.Model):
    __tablename__ = "referral_codes"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_referral_codes_user"),
        db.UniqueConstraint("code", name="uq_referral_codes_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    code = db.Column(db.String(16), nullable=False)
    uses = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "code": self.code,
            "uses": self.uses,
            "created_at": to_utc_z(self.created_at),
        }


class Referral(db.Model):
    """
    referrer -> referred link, created at signup with a code.

    Completed on the referred user's first completed order. reward_given is
    the idempotency gate: it flips from False to True exactly once.
    """
    __tablename__ = "referrals"
    __table_args__ = (
        db.UniqueConstraint("referred_id", name="uq_referrals_referred"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    referrer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    referred_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    referral_code = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    reward_given = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    referred = db.relationship("User", foreign_keys=[referred_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "referrer_id": self.referrer_id,
            "referred_id": self.referred_id,
            "referral_code": self.referral_code,
            "status": self.status,
            "reward_given": self.reward_given,
            "completed_at": to_utc_z(self.completed_at),
            "created_at": to_utc_z(self.created_at),
            "referred_name": self.referred.display_name if self.referred else "Unknown",
        }
