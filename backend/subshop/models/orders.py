from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ORDER_PENDING = "PENDING"
ORDER_SUBMITTED = "SUBMITTED"
ORDER_COMPLETED = "COMPLETED"
ORDER_CANCELLED = "CANCELLED"

ORDER_STATUSES = (ORDER_PENDING, ORDER_SUBMITTED, ORDER_COMPLETED, ORDER_CANCELLED)
TERMINAL_STATUSES = (ORDER_COMPLETED, ORDER_CANCELLED)


class Order(db.Model):
    """
    Direct-checkout order (one product or one bundle, paid by UPI).

    LIFECYCLE:
        PENDING --upload proof--> SUBMITTED --approve--> COMPLETED
        {PENDING, SUBMITTED} --reject--> CANCELLED

    total_amount_paise is fixed at creation (it may be a flash-sale price).
    version_id gives optimistic locking on concurrent admin actions.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)
    bundle_id = db.Column(db.Integer, db.ForeignKey("bundles.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=ORDER_PENDING, index=True)
    total_amount_paise = db.Column(db.Integer, nullable=False)

    payment_screenshot = db.Column(db.String(512), nullable=True)
    user_provided_input = db.Column(db.Text, nullable=True)
    credentials = db.Column(db.JSON, nullable=True)
    cancellation_reason = db.Column(db.String(500), nullable=True)

    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("orders", lazy=True))
    product = db.relationship("Product")
    variant = db.relationship("ProductVariant")
    bundle = db.relationship("Bundle")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self, include_user: bool = False) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "bundle_id": self.bundle_id,
            "bundle_name": self.bundle.name if self.bundle else None,
            "status": self.status,
            "total_amount_paise": self.total_amount_paise,
            "payment_screenshot": self.payment_screenshot,
            "user_provided_input": self.user_provided_input,
            "credentials": self.credentials,
            "cancellation_reason": self.cancellation_reason,
            "submitted_at": to_utc_z(self.submitted_at),
            "completed_at": to_utc_z(self.completed_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "product": self.product.to_dict() if self.product else None,
            "variant": self.variant.to_dict() if self.variant else None,
        }
        if include_user and self.user:
            data["profile"] = {
                "id": self.user.id,
                "email": self.user.email,
                "full_name": self.user.full_name,
            }
        return data


class OrderEvent(db.Model):
    """
    Append-only audit trail for order workflow steps.

    Event types: order.created, order.submitted, order.approved,
    order.rejected, stock.decremented, stock.key_assigned, loyalty.earned,
    referral.completed.

    IMMUTABLE: Records are never updated.
    """
    __tablename__ = "order_events"
    __table_args__ = (
        db.Index("ix_order_events_order_occurred", "order_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = db.Column(db.String(64), nullable=False, index=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    note = db.Column(db.String(500), nullable=True)
    payload = db.Column(db.JSON, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "event_type": self.event_type,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "payload": self.payload,
            "occurred_at": to_utc_z(self.occurred_at),
        }
