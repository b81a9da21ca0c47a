from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class StoreSettings(db.Model):
    """Single-row checkout/contact settings (UPI id, QR code, support links)."""
    __tablename__ = "store_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    upi_id = db.Column(db.String(128), nullable=False, default="")
    qr_code_url = db.Column(db.String(512), nullable=False, default="")
    telegram_link = db.Column(db.String(512), nullable=False, default="")
    telegram_username = db.Column(db.String(128), nullable=False, default="")
    contact_email = db.Column(db.String(255), nullable=False, default="")
    contact_phone = db.Column(db.String(32), nullable=False, default="")

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "upi_id": self.upi_id,
            "qr_code_url": self.qr_code_url,
            "telegram_link": self.telegram_link,
            "telegram_username": self.telegram_username,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "updated_at": to_utc_z(self.updated_at),
        }


class FlashSaleConfig(db.Model):
    """
    Global flash-sale configuration (single row, server owned).

    version increments on every save so clients can poll cheaply and detect
    changes; discounts only apply while enabled and now < end_time.
    """
    __tablename__ = "flash_sale_config"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    enabled = db.Column(db.Boolean, nullable=False, default=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)
    duration_hours = db.Column(db.Integer, nullable=False, default=6)
    min_discount_percent = db.Column(db.Integer, nullable=False, default=10)
    max_products = db.Column(db.Integer, nullable=False, default=5)
    version = db.Column(db.Integer, nullable=False, default=1)

    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    items = db.relationship(
        "FlashSaleItem",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="FlashSaleItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "end_time": to_utc_z(self.end_time),
            "duration_hours": self.duration_hours,
            "min_discount_percent": self.min_discount_percent,
            "max_products": self.max_products,
            "version": self.version,
            "products": [item.to_dict() for item in self.items],
            "updated_at": to_utc_z(self.updated_at),
        }


class FlashSaleItem(db.Model):
    __tablename__ = "flash_sale_items"
    __table_args__ = (
        db.UniqueConstraint("config_id", "product_id", name="uq_flash_sale_items_product"),
        db.CheckConstraint("discount_paise >= 0", name="ck_flash_sale_items_discount_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    config_id = db.Column(db.Integer, db.ForeignKey("flash_sale_config.id", ondelete="CASCADE"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    discount_paise = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {"product_id": self.product_id, "discount_paise": self.discount_paise}
