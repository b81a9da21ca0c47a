from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


# Delivery types: how an order for the product is fulfilled
DELIVERY_CREDENTIALS = "CREDENTIALS"            # admin hands over username/password
DELIVERY_COUPON_CODE = "COUPON_CODE"            # coupon / license code
DELIVERY_MANUAL_ACTIVATION = "MANUAL_ACTIVATION"  # user supplies their account, admin activates
DELIVERY_INSTANT_KEY = "INSTANT_KEY"            # pre-loaded key handed out on approval

DELIVERY_TYPES = (
    DELIVERY_CREDENTIALS,
    DELIVERY_COUPON_CODE,
    DELIVERY_MANUAL_ACTIVATION,
    DELIVERY_INSTANT_KEY,
)

KEY_AVAILABLE = "AVAILABLE"
KEY_ASSIGNED = "ASSIGNED"
KEY_USED = "USED"
KEY_EXPIRED = "EXPIRED"
KEY_REVOKED = "REVOKED"

KEY_STATUSES = (KEY_AVAILABLE, KEY_ASSIGNED, KEY_USED, KEY_EXPIRED, KEY_REVOKED)


class Product(db.Model):
    """
    Sellable subscription product.

    Prices are stored in paise (1 INR = 100 paise).

    STOCK:
    - use_manual_stock=True: manual_stock_count is the authoritative counter
    - otherwise stock is the number of AVAILABLE ProductStockKey rows
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("manual_stock_count >= 0", name="ck_products_manual_stock_nonneg"),
        db.Index("ix_products_active_category", "is_active", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(512), nullable=True)
    category = db.Column(db.String(64), nullable=True)
    duration = db.Column(db.String(64), nullable=True)
    features = db.Column(db.JSON, nullable=True)

    original_price_paise = db.Column(db.Integer, nullable=False, default=0)
    sale_price_paise = db.Column(db.Integer, nullable=False)
    # Vendor/purchase price, admin only
    cost_price_paise = db.Column(db.Integer, nullable=True)

    delivery_type = db.Column(db.String(32), nullable=False, default=DELIVERY_CREDENTIALS)
    delivery_instructions = db.Column(db.Text, nullable=True)
    requires_user_input = db.Column(db.Boolean, nullable=False, default=False)
    user_input_label = db.Column(db.String(255), nullable=True)

    use_manual_stock = db.Column(db.Boolean, nullable=False, default=False)
    manual_stock_count = db.Column(db.Integer, nullable=False, default=0)
    low_stock_alert = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} delivery_type={self.delivery_type}>"

    def to_dict(self, include_cost: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "image_url": self.image_url,
            "category": self.category,
            "duration": self.duration,
            "features": self.features or [],
            "original_price_paise": self.original_price_paise,
            "sale_price_paise": self.sale_price_paise,
            "delivery_type": self.delivery_type,
            "delivery_instructions": self.delivery_instructions,
            "requires_user_input": self.requires_user_input,
            "user_input_label": self.user_input_label,
            "use_manual_stock": self.use_manual_stock,
            "manual_stock_count": self.manual_stock_count,
            "low_stock_alert": self.low_stock_alert,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_cost:
            data["cost_price_paise"] = self.cost_price_paise
        return data


class ProductVariant(db.Model):
    """Priced option of a product (e.g. 1 month vs 12 months)."""
    __tablename__ = "product_variants"
    __table_args__ = (
        db.Index("ix_product_variants_product_sort", "product_id", "sort_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    duration = db.Column(db.String(64), nullable=True)

    original_price_paise = db.Column(db.Integer, nullable=False, default=0)
    sale_price_paise = db.Column(db.Integer, nullable=False)
    cost_price_paise = db.Column(db.Integer, nullable=True)

    # Overrides the product's delivery type when set
    delivery_type = db.Column(db.String(32), nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship(
        "Product",
        backref=db.backref("variants", lazy=True, order_by="ProductVariant.sort_order", cascade="all, delete-orphan"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "duration": self.duration,
            "original_price_paise": self.original_price_paise,
            "sale_price_paise": self.sale_price_paise,
            "delivery_type": self.delivery_type,
            "is_default": self.is_default,
            "sort_order": self.sort_order,
        }


class ProductStockKey(db.Model):
    """
    Single-use credential / license record.

    LIFECYCLE: AVAILABLE -> ASSIGNED (on order approval) -> USED.
    EXPIRED/REVOKED keys are never handed out.

    INVARIANT: a key is assigned to at most one order and an order holds at
    most one key (assigned_order_id is unique).
    """
    __tablename__ = "product_stock_keys"
    __table_args__ = (
        db.UniqueConstraint("assigned_order_id", name="uq_stock_keys_assigned_order"),
        db.UniqueConstraint("product_id", "key_value", name="uq_stock_keys_product_value"),
        db.Index("ix_stock_keys_product_status", "product_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True, index=True)

    key_type = db.Column(db.String(32), nullable=False, default="LICENSE_KEY")  # LICENSE_KEY, CREDENTIALS, COUPON_CODE
    key_value = db.Column(db.String(512), nullable=False)
    username = db.Column(db.String(255), nullable=True)
    password = db.Column(db.String(255), nullable=True)
    additional_data = db.Column(db.JSON, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=KEY_AVAILABLE, index=True)
    assigned_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    used_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("stock_keys", lazy="dynamic"))

    def to_dict(self, reveal: bool = False) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "key_type": self.key_type,
            "status": self.status,
            "assigned_order_id": self.assigned_order_id,
            "used_by": self.used_by,
            "used_at": to_utc_z(self.used_at),
            "expiry_date": to_utc_z(self.expiry_date),
            "created_at": to_utc_z(self.created_at),
        }
        if reveal:
            data.update({
                "key_value": self.key_value,
                "username": self.username,
                "password": self.password,
                "additional_data": self.additional_data,
            })
        return data


bundle_products = db.Table(
    "bundle_products",
    db.Column("bundle_id", db.Integer, db.ForeignKey("bundles.id", ondelete="CASCADE"), primary_key=True),
    db.Column("product_id", db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
)


class Bundle(db.Model):
    """Fixed-price package of several products. INVARIANT: sale <= original."""
    __tablename__ = "bundles"
    __table_args__ = (
        db.CheckConstraint("sale_price_paise <= original_price_paise", name="ck_bundles_sale_le_original"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(512), nullable=True)

    original_price_paise = db.Column(db.Integer, nullable=False)
    sale_price_paise = db.Column(db.Integer, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    products = db.relationship("Product", secondary=bundle_products, lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "image_url": self.image_url,
            "original_price_paise": self.original_price_paise,
            "sale_price_paise": self.sale_price_paise,
            "is_active": self.is_active,
            "valid_until": to_utc_z(self.valid_until),
            "products": [p.to_dict() for p in self.products],
            "created_at": to_utc_z(self.created_at),
        }
