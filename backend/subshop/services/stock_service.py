# Overview: Service-layer operations for stock; manual counters and single-use keys.

"""
Stock Decrement Policy

Fulfilment draws stock in one of two ways:
- use_manual_stock products: manual_stock_count is decremented by a
  conditional UPDATE (never below zero)
- everything else that hands out credentials claims one AVAILABLE
  ProductStockKey and ties it to the order

MANUAL_ACTIVATION products consume nothing.

INVARIANTS:
- manual_stock_count >= 0 (the WHERE clause and the check constraint)
- a key moves AVAILABLE -> ASSIGNED at most once (status is in the WHERE)
- every claimed key is tied to exactly one order (assigned_order_id unique)

All functions here run inside the caller's transaction; none commit unless
documented.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, update

from ..extensions import db
from ..errors import ConflictError, NotFoundError, StockExhaustedError, ValidationError
from ..models import Order, Product, ProductStockKey
from ..models.catalog import (
    DELIVERY_COUPON_CODE,
    DELIVERY_CREDENTIALS,
    DELIVERY_INSTANT_KEY,
    DELIVERY_MANUAL_ACTIVATION,
    DELIVERY_TYPES,
    KEY_ASSIGNED,
    KEY_AVAILABLE,
    KEY_REVOKED,
    KEY_USED,
)
from ..time_utils import parse_iso_datetime, utcnow
from .concurrency import run_with_retry
from .ledger_service import append_order_event

logger = logging.getLogger(__name__)

POLICY_NONE = "none"
POLICY_CLAIM_KEY = "claim_key"
POLICY_MANUAL = "manual"

# Lost claim races are retried against the next candidate key
MAX_CLAIM_CANDIDATES = 5


@dataclass(frozen=True)
class DeliveryPolicy:
    stock_policy: str
    # (credential field, key attribute) pairs copied into blank credentials
    credential_fields: tuple


DELIVERY_POLICIES = {
    DELIVERY_INSTANT_KEY: DeliveryPolicy(POLICY_CLAIM_KEY, (("licenseKey", "key_value"),)),
    DELIVERY_COUPON_CODE: DeliveryPolicy(POLICY_CLAIM_KEY, (("couponCode", "key_value"),)),
    DELIVERY_CREDENTIALS: DeliveryPolicy(POLICY_CLAIM_KEY, (("username", "username"), ("password", "password"))),
    DELIVERY_MANUAL_ACTIVATION: DeliveryPolicy(POLICY_NONE, ()),
}


def effective_delivery_type(product: Product, variant=None) -> str:
    if variant is not None and variant.delivery_type:
        return variant.delivery_type
    return product.delivery_type


def policy_for(product: Product, variant=None) -> tuple[str, DeliveryPolicy]:
    """Return (stock policy, delivery policy) for a product/variant."""
    delivery_type = effective_delivery_type(product, variant)
    policy = DELIVERY_POLICIES.get(delivery_type)
    if policy is None:
        raise ValidationError(f"Unknown delivery type: {delivery_type}", details={"delivery_type": delivery_type})
    if product.use_manual_stock:
        return POLICY_MANUAL, policy
    return policy.stock_policy, policy


def decrement_manual_stock(product_id: int) -> int:
    """
    Take one unit from the manual counter.

    Returns the remaining count. Raises StockExhaustedError when the counter
    is already zero; the count is left untouched in that case.
    """
    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id, Product.manual_stock_count > 0)
        .values(manual_stock_count=Product.manual_stock_count - 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning("Manual stock exhausted for product %s", product_id)
        raise StockExhaustedError("Product is out of stock", details={"product_id": product_id})

    remaining = db.session.query(Product.manual_stock_count).filter_by(id=product_id).scalar()
    product = db.session.get(Product, product_id)
    if product is not None:
        db.session.expire(product, ["manual_stock_count"])
    return remaining


def _candidate_keys(product_id: int, variant_id: int | None) -> list[int]:
    """Oldest AVAILABLE keys, variant-specific ones before product-wide ones."""
    candidates: list[int] = []
    if variant_id is not None:
        candidates.extend(
            row.id for row in db.session.query(ProductStockKey.id)
            .filter_by(product_id=product_id, variant_id=variant_id, status=KEY_AVAILABLE)
            .order_by(ProductStockKey.created_at.asc(), ProductStockKey.id.asc())
            .limit(MAX_CLAIM_CANDIDATES)
        )
    candidates.extend(
        row.id for row in db.session.query(ProductStockKey.id)
        .filter(
            ProductStockKey.product_id == product_id,
            ProductStockKey.variant_id.is_(None),
            ProductStockKey.status == KEY_AVAILABLE,
        )
        .order_by(ProductStockKey.created_at.asc(), ProductStockKey.id.asc())
        .limit(MAX_CLAIM_CANDIDATES)
    )
    return candidates


def claim_key(product_id: int, order_id: int, user_id: int, variant_id: int | None = None) -> ProductStockKey:
    """
    Move one AVAILABLE key to ASSIGNED for this order.

    Each claim is a conditional UPDATE on status, so two approvals racing for
    the same key cannot both win; the loser moves on to the next candidate.
    Raises StockExhaustedError when nothing can be claimed.
    """
    now = utcnow()
    for key_id in _candidate_keys(product_id, variant_id):
        result = db.session.execute(
            update(ProductStockKey)
            .where(ProductStockKey.id == key_id, ProductStockKey.status == KEY_AVAILABLE)
            .values(
                status=KEY_ASSIGNED,
                assigned_order_id=order_id,
                used_by=user_id,
                used_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            key = db.session.get(ProductStockKey, key_id)
            db.session.refresh(key)
            return key
        logger.info("Stock key %s claimed concurrently, trying next candidate", key_id)

    logger.warning("No available stock keys for product %s (variant %s)", product_id, variant_id)
    raise StockExhaustedError(
        "No stock keys available for this product",
        details={"product_id": product_id, "variant_id": variant_id},
    )


def merge_key_credentials(credentials: dict | None, key: ProductStockKey, policy: DeliveryPolicy) -> dict:
    """Copy key values into credential fields the admin left blank."""
    merged = dict(credentials or {})
    for field, attr in policy.credential_fields:
        value = getattr(key, attr, None)
        if value and not merged.get(field):
            merged[field] = value
    return merged


def fulfill_stock(order: Order, credentials: dict | None, actor_user_id: int | None = None) -> dict:
    """
    Apply the stock policy for an order being approved.

    Returns the credentials to store on the order (admin-entered values plus
    anything taken from a claimed key). Caller owns the transaction.
    """
    credentials = dict(credentials or {})
    product = order.product
    if product is None:
        # Bundle orders are fulfilled by hand
        return credentials

    stock_policy, policy = policy_for(product, order.variant)

    if stock_policy == POLICY_MANUAL:
        remaining = decrement_manual_stock(product.id)
        append_order_event(
            order_id=order.id,
            event_type="stock.decremented",
            actor_user_id=actor_user_id,
            payload={"product_id": product.id, "remaining": remaining},
        )
        return credentials

    if stock_policy == POLICY_CLAIM_KEY:
        key = claim_key(product.id, order.id, order.user_id, variant_id=order.variant_id)
        append_order_event(
            order_id=order.id,
            event_type="stock.key_assigned",
            actor_user_id=actor_user_id,
            payload={"product_id": product.id, "key_id": key.id},
        )
        return merge_key_credentials(credentials, key, policy)

    return credentials


def _clean(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def add_stock_keys(product_id: int, keys: list, variant_id: int | None = None, key_type: str | None = None) -> list[ProductStockKey]:
    """
    Bulk-load keys for a product.

    Each entry is either a plain string (the key value) or a dict with
    key_value and optional username/password/additional_data/expiry_date.
    Blank values and duplicates (within the batch or already stored for the
    product) are rejected; nothing is written unless the whole batch is valid.
    """
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    if variant_id is not None and not any(v.id == variant_id for v in product.variants):
        raise NotFoundError("Variant not found for product", details={"variant_id": variant_id})
    if not keys:
        raise ValidationError("At least one key is required")

    if key_type is None:
        key_type = {
            DELIVERY_CREDENTIALS: "CREDENTIALS",
            DELIVERY_COUPON_CODE: "COUPON_CODE",
        }.get(product.delivery_type, "LICENSE_KEY")

    rows = []
    seen = set()
    for index, entry in enumerate(keys):
        data = entry if isinstance(entry, dict) else {"key_value": entry}
        key_value = _clean(data.get("key_value"))
        if key_value is None:
            raise ValidationError("Key value cannot be blank", details={"index": index})
        if key_value in seen:
            raise ValidationError("Duplicate key in upload", details={"index": index, "key_value": key_value})
        seen.add(key_value)
        rows.append((key_value, data))

    existing = {
        value for (value,) in db.session.query(ProductStockKey.key_value)
        .filter(ProductStockKey.product_id == product_id, ProductStockKey.key_value.in_(seen))
    }
    if existing:
        raise ConflictError("Some keys already exist for this product", details={"duplicates": sorted(existing)})

    def _op():
        created = []
        for key_value, data in rows:
            key = ProductStockKey(
                product_id=product_id,
                variant_id=variant_id,
                key_type=data.get("key_type") or key_type,
                key_value=key_value,
                username=_clean(data.get("username")),
                password=_clean(data.get("password")),
                additional_data=data.get("additional_data"),
                expiry_date=parse_iso_datetime(data.get("expiry_date")),
                status=KEY_AVAILABLE,
            )
            db.session.add(key)
            created.append(key)
        db.session.commit()
        return created

    created = run_with_retry(_op)
    logger.info("Added %d stock keys to product %s", len(created), product_id)
    return created


def count_available_keys(product_id: int) -> int:
    return (
        db.session.query(func.count(ProductStockKey.id))
        .filter_by(product_id=product_id, status=KEY_AVAILABLE)
        .scalar()
        or 0
    )


def available_stock(product: Product) -> dict:
    """Stock on hand for display; low_stock is True at or below the alert level."""
    if product.use_manual_stock:
        count = product.manual_stock_count
        source = POLICY_MANUAL
    elif effective_delivery_type(product) == DELIVERY_MANUAL_ACTIVATION:
        count = None
        source = POLICY_NONE
    else:
        count = count_available_keys(product.id)
        source = "keys"

    low_stock = (
        count is not None
        and product.low_stock_alert is not None
        and count <= product.low_stock_alert
    )
    return {"product_id": product.id, "source": source, "available": count, "low_stock": low_stock}


def low_stock_products() -> list[dict]:
    products = db.session.query(Product).filter_by(is_active=True).order_by(Product.name.asc()).all()
    return [stock for stock in (available_stock(p) for p in products) if stock["low_stock"]]


def set_manual_stock(product_id: int, count: int) -> Product:
    if count is None or int(count) < 0:
        raise ValidationError("Stock count cannot be negative", details={"count": count})
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    product.manual_stock_count = int(count)
    db.session.commit()
    return product


def list_keys(product_id: int, status: str | None = None) -> list[ProductStockKey]:
    query = db.session.query(ProductStockKey).filter_by(product_id=product_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(ProductStockKey.created_at.asc(), ProductStockKey.id.asc()).all()


def _get_key(key_id: int) -> ProductStockKey:
    key = db.session.get(ProductStockKey, key_id)
    if not key:
        raise NotFoundError("Stock key not found", details={"key_id": key_id})
    return key


def mark_key_used(key_id: int) -> ProductStockKey:
    """ASSIGNED -> USED once the customer has activated the key."""
    key = _get_key(key_id)
    if key.status != KEY_ASSIGNED:
        raise ConflictError(f"Cannot mark a {key.status} key as used", details={"key_id": key_id})
    key.status = KEY_USED
    db.session.commit()
    return key


def revoke_key(key_id: int) -> ProductStockKey:
    """Withdraw an unassigned key from circulation."""
    key = _get_key(key_id)
    if key.status != KEY_AVAILABLE:
        raise ConflictError(f"Cannot revoke a {key.status} key", details={"key_id": key_id})
    key.status = KEY_REVOKED
    db.session.commit()
    return key


def validate_delivery_type(value: str) -> str:
    if value not in DELIVERY_TYPES:
        raise ValidationError(f"Invalid delivery type: {value}", details={"allowed": list(DELIVERY_TYPES)})
    return value
