# Overview: Service-layer operations for the global flash sale and sale prices.

"""
Flash Sale Pricing

One global, server-owned FlashSaleConfig row. Admin saves overwrite it
wholesale and bump `version`; clients poll the versioned endpoint instead of
caching expiry themselves.

Price projection (read time only, product prices are never mutated):

    flash_price = max(0, base - discount)   if enabled and now < end_time
    flash_price = base                      otherwise
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import FlashSaleConfig, FlashSaleItem, Product
from ..time_utils import as_utc_naive, parse_iso_datetime, to_utc_z, utcnow
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)

DEFAULT_DURATION_HOURS = 6
DEFAULT_MAX_PRODUCTS = 5
DEFAULT_MIN_DISCOUNT_PERCENT = 10


def flash_price(base: int, discount: int, enabled: bool, end_time: datetime | None, now: datetime) -> int:
    """Pure price rule; all amounts in paise."""
    if enabled and end_time is not None and now < end_time:
        return max(0, base - discount)
    return base


def is_active(config: FlashSaleConfig, now: datetime | None = None) -> bool:
    now = now or utcnow()
    return bool(config.enabled and config.end_time is not None and now < config.end_time)


def _default_config() -> FlashSaleConfig:
    return FlashSaleConfig(
        enabled=False,
        end_time=None,
        duration_hours=DEFAULT_DURATION_HOURS,
        min_discount_percent=DEFAULT_MIN_DISCOUNT_PERCENT,
        max_products=DEFAULT_MAX_PRODUCTS,
        version=1,
    )


def current_config() -> FlashSaleConfig:
    """Stored config, or an unsaved disabled default. Never writes."""
    config = db.session.query(FlashSaleConfig).order_by(FlashSaleConfig.id.asc()).first()
    return config or _default_config()


def _get_or_create_config() -> FlashSaleConfig:
    config = db.session.query(FlashSaleConfig).order_by(FlashSaleConfig.id.asc()).first()
    if config:
        return config
    config = _default_config()
    db.session.add(config)
    db.session.flush()
    return config


def get_config() -> FlashSaleConfig:
    """Return the global config, creating the disabled default on first use."""
    config = _get_or_create_config()
    db.session.commit()
    return config


def _int_field(data: dict, name: str, default: int, minimum: int) -> int:
    value = data.get(name, default)
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer", details={name: value})
    if value < minimum:
        raise ValidationError(f"{name} must be at least {minimum}", details={name: value})
    return value


def _parse_items(raw_items, max_products: int) -> list[tuple[int, int]]:
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        raise ValidationError("products must be a list")
    if len(raw_items) > max_products:
        raise ValidationError(
            f"You can only select up to {max_products} products for flash sale",
            details={"max_products": max_products, "selected": len(raw_items)},
        )

    items = []
    seen = set()
    for entry in raw_items:
        if not isinstance(entry, dict):
            raise ValidationError("Each flash sale product needs product_id and discount_paise")
        try:
            product_id = int(entry.get("product_id"))
            discount = int(entry.get("discount_paise", 0))
        except (TypeError, ValueError):
            raise ValidationError("Invalid flash sale product entry", details={"entry": entry})
        if discount < 0:
            raise ValidationError("Discount cannot be negative", details={"product_id": product_id})
        if product_id in seen:
            raise ValidationError("Product listed twice", details={"product_id": product_id})
        seen.add(product_id)
        items.append((product_id, discount))

    if seen:
        found = {pid for (pid,) in db.session.query(Product.id).filter(Product.id.in_(seen))}
        missing = sorted(seen - found)
        if missing:
            raise NotFoundError("Flash sale product not found", details={"product_ids": missing})
    return items


def save_config(data: dict, admin_id: int | None = None) -> FlashSaleConfig:
    """
    Overwrite the flash sale configuration.

    Enabling without an end_time starts a sale of duration_hours from now.
    The item list is replaced wholesale. version is bumped on every save.
    """
    data = data or {}
    duration_hours = _int_field(data, "duration_hours", DEFAULT_DURATION_HOURS, 1)
    max_products = _int_field(data, "max_products", DEFAULT_MAX_PRODUCTS, 1)
    min_discount_percent = _int_field(data, "min_discount_percent", DEFAULT_MIN_DISCOUNT_PERCENT, 0)
    enabled = data.get("enabled", False)
    if not isinstance(enabled, bool):
        raise ValidationError("enabled must be true or false", details={"enabled": enabled})

    end_time = data.get("end_time")
    if isinstance(end_time, str):
        try:
            end_time = parse_iso_datetime(end_time)
        except ValueError:
            raise ValidationError("end_time must be an ISO-8601 timestamp", details={"end_time": data.get("end_time")})
    elif isinstance(end_time, datetime):
        end_time = as_utc_naive(end_time)
    elif end_time is not None:
        raise ValidationError("end_time must be an ISO-8601 timestamp")

    if enabled and end_time is None:
        end_time = utcnow() + timedelta(hours=duration_hours)

    items = _parse_items(data.get("products"), max_products)

    def _op():
        config = _get_or_create_config()
        config.enabled = enabled
        config.end_time = end_time
        config.duration_hours = duration_hours
        config.max_products = max_products
        config.min_discount_percent = min_discount_percent
        config.version = (config.version or 0) + 1
        config.updated_by_user_id = admin_id
        config.items = [FlashSaleItem(product_id=pid, discount_paise=discount) for pid, discount in items]
        db.session.commit()
        return config

    config = run_with_retry(_op)
    logger.info(
        "Flash sale config saved (version %s, enabled=%s, %d products)",
        config.version, config.enabled, len(config.items),
    )
    return config


def end_flash_sale(admin_id: int | None = None) -> FlashSaleConfig:
    """Stop the running sale now; prices revert immediately."""
    def _op():
        config = _get_or_create_config()
        config.end_time = utcnow()
        config.version = (config.version or 0) + 1
        config.updated_by_user_id = admin_id
        db.session.commit()
        return config

    return run_with_retry(_op)


def get_flash_sale_info(product_id: int, now: datetime | None = None, config: FlashSaleConfig | None = None) -> dict:
    config = config or current_config()
    now = now or utcnow()
    if not is_active(config, now):
        return {"is_on_flash_sale": False, "discount_paise": 0}

    for item in config.items:
        if item.product_id == product_id:
            return {"is_on_flash_sale": True, "discount_paise": item.discount_paise}
    return {"is_on_flash_sale": False, "discount_paise": 0}


def price_for(product: Product, variant=None, now: datetime | None = None, config: FlashSaleConfig | None = None) -> int:
    """Current selling price of a product (or variant) in paise."""
    config = config or current_config()
    now = now or utcnow()
    base = variant.sale_price_paise if variant is not None else product.sale_price_paise
    info = get_flash_sale_info(product.id, now=now, config=config)
    return flash_price(base, info["discount_paise"], config.enabled, config.end_time, now)


def public_state(now: datetime | None = None) -> dict:
    """Config plus server time, so pollers can count down without trusting their clock."""
    config = get_config()
    now = now or utcnow()
    data = config.to_dict()
    data["is_active"] = is_active(config, now)
    data["server_time"] = to_utc_z(now)
    return data
