# Overview: Service-layer operations for the product catalog and its variants.

from __future__ import annotations

import logging

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Product, ProductVariant
from . import flash_sale_service, stock_service

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {
    "name", "description", "image_url", "category", "duration", "features",
    "original_price_paise", "sale_price_paise", "cost_price_paise",
    "delivery_type", "delivery_instructions", "requires_user_input", "user_input_label",
    "use_manual_stock", "manual_stock_count", "low_stock_alert", "is_active",
}

VARIANT_MUTABLE_FIELDS = {
    "name", "duration", "original_price_paise", "sale_price_paise", "cost_price_paise",
    "delivery_type", "is_default", "sort_order",
}

_PRICE_FIELDS = ("original_price_paise", "sale_price_paise", "cost_price_paise")
_COUNT_FIELDS = ("manual_stock_count", "low_stock_alert", "sort_order")


def _validate_patch(patch: dict) -> dict:
    clean = dict(patch)
    for field in _PRICE_FIELDS + _COUNT_FIELDS:
        if field in clean and clean[field] is not None:
            try:
                clean[field] = int(clean[field])
            except (TypeError, ValueError):
                raise ValidationError(f"{field} must be an integer", details={field: patch[field]})
            if clean[field] < 0:
                raise ValidationError(f"{field} cannot be negative", details={field: clean[field]})
    if clean.get("delivery_type"):
        stock_service.validate_delivery_type(clean["delivery_type"])
    if "name" in clean and not (clean["name"] or "").strip():
        raise ValidationError("name is required")
    if "features" in clean and clean["features"] is not None and not isinstance(clean["features"], list):
        raise ValidationError("features must be a list")
    return clean


def apply_product_patch(product: Product, patch: dict) -> None:
    for k, v in _validate_patch(patch).items():
        if k in PRODUCT_MUTABLE_FIELDS:
            setattr(product, k, v)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def create_product(data: dict) -> Product:
    if data.get("sale_price_paise") is None:
        raise ValidationError("sale_price_paise is required")

    product = Product()
    apply_product_patch(product, {"name": data.get("name"), **data})
    if product.original_price_paise is None:
        product.original_price_paise = product.sale_price_paise

    db.session.add(product)
    db.session.commit()
    logger.info("Created product %s (%s)", product.id, product.name)
    return product


def update_product(product_id: int, patch: dict) -> Product:
    product = get_product(product_id)
    apply_product_patch(product, patch)
    db.session.commit()
    return product


def delete_product(product_id: int) -> None:
    """Soft delete; orders keep pointing at the product."""
    product = get_product(product_id)
    product.is_active = False
    db.session.commit()


def add_variant(product_id: int, data: dict) -> ProductVariant:
    product = get_product(product_id)
    if data.get("sale_price_paise") is None:
        raise ValidationError("sale_price_paise is required")

    variant = ProductVariant(product_id=product.id)
    for k, v in _validate_patch({"name": data.get("name"), **data}).items():
        if k in VARIANT_MUTABLE_FIELDS:
            setattr(variant, k, v)
    if variant.original_price_paise is None:
        variant.original_price_paise = variant.sale_price_paise

    if variant.is_default:
        for other in product.variants:
            other.is_default = False
    db.session.add(variant)
    db.session.commit()
    return variant


def update_variant(variant_id: int, patch: dict) -> ProductVariant:
    variant = db.session.get(ProductVariant, variant_id)
    if not variant:
        raise NotFoundError("Variant not found", details={"variant_id": variant_id})
    for k, v in _validate_patch(patch).items():
        if k in VARIANT_MUTABLE_FIELDS:
            setattr(variant, k, v)
    if patch.get("is_default"):
        for other in variant.product.variants:
            if other.id != variant.id:
                other.is_default = False
    db.session.commit()
    return variant


def delete_variant(variant_id: int) -> None:
    variant = db.session.get(ProductVariant, variant_id)
    if not variant:
        raise NotFoundError("Variant not found", details={"variant_id": variant_id})
    db.session.delete(variant)
    db.session.commit()


def resolve_variant(product: Product, variant_id: int | None) -> ProductVariant | None:
    """The variant must belong to the product."""
    if variant_id is None:
        return None
    variant = db.session.get(ProductVariant, variant_id)
    if not variant or variant.product_id != product.id:
        raise NotFoundError("Variant not found", details={"product_id": product.id, "variant_id": variant_id})
    return variant


def catalog_entry(product: Product, config=None, include_cost: bool = False) -> dict:
    """Product dict with variants, stock and the current (flash) price."""
    config = config or flash_sale_service.current_config()
    data = product.to_dict(include_cost=include_cost)
    flash = flash_sale_service.get_flash_sale_info(product.id, config=config)
    data["flash_sale"] = flash
    data["current_price_paise"] = flash_sale_service.price_for(product, config=config)
    data["variants"] = [
        {**v.to_dict(), "current_price_paise": flash_sale_service.price_for(product, v, config=config)}
        for v in product.variants
    ]
    data["stock"] = stock_service.available_stock(product)
    return data


def list_products(active_only: bool = True, category: str | None = None, include_cost: bool = False) -> list[dict]:
    query = db.session.query(Product)
    if active_only:
        query = query.filter_by(is_active=True)
    if category:
        query = query.filter_by(category=category)
    products = query.order_by(Product.name.asc(), Product.id.asc()).all()

    config = flash_sale_service.current_config()
    return [catalog_entry(p, config=config, include_cost=include_cost) for p in products]
