# Overview: Service-layer operations for fixed-price product bundles.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Bundle, Product
from ..time_utils import as_utc_naive, parse_iso_datetime, utcnow

BUNDLE_FIELDS = {"name", "description", "image_url", "original_price_paise", "sale_price_paise", "is_active", "valid_until"}


def _resolve_products(product_ids) -> list[Product]:
    if not isinstance(product_ids, list):
        raise ValidationError("product_ids must be a list")
    ids = []
    for raw in product_ids:
        try:
            ids.append(int(raw))
        except (TypeError, ValueError):
            raise ValidationError("Invalid product id", details={"product_id": raw})
    ids = list(dict.fromkeys(ids))
    products = db.session.query(Product).filter(Product.id.in_(ids)).all() if ids else []
    missing = sorted(set(ids) - {p.id for p in products})
    if missing:
        raise NotFoundError("Bundle product not found", details={"product_ids": missing})
    by_id = {p.id: p for p in products}
    return [by_id[i] for i in ids]


def _apply(bundle: Bundle, data: dict) -> None:
    for k, v in data.items():
        if k not in BUNDLE_FIELDS:
            continue
        if k in ("original_price_paise", "sale_price_paise"):
            try:
                v = int(v)
            except (TypeError, ValueError):
                raise ValidationError(f"{k} must be an integer", details={k: v})
            if v < 0:
                raise ValidationError(f"{k} cannot be negative", details={k: v})
        elif k == "valid_until":
            if isinstance(v, str):
                try:
                    v = parse_iso_datetime(v)
                except ValueError:
                    raise ValidationError("valid_until must be an ISO-8601 timestamp", details={k: v})
            elif isinstance(v, datetime):
                v = as_utc_naive(v)
        elif k == "name" and not (v or "").strip():
            raise ValidationError("name is required")
        setattr(bundle, k, v)

    if bundle.original_price_paise is None or bundle.sale_price_paise is None:
        raise ValidationError("original_price_paise and sale_price_paise are required")
    if bundle.sale_price_paise > bundle.original_price_paise:
        raise ValidationError(
            "Bundle sale price cannot exceed the original price",
            details={"original_price_paise": bundle.original_price_paise, "sale_price_paise": bundle.sale_price_paise},
        )


def get_bundle(bundle_id: int) -> Bundle:
    bundle = db.session.get(Bundle, bundle_id)
    if not bundle:
        raise NotFoundError("Bundle not found", details={"bundle_id": bundle_id})
    return bundle


def create_bundle(data: dict) -> Bundle:
    bundle = Bundle(is_active=True)
    _apply(bundle, {"name": data.get("name"), **data})
    bundle.products = _resolve_products(data.get("product_ids") or [])
    db.session.add(bundle)
    db.session.commit()
    return bundle


def update_bundle(bundle_id: int, data: dict) -> Bundle:
    """Patch fields; when product_ids is given the product set is replaced."""
    bundle = get_bundle(bundle_id)
    _apply(bundle, data)
    if "product_ids" in data:
        bundle.products = _resolve_products(data.get("product_ids") or [])
    db.session.commit()
    return bundle


def delete_bundle(bundle_id: int) -> None:
    bundle = get_bundle(bundle_id)
    db.session.delete(bundle)
    db.session.commit()


def list_bundles(active_only: bool = True) -> list[Bundle]:
    query = db.session.query(Bundle)
    if active_only:
        now = utcnow()
        query = query.filter(
            Bundle.is_active.is_(True),
            db.or_(Bundle.valid_until.is_(None), Bundle.valid_until > now),
        )
    return query.order_by(Bundle.created_at.desc(), Bundle.id.desc()).all()
