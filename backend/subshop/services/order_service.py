# Overview: Service-layer operations for orders; checkout, payment proof and admin review.

"""
Order Lifecycle Manager

State machine:

    PENDING --upload proof--> SUBMITTED --approve--> COMPLETED
    {PENDING, SUBMITTED} --reject--> CANCELLED

WHY: approval touches four ledgers (order, stock, loyalty, referral). Each
step here joins one database transaction, so a failure at any step (e.g.
stock exhausted) rolls every step back and the order stays where it was.

INVARIANTS:
- total_amount_paise is fixed at creation
- nothing leaves COMPLETED or CANCELLED except delete
- re-approving a COMPLETED order is a no-op (no second stock/points effect)
- an order earns points at most once (unique order_id + type)
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..models import Bundle, Coupon, Order, OrderEvent, PointTransaction, ProductStockKey, SupportTicket
from ..models.orders import (
    ORDER_CANCELLED,
    ORDER_COMPLETED,
    ORDER_PENDING,
    ORDER_STATUSES,
    ORDER_SUBMITTED,
)
from ..time_utils import utcnow
from . import (
    coupon_service,
    flash_sale_service,
    loyalty_service,
    product_service,
    referral_service,
    stock_service,
    storage_service,
)
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_order_event

logger = logging.getLogger(__name__)

UPLOADABLE_STATUSES = (ORDER_PENDING, ORDER_SUBMITTED)
APPROVABLE_STATUSES = (ORDER_SUBMITTED,)
REJECTABLE_STATUSES = (ORDER_PENDING, ORDER_SUBMITTED)


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def _lock_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if not order:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def _parse_amount(value) -> int:
    try:
        amount = int(value)
    except (TypeError, ValueError):
        raise ValidationError("total_amount_paise must be an integer", details={"total_amount_paise": value})
    if amount < 0:
        raise ValidationError("total_amount_paise cannot be negative", details={"total_amount_paise": amount})
    return amount


def create_order(user_id: int, product_id: int, variant_id: int | None = None,
                 total_amount: int | None = None, coupon_code: str | None = None) -> Order:
    """
    Place a PENDING order for a product (optionally a specific variant).

    Price: variant price over product price, with any active flash discount
    applied, then the coupon's discount (never below zero). A client-supplied
    total is accepted as long as it is not below that price. The coupon is
    marked used in the same transaction that inserts the order.
    """
    product = product_service.get_product(product_id)
    if not product.is_active:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    variant = product_service.resolve_variant(product, variant_id)

    price = flash_sale_service.price_for(product, variant)
    coupon = None
    if coupon_code is not None and not isinstance(coupon_code, str):
        raise ValidationError("coupon_code must be a string", details={"coupon_code": coupon_code})
    if coupon_code:
        coupon = coupon_service.validate_coupon(coupon_code, user_id=user_id)
        price = max(0, price - coupon.discount_paise)

    if total_amount is None:
        total = price
    else:
        total = _parse_amount(total_amount)
        if total < price:
            raise ValidationError(
                "Order total is below the current price",
                details={"total_amount_paise": total, "price_paise": price},
            )

    def _op():
        order = Order(
            user_id=user_id,
            product_id=product.id,
            variant_id=variant.id if variant else None,
            status=ORDER_PENDING,
            total_amount_paise=total,
        )
        db.session.add(order)
        db.session.flush()
        payload = {"product_id": product.id, "variant_id": order.variant_id, "total_amount_paise": total}
        if coupon is not None:
            coupon_service.use_coupon(coupon.id, order.id, commit=False)
            payload.update(coupon_id=coupon.id, coupon_discount_paise=coupon.discount_paise)
        append_order_event(
            order_id=order.id,
            event_type="order.created",
            actor_user_id=user_id,
            payload=payload,
        )
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Order %s created by user %s for product %s (%d paise)", order.id, user_id, product.id, total)
    return order


def create_bundle_order(user_id: int, bundle_id: int) -> Order:
    bundle = db.session.get(Bundle, bundle_id)
    if not bundle or not bundle.is_active:
        raise NotFoundError("Bundle not found", details={"bundle_id": bundle_id})
    if bundle.valid_until is not None and bundle.valid_until <= utcnow():
        raise ValidationError("This bundle offer has expired", details={"bundle_id": bundle_id})

    def _op():
        order = Order(
            user_id=user_id,
            bundle_id=bundle.id,
            status=ORDER_PENDING,
            total_amount_paise=bundle.sale_price_paise,
        )
        db.session.add(order)
        db.session.flush()
        append_order_event(
            order_id=order.id,
            event_type="order.created",
            actor_user_id=user_id,
            payload={"bundle_id": bundle.id, "total_amount_paise": bundle.sale_price_paise},
        )
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Bundle order %s created by user %s for bundle %s", order.id, user_id, bundle.id)
    return order


def upload_payment_screenshot(order_id: int, user_id: int, file, user_input: str | None = None) -> Order:
    """
    Attach payment proof and move the order to SUBMITTED.

    Re-upload is allowed while the order is still under review. The file is
    validated and stored before the order row is touched.
    """
    order = get_order(order_id)
    if order.user_id != user_id:
        raise PermissionDeniedError("You can only upload proof for your own orders")
    if order.status not in UPLOADABLE_STATUSES:
        raise ConflictError(
            f"Cannot upload payment proof for a {order.status} order",
            details={"order_id": order_id, "status": order.status},
        )

    user_input = (user_input or "").strip() or None
    product = order.product
    if product is not None and product.requires_user_input and not (user_input or order.user_provided_input):
        label = product.user_input_label or "Required account details"
        raise ValidationError(f"{label} is required for this product", details={"field": "user_input"})

    url = storage_service.store_upload(
        file,
        storage_service.BUCKET_PAYMENT_SCREENSHOTS,
        prefix=f"order-{order_id}",
    )

    def _op():
        locked = _lock_order(order_id)
        if locked.status not in UPLOADABLE_STATUSES:
            raise ConflictError(
                f"Cannot upload payment proof for a {locked.status} order",
                details={"order_id": order_id, "status": locked.status},
            )
        locked.payment_screenshot = url
        if user_input:
            locked.user_provided_input = user_input
        locked.status = ORDER_SUBMITTED
        locked.submitted_at = utcnow()
        append_order_event(
            order_id=locked.id,
            event_type="order.submitted",
            actor_user_id=user_id,
            payload={"payment_screenshot": url},
        )
        db.session.commit()
        return locked

    order = run_with_retry(_op)
    logger.info("Payment proof uploaded for order %s", order_id)
    return order


def _award_order_points(order: Order, actor_user_id: int | None) -> int:
    points = loyalty_service.points_for_amount(order.total_amount_paise)
    if points <= 0 or loyalty_service.has_earned_for_order(order.id):
        return 0
    loyalty_service.award_points(
        order.user_id,
        points,
        loyalty_service.TX_EARNED,
        f"Order #{order.id}",
        order_id=order.id,
        commit=False,
    )
    append_order_event(
        order_id=order.id,
        event_type="loyalty.earned",
        actor_user_id=actor_user_id,
        payload={"points": points},
    )
    return points


def approve_order(order_id: int, credentials: dict | None, admin_id: int | None) -> Order:
    """
    Complete an order and apply every side effect in one transaction:
    stock policy, loyalty earn, referral completion.

    Raises StockExhaustedError (order left unchanged) when the product has
    no stock to hand out. Approving an already COMPLETED order returns it
    untouched.
    """
    if credentials is not None and not isinstance(credentials, dict):
        raise ValidationError("credentials must be an object")

    def _op():
        order = _lock_order(order_id)
        if order.status == ORDER_COMPLETED:
            return order
        if order.status not in APPROVABLE_STATUSES:
            raise ConflictError(
                f"Cannot approve a {order.status} order",
                details={"order_id": order_id, "status": order.status},
            )

        previous_status = order.status
        final_credentials = stock_service.fulfill_stock(order, credentials, actor_user_id=admin_id)

        now = utcnow()
        order.status = ORDER_COMPLETED
        order.credentials = final_credentials or None
        order.completed_at = now
        order.approved_by_user_id = admin_id
        append_order_event(
            order_id=order.id,
            event_type="order.approved",
            actor_user_id=admin_id,
            occurred_at=now,
            payload={"from_status": previous_status},
        )

        _award_order_points(order, admin_id)

        referral = referral_service.complete_referral(order.user_id, commit=False)
        if referral is not None:
            append_order_event(
                order_id=order.id,
                event_type="referral.completed",
                actor_user_id=admin_id,
                payload={"referral_id": referral.id, "referrer_id": referral.referrer_id},
            )

        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Order %s approved by admin %s", order_id, admin_id)
    return order


def reject_order(order_id: int, reason: str, admin_id: int | None) -> Order:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A rejection reason is required")

    def _op():
        order = _lock_order(order_id)
        if order.status not in REJECTABLE_STATUSES:
            raise ConflictError(
                f"Cannot reject a {order.status} order",
                details={"order_id": order_id, "status": order.status},
            )
        order.status = ORDER_CANCELLED
        order.cancellation_reason = reason[:500]
        append_order_event(
            order_id=order.id,
            event_type="order.rejected",
            actor_user_id=admin_id,
            note=reason[:500],
        )
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Order %s rejected by admin %s", order_id, admin_id)
    return order


def delete_order(order_id: int) -> None:
    """
    Remove an order and its event trail.

    Effects already applied stay applied: a claimed key remains ASSIGNED
    and earned points remain on the account; only their link to the order
    is cleared.
    """
    def _op():
        order = _lock_order(order_id)
        db.session.query(ProductStockKey).filter_by(assigned_order_id=order.id).update(
            {"assigned_order_id": None}, synchronize_session=False
        )
        db.session.query(PointTransaction).filter_by(order_id=order.id).update(
            {"order_id": None}, synchronize_session=False
        )
        db.session.query(Coupon).filter_by(order_id=order.id).update(
            {"order_id": None}, synchronize_session=False
        )
        db.session.query(SupportTicket).filter_by(order_id=order.id).update(
            {"order_id": None}, synchronize_session=False
        )
        db.session.query(OrderEvent).filter_by(order_id=order.id).delete(synchronize_session=False)
        db.session.delete(order)
        db.session.commit()

    run_with_retry(_op)
    logger.info("Order %s deleted", order_id)


def list_user_orders(user_id: int) -> list[Order]:
    return (
        db.session.query(Order)
        .filter_by(user_id=user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def list_all_orders(status: str | None = None) -> list[Order]:
    query = db.session.query(Order)
    if status:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid status: {status}", details={"allowed": list(ORDER_STATUSES)})
        query = query.filter_by(status=status)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


def order_stats() -> dict:
    """Counts per status plus completed revenue, for the admin dashboard."""
    counts = {status: 0 for status in ORDER_STATUSES}
    rows = db.session.query(Order.status, db.func.count(Order.id)).group_by(Order.status).all()
    for status, count in rows:
        counts[status] = count
    revenue = (
        db.session.query(db.func.coalesce(db.func.sum(Order.total_amount_paise), 0))
        .filter(Order.status == ORDER_COMPLETED)
        .scalar()
    )
    return {"counts": counts, "completed_revenue_paise": int(revenue or 0)}
