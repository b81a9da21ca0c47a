# Overview: Service-layer operations for point-funded discount coupons.

from __future__ import annotations

import logging
import secrets
import string

from sqlalchemy import update

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Coupon
from ..time_utils import add_months, utcnow
from . import loyalty_service
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)

POINTS_PER_COUPON = 5000
COUPON_VALUE_PAISE = 10000  # Rs.100
COUPON_PREFIX = "SAVE100-"
COUPON_VALIDITY_MONTHS = 3

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def _generate_code() -> str:
    return COUPON_PREFIX + "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))


def redeem_points_for_coupon(user_id: int) -> Coupon:
    """
    Spend POINTS_PER_COUPON points on a Rs.100 coupon.

    The deduction and the coupon insert commit together. With too few points
    InsufficientPointsError is raised and neither happens.
    """
    def _op():
        code = _generate_code()
        while db.session.query(Coupon.id).filter_by(code=code).first():
            code = _generate_code()

        loyalty_service.redeem_points(
            user_id,
            POINTS_PER_COUPON,
            f"Redeemed for coupon {code}",
            commit=False,
        )
        coupon = Coupon(
            user_id=user_id,
            code=code,
            discount_paise=COUPON_VALUE_PAISE,
            points_used=POINTS_PER_COUPON,
            is_used=False,
            expires_at=add_months(utcnow(), COUPON_VALIDITY_MONTHS),
        )
        db.session.add(coupon)
        db.session.commit()
        return coupon

    coupon = run_with_retry(_op)
    logger.info("User %s redeemed %d points for coupon %s", user_id, POINTS_PER_COUPON, coupon.code)
    return coupon


def list_user_coupons(user_id: int) -> list[Coupon]:
    return (
        db.session.query(Coupon)
        .filter_by(user_id=user_id)
        .order_by(Coupon.created_at.desc(), Coupon.id.desc())
        .all()
    )


def validate_coupon(code: str, user_id: int | None = None) -> Coupon:
    """Return the coupon if it can still be used, else raise."""
    normalized = (code or "").strip().upper()
    coupon = db.session.query(Coupon).filter_by(code=normalized).first() if normalized else None
    if not coupon or (user_id is not None and coupon.user_id != user_id):
        raise NotFoundError("Coupon not found", details={"code": normalized})
    if coupon.is_used:
        raise ValidationError("Coupon has already been used", details={"code": normalized})
    if coupon.expires_at and coupon.expires_at <= utcnow():
        raise ValidationError("Coupon has expired", details={"code": normalized})
    return coupon


def use_coupon(coupon_id: int, order_id: int | None = None, *, commit: bool = True) -> Coupon:
    """Mark a coupon used. Only one caller can win; the rest get ConflictError."""
    def _op():
        result = db.session.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id, Coupon.is_used.is_(False))
            .values(is_used=True, used_at=utcnow(), order_id=order_id)
            .execution_options(synchronize_session=False)
        )
        coupon = db.session.get(Coupon, coupon_id)
        if coupon is None:
            raise NotFoundError("Coupon not found", details={"coupon_id": coupon_id})
        if result.rowcount == 0:
            raise ConflictError("Coupon has already been used", details={"coupon_id": coupon_id})
        db.session.refresh(coupon)
        if commit:
            db.session.commit()
        return coupon

    if commit:
        return run_with_retry(_op)
    return _op()
