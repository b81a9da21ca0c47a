# Overview: Service-layer operations for referral codes and referral rewards.

"""
Referral Completion

A referral links a new user to the user whose code they signed up with. It
completes on the referred user's first completed order and pays out once:

    referrer:  +100 points (type "referral")
    referred:  +50 points  (type "bonus")

INVARIANTS:
- one referral per referred user (unique referred_id)
- reward_given flips False -> True exactly once; the flip is a conditional
  UPDATE and only the caller that performs it awards points
"""

from __future__ import annotations

import logging
import secrets
import string

from sqlalchemy import func, update

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Order, PointTransaction, Referral, ReferralCode, User
from ..models.orders import ORDER_COMPLETED
from ..time_utils import utcnow
from . import loyalty_service
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)

REFERRER_REWARD = 100
REFERRED_BONUS = 50

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"

CODE_PREFIX = "REF"
CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6


def _generate_code() -> str:
    return CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def get_or_create_code(user_id: int) -> ReferralCode:
    existing = db.session.query(ReferralCode).filter_by(user_id=user_id).first()
    if existing:
        return existing

    if not db.session.get(User, user_id):
        raise NotFoundError("User not found", details={"user_id": user_id})

    def _op():
        code = _generate_code()
        while db.session.query(ReferralCode.id).filter_by(code=code).first():
            code = _generate_code()
        record = ReferralCode(user_id=user_id, code=code, uses=0)
        db.session.add(record)
        db.session.commit()
        return record

    return run_with_retry(_op)


def apply_referral_code(user_id: int, code: str) -> dict:
    """
    Link user_id to the owner of code as a pending referral.

    Codes are matched case-insensitively. Raises NotFoundError for an unknown
    code and ValidationError for self-referral, a second referral, or a user
    who has already completed an order.
    """
    normalized = (code or "").strip().upper()
    if not normalized:
        raise ValidationError("Referral code is required")

    def _op():
        record = db.session.query(ReferralCode).filter(func.upper(ReferralCode.code) == normalized).first()
        if not record:
            raise NotFoundError("Invalid referral code", details={"code": normalized})
        if record.user_id == user_id:
            raise ValidationError("You cannot use your own referral code")
        if db.session.query(Referral.id).filter_by(referred_id=user_id).first():
            raise ValidationError("You have already used a referral code")

        has_completed = (
            db.session.query(Order.id)
            .filter_by(user_id=user_id, status=ORDER_COMPLETED)
            .first()
        )
        if has_completed:
            raise ValidationError("Referral codes can only be used before your first order")

        referral = Referral(
            referrer_id=record.user_id,
            referred_id=user_id,
            referral_code=record.code,
            status=STATUS_PENDING,
            reward_given=False,
        )
        db.session.add(referral)
        db.session.execute(
            update(ReferralCode)
            .where(ReferralCode.id == record.id)
            .values(uses=ReferralCode.uses + 1)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return referral

    referral = run_with_retry(_op)
    logger.info("User %s referred by user %s (code %s)", user_id, referral.referrer_id, referral.referral_code)
    return referral.to_dict()


def complete_referral(referred_user_id: int, *, commit: bool = True) -> Referral | None:
    """
    Pay out the referral for referred_user_id if it has not been paid yet.

    Returns the referral when this call completed it, otherwise None (no
    referral, or already rewarded). Safe to call on every approval.
    """
    def _op():
        result = db.session.execute(
            update(Referral)
            .where(Referral.referred_id == referred_user_id, Referral.reward_given.is_(False))
            .values(reward_given=True, status=STATUS_COMPLETED, completed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None

        referral = db.session.query(Referral).filter_by(referred_id=referred_user_id).one()
        db.session.refresh(referral)

        loyalty_service.award_points(
            referral.referrer_id,
            REFERRER_REWARD,
            loyalty_service.TX_REFERRAL,
            "Referral reward",
            referral_id=referral.id,
            commit=False,
        )
        loyalty_service.award_points(
            referred_user_id,
            REFERRED_BONUS,
            loyalty_service.TX_BONUS,
            "Welcome bonus for joining through a referral",
            referral_id=referral.id,
            commit=False,
        )

        if commit:
            db.session.commit()
        return referral

    referral = run_with_retry(_op) if commit else _op()
    if referral is not None:
        logger.info("Referral %s completed: referrer %s rewarded", referral.id, referral.referrer_id)
    return referral


def list_referrals(referrer_id: int) -> list[Referral]:
    return (
        db.session.query(Referral)
        .filter_by(referrer_id=referrer_id)
        .order_by(Referral.created_at.desc(), Referral.id.desc())
        .all()
    )


def referral_stats(user_id: int) -> dict:
    referrals = list_referrals(user_id)
    completed = sum(1 for r in referrals if r.status == STATUS_COMPLETED)
    points_earned = (
        db.session.query(func.coalesce(func.sum(PointTransaction.points), 0))
        .filter_by(user_id=user_id, type=loyalty_service.TX_REFERRAL)
        .scalar()
    )
    return {
        "total_referrals": len(referrals),
        "completed_referrals": completed,
        "pending_referrals": len(referrals) - completed,
        "total_points_earned": int(points_earned or 0),
    }
