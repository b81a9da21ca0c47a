# Overview: Service-layer operations for loyalty points, tiers and redemption.

"""
Loyalty Accounting

Points are earned on completed orders (10 points per Rs.100, i.e.
floor(rupees / 10)) and through referral rewards. Every change writes a
PointTransaction and updates the LoyaltyAccount with a single conditional
UPDATE, so concurrent awards and redemptions never lose an increment and
never push the balance below zero.

INVARIANTS:
- lifetime_points is non-decreasing (redemptions only touch total_points)
- tier is recomputed from lifetime_points inside the same UPDATE
- total_points >= cost is a WHERE clause of the redemption, not a pre-read
"""

from __future__ import annotations

from sqlalchemy import case, update

from ..extensions import db
from ..errors import InsufficientPointsError, ValidationError
from ..models import LoyaltyAccount, PointTransaction
from .concurrency import run_with_retry


TIER_BRONZE = "bronze"
TIER_SILVER = "silver"
TIER_GOLD = "gold"
TIER_PLATINUM = "platinum"

TIER_ORDER = (TIER_BRONZE, TIER_SILVER, TIER_GOLD, TIER_PLATINUM)

TIER_THRESHOLDS = {
    TIER_BRONZE: 0,
    TIER_SILVER: 500,
    TIER_GOLD: 1500,
    TIER_PLATINUM: 5000,
}

TIER_BENEFITS = {
    TIER_BRONZE: {"discount_percent": 0, "points_multiplier": 1.0},
    TIER_SILVER: {"discount_percent": 5, "points_multiplier": 1.25},
    TIER_GOLD: {"discount_percent": 10, "points_multiplier": 1.5},
    TIER_PLATINUM: {"discount_percent": 15, "points_multiplier": 2.0},
}

TX_EARNED = "earned"
TX_REDEEMED = "redeemed"
TX_BONUS = "bonus"
TX_REFERRAL = "referral"

PAISE_PER_POINT = 1000  # 10 points per Rs.100


def points_for_amount(amount_paise: int | None) -> int:
    """floor(rupees / 10); non-positive amounts earn nothing."""
    if not amount_paise or amount_paise <= 0:
        return 0
    return amount_paise // PAISE_PER_POINT


def tier_for(lifetime_points: int) -> str:
    for tier in reversed(TIER_ORDER):
        if lifetime_points >= TIER_THRESHOLDS[tier]:
            return tier
    return TIER_BRONZE


def _tier_expression(lifetime_expr):
    whens = [
        (lifetime_expr >= TIER_THRESHOLDS[tier], tier)
        for tier in reversed(TIER_ORDER)
        if TIER_THRESHOLDS[tier] > 0
    ]
    return case(*whens, else_=TIER_BRONZE)


def _ensure_account(user_id: int) -> LoyaltyAccount:
    """Fetch the account, creating it lazily on first use."""
    account = db.session.query(LoyaltyAccount).filter_by(user_id=user_id).first()
    if account:
        return account

    account = LoyaltyAccount(user_id=user_id, total_points=0, lifetime_points=0, tier=TIER_BRONZE)
    db.session.add(account)
    db.session.flush()
    return account


def award_points(
    user_id: int,
    points: int,
    tx_type: str,
    description: str,
    *,
    order_id: int | None = None,
    referral_id: int | None = None,
    commit: bool = True,
) -> PointTransaction:
    """
    Credit points: append a PointTransaction and bump both balances.

    With commit=False the caller owns the transaction (used by order
    approval and referral completion).
    """
    if points <= 0:
        raise ValidationError("Awarded points must be positive", details={"points": points})

    def _op():
        account = _ensure_account(user_id)

        tx = PointTransaction(
            user_id=user_id,
            points=points,
            type=tx_type,
            description=description,
            order_id=order_id,
            referral_id=referral_id,
        )
        db.session.add(tx)

        new_lifetime = LoyaltyAccount.lifetime_points + points
        db.session.execute(
            update(LoyaltyAccount)
            .where(LoyaltyAccount.id == account.id)
            .values(
                total_points=LoyaltyAccount.total_points + points,
                lifetime_points=new_lifetime,
                tier=_tier_expression(new_lifetime),
            )
            .execution_options(synchronize_session=False)
        )
        db.session.expire(account)

        if commit:
            db.session.commit()
        return tx

    if commit:
        return run_with_retry(_op)
    return _op()


def redeem_points(user_id: int, points: int, description: str, *, commit: bool = True) -> PointTransaction:
    """
    Debit points if and only if the balance covers them.

    Raises InsufficientPointsError (balance unchanged) otherwise.
    """
    if points <= 0:
        raise ValidationError("Redeemed points must be positive", details={"points": points})

    def _op():
        account = _ensure_account(user_id)

        result = db.session.execute(
            update(LoyaltyAccount)
            .where(LoyaltyAccount.id == account.id, LoyaltyAccount.total_points >= points)
            .values(total_points=LoyaltyAccount.total_points - points)
            .execution_options(synchronize_session=False)
        )
        db.session.expire(account)

        if result.rowcount == 0:
            raise InsufficientPointsError(
                f"You need at least {points} points",
                details={"required": points, "balance": account.total_points},
            )

        tx = PointTransaction(user_id=user_id, points=-points, type=TX_REDEEMED, description=description)
        db.session.add(tx)

        if commit:
            db.session.commit()
        return tx

    if commit:
        return run_with_retry(_op)
    return _op()


def has_earned_for_order(order_id: int) -> bool:
    return db.session.query(PointTransaction.id).filter_by(order_id=order_id, type=TX_EARNED).first() is not None


def get_account(user_id: int) -> LoyaltyAccount:
    account = _ensure_account(user_id)
    db.session.commit()
    return account


def list_transactions(user_id: int, limit: int = 20) -> list[PointTransaction]:
    return (
        db.session.query(PointTransaction)
        .filter_by(user_id=user_id)
        .order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())
        .limit(limit)
        .all()
    )


def next_tier(account: LoyaltyAccount) -> dict | None:
    """Next tier and the lifetime points still needed, or None at the top."""
    index = TIER_ORDER.index(tier_for(account.lifetime_points))
    if index >= len(TIER_ORDER) - 1:
        return None
    upcoming = TIER_ORDER[index + 1]
    return {
        "tier": upcoming,
        "points_needed": TIER_THRESHOLDS[upcoming] - account.lifetime_points,
    }


def account_summary(user_id: int) -> dict:
    account = get_account(user_id)
    data = account.to_dict()
    data["benefits"] = TIER_BENEFITS[account.tier]
    data["next_tier"] = next_tier(account)
    return data
