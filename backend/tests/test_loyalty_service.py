from datetime import timedelta

import pytest

from subshop.errors import ConflictError, InsufficientPointsError, NotFoundError, ValidationError
from subshop.models import Coupon, PointTransaction
from subshop.services import coupon_service, loyalty_service
from subshop.time_utils import utcnow


@pytest.mark.parametrize("amount, points", [
    (99900, 99),
    (59900, 59),
    (999, 0),
    (0, 0),
    (None, 0),
])
def test_points_for_amount(amount, points):
    assert loyalty_service.points_for_amount(amount) == points


@pytest.mark.parametrize("lifetime, tier", [
    (0, "bronze"),
    (499, "bronze"),
    (500, "silver"),
    (1500, "gold"),
    (4999, "gold"),
    (5000, "platinum"),
])
def test_tier_for(lifetime, tier):
    assert loyalty_service.tier_for(lifetime) == tier


def test_award_creates_account_and_updates_tier(db_session, customer):
    loyalty_service.award_points(customer.id, 600, loyalty_service.TX_BONUS, "Promo")

    account = loyalty_service.get_account(customer.id)
    assert account.total_points == 600
    assert account.lifetime_points == 600
    assert account.tier == "silver"


def test_award_rejects_non_positive_points(db_session, customer):
    with pytest.raises(ValidationError):
        loyalty_service.award_points(customer.id, 0, loyalty_service.TX_BONUS, "Nothing")


def test_redeem_deducts_balance_but_not_lifetime(db_session, customer):
    loyalty_service.award_points(customer.id, 1600, loyalty_service.TX_BONUS, "Promo")

    tx = loyalty_service.redeem_points(customer.id, 1000, "Spent")

    assert tx.points == -1000
    account = loyalty_service.get_account(customer.id)
    assert account.total_points == 600
    assert account.lifetime_points == 1600
    assert account.tier == "gold"


def test_redeem_with_insufficient_balance_changes_nothing(db_session, customer):
    loyalty_service.award_points(customer.id, 4800, loyalty_service.TX_BONUS, "Promo")

    with pytest.raises(InsufficientPointsError) as exc:
        loyalty_service.redeem_points(customer.id, 5000, "Too much")

    assert exc.value.details["balance"] == 4800
    assert loyalty_service.get_account(customer.id).total_points == 4800
    assert db_session.query(PointTransaction).filter_by(type=loyalty_service.TX_REDEEMED).count() == 0


def test_account_summary_reports_next_tier(db_session, customer):
    loyalty_service.award_points(customer.id, 120, loyalty_service.TX_BONUS, "Promo")

    summary = loyalty_service.account_summary(customer.id)

    assert summary["tier"] == "bronze"
    assert summary["benefits"] == loyalty_service.TIER_BENEFITS["bronze"]
    assert summary["next_tier"] == {"tier": "silver", "points_needed": 380}


def test_platinum_has_no_next_tier(db_session, customer):
    loyalty_service.award_points(customer.id, 6000, loyalty_service.TX_BONUS, "Promo")

    assert loyalty_service.account_summary(customer.id)["next_tier"] is None


def test_list_transactions_newest_first(db_session, customer):
    loyalty_service.award_points(customer.id, 10, loyalty_service.TX_BONUS, "first")
    loyalty_service.award_points(customer.id, 20, loyalty_service.TX_BONUS, "second")

    txs = loyalty_service.list_transactions(customer.id, limit=1)

    assert [t.description for t in txs] == ["second"]


# Coupons

def test_redeem_for_coupon_spends_5000_points(db_session, customer):
    loyalty_service.award_points(customer.id, 5200, loyalty_service.TX_BONUS, "Promo")

    coupon = coupon_service.redeem_points_for_coupon(customer.id)

    assert coupon.code.startswith("SAVE100-")
    assert len(coupon.code) == len("SAVE100-") + 6
    assert coupon.discount_paise == 10000
    assert coupon.points_used == 5000
    assert coupon.is_used is False
    assert coupon.expires_at > utcnow() + timedelta(days=85)
    assert loyalty_service.get_account(customer.id).total_points == 200


def test_redeem_for_coupon_with_4800_points_fails_cleanly(db_session, customer):
    loyalty_service.award_points(customer.id, 4800, loyalty_service.TX_BONUS, "Promo")

    with pytest.raises(InsufficientPointsError):
        coupon_service.redeem_points_for_coupon(customer.id)

    assert loyalty_service.get_account(customer.id).total_points == 4800
    assert db_session.query(Coupon).count() == 0


def test_validate_coupon_checks_owner_use_and_expiry(db_session, customer, other_customer):
    loyalty_service.award_points(customer.id, 10000, loyalty_service.TX_BONUS, "Promo")
    coupon = coupon_service.redeem_points_for_coupon(customer.id)

    assert coupon_service.validate_coupon(coupon.code.lower(), user_id=customer.id).id == coupon.id
    with pytest.raises(NotFoundError):
        coupon_service.validate_coupon(coupon.code, user_id=other_customer.id)

    coupon.expires_at = utcnow() - timedelta(minutes=1)
    db_session.commit()
    with pytest.raises(ValidationError):
        coupon_service.validate_coupon(coupon.code, user_id=customer.id)


def test_use_coupon_only_once(db_session, customer):
    loyalty_service.award_points(customer.id, 5000, loyalty_service.TX_BONUS, "Promo")
    coupon = coupon_service.redeem_points_for_coupon(customer.id)

    used = coupon_service.use_coupon(coupon.id)
    assert used.is_used is True
    assert used.used_at is not None

    with pytest.raises(ConflictError):
        coupon_service.use_coupon(coupon.id)
    with pytest.raises(ValidationError):
        coupon_service.validate_coupon(coupon.code)
