from datetime import datetime, timedelta

import pytest

from subshop.errors import ConflictError, NotFoundError, ValidationError
from subshop.models import PremiumMembership
from subshop.services import premium_service
from subshop.time_utils import utcnow


def test_request_uses_plan_price(db_session, customer):
    membership = premium_service.request_membership(customer.id, "10_year", transaction_id=" UTR123 ")

    assert membership.status == premium_service.STATUS_PENDING
    assert membership.price_paid_paise == 80000
    assert membership.transaction_id == "UTR123"


def test_request_unknown_plan(db_session, customer):
    with pytest.raises(ValidationError):
        premium_service.request_membership(customer.id, "weekly")


def test_second_pending_request_conflicts(db_session, customer):
    premium_service.request_membership(customer.id, "5_year")

    with pytest.raises(ConflictError):
        premium_service.request_membership(customer.id, "lifetime")


def test_approve_sets_expiry_from_plan(db_session, admin, customer):
    membership = premium_service.request_membership(customer.id, "5_year")

    approved = premium_service.approve(membership.id, admin.id)

    assert approved.status == premium_service.STATUS_APPROVED
    assert approved.approved_by == admin.id
    assert approved.expires_at - approved.approved_at == timedelta(days=1825)
    assert premium_service.is_premium(customer.id)


def test_lifetime_plan_never_expires(db_session, admin, customer):
    membership = premium_service.request_membership(customer.id, "lifetime")

    approved = premium_service.approve(membership.id, admin.id)

    assert approved.expires_at is None
    assert premium_service.active_membership(customer.id).id == membership.id


def test_only_pending_can_be_approved_or_rejected(db_session, admin, customer):
    membership = premium_service.request_membership(customer.id, "5_year")
    premium_service.reject(membership.id, "Payment not found")

    with pytest.raises(ConflictError):
        premium_service.approve(membership.id, admin.id)
    with pytest.raises(ConflictError):
        premium_service.reject(membership.id)


def test_revoke_requires_reason_and_records_it(db_session, admin, customer):
    membership = premium_service.request_membership(customer.id, "5_year")
    premium_service.approve(membership.id, admin.id)

    with pytest.raises(ValidationError):
        premium_service.revoke(membership.id, "")

    revoked = premium_service.revoke(membership.id, "Chargeback")
    assert revoked.status == premium_service.STATUS_REVOKED
    assert revoked.notes == "Revoked: Chargeback"
    assert not premium_service.is_premium(customer.id)


def test_revoke_pending_membership_conflicts(db_session, customer):
    membership = premium_service.request_membership(customer.id, "5_year")

    with pytest.raises(ConflictError):
        premium_service.revoke(membership.id, "No reason")


def test_extend_adds_days_to_expiry(db_session, admin, customer):
    membership = premium_service.request_membership(customer.id, "5_year")
    premium_service.approve(membership.id, admin.id)
    stored = db_session.get(PremiumMembership, membership.id)
    stored.expires_at = datetime(2025, 1, 1)
    db_session.commit()

    extended = premium_service.extend(membership.id, 30)

    assert extended.expires_at == datetime(2025, 1, 31)


def test_extend_rejects_non_positive_days(db_session, admin, customer):
    membership = premium_service.request_membership(customer.id, "5_year")

    with pytest.raises(ValidationError):
        premium_service.extend(membership.id, 0)
    with pytest.raises(ValidationError):
        premium_service.extend(membership.id, "soon")


def test_lapsed_membership_is_marked_expired_and_can_be_revived(db_session, admin, customer):
    membership = premium_service.request_membership(customer.id, "5_year")
    premium_service.approve(membership.id, admin.id)
    stored = db_session.get(PremiumMembership, membership.id)
    stored.expires_at = utcnow() - timedelta(days=1)
    db_session.commit()

    assert premium_service.active_membership(customer.id) is None
    db_session.expire_all()
    assert db_session.get(PremiumMembership, membership.id).status == premium_service.STATUS_EXPIRED

    revived = premium_service.extend(membership.id, 10)
    assert revived.status == premium_service.STATUS_APPROVED
    assert premium_service.is_premium(customer.id)


def test_delete_membership(db_session, customer):
    membership = premium_service.request_membership(customer.id, "5_year")

    premium_service.delete(membership.id)

    with pytest.raises(NotFoundError):
        premium_service.extend(membership.id, 5)


def test_content_crud_and_active_filter(db_session):
    guide = premium_service.create_content({"title": "Cheaper renewals", "content_type": "trick"})
    hidden = premium_service.create_content({"title": "Old offer", "content_type": "offer"})
    premium_service.update_content(hidden.id, {"is_active": False})

    assert [c.id for c in premium_service.list_content()] == [guide.id]
    assert len(premium_service.list_content(active_only=False)) == 2

    with pytest.raises(ValidationError):
        premium_service.create_content({"title": "Bad", "content_type": "video"})

    premium_service.delete_content(guide.id)
    with pytest.raises(NotFoundError):
        premium_service.update_content(guide.id, {"title": "Gone"})
