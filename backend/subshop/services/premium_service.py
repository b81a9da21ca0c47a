# Overview: Service-layer operations for premium memberships and members-only content.

"""
Premium Membership

STATUS:
    pending --approve--> approved --revoke--> revoked
    pending --reject--> rejected
    approved (past expires_at) is reported as expired

Revoking never claws back anything already delivered to the member.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import PremiumContent, PremiumMembership
from ..time_utils import add_days, utcnow
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_REVOKED = "revoked"
STATUS_EXPIRED = "expired"

CONTENT_TYPES = ("trick", "guide", "offer", "resource")


@dataclass(frozen=True)
class Plan:
    name: str
    price_paise: int
    duration_days: int | None


PLANS = {
    "5_year": Plan("5 Years", 50000, 5 * 365),
    "10_year": Plan("10 Years", 80000, 10 * 365),
    "lifetime": Plan("Lifetime", 150000, None),
}


def _get(membership_id: int) -> PremiumMembership:
    membership = lock_for_update(db.session.query(PremiumMembership).filter_by(id=membership_id)).first()
    if not membership:
        raise NotFoundError("Membership not found", details={"membership_id": membership_id})
    return membership


def _expire_if_lapsed(membership: PremiumMembership, now=None) -> bool:
    now = now or utcnow()
    if membership.status == STATUS_APPROVED and membership.expires_at is not None and membership.expires_at <= now:
        membership.status = STATUS_EXPIRED
        return True
    return False


def request_membership(user_id: int, plan_type: str, payment_method: str = "UPI",
                       transaction_id: str | None = None, proof_url: str | None = None) -> PremiumMembership:
    plan = PLANS.get(plan_type)
    if plan is None:
        raise ValidationError(f"Unknown plan: {plan_type}", details={"allowed": sorted(PLANS)})

    def _op():
        pending = (
            db.session.query(PremiumMembership.id)
            .filter_by(user_id=user_id, status=STATUS_PENDING)
            .first()
        )
        if pending:
            raise ConflictError("You already have a pending membership request")

        membership = PremiumMembership(
            user_id=user_id,
            plan_type=plan_type,
            price_paid_paise=plan.price_paise,
            payment_method=(payment_method or "UPI")[:32],
            transaction_id=(transaction_id or "").strip() or None,
            payment_proof_url=proof_url,
            status=STATUS_PENDING,
            requested_at=utcnow(),
        )
        db.session.add(membership)
        db.session.commit()
        return membership

    membership = run_with_retry(_op)
    logger.info("Premium membership %s requested by user %s (%s)", membership.id, user_id, plan_type)
    return membership


def approve(membership_id: int, admin_id: int | None) -> PremiumMembership:
    def _op():
        membership = _get(membership_id)
        if membership.status != STATUS_PENDING:
            raise ConflictError(
                f"Cannot approve a {membership.status} membership",
                details={"membership_id": membership_id},
            )
        plan = PLANS.get(membership.plan_type)
        now = utcnow()
        membership.status = STATUS_APPROVED
        membership.approved_at = now
        membership.approved_by = admin_id
        membership.expires_at = add_days(now, plan.duration_days) if plan and plan.duration_days else None
        db.session.commit()
        return membership

    membership = run_with_retry(_op)
    logger.info("Premium membership %s approved by admin %s", membership_id, admin_id)
    return membership


def reject(membership_id: int, reason: str | None = None) -> PremiumMembership:
    def _op():
        membership = _get(membership_id)
        if membership.status != STATUS_PENDING:
            raise ConflictError(
                f"Cannot reject a {membership.status} membership",
                details={"membership_id": membership_id},
            )
        membership.status = STATUS_REJECTED
        membership.rejection_reason = (reason or "").strip()[:500] or None
        db.session.commit()
        return membership

    return run_with_retry(_op)


def revoke(membership_id: int, reason: str) -> PremiumMembership:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A revoke reason is required")

    def _op():
        membership = _get(membership_id)
        if membership.status not in (STATUS_APPROVED, STATUS_EXPIRED):
            raise ConflictError(
                f"Cannot revoke a {membership.status} membership",
                details={"membership_id": membership_id},
            )
        membership.status = STATUS_REVOKED
        membership.notes = f"Revoked: {reason}"
        db.session.commit()
        return membership

    membership = run_with_retry(_op)
    logger.info("Premium membership %s revoked", membership_id)
    return membership


def extend(membership_id: int, days: int) -> PremiumMembership:
    """Push expires_at out by days, counting from now when it is unset."""
    try:
        days = int(days)
    except (TypeError, ValueError):
        raise ValidationError("days must be an integer", details={"days": days})
    if days <= 0:
        raise ValidationError("days must be positive", details={"days": days})

    def _op():
        membership = _get(membership_id)
        base = membership.expires_at or utcnow()
        membership.expires_at = add_days(base, days)
        if membership.status == STATUS_EXPIRED and membership.expires_at > utcnow():
            membership.status = STATUS_APPROVED
        db.session.commit()
        return membership

    return run_with_retry(_op)


def delete(membership_id: int) -> None:
    def _op():
        membership = _get(membership_id)
        db.session.delete(membership)
        db.session.commit()

    run_with_retry(_op)


def active_membership(user_id: int) -> PremiumMembership | None:
    """The user's approved, unexpired membership. Lapsed ones are marked expired."""
    memberships = (
        db.session.query(PremiumMembership)
        .filter_by(user_id=user_id, status=STATUS_APPROVED)
        .order_by(PremiumMembership.approved_at.desc(), PremiumMembership.id.desc())
        .all()
    )
    now = utcnow()
    active = None
    changed = False
    for membership in memberships:
        if _expire_if_lapsed(membership, now):
            changed = True
        elif active is None:
            active = membership
    if changed:
        db.session.commit()
    return active


def is_premium(user_id: int) -> bool:
    return active_membership(user_id) is not None


def list_memberships(status: str | None = None) -> list[PremiumMembership]:
    query = db.session.query(PremiumMembership)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(PremiumMembership.requested_at.desc(), PremiumMembership.id.desc()).all()


def list_user_memberships(user_id: int) -> list[PremiumMembership]:
    return (
        db.session.query(PremiumMembership)
        .filter_by(user_id=user_id)
        .order_by(PremiumMembership.requested_at.desc(), PremiumMembership.id.desc())
        .all()
    )


# Members-only content

CONTENT_FIELDS = {"title", "description", "content_type", "content_url", "content_body", "is_active"}


def _apply_content(content: PremiumContent, data: dict) -> None:
    for k, v in data.items():
        if k not in CONTENT_FIELDS:
            continue
        if k == "content_type" and v not in CONTENT_TYPES:
            raise ValidationError(f"Invalid content type: {v}", details={"allowed": list(CONTENT_TYPES)})
        if k == "title" and not (v or "").strip():
            raise ValidationError("title is required")
        setattr(content, k, v)


def create_content(data: dict) -> PremiumContent:
    content = PremiumContent(content_type="guide", is_active=True)
    _apply_content(content, {"title": data.get("title"), **data})
    db.session.add(content)
    db.session.commit()
    return content


def update_content(content_id: int, data: dict) -> PremiumContent:
    content = db.session.get(PremiumContent, content_id)
    if not content:
        raise NotFoundError("Content not found", details={"content_id": content_id})
    _apply_content(content, data)
    db.session.commit()
    return content


def delete_content(content_id: int) -> None:
    content = db.session.get(PremiumContent, content_id)
    if not content:
        raise NotFoundError("Content not found", details={"content_id": content_id})
    db.session.delete(content)
    db.session.commit()


def list_content(active_only: bool = True) -> list[PremiumContent]:
    query = db.session.query(PremiumContent)
    if active_only:
        query = query.filter_by(is_active=True)
    return query.order_by(PremiumContent.created_at.desc(), PremiumContent.id.desc()).all()
