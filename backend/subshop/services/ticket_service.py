# Overview: Service-layer operations for customer support tickets.

from __future__ import annotations

import logging

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Order, SupportTicket
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

CATEGORIES = ("general", "order", "payment", "technical", "refund")
PRIORITIES = ("low", "medium", "high", "urgent")
STATUSES = ("open", "in_progress", "resolved", "closed")


def _check_choice(value: str, allowed: tuple, name: str) -> str:
    if value not in allowed:
        raise ValidationError(f"Invalid {name}: {value}", details={"allowed": list(allowed)})
    return value


def create_ticket(user_id: int, subject: str, description: str, category: str = "general",
                  priority: str = "medium", order_id: int | None = None) -> SupportTicket:
    subject = (subject or "").strip()
    description = (description or "").strip()
    if not subject or not description:
        raise ValidationError("subject and description are required")
    _check_choice(category, CATEGORIES, "category")
    _check_choice(priority, PRIORITIES, "priority")

    if order_id is not None:
        order = db.session.get(Order, order_id)
        if not order or order.user_id != user_id:
            raise NotFoundError("Order not found", details={"order_id": order_id})

    ticket = SupportTicket(
        user_id=user_id,
        subject=subject[:255],
        description=description,
        category=category,
        priority=priority,
        status="open",
        order_id=order_id,
    )
    db.session.add(ticket)
    db.session.commit()
    logger.info("Support ticket %s opened by user %s", ticket.id, user_id)
    return ticket


def get_ticket(ticket_id: int) -> SupportTicket:
    ticket = db.session.get(SupportTicket, ticket_id)
    if not ticket:
        raise NotFoundError("Ticket not found", details={"ticket_id": ticket_id})
    return ticket


def list_user_tickets(user_id: int) -> list[SupportTicket]:
    return (
        db.session.query(SupportTicket)
        .filter_by(user_id=user_id)
        .order_by(SupportTicket.created_at.desc(), SupportTicket.id.desc())
        .all()
    )


def list_all_tickets(status: str | None = None) -> list[SupportTicket]:
    query = db.session.query(SupportTicket)
    if status:
        query = query.filter_by(status=_check_choice(status, STATUSES, "status"))
    return query.order_by(SupportTicket.created_at.desc(), SupportTicket.id.desc()).all()


def respond(ticket_id: int, response: str, status: str = "resolved") -> SupportTicket:
    response = (response or "").strip()
    if not response:
        raise ValidationError("response is required")
    ticket = get_ticket(ticket_id)
    ticket.admin_response = response
    ticket.responded_at = utcnow()
    ticket.status = _check_choice(status, STATUSES, "status")
    db.session.commit()
    return ticket


def update_status(ticket_id: int, status: str | None = None, priority: str | None = None) -> SupportTicket:
    ticket = get_ticket(ticket_id)
    if status:
        ticket.status = _check_choice(status, STATUSES, "status")
    if priority:
        ticket.priority = _check_choice(priority, PRIORITIES, "priority")
    db.session.commit()
    return ticket


def ticket_stats() -> dict:
    rows = db.session.query(SupportTicket.status, db.func.count(SupportTicket.id)).group_by(SupportTicket.status).all()
    stats = {status: 0 for status in STATUSES}
    stats.update({status: count for status, count in rows})
    stats["total"] = sum(stats[s] for s in STATUSES)
    return stats
