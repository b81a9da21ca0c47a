# Overview: Append-only order event trail written inside workflow transactions.

from __future__ import annotations

from ..extensions import db
from ..models import OrderEvent
from ..time_utils import utcnow


def append_order_event(
    *,
    order_id: int,
    event_type: str,
    actor_user_id: int | None = None,
    note: str | None = None,
    payload: dict | None = None,
    occurred_at=None,
) -> OrderEvent:
    """
    Add an OrderEvent to the current session (caller commits).

    Events are written in the same transaction as the change they describe,
    so a rolled-back workflow leaves no events behind.
    """
    event = OrderEvent(
        order_id=order_id,
        event_type=event_type,
        actor_user_id=actor_user_id,
        note=note,
        payload=payload,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(event)
    return event


def list_order_events(order_id: int) -> list[OrderEvent]:
    return (
        db.session.query(OrderEvent)
        .filter_by(order_id=order_id)
        .order_by(OrderEvent.occurred_at.asc(), OrderEvent.id.asc())
        .all()
    )
