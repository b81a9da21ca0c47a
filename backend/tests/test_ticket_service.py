import pytest

from subshop.errors import NotFoundError, ValidationError
from subshop.services import order_service, ticket_service


def test_create_ticket_defaults(db_session, customer):
    ticket = ticket_service.create_ticket(customer.id, "Login issue", "The password does not work")

    assert ticket.status == "open"
    assert ticket.category == "general"
    assert ticket.priority == "medium"
    assert ticket.to_dict()["user_email"] == "customer@example.com"


def test_create_ticket_validates_input(db_session, customer):
    with pytest.raises(ValidationError):
        ticket_service.create_ticket(customer.id, "", "Body")
    with pytest.raises(ValidationError):
        ticket_service.create_ticket(customer.id, "Subject", "Body", category="complaint")
    with pytest.raises(ValidationError):
        ticket_service.create_ticket(customer.id, "Subject", "Body", priority="asap")


def test_ticket_order_must_belong_to_user(db_session, customer, other_customer, make_product):
    order = order_service.create_order(other_customer.id, make_product().id)

    with pytest.raises(NotFoundError):
        ticket_service.create_ticket(customer.id, "Where is it", "Not delivered", category="order", order_id=order.id)

    ticket = ticket_service.create_ticket(other_customer.id, "Where is it", "Not delivered", order_id=order.id)
    assert ticket.order_id == order.id


def test_respond_and_update_status(db_session, customer):
    ticket = ticket_service.create_ticket(customer.id, "Refund", "Please refund", category="refund")

    responded = ticket_service.respond(ticket.id, "Refund issued", status="in_progress")
    assert responded.admin_response == "Refund issued"
    assert responded.responded_at is not None
    assert responded.status == "in_progress"

    with pytest.raises(ValidationError):
        ticket_service.respond(ticket.id, "   ")

    closed = ticket_service.update_status(ticket.id, status="closed", priority="low")
    assert (closed.status, closed.priority) == ("closed", "low")


def test_lists_and_stats(db_session, customer, other_customer):
    mine = ticket_service.create_ticket(customer.id, "A", "a")
    ticket_service.create_ticket(other_customer.id, "B", "b")
    ticket_service.update_status(mine.id, status="resolved")

    assert [t.id for t in ticket_service.list_user_tickets(customer.id)] == [mine.id]
    assert [t.id for t in ticket_service.list_all_tickets(status="resolved")] == [mine.id]
    assert ticket_service.ticket_stats() == {
        "open": 1, "in_progress": 0, "resolved": 1, "closed": 0, "total": 2,
    }
