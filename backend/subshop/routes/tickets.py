# Overview: Flask API routes for support tickets.

from flask import Blueprint, request, jsonify, current_app, g
from werkzeug.exceptions import HTTPException

from ..errors import StoreError, error_response
from ..services import ticket_service
from ..decorators import require_auth, require_admin


tickets_bp = Blueprint("tickets", __name__, url_prefix="/api/tickets")


@tickets_bp.post("")
@require_auth
def create_ticket_route():
    try:
        data = request.get_json() or {}
        ticket = ticket_service.create_ticket(
            g.current_user.id,
            data.get("subject"),
            data.get("description"),
            category=data.get("category") or "general",
            priority=data.get("priority") or "medium",
            order_id=data.get("order_id"),
        )
        return jsonify({"ticket": ticket.to_dict()}), 201

    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to create ticket")
        return jsonify({"error": "Internal server error"}), 500


@tickets_bp.get("")
@require_auth
def my_tickets_route():
    tickets = ticket_service.list_user_tickets(g.current_user.id)
    return jsonify({"items": [t.to_dict() for t in tickets]}), 200


@tickets_bp.get("/all")
@require_auth
@require_admin
def all_tickets_route():
    try:
        tickets = ticket_service.list_all_tickets(status=request.args.get("status") or None)
        return jsonify({"items": [t.to_dict() for t in tickets], "stats": ticket_service.ticket_stats()}), 200
    except StoreError as e:
        return error_response(e)


@tickets_bp.post("/<int:ticket_id>/respond")
@require_auth
@require_admin
def respond_route(ticket_id: int):
    try:
        data = request.get_json() or {}
        ticket = ticket_service.respond(ticket_id, data.get("response"), status=data.get("status") or "resolved")
        return jsonify({"ticket": ticket.to_dict()}), 200
    except StoreError as e:
        return error_response(e)


@tickets_bp.patch("/<int:ticket_id>")
@require_auth
@require_admin
def update_ticket_route(ticket_id: int):
    try:
        data = request.get_json() or {}
        ticket = ticket_service.update_status(ticket_id, status=data.get("status"), priority=data.get("priority"))
        return jsonify({"ticket": ticket.to_dict()}), 200
    except StoreError as e:
        return error_response(e)
