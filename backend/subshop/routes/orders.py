# Overview: Flask API routes for customer orders; checkout and payment proof upload.

from flask import Blueprint, request, jsonify, current_app, g
from werkzeug.exceptions import HTTPException

from ..errors import StoreError, ValidationError, error_response
from ..services import order_service
from ..services.ledger_service import list_order_events
from ..decorators import require_auth


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _id_field(data: dict, name: str, required: bool = True):
    value = data.get(name)
    if value is None or value == "":
        if required:
            raise ValidationError(f"{name} required", details={"field": name})
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer", details={"field": name, "value": value})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer", details={"field": name, "value": value})


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Place an order.

    Body: {"product_id": int, "variant_id": int?, "total_amount_paise": int?, "coupon_code": str?}
    """
    try:
        data = request.get_json() or {}
        order = order_service.create_order(
            g.current_user.id,
            _id_field(data, "product_id"),
            variant_id=_id_field(data, "variant_id", required=False),
            total_amount=data.get("total_amount_paise"),
            coupon_code=data.get("coupon_code"),
        )
        return jsonify({"order": order.to_dict()}), 201

    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/bundle")
@require_auth
def create_bundle_order_route():
    try:
        data = request.get_json() or {}
        order = order_service.create_bundle_order(g.current_user.id, _id_field(data, "bundle_id"))
        return jsonify({"order": order.to_dict()}), 201

    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to create bundle order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
def list_my_orders_route():
    orders = order_service.list_user_orders(g.current_user.id)
    return jsonify({"items": [o.to_dict() for o in orders]}), 200


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        if order.user_id != g.current_user.id and not g.current_user.is_admin:
            return jsonify({"error": "Order not found", "code": "not_found"}), 404

        payload = {"order": order.to_dict(include_user=g.current_user.is_admin)}
        if g.current_user.is_admin:
            payload["events"] = [e.to_dict() for e in list_order_events(order_id)]
        return jsonify(payload), 200

    except StoreError as e:
        return error_response(e)


@orders_bp.post("/<int:order_id>/payment")
@require_auth
def upload_payment_route(order_id: int):
    """
    Upload payment proof (multipart/form-data).

    Fields: file (image or PDF, max 10MB), user_input (optional text)
    """
    try:
        order = order_service.upload_payment_screenshot(
            order_id,
            g.current_user.id,
            request.files.get("file"),
            user_input=request.form.get("user_input"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to upload payment proof")
        return jsonify({"error": "Internal server error"}), 500
