# Overview: Flask API routes for the admin back-office; orders, catalog, stock and users.

"""
Admin API routes

All endpoints require an authenticated admin (is_admin=True).
"""

from flask import Blueprint, request, jsonify, current_app, g
from werkzeug.exceptions import HTTPException

from ..errors import StoreError, error_response
from ..services import auth_service, order_service, product_service, stock_service, storage_service
from ..decorators import require_auth, require_admin


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# Orders

@admin_bp.get("/orders")
@require_auth
@require_admin
def list_orders_route():
    try:
        orders = order_service.list_all_orders(status=request.args.get("status") or None)
        return jsonify({"items": [o.to_dict(include_user=True) for o in orders]}), 200
    except StoreError as e:
        return error_response(e)


@admin_bp.get("/orders/stats")
@require_auth
@require_admin
def order_stats_route():
    return jsonify(order_service.order_stats()), 200


@admin_bp.post("/orders/<int:order_id>/approve")
@require_auth
@require_admin
def approve_order_route(order_id: int):
    """
    Approve an order and deliver it.

    Body: {"credentials": {...}} - optional; fields left blank are filled
    from the claimed stock key.
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.approve_order(order_id, data.get("credentials"), g.current_user.id)
        return jsonify({"order": order.to_dict(include_user=True)}), 200

    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to approve order")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/orders/<int:order_id>/reject")
@require_auth
@require_admin
def reject_order_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.reject_order(order_id, data.get("reason"), g.current_user.id)
        return jsonify({"order": order.to_dict(include_user=True)}), 200

    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to reject order")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.delete("/orders/<int:order_id>")
@require_auth
@require_admin
def delete_order_route(order_id: int):
    try:
        order_service.delete_order(order_id)
        return jsonify({"deleted": order_id}), 200

    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to delete order")
        return jsonify({"error": "Internal server error"}), 500


# Catalog

@admin_bp.get("/products")
@require_auth
@require_admin
def list_products_route():
    return jsonify({"items": product_service.list_products(active_only=False, include_cost=True)}), 200


@admin_bp.post("/products")
@require_auth
@require_admin
def create_product_route():
    try:
        product = product_service.create_product(request.get_json() or {})
        return jsonify({"product": product.to_dict(include_cost=True)}), 201
    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.patch("/products/<int:product_id>")
@require_auth
@require_admin
def update_product_route(product_id: int):
    try:
        product = product_service.update_product(product_id, request.get_json() or {})
        return jsonify({"product": product.to_dict(include_cost=True)}), 200
    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.delete("/products/<int:product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: int):
    try:
        product_service.delete_product(product_id)
        return jsonify({"deleted": product_id}), 200
    except StoreError as e:
        return error_response(e)


@admin_bp.post("/products/<int:product_id>/image")
@require_auth
@require_admin
def upload_product_image_route(product_id: int):
    try:
        product_service.get_product(product_id)
        url = storage_service.store_upload(
            request.files.get("file"),
            storage_service.BUCKET_PRODUCT_IMAGES,
            prefix=f"product-{product_id}",
        )
        product = product_service.update_product(product_id, {"image_url": url})
        return jsonify({"product": product.to_dict(include_cost=True)}), 200
    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to upload product image")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/products/<int:product_id>/variants")
@require_auth
@require_admin
def add_variant_route(product_id: int):
    try:
        variant = product_service.add_variant(product_id, request.get_json() or {})
        return jsonify({"variant": variant.to_dict()}), 201
    except StoreError as e:
        return error_response(e)


@admin_bp.patch("/variants/<int:variant_id>")
@require_auth
@require_admin
def update_variant_route(variant_id: int):
    try:
        variant = product_service.update_variant(variant_id, request.get_json() or {})
        return jsonify({"variant": variant.to_dict()}), 200
    except StoreError as e:
        return error_response(e)


@admin_bp.delete("/variants/<int:variant_id>")
@require_auth
@require_admin
def delete_variant_route(variant_id: int):
    try:
        product_service.delete_variant(variant_id)
        return jsonify({"deleted": variant_id}), 200
    except StoreError as e:
        return error_response(e)


# Stock

@admin_bp.get("/products/<int:product_id>/keys")
@require_auth
@require_admin
def list_keys_route(product_id: int):
    keys = stock_service.list_keys(product_id, status=request.args.get("status") or None)
    return jsonify({"items": [k.to_dict(reveal=True) for k in keys]}), 200


@admin_bp.post("/products/<int:product_id>/keys")
@require_auth
@require_admin
def add_keys_route(product_id: int):
    """
    Bulk-load stock keys.

    Body: {"keys": ["KEY-1", {"key_value": "...", "username": "...", "password": "..."}],
           "variant_id": int?}
    """
    try:
        data = request.get_json() or {}
        keys = stock_service.add_stock_keys(
            product_id,
            data.get("keys") or [],
            variant_id=data.get("variant_id"),
            key_type=data.get("key_type"),
        )
        return jsonify({"created": len(keys), "items": [k.to_dict() for k in keys]}), 201
    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to add stock keys")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/products/<int:product_id>/stock")
@require_auth
@require_admin
def set_manual_stock_route(product_id: int):
    try:
        data = request.get_json() or {}
        product = stock_service.set_manual_stock(product_id, data.get("count"))
        return jsonify({"stock": stock_service.available_stock(product)}), 200
    except StoreError as e:
        return error_response(e)


@admin_bp.get("/stock/low")
@require_auth
@require_admin
def low_stock_route():
    return jsonify({"items": stock_service.low_stock_products()}), 200


@admin_bp.post("/keys/<int:key_id>/used")
@require_auth
@require_admin
def mark_key_used_route(key_id: int):
    try:
        key = stock_service.mark_key_used(key_id)
        return jsonify({"key": key.to_dict()}), 200
    except StoreError as e:
        return error_response(e)


@admin_bp.post("/keys/<int:key_id>/revoke")
@require_auth
@require_admin
def revoke_key_route(key_id: int):
    try:
        key = stock_service.revoke_key(key_id)
        return jsonify({"key": key.to_dict()}), 200
    except StoreError as e:
        return error_response(e)


# Users

@admin_bp.get("/users")
@require_auth
@require_admin
def list_users_route():
    users = auth_service.list_users(search=request.args.get("q") or None)
    return jsonify({"items": [u.to_dict() for u in users]}), 200


@admin_bp.patch("/users/<int:user_id>")
@require_auth
@require_admin
def update_user_route(user_id: int):
    """Body: {"is_admin": bool?, "is_active": bool?}"""
    try:
        data = request.get_json() or {}
        if user_id == g.current_user.id and (data.get("is_admin") is False or data.get("is_active") is False):
            return jsonify({"error": "You cannot demote or deactivate yourself"}), 400

        user = None
        if "is_admin" in data:
            user = auth_service.set_admin(user_id, bool(data["is_admin"]))
        if "is_active" in data:
            user = auth_service.set_active(user_id, bool(data["is_active"]))
        if user is None:
            return jsonify({"error": "is_admin or is_active required"}), 400
        return jsonify({"user": user.to_dict()}), 200
    except StoreError as e:
        return error_response(e)
