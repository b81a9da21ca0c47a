# Overview: Flask API routes for loyalty points and coupons.

from flask import Blueprint, request, jsonify, current_app, g
from werkzeug.exceptions import HTTPException

from ..errors import StoreError, error_response
from ..services import coupon_service, loyalty_service
from ..decorators import require_auth


loyalty_bp = Blueprint("loyalty", __name__, url_prefix="/api/loyalty")


@loyalty_bp.get("")
@require_auth
def summary_route():
    """Balance, tier, tier benefits and progress to the next tier."""
    return jsonify({"account": loyalty_service.account_summary(g.current_user.id)}), 200


@loyalty_bp.get("/transactions")
@require_auth
def transactions_route():
    limit = request.args.get("limit", default=20, type=int)
    limit = max(1, min(limit, 100))
    txs = loyalty_service.list_transactions(g.current_user.id, limit=limit)
    return jsonify({"items": [t.to_dict() for t in txs]}), 200


@loyalty_bp.post("/redeem")
@require_auth
def redeem_route():
    """Spend 5000 points on a Rs.100 coupon."""
    try:
        coupon = coupon_service.redeem_points_for_coupon(g.current_user.id)
        return jsonify({
            "coupon": coupon.to_dict(),
            "account": loyalty_service.account_summary(g.current_user.id),
        }), 201

    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to redeem points")
        return jsonify({"error": "Internal server error"}), 500


@loyalty_bp.get("/coupons")
@require_auth
def coupons_route():
    coupons = coupon_service.list_user_coupons(g.current_user.id)
    return jsonify({"items": [c.to_dict() for c in coupons]}), 200


@loyalty_bp.post("/coupons/validate")
@require_auth
def validate_coupon_route():
    try:
        data = request.get_json() or {}
        coupon = coupon_service.validate_coupon(data.get("code"), user_id=g.current_user.id)
        return jsonify({"coupon": coupon.to_dict(), "valid": True}), 200
    except StoreError as e:
        return error_response(e)
