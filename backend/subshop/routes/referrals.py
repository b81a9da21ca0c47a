# Overview: Flask API routes for referral codes and referral history.

from flask import Blueprint, request, jsonify, current_app, g
from werkzeug.exceptions import HTTPException

from ..errors import StoreError, error_response
from ..services import referral_service
from ..decorators import require_auth


referrals_bp = Blueprint("referrals", __name__, url_prefix="/api/referrals")


@referrals_bp.get("")
@require_auth
def my_referrals_route():
    try:
        user_id = g.current_user.id
        code = referral_service.get_or_create_code(user_id)
        return jsonify({
            "code": code.to_dict(),
            "referrals": [r.to_dict() for r in referral_service.list_referrals(user_id)],
            "stats": referral_service.referral_stats(user_id),
        }), 200

    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to load referrals")
        return jsonify({"error": "Internal server error"}), 500


@referrals_bp.post("/apply")
@require_auth
def apply_code_route():
    try:
        data = request.get_json() or {}
        referral = referral_service.apply_referral_code(g.current_user.id, data.get("code"))
        return jsonify({"referral": referral}), 201

    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to apply referral code")
        return jsonify({"error": "Internal server error"}), 500
