# Overview: Flask API routes for the versioned flash sale configuration.

"""
Flash sale endpoints

GET /api/flash-sale is the polling endpoint: the config version is the
ETag, so unchanged configs answer 304 to If-None-Match.
"""

from flask import Blueprint, request, jsonify, current_app, g
from werkzeug.exceptions import HTTPException

from ..errors import StoreError, error_response
from ..services import flash_sale_service
from ..decorators import require_auth, require_admin


flash_sale_bp = Blueprint("flash_sale", __name__, url_prefix="/api/flash-sale")


def _etag(version) -> str:
    return f"flash-sale-v{version}"


@flash_sale_bp.get("")
def get_flash_sale_route():
    state = flash_sale_service.public_state()
    etag = _etag(state["version"])

    if etag in request.if_none_match:
        response = current_app.response_class(status=304)
        response.set_etag(etag)
        return response

    response = jsonify(state)
    response.set_etag(etag)
    response.headers["Cache-Control"] = "no-cache"
    return response


@flash_sale_bp.put("")
@require_auth
@require_admin
def save_flash_sale_route():
    """
    Replace the flash sale config.

    Body: {"enabled": bool, "end_time": iso?, "duration_hours": int,
           "max_products": int, "products": [{"product_id": int, "discount_paise": int}]}
    """
    try:
        config = flash_sale_service.save_config(request.get_json() or {}, admin_id=g.current_user.id)
        response = jsonify(config.to_dict())
        response.set_etag(_etag(config.version))
        return response

    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to save flash sale config")
        return jsonify({"error": "Internal server error"}), 500


@flash_sale_bp.post("/end")
@require_auth
@require_admin
def end_flash_sale_route():
    config = flash_sale_service.end_flash_sale(admin_id=g.current_user.id)
    response = jsonify(config.to_dict())
    response.set_etag(_etag(config.version))
    return response
