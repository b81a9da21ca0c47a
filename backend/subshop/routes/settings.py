# Overview: Flask API routes for store checkout/contact settings.

from flask import Blueprint, request, jsonify, current_app
from werkzeug.exceptions import HTTPException

from ..errors import StoreError, error_response
from ..services import settings_service, storage_service
from ..decorators import require_auth, require_admin


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
def get_settings_route():
    """Public: UPI id, QR code and contact links shown at checkout."""
    return jsonify({"settings": settings_service.get_settings().to_dict()}), 200


@settings_bp.put("")
@require_auth
@require_admin
def update_settings_route():
    try:
        settings = settings_service.update_settings(request.get_json() or {})
        return jsonify({"settings": settings.to_dict()}), 200
    except StoreError as e:
        return error_response(e)


@settings_bp.post("/qr-code")
@require_auth
@require_admin
def upload_qr_code_route():
    try:
        url = storage_service.store_upload(
            request.files.get("file"),
            storage_service.BUCKET_QR_CODES,
            prefix="upi-qr",
        )
        settings = settings_service.update_settings({"qr_code_url": url})
        return jsonify({"settings": settings.to_dict()}), 200
    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to upload QR code")
        return jsonify({"error": "Internal server error"}), 500
