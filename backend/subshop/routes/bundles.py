# Overview: Flask API routes for bundle offers.

from flask import Blueprint, request, jsonify, current_app
from werkzeug.exceptions import HTTPException

from ..errors import StoreError, error_response
from ..services import bundle_service
from ..decorators import require_auth, require_admin


bundles_bp = Blueprint("bundles", __name__, url_prefix="/api/bundles")


@bundles_bp.get("")
def list_bundles_route():
    bundles = bundle_service.list_bundles(active_only=True)
    return jsonify({"items": [b.to_dict() for b in bundles]}), 200


@bundles_bp.get("/all")
@require_auth
@require_admin
def list_all_bundles_route():
    bundles = bundle_service.list_bundles(active_only=False)
    return jsonify({"items": [b.to_dict() for b in bundles]}), 200


@bundles_bp.post("")
@require_auth
@require_admin
def create_bundle_route():
    try:
        bundle = bundle_service.create_bundle(request.get_json() or {})
        return jsonify({"bundle": bundle.to_dict()}), 201
    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to create bundle")
        return jsonify({"error": "Internal server error"}), 500


@bundles_bp.patch("/<int:bundle_id>")
@require_auth
@require_admin
def update_bundle_route(bundle_id: int):
    try:
        bundle = bundle_service.update_bundle(bundle_id, request.get_json() or {})
        return jsonify({"bundle": bundle.to_dict()}), 200
    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to update bundle")
        return jsonify({"error": "Internal server error"}), 500


@bundles_bp.delete("/<int:bundle_id>")
@require_auth
@require_admin
def delete_bundle_route(bundle_id: int):
    try:
        bundle_service.delete_bundle(bundle_id)
        return jsonify({"deleted": bundle_id}), 200
    except StoreError as e:
        return error_response(e)
