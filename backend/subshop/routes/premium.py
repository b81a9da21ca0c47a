# Overview: Flask API routes for premium memberships and members-only content.

from flask import Blueprint, request, jsonify, current_app, g
from werkzeug.exceptions import HTTPException

from ..errors import PermissionDeniedError, StoreError, error_response
from ..services import premium_service, storage_service
from ..decorators import require_auth, require_admin


premium_bp = Blueprint("premium", __name__, url_prefix="/api/premium")


@premium_bp.get("/plans")
def plans_route():
    return jsonify({
        "items": [
            {
                "plan_type": key,
                "name": plan.name,
                "price_paise": plan.price_paise,
                "duration_days": plan.duration_days,
            }
            for key, plan in premium_service.PLANS.items()
        ]
    }), 200


@premium_bp.post("/request")
@require_auth
def request_membership_route():
    """
    Request a membership (multipart/form-data or JSON).

    Fields: plan_type, payment_method?, transaction_id?, file? (payment proof)
    """
    try:
        data = request.form if request.files or request.form else (request.get_json() or {})
        proof_url = None
        if request.files.get("file"):
            proof_url = storage_service.store_upload(
                request.files.get("file"),
                storage_service.BUCKET_PREMIUM_PROOFS,
                prefix=f"premium-{g.current_user.id}",
            )

        membership = premium_service.request_membership(
            g.current_user.id,
            data.get("plan_type"),
            payment_method=data.get("payment_method") or "UPI",
            transaction_id=data.get("transaction_id"),
            proof_url=proof_url,
        )
        return jsonify({"membership": membership.to_dict()}), 201

    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to request premium membership")
        return jsonify({"error": "Internal server error"}), 500


@premium_bp.get("/me")
@require_auth
def my_membership_route():
    active = premium_service.active_membership(g.current_user.id)
    history = premium_service.list_user_memberships(g.current_user.id)
    return jsonify({
        "is_premium": active is not None,
        "membership": active.to_dict() if active else None,
        "history": [m.to_dict() for m in history],
    }), 200


@premium_bp.get("/content")
@require_auth
def content_route():
    try:
        if not g.current_user.is_admin and not premium_service.is_premium(g.current_user.id):
            raise PermissionDeniedError("An active premium membership is required")
        items = premium_service.list_content(active_only=not g.current_user.is_admin)
        return jsonify({"items": [c.to_dict() for c in items]}), 200
    except StoreError as e:
        return error_response(e)


# Admin

@premium_bp.get("/memberships")
@require_auth
@require_admin
def list_memberships_route():
    memberships = premium_service.list_memberships(status=request.args.get("status") or None)
    return jsonify({"items": [m.to_dict() for m in memberships]}), 200


@premium_bp.post("/memberships/<int:membership_id>/approve")
@require_auth
@require_admin
def approve_route(membership_id: int):
    try:
        membership = premium_service.approve(membership_id, g.current_user.id)
        return jsonify({"membership": membership.to_dict()}), 200
    except StoreError as e:
        return error_response(e)


@premium_bp.post("/memberships/<int:membership_id>/reject")
@require_auth
@require_admin
def reject_route(membership_id: int):
    try:
        data = request.get_json(silent=True) or {}
        membership = premium_service.reject(membership_id, data.get("reason"))
        return jsonify({"membership": membership.to_dict()}), 200
    except StoreError as e:
        return error_response(e)


@premium_bp.post("/memberships/<int:membership_id>/revoke")
@require_auth
@require_admin
def revoke_route(membership_id: int):
    try:
        data = request.get_json(silent=True) or {}
        membership = premium_service.revoke(membership_id, data.get("reason"))
        return jsonify({"membership": membership.to_dict()}), 200
    except StoreError as e:
        return error_response(e)


@premium_bp.post("/memberships/<int:membership_id>/extend")
@require_auth
@require_admin
def extend_route(membership_id: int):
    try:
        data = request.get_json(silent=True) or {}
        membership = premium_service.extend(membership_id, data.get("days"))
        return jsonify({"membership": membership.to_dict()}), 200
    except StoreError as e:
        return error_response(e)


@premium_bp.delete("/memberships/<int:membership_id>")
@require_auth
@require_admin
def delete_membership_route(membership_id: int):
    try:
        premium_service.delete(membership_id)
        return jsonify({"deleted": membership_id}), 200
    except StoreError as e:
        return error_response(e)


@premium_bp.post("/content")
@require_auth
@require_admin
def create_content_route():
    try:
        content = premium_service.create_content(request.get_json() or {})
        return jsonify({"content": content.to_dict()}), 201
    except StoreError as e:
        return error_response(e)


@premium_bp.patch("/content/<int:content_id>")
@require_auth
@require_admin
def update_content_route(content_id: int):
    try:
        content = premium_service.update_content(content_id, request.get_json() or {})
        return jsonify({"content": content.to_dict()}), 200
    except StoreError as e:
        return error_response(e)


@premium_bp.delete("/content/<int:content_id>")
@require_auth
@require_admin
def delete_content_route(content_id: int):
    try:
        premium_service.delete_content(content_id)
        return jsonify({"deleted": content_id}), 200
    except StoreError as e:
        return error_response(e)
