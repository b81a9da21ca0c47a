# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- POST /api/auth/register  customer signup (optional referral_code)
- POST /api/auth/login     returns a bearer token
- POST /api/auth/logout    revokes the token
- GET  /api/auth/me        current user
"""

from flask import Blueprint, request, jsonify, current_app, g
from werkzeug.exceptions import HTTPException

from ..errors import StoreError, error_response
from ..services import auth_service, premium_service, session_service
from ..decorators import bearer_token, require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_payload(user):
    _, token = session_service.create_session(
        user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return {"user": user.to_dict(), "token": token}


@auth_bp.post("/register")
def register_route():
    try:
        data = request.get_json() or {}
        user, referral = auth_service.register_user(
            data.get("email"),
            data.get("password"),
            full_name=data.get("full_name"),
            referral_code=data.get("referral_code"),
        )
        payload = _session_payload(user)
        payload["referral"] = referral
        return jsonify(payload), 201

    except StoreError as e:
        return error_response(e)
    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    try:
        data = request.get_json() or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            current_app.logger.info("Failed login for %s from %s", email, request.remote_addr)
            return jsonify({"error": "Invalid email or password"}), 401

        return jsonify(_session_payload(user)), 200

    except HTTPException:
        raise
    except Exception:
        current_app.logger.exception("Failed to log in")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(bearer_token(), reason="User logout")
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    data = user.to_dict()
    data["is_premium"] = premium_service.is_premium(user.id)
    return jsonify({"user": data}), 200
