# Overview: Flask API routes for health checks and serving stored uploads.

import time

from flask import Blueprint, current_app, jsonify, send_from_directory
from werkzeug.exceptions import NotFound

from ..extensions import db
from ..models import Order, Product, User
from ..services import storage_service

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "users": db.session.query(User).count(),
            "products": db.session.query(Product).count(),
            "orders": db.session.query(Order).count(),
        }
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": details,
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    status_code = 200 if database["status"] == "healthy" else 503
    return jsonify({"status": database["status"], "database": database}), status_code


@system_bp.get("/uploads/<bucket>/<path:name>")
def serve_upload(bucket: str, name: str):
    if bucket not in storage_service.BUCKET_ALLOWED_TYPES:
        raise NotFound()
    return send_from_directory(storage_service.bucket_path(bucket), name)
