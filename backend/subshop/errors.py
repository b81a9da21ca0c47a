# Overview: Tagged error hierarchy raised by services and mapped to HTTP in routes.

"""
Every service failure is one of a small set of tagged errors.

Each error carries:
- message: human-readable text shown to the admin/user
- code: stable machine tag (not_found, validation, conflict, ...)
- details: structured context (ids, balances, limits)

Routes translate errors to JSON responses via error_response(); services
never build HTTP responses themselves.
"""

from __future__ import annotations

from flask import jsonify


class StoreError(Exception):
    """Base class for all expected business failures."""

    code = "error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(StoreError):
    """Referenced product, variant, order, etc. does not exist."""

    code = "not_found"
    status_code = 404


class ValidationError(StoreError):
    """400-level input problem (file type/size, missing fields, bad values)."""

    code = "validation"
    status_code = 400


class ConflictError(StoreError):
    """409-level business rule conflict (illegal status transition, duplicate)."""

    code = "conflict"
    status_code = 409


class StockExhaustedError(ConflictError):
    """No manual stock left or no AVAILABLE key to assign."""

    code = "stock_exhausted"


class InsufficientPointsError(ConflictError):
    """Point balance below the cost of a redemption."""

    code = "insufficient_points"


class UploadError(StoreError):
    """Object storage failed to persist an upload."""

    code = "upload"
    status_code = 502


class PermissionDeniedError(StoreError):
    code = "forbidden"
    status_code = 403


def error_response(exc: StoreError):
    """Return a (body, status) pair suitable for a Flask view."""
    return jsonify(exc.to_dict()), exc.status_code
