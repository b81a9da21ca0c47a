# backend/subshop/__init__.py
import logging

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from .config import Config
from .errors import ValidationError, error_response
from .extensions import db, migrate


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("subshop").setLevel(level)
    app.logger.setLevel(level)


def create_app(config_object=Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)

    _configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.orders import orders_bp
    from .routes.admin import admin_bp
    from .routes.loyalty import loyalty_bp
    from .routes.referrals import referrals_bp
    from .routes.flash_sale import flash_sale_bp
    from .routes.premium import premium_bp
    from .routes.bundles import bundles_bp
    from .routes.tickets import tickets_bp
    from .routes.settings import settings_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(loyalty_bp)
    app.register_blueprint(referrals_bp)
    app.register_blueprint(flash_sale_bp)
    app.register_blueprint(premium_bp)
    app.register_blueprint(bundles_bp)
    app.register_blueprint(tickets_bp)
    app.register_blueprint(settings_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config.get("CORS_ALLOWED_ORIGINS", set()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, If-None-Match"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
            response.headers["Access-Control-Expose-Headers"] = "ETag"
        return response

    @app.errorhandler(RequestEntityTooLarge)
    def handle_upload_too_large(e):
        max_bytes = int(app.config.get("MAX_UPLOAD_BYTES", 10 * 1024 * 1024))
        return error_response(ValidationError(
            f"File size must be less than {max_bytes // (1024 * 1024)}MB",
            details={"max_bytes": max_bytes},
        ))

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"error": e.description, "code": e.name.lower().replace(" ", "_")}), e.code

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
