# Overview: Flask API routes for the public catalog.

from flask import Blueprint, request, jsonify

from ..errors import StoreError, error_response
from ..services import product_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products_route():
    """Active products with variants, stock and current (flash) prices."""
    category = request.args.get("category") or None
    return jsonify({"items": product_service.list_products(active_only=True, category=category)}), 200


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = product_service.get_product(product_id)
        if not product.is_active:
            return jsonify({"error": "Product not found", "code": "not_found"}), 404
        return jsonify({"product": product_service.catalog_entry(product)}), 200
    except StoreError as e:
        return error_response(e)
