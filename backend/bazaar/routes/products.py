# Overview: Flask API routes for catalog products.

# backend/bazaar/routes/products.py
"""Product catalog API routes"""

from flask import Blueprint, request, jsonify, current_app, g

from ..models import Role
from ..services import products_service, manufacturer_service
from ..validation import BazaarError, error_body, http_status_for
from ..decorators import require_auth, require_role


products_bp = Blueprint("products", __name__, url_prefix="/api/products")

CATALOG_EDITORS = (Role.MANUFACTURER,) + Role.ADMINS


def _bool_arg(name: str) -> bool | None:
    raw = request.args.get(name)
    if raw is None:
        return None
    return raw.lower() == "true"


@products_bp.get("/")
@require_auth
def list_products_route():
    """
    Active catalog listing.

    Query params: manufacturer_id, category, brand, search, featured,
    min_price, max_price, page, per_page.
    """
    try:
        result = products_service.list_products(
            manufacturer_id=request.args.get("manufacturer_id", type=int),
            category=request.args.get("category"),
            brand=request.args.get("brand"),
            search=request.args.get("search"),
            featured=_bool_arg("featured"),
            min_price=request.args.get("min_price"),
            max_price=request.args.get("max_price"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/mine")
@require_auth
@require_role(Role.MANUFACTURER)
def my_products_route():
    """The acting manufacturer's own catalog, inactive products included."""
    try:
        manufacturer = manufacturer_service.get_manufacturer_for_user(g.current_user.id)
        result = products_service.list_products(
            manufacturer_id=manufacturer.id,
            include_inactive=True,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@products_bp.get("/featured")
@require_auth
def featured_products_route():
    try:
        result = products_service.list_products(
            featured=True,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@products_bp.get("/mine/low-stock")
@require_auth
@require_role(Role.MANUFACTURER)
def my_low_stock_route():
    """Own products below ?threshold= (default 10), lowest stock first."""
    try:
        manufacturer = manufacturer_service.get_manufacturer_for_user(g.current_user.id)
        result = products_service.list_products(
            manufacturer_id=manufacturer.id,
            stock="low",
            low_stock_threshold=request.args.get("threshold", type=int),
            include_inactive=True,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@products_bp.get("/mine/out-of-stock")
@require_auth
@require_role(Role.MANUFACTURER)
def my_out_of_stock_route():
    try:
        manufacturer = manufacturer_service.get_manufacturer_for_user(g.current_user.id)
        result = products_service.list_products(
            manufacturer_id=manufacturer.id,
            stock="out",
            include_inactive=True,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@products_bp.get("/sku/<sku>")
@require_auth
def get_product_by_sku_route(sku: str):
    try:
        product = products_service.get_product_by_code(sku=sku)
        return jsonify({"product": product.to_dict()}), 200
    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@products_bp.get("/barcode/<barcode>")
@require_auth
def get_product_by_barcode_route(barcode: str):
    try:
        product = products_service.get_product_by_code(barcode=barcode)
        return jsonify({"product": product.to_dict()}), 200
    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@products_bp.post("/")
@require_auth
@require_role(Role.MANUFACTURER)
def create_product_route():
    """
    Create product for the acting manufacturer.

    Requires a verified manufacturer profile.
    """
    try:
        data = request.get_json(silent=True) or {}
        product = products_service.create_product(payload=data, user=g.current_user)
        return jsonify({"product": product.to_dict()}), 201

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
@require_auth
@require_role(*CATALOG_EDITORS)
def update_product_route(product_id: int):
    try:
        data = request.get_json(silent=True) or {}
        product = products_service.update_product(product_id, payload=data, user=g.current_user)
        return jsonify({"product": product.to_dict()}), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>/stock")
@require_auth
@require_role(*CATALOG_EDITORS)
def set_stock_route(product_id: int):
    """Body: {"stock_quantity": int}"""
    try:
        data = request.get_json(silent=True) or {}
        product = products_service.set_stock(
            product_id, quantity=data.get("stock_quantity"), user=g.current_user
        )
        return jsonify({"product": product.to_dict()}), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to set product stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>/toggle-status")
@require_auth
@require_role(*CATALOG_EDITORS)
def toggle_status_route(product_id: int):
    try:
        product = products_service.toggle_active(product_id, user=g.current_user)
        return jsonify({"product": product.to_dict()}), 200
    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@products_bp.put("/<int:product_id>/toggle-featured")
@require_auth
@require_role(*CATALOG_EDITORS)
def toggle_featured_route(product_id: int):
    try:
        product = products_service.toggle_featured(product_id, user=g.current_user)
        return jsonify({"product": product.to_dict()}), 200
    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(*CATALOG_EDITORS)
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id, user=g.current_user)
        return jsonify({"message": "Product deleted"}), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
