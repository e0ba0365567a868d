# Overview: Flask API routes for orders; placement, status workflow and order statistics.

# backend/bazaar/routes/orders.py
"""
Order API routes

SECURITY:
- Any authenticated user may place orders for themselves
- Owners (and admins) may view and cancel their orders
- Status changes are for admins and manufacturers
- Hard delete is ADMIN-only
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..models import OrderStatus, Role
from ..services import order_service, manufacturer_service
from ..validation import BazaarError, ValidationError, error_body, http_status_for
from ..decorators import require_auth, require_role


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

STATUS_EDITORS = Role.ADMINS + (Role.MANUFACTURER,)


def _page_args() -> dict:
    return {
        "page": request.args.get("page", type=int),
        "per_page": request.args.get("per_page", type=int),
    }


@orders_bp.post("/")
@require_auth
def create_order_route():
    """
    Place an order for the authenticated user.

    Body:
        items: [{"product_id": 1, "quantity": 2}, ...]
        shipping_*/billing_*/contact_*/payment_method: snapshot fields
        shipping_cost, discount: optional amounts
        notes: optional
    """
    try:
        data = request.get_json(silent=True) or {}
        items = data.get("items")
        if not items:
            raise ValidationError("items required")

        order = order_service.create_order(g.current_user.id, items, details=data)
        return jsonify({"order": order.to_dict()}), 201

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/")
@require_auth
@require_role(*Role.ADMINS)
def list_orders_route():
    try:
        result = order_service.list_orders(
            status=request.args.get("status"),
            user_id=request.args.get("user_id", type=int),
            **_page_args(),
        )
        return jsonify(result), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@orders_bp.get("/my-orders")
@require_auth
def my_orders_route():
    try:
        result = order_service.list_orders(
            status=request.args.get("status"),
            user_id=g.current_user.id,
            **_page_args(),
        )
        return jsonify(result), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@orders_bp.get("/manufacturer/my-orders")
@require_auth
@require_role(Role.MANUFACTURER)
def manufacturer_orders_route():
    """Orders containing at least one of the acting manufacturer's products."""
    try:
        manufacturer = manufacturer_service.get_manufacturer_for_user(g.current_user.id)
        result = order_service.list_orders(
            status=request.args.get("status"),
            manufacturer_id=manufacturer.id,
            **_page_args(),
        )
        return jsonify(result), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        if not order_service.can_access_order(g.current_user, order):
            return jsonify({"error": "Access denied"}), 403
        return jsonify({"order": order.to_dict()}), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@orders_bp.get("/number/<order_number>")
@require_auth
def get_order_by_number_route(order_number: str):
    try:
        order = order_service.get_order_by_number(order_number)
        if not order_service.can_access_order(g.current_user, order):
            return jsonify({"error": "Access denied"}), 403
        return jsonify({"order": order.to_dict()}), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@orders_bp.put("/<int:order_id>/status")
@require_auth
@require_role(*STATUS_EDITORS)
def update_status_route(order_id: int):
    """
    Body: {"status": "...", "tracking_number"?, "cancellation_reason"?, "notes"?}
    """
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            raise ValidationError("status required")

        # Manufacturers only move orders that contain their products
        if g.current_user.role == Role.MANUFACTURER:
            manufacturer = manufacturer_service.get_manufacturer_for_user(g.current_user.id)
            order = order_service.get_order(order_id)
            if not order_service.order_includes_manufacturer(order, manufacturer.id):
                return jsonify({"error": "Access denied"}), 403

        order = order_service.update_order_status(
            order_id,
            status=status,
            tracking_number=data.get("tracking_number"),
            cancellation_reason=data.get("cancellation_reason"),
            notes=data.get("notes"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"order": order.to_dict()}), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.get_order(order_id)
        if not order_service.can_access_order(g.current_user, order):
            return jsonify({"error": "Access denied"}), 403

        order = order_service.cancel_order(
            order_id,
            reason=data.get("reason"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"order": order.to_dict()}), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>")
@require_auth
@require_role(Role.ADMIN)
def delete_order_route(order_id: int):
    try:
        order_service.delete_order(order_id, actor_user_id=g.current_user.id)
        return jsonify({"message": "Order deleted"}), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to delete order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/stats/user")
@require_auth
def my_order_stats_route():
    try:
        return jsonify(order_service.user_order_stats(g.current_user.id)), 200
    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@orders_bp.get("/stats/manufacturer")
@require_auth
@require_role(Role.MANUFACTURER)
def manufacturer_order_stats_route():
    try:
        manufacturer = manufacturer_service.get_manufacturer_for_user(g.current_user.id)
        return jsonify(order_service.manufacturer_order_stats(manufacturer.id)), 200
    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@orders_bp.get("/stats/status-counts")
@require_auth
@require_role(*Role.ADMINS)
def status_counts_route():
    counts = {status: order_service.order_count_by_status(status) for status in OrderStatus.ALL}
    return jsonify({"by_status": counts}), 200
