# Overview: Flask API routes for admin account operations and the approvals queue.

# backend/bazaar/routes/admin.py
"""
Admin account management.

SECURITY:
- Listing accounts and the approvals queue is for both admin roles
- Role changes, suspension and activation are ADMIN-only

Temporary passwords appear only in these responses; they are never logged
or stored in plaintext.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..models import ManufacturerStatus, Role
from ..services import auth_service, manufacturer_service
from ..validation import BazaarError, ValidationError, error_body, http_status_for
from ..decorators import require_auth, require_role


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.post("/manufacturers/<int:manufacturer_id>/account")
@require_auth
@require_role(*Role.ADMINS)
def provision_account_route(manufacturer_id: int):
    """Create a login for a manufacturer that has none; returns a temporary password."""
    try:
        user, temp_password = manufacturer_service.provision_account(
            manufacturer_id, actor_user_id=g.current_user.id
        )
        return jsonify({
            "user": user.to_dict(),
            "temporary_password": temp_password,
        }), 201

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to provision manufacturer account")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/manufacturer-accounts/reset-password")
@require_auth
@require_role(*Role.ADMINS)
def reset_password_route():
    """Body: {"email": "..."}. Returns a new temporary password once."""
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        if not email:
            raise ValidationError("email required")

        user, temp_password = manufacturer_service.reset_manufacturer_password(
            email, actor_user_id=g.current_user.id
        )
        return jsonify({
            "user": user.to_dict(),
            "temporary_password": temp_password,
        }), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to reset manufacturer password")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/manufacturer-accounts/check")
@require_auth
@require_role(*Role.ADMINS)
def check_account_route():
    email = request.args.get("email")
    if not email:
        return jsonify({"error": "email required"}), 400
    return jsonify({"email": email, "has_account": manufacturer_service.has_account(email)}), 200


@admin_bp.get("/dashboard/pending-approvals")
@require_auth
@require_role(*Role.ADMINS)
def pending_approvals_route():
    try:
        result = manufacturer_service.list_manufacturers(
            status=ManufacturerStatus.PENDING,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


# =============================================================================
# Accounts
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_role(*Role.ADMINS)
def list_users_route():
    """Query params: role, active (true/false), page, per_page."""
    try:
        active = request.args.get("active")
        result = auth_service.list_users(
            role=request.args.get("role"),
            active=None if active is None else active.lower() == "true",
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@admin_bp.get("/users/<int:user_id>")
@require_auth
@require_role(*Role.ADMINS)
def get_user_route(user_id: int):
    try:
        return jsonify({"user": auth_service.get_user(user_id).to_dict()}), 200
    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@admin_bp.put("/users/<int:user_id>/role")
@require_auth
@require_role(Role.ADMIN)
def set_role_route(user_id: int):
    """Body: {"role": "RETAILER" | "MANUFACTURER" | "DASHBOARD_ADMIN" | "ADMIN"}"""
    try:
        data = request.get_json(silent=True) or {}
        role = data.get("role")
        if not role:
            raise ValidationError("role required")

        user = auth_service.set_role(user_id, role, actor_user_id=g.current_user.id)
        return jsonify({"user": user.to_dict()}), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to change user role")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/users/<int:user_id>/suspend")
@admin_bp.put("/users/<int:user_id>/deactivate")
@require_auth
@require_role(Role.ADMIN)
def suspend_user_route(user_id: int):
    """Deactivate the account and revoke its sessions."""
    try:
        user = auth_service.set_active(user_id, False, actor_user_id=g.current_user.id)
        return jsonify({"user": user.to_dict()}), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to suspend user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/users/<int:user_id>/activate")
@require_auth
@require_role(Role.ADMIN)
def activate_user_route(user_id: int):
    try:
        user = auth_service.set_active(user_id, True, actor_user_id=g.current_user.id)
        return jsonify({"user": user.to_dict()}), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to activate user")
        return jsonify({"error": "Internal server error"}), 500
