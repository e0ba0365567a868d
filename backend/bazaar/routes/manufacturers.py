# Overview: Flask API routes for manufacturer registration, verification and profile management.

# backend/bazaar/routes/manufacturers.py
"""
Manufacturer API routes

SECURITY:
- Registration is public; the new account stays unverified (PENDING)
- Listing, editing and verifying manufacturers is admin-only
- Deleting a manufacturer (and its login account) is ADMIN-only
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..models import Role
from ..services import manufacturer_service
from ..validation import BazaarError, ValidationError, error_body, http_status_for
from ..decorators import require_auth, require_role


manufacturers_bp = Blueprint("manufacturers", __name__, url_prefix="/api/manufacturers")


def _bool_arg(name: str) -> bool | None:
    raw = request.args.get(name)
    if raw is None:
        return None
    return raw.lower() == "true"


@manufacturers_bp.post("/register")
def register_route():
    """
    Manufacturer self-registration.

    Body: profile fields (company_name, contact_person, email, ...) plus
    username, password and confirm_password for the login account.
    """
    try:
        data = request.get_json(silent=True) or {}
        profile = {
            key: value
            for key, value in data.items()
            if key in manufacturer_service.PROFILE_FIELDS
        }
        manufacturer = manufacturer_service.register_manufacturer(
            profile=profile,
            username=data.get("username"),
            password=data.get("password"),
            confirm_password=data.get("confirm_password"),
        )
        return jsonify({
            "manufacturer": manufacturer.to_dict(),
            "message": "Registration received; your account is pending verification",
        }), 201

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to register manufacturer")
        return jsonify({"error": "Internal server error"}), 500


@manufacturers_bp.get("/")
@require_auth
@require_role(*Role.ADMINS)
def list_manufacturers_route():
    try:
        result = manufacturer_service.list_manufacturers(
            status=request.args.get("status"),
            verified=_bool_arg("verified"),
            search=request.args.get("search"),
            city=request.args.get("city"),
            state=request.args.get("state"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to list manufacturers")
        return jsonify({"error": "Internal server error"}), 500


@manufacturers_bp.get("/stats")
@require_auth
@require_role(*Role.ADMINS)
def manufacturer_stats_route():
    return jsonify(manufacturer_service.manufacturer_counts()), 200


@manufacturers_bp.get("/profile")
@require_auth
@require_role(Role.MANUFACTURER)
def my_profile_route():
    try:
        manufacturer = manufacturer_service.get_manufacturer_for_user(g.current_user.id)
        return jsonify({"manufacturer": manufacturer.to_dict()}), 200
    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@manufacturers_bp.put("/profile")
@require_auth
@require_role(Role.MANUFACTURER)
def update_my_profile_route():
    """Manufacturers edit their own profile; status fields are ignored."""
    try:
        data = request.get_json(silent=True) or {}
        manufacturer = manufacturer_service.get_manufacturer_for_user(g.current_user.id)
        manufacturer = manufacturer_service.update_manufacturer(manufacturer.id, data)
        return jsonify({"manufacturer": manufacturer.to_dict()}), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to update manufacturer profile")
        return jsonify({"error": "Internal server error"}), 500


@manufacturers_bp.get("/<int:manufacturer_id>")
@require_auth
@require_role(*Role.ADMINS)
def get_manufacturer_route(manufacturer_id: int):
    try:
        manufacturer = manufacturer_service.get_manufacturer(manufacturer_id)
        return jsonify({"manufacturer": manufacturer.to_dict()}), 200
    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)


@manufacturers_bp.put("/<int:manufacturer_id>")
@require_auth
@require_role(*Role.ADMINS)
def update_manufacturer_route(manufacturer_id: int):
    try:
        data = request.get_json(silent=True) or {}
        manufacturer = manufacturer_service.update_manufacturer(manufacturer_id, data)
        return jsonify({"manufacturer": manufacturer.to_dict()}), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to update manufacturer")
        return jsonify({"error": "Internal server error"}), 500


@manufacturers_bp.put("/<int:manufacturer_id>/verify")
@require_auth
@require_role(*Role.ADMINS)
def verify_manufacturer_route(manufacturer_id: int):
    """
    Record a verification decision.

    Body: {"status": "APPROVED" | "REJECTED" | ..., "notes": "..."}
    APPROVED/ACTIVE activate the linked account, REJECTED/SUSPENDED
    deactivate it.
    """
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            raise ValidationError("status required")

        manufacturer = manufacturer_service.verify_manufacturer(
            manufacturer_id,
            status=status,
            notes=data.get("notes"),
            admin_id=g.current_user.id,
        )
        return jsonify({"manufacturer": manufacturer.to_dict()}), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to verify manufacturer")
        return jsonify({"error": "Internal server error"}), 500


@manufacturers_bp.delete("/<int:manufacturer_id>")
@require_auth
@require_role(Role.ADMIN)
def delete_manufacturer_route(manufacturer_id: int):
    try:
        manufacturer_service.delete_manufacturer(manufacturer_id, actor_user_id=g.current_user.id)
        return jsonify({"message": "Manufacturer deleted"}), 200

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to delete manufacturer")
        return jsonify({"error": "Internal server error"}), 500
