# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/bazaar/routes/auth.py
"""
Authentication API routes

- Retailer self-registration
- Login issuing a bearer session token
- Logout revoking the current token
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..validation import BazaarError, error_body, http_status_for
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Retailer self-registration.

    Manufacturers register through POST /api/manufacturers/register.
    """
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.register_user(
            username=data.get("username"),
            email=data.get("email"),
            password=data.get("password"),
            confirm_password=data.get("confirm_password"),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
        )
        return jsonify({"user": user.to_dict()}), 201

    except BazaarError as e:
        return jsonify(error_body(e)), http_status_for(e)
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    Manufacturers can log in only once their account is active (approved).
    """
    try:
        data = request.get_json(silent=True) or {}
        identifier = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([identifier, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user = auth_service.authenticate(identifier, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "expires_at": session.to_dict()["expires_at"],
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.raw_token)
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
