# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/storefront/routes/auth.py
"""
Authentication API routes

Accounts are created by administrators through the CLI; these routes only
exchange credentials for a bearer token and end sessions.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import auth_service
from ..services import session_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info and session token on success.
    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required", "kind": "client_input"}), 400

        user = auth_service.authenticate(username, password)

        if not user:
            current_app.logger.info("Failed login for %s from %s", username, request.remote_addr)
            return jsonify({"error": "Invalid credentials", "kind": "authentication"}), 401

        _session, token = session_service.create_session(
            user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({"user": user.to_dict(), "token": token}), 200

    except Exception:
        current_app.logger.exception("Login failed")
        return jsonify({"error": "Internal server error", "kind": "internal"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the session token used for this request."""
    session_service.revoke_session(g.session_token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current identity (id + role)."""
    return jsonify({"user": g.current_user.to_dict()}), 200
