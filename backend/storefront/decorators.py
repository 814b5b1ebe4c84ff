# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .models import UserRole
from .services import session_service
from .validation import AuthorizationError, error_body


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_auth(f):
    """
    Require a valid bearer session token.

    Sets g.current_user (the identity: id + role) for the route.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required", "kind": "authentication"}), 401

        token = auth_header.split(" ", 1)[1]
        user = session_service.validate_session(token)

        if not user:
            return jsonify({"error": "Invalid or expired token", "kind": "authentication"}), 401

        g.current_user = user
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_role(role: UserRole | str):
    """
    Require the authenticated user to hold a role.

    Must be applied after @require_auth.
    """
    required = UserRole(role)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required", "kind": "authentication"}), 401

            if UserRole(g.current_user.role) is not required:
                denied = AuthorizationError(f"Permission denied: requires {required.value} role")
                return jsonify({**error_body(denied), "required_role": required.value}), denied.http_status

            return f(*args, **kwargs)

        return decorated_function
    return decorator
