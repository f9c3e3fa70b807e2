# Overview: Request and permission decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .permissions import Capability, has_capability
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, "current_user")


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid session token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object
    - g.session_token: The plaintext bearer token (for logout)

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.session_context = context
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_capability(*capabilities: Capability):
    """
    Require any one of the given capabilities. Admins pass every check.

    Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            user = g.current_user
            if not any(has_capability(user, cap) for cap in capabilities):
                keys = [cap.key for cap in capabilities]
                return jsonify({
                    "error": "Permission denied",
                    "type": "permission_denied",
                    "required_permission": keys[0] if len(keys) == 1 else keys,
                    "message": f"Requires any of: {', '.join(keys)}",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_admin(f):
    """Require the authenticated user to be an Admin."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        if not g.current_user.is_admin:
            return jsonify({"error": "Admin access required", "type": "permission_denied"}), 403
        return f(*args, **kwargs)
    return decorated_function
