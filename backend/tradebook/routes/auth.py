# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- Login issues an opaque session token (Authorization: Bearer <token>)
- Logout revokes the presented token
- Self-registration does not exist: users are created by an Admin
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..exceptions import AuthenticationError
from ..permissions import permission_map
from ..services import auth_service, session_service, user_service
from ..services.activity_service import log_activity
from ..extensions import db
from ..validation import json_body


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info, permissions and session token on success.
    """
    data = json_body()
    username = data.get("username")
    password = data.get("password")

    if not username or not password:
        return jsonify({"error": "Username and password are required"}), 400

    user = auth_service.authenticate(username, password)
    if not user:
        raise AuthenticationError("Invalid credentials")

    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    log_activity(user, "auth.login")
    db.session.commit()

    return jsonify({
        "user": user.to_dict(),
        "permissions": permission_map(user),
        "token": token,
        "session": session.to_dict(),
        "message": "Login successful",
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.session_token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/sessions")
@require_auth
def list_sessions_route():
    """The caller's open sessions; `current` marks the one making this request."""
    current_id = g.session_context.session.id
    sessions = session_service.list_active_sessions(g.current_user.id)
    return jsonify({
        "items": [{**s.to_dict(), "current": s.id == current_id} for s in sessions],
    })


@auth_bp.post("/logout-all")
@require_auth
def logout_all_route():
    """Sign the caller out on every device, this one included."""
    count = session_service.revoke_all_user_sessions(g.current_user.id, "Logged out everywhere")
    return jsonify({"message": "Logged out everywhere", "revoked": count}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    return jsonify({"user": user.to_dict(), "permissions": permission_map(user)})


@auth_bp.put("/update-password")
@require_auth
def update_password_route():
    """
    Change the caller's own password. Every session of the user, this one
    included, is revoked afterwards.
    """
    data = json_body()
    user_service.change_password(
        g.current_user,
        data.get("current_password"),
        data.get("new_password"),
    )
    return jsonify({"message": "Password updated successfully"}), 200
