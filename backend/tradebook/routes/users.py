# Overview: Flask API routes for user administration; Admin only.

from flask import Blueprint, g, jsonify

from ..decorators import require_admin, require_auth
from ..permissions import ALL_CAPABILITIES
from ..services import user_service
from ..validation import json_body


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_admin
def list_users_route():
    return jsonify({"items": [u.to_dict() for u in user_service.list_users()]})


@users_bp.get("/capabilities")
@require_auth
@require_admin
def list_capabilities_route():
    """Every grantable permission key, grouped the way the settings screen shows them."""
    return jsonify({
        "items": [
            {"key": cap.key, "section": cap.section, "child": cap.child}
            for cap in ALL_CAPABILITIES
        ]
    })


@users_bp.get("/<int:user_id>")
@require_auth
@require_admin
def get_user_route(user_id: int):
    return jsonify(user_service.get_user(user_id).to_dict())


@users_bp.post("")
@require_auth
@require_admin
def create_user_route():
    """
    Request body:
    {
        "username": "ali",          // required, unique
        "fullname": "Ali Raza",     // required
        "password": "********",     // required, 8+ characters
        "role": "Worker",           // Admin | Worker
        "permissions": {"vendors": true, "vendors.list": true}
    }
    """
    user = user_service.create_user(json_body(), actor=g.current_user)
    return jsonify({"message": "User created successfully", "user": user.to_dict()}), 201


@users_bp.put("/<int:user_id>")
@require_auth
@require_admin
def update_user_route(user_id: int):
    user = user_service.update_user(user_id, json_body(), actor=g.current_user)
    return jsonify({"message": "User updated successfully", "user": user.to_dict()})


@users_bp.put("/<int:user_id>/permissions")
@require_auth
@require_admin
def set_permissions_route(user_id: int):
    data = json_body()
    user = user_service.set_permissions(user_id, data.get("permissions", data), actor=g.current_user)
    return jsonify(user.to_dict())


@users_bp.delete("/<int:user_id>")
@require_auth
@require_admin
def delete_user_route(user_id: int):
    user_service.delete_user(user_id, actor=g.current_user)
    return jsonify({"message": "User deleted successfully"})
