# Overview: Flask API route for the activity log.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_capability
from ..permissions.definitions import ACTIVITY_LOG
from ..services import activity_service
from ..validation import query_int


activity_bp = Blueprint("activity", __name__, url_prefix="/api/activity-log")


@activity_bp.get("")
@require_auth
@require_capability(ACTIVITY_LOG)
def list_activity_route():
    """
    Query parameters:
    - action: exact action, e.g. "invoice.created"
    - username: exact username
    - page (default 1), page_size (default 50)
    """
    return jsonify(activity_service.list_activity(
        action=request.args.get("action") or None,
        username=request.args.get("username") or None,
        page=query_int("page", 1, minimum=1),
        page_size=query_int("page_size", 50, minimum=1, maximum=500),
    ))
