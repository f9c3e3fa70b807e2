# Overview: Flask API routes for the balance sheet; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_capability
from ..permissions.definitions import BALANCE_SHEET
from ..services import balance_service
from ..validation import json_body, query_int


balance_bp = Blueprint("balance", __name__, url_prefix="/api/balance")


@balance_bp.get("")
@require_auth
@require_capability(BALANCE_SHEET)
def list_entries_route():
    """
    Query parameters:
    - date: YYYY-MM-DD, whole calendar day
    - remarks: case-insensitive substring
    - page (default 1), page_size (default 10)
    """
    return jsonify(balance_service.list_entries(
        entry_date=request.args.get("date"),
        remarks=request.args.get("remarks"),
        page=query_int("page", 1, minimum=1),
        page_size=query_int("page_size", 10, minimum=1, maximum=500),
    ))


@balance_bp.get("/total")
@require_auth
@require_capability(BALANCE_SHEET)
def total_balance_route():
    return jsonify({"total_balance": balance_service.total_balance()})


@balance_bp.post("")
@require_auth
@require_capability(BALANCE_SHEET)
def add_entry_route():
    """Request body: {"amount": 5000, "date": "2024-05-01", "remarks": "...", "type": "addition"}"""
    data = json_body()
    entry = balance_service.add_entry(
        amount=data.get("amount"),
        entry_date=data.get("date"),
        remarks=data.get("remarks"),
        entry_type=data.get("type"),
        created_by=g.current_user,
    )
    return jsonify({"entry": entry.to_dict(), "total_balance": balance_service.total_balance()}), 201
