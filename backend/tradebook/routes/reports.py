# Overview: Flask API routes for the dashboard and sales report.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_capability
from ..permissions.definitions import BALANCE_SHEET, DASHBOARD, SALES_REPORT
from ..services import reporting_service
from ..validation import query_int


reports_bp = Blueprint("reports", __name__, url_prefix="/api")


@reports_bp.get("/dashboard")
@require_auth
@require_capability(DASHBOARD)
def dashboard_route():
    """Payables and due-date reminders per party kind, plus circulating supply."""
    return jsonify(reporting_service.dashboard())


@reports_bp.get("/reports/circulating-supply")
@require_auth
@require_capability(DASHBOARD, BALANCE_SHEET)
def circulating_supply_route():
    return jsonify(reporting_service.circulating_supply())


@reports_bp.get("/reports/sales")
@require_auth
@require_capability(SALES_REPORT)
def sales_report_route():
    """
    Query parameters:
    - date_from, date_to: invoice date range (inclusive, optional)
    - limit: number of top / least selling items (default 5)
    """
    return jsonify(reporting_service.sales_report(
        date_from=request.args.get("date_from"),
        date_to=request.args.get("date_to"),
        limit=query_int("limit", 5, minimum=1, maximum=100),
    ))
