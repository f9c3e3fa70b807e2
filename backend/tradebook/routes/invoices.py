# Overview: Flask API routes for vendor, customer and commissioner invoices; parses input and returns JSON responses.

"""
Invoice Routes

One blueprint serves the three invoice kinds under /api/invoices/<kind>,
kind being vendor, customer or commissioner. Each kind has its own
permission section:

- vendor:       vendors.invoices (view/edit), vendors.generate (create),
                vendors.payables (payments)
- customer:     customers.invoices, customers.generateInvoice,
                customers.payables
- commissioner: commissioners.sheets, commissioners.addSheet,
                commissioners.sheets

An invoice fetched through the wrong kind is reported as not found.
"""

from functools import wraps

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..exceptions import NotFound, PermissionDeniedError, ValidationError
from ..models.invoices import INVOICE_COMMISSIONER, INVOICE_CUSTOMER, INVOICE_VENDOR
from ..permissions import has_capability
from ..permissions.definitions import (
    COMMISSIONER_ADD_SHEET,
    COMMISSIONER_SHEETS,
    CUSTOMER_GENERATE,
    CUSTOMER_INVOICES,
    CUSTOMER_PAYABLES,
    VENDOR_GENERATE,
    VENDOR_INVOICES,
    VENDOR_PAYABLES,
)
from ..services import invoice_service, payment_service
from ..validation import json_body, query_date, query_int


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")

KINDS = {
    "vendor": INVOICE_VENDOR,
    "customer": INVOICE_CUSTOMER,
    "commissioner": INVOICE_COMMISSIONER,
}

# action -> kind -> capabilities (any one suffices)
ACTION_CAPABILITIES = {
    "view": {
        "vendor": (VENDOR_INVOICES, VENDOR_PAYABLES),
        "customer": (CUSTOMER_INVOICES, CUSTOMER_PAYABLES),
        "commissioner": (COMMISSIONER_SHEETS,),
    },
    "create": {
        "vendor": (VENDOR_GENERATE,),
        "customer": (CUSTOMER_GENERATE,),
        "commissioner": (COMMISSIONER_ADD_SHEET,),
    },
    "edit": {
        "vendor": (VENDOR_INVOICES,),
        "customer": (CUSTOMER_INVOICES,),
        "commissioner": (COMMISSIONER_SHEETS,),
    },
    "pay": {
        "vendor": (VENDOR_PAYABLES, VENDOR_INVOICES),
        "customer": (CUSTOMER_PAYABLES, CUSTOMER_INVOICES),
        "commissioner": (COMMISSIONER_SHEETS,),
    },
}


def require_invoice_capability(action: str):
    """
    Resolve <kind> and check the caller holds a capability for the action.

    Must be stacked under @require_auth. Replaces the kind argument with
    the invoice type.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(kind, *args, **kwargs):
            if kind not in KINDS:
                raise NotFound("invoice kind", kind)
            capabilities = ACTION_CAPABILITIES[action][kind]
            if not any(has_capability(g.current_user, cap) for cap in capabilities):
                raise PermissionDeniedError(capabilities[0].key)
            return f(KINDS[kind], *args, **kwargs)

        return decorated_function
    return decorator


def _invoice_of_type(invoice_type: str, invoice_id: int):
    invoice = invoice_service.get_invoice(invoice_id)
    if invoice.invoice_type != invoice_type:
        raise NotFound("invoice", invoice_id)
    return invoice


@invoices_bp.get("/<any(vendor, customer, commissioner):kind>")
@require_auth
@require_invoice_capability("view")
def list_invoices_route(invoice_type: str):
    """
    Query parameters:
    - search: invoice number / party / broker / buyer substring
    - status: unpaid | partial | paid | overdue
    - party_id, broker_id
    - date_from, date_to (invoice date, inclusive)
    - limit (default 100), offset
    """
    party_id = request.args.get("party_id", type=int)
    broker_id = request.args.get("broker_id", type=int)
    limit = query_int("limit", 100, minimum=1, maximum=1000)
    offset = query_int("offset", 0)

    invoices, total = invoice_service.list_invoices(
        invoice_type=invoice_type,
        party_id=party_id,
        broker_id=broker_id,
        status=request.args.get("status") or None,
        search=request.args.get("search"),
        date_from=query_date("date_from"),
        date_to=query_date("date_to"),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [inv.to_dict(include_lines=False) for inv in invoices],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


@invoices_bp.get("/<any(vendor, customer, commissioner):kind>/search")
@require_auth
@require_invoice_capability("view")
def search_invoices_route(invoice_type: str):
    term = (request.args.get("q") or "").strip()
    if not term:
        raise ValidationError("q", "is required")
    invoices = invoice_service.search_invoices(term, invoice_type=invoice_type)
    return jsonify({"items": [inv.to_dict(include_lines=False) for inv in invoices]})


@invoices_bp.post("/<any(vendor, customer, commissioner):kind>/preview")
@require_auth
@require_invoice_capability("create")
def preview_invoice_route(invoice_type: str):
    """Totals and commission for a draft invoice; nothing is saved."""
    return jsonify(invoice_service.preview_invoice(invoice_type, json_body()))


@invoices_bp.post("/<any(vendor, customer, commissioner):kind>")
@require_auth
@require_invoice_capability("create")
def create_invoice_route(invoice_type: str):
    """
    Request body (customer example):
    {
        "customer_id": 3,
        "invoice_date": "2024-05-01",
        "due_date": "2024-05-15",
        "labour_transport_cost": 500,
        "broker_id": 2,
        "broker_commission_percentage": 2,
        "items": [
            {"item_id": 10001, "quantity": 5, "net_weight": 100,
             "packaging_cost": 20, "selling_price": 50}
        ],
        "paid_amount": 1000,
        "payment_method": "cash"
    }

    Totals, commission and status are computed server-side.
    """
    invoice = invoice_service.create_invoice(invoice_type, json_body(), user=g.current_user)
    return jsonify(invoice.to_dict()), 201


@invoices_bp.get("/<any(vendor, customer, commissioner):kind>/<int:invoice_id>")
@require_auth
@require_invoice_capability("view")
def get_invoice_route(invoice_type: str, invoice_id: int):
    return jsonify(_invoice_of_type(invoice_type, invoice_id).to_dict())


@invoices_bp.put("/<any(vendor, customer, commissioner):kind>/<int:invoice_id>")
@require_auth
@require_invoice_capability("edit")
def update_invoice_route(invoice_type: str, invoice_id: int):
    _invoice_of_type(invoice_type, invoice_id)
    invoice = invoice_service.update_invoice(invoice_id, json_body(), user=g.current_user)
    return jsonify(invoice.to_dict())


@invoices_bp.delete("/<any(vendor, customer, commissioner):kind>/<int:invoice_id>")
@require_auth
@require_invoice_capability("edit")
def delete_invoice_route(invoice_type: str, invoice_id: int):
    _invoice_of_type(invoice_type, invoice_id)
    invoice_service.delete_invoice(invoice_id, user=g.current_user)
    return jsonify({"message": "Invoice deleted successfully"})


@invoices_bp.put("/<any(vendor, customer, commissioner):kind>/<int:invoice_id>/due-date")
@require_auth
@require_invoice_capability("pay")
def update_due_date_route(invoice_type: str, invoice_id: int):
    _invoice_of_type(invoice_type, invoice_id)
    data = json_body()
    invoice = invoice_service.update_due_date(invoice_id, data.get("due_date"), user=g.current_user)
    return jsonify(invoice.to_dict())


@invoices_bp.get("/<any(vendor, customer, commissioner):kind>/<int:invoice_id>/payments")
@require_auth
@require_invoice_capability("view")
def list_payments_route(invoice_type: str, invoice_id: int):
    _invoice_of_type(invoice_type, invoice_id)
    payments = payment_service.list_payments(invoice_id)
    return jsonify({
        "items": [p.to_dict() for p in payments],
        "summary": payment_service.get_payment_summary(invoice_id),
    })


@invoices_bp.post("/<any(vendor, customer, commissioner):kind>/<int:invoice_id>/payments")
@require_auth
@require_invoice_capability("pay")
def add_payment_route(invoice_type: str, invoice_id: int):
    """
    Request body:
    {
        "amount": 1500,               // required, 0 < amount <= remaining
        "payment_date": "2024-05-03", // default today
        "payment_method": "cash",     // cash | online | cheque (+ bank | other on commissioner sheets)
        "notes": "...",
        "due_date": "2024-06-01"      // optional new due date
    }
    """
    _invoice_of_type(invoice_type, invoice_id)
    data = json_body()
    payment = payment_service.add_invoice_payment(
        invoice_id,
        amount=data.get("amount"),
        payment_date=data.get("payment_date"),
        payment_method=data.get("payment_method"),
        notes=data.get("notes"),
        due_date=data.get("due_date"),
        user=g.current_user,
    )
    return jsonify({
        "payment": payment.to_dict(),
        "summary": payment_service.get_payment_summary(invoice_id),
    }), 201
