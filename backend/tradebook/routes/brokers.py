# Overview: Flask API routes for brokers and their commission payments.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_capability
from ..permissions.definitions import BROKER_PAYABLES, BROKERS_LIST, CUSTOMER_GENERATE
from ..services import broker_service
from ..validation import json_body


brokers_bp = Blueprint("brokers", __name__, url_prefix="/api/brokers")


@brokers_bp.get("")
@require_auth
@require_capability(BROKERS_LIST, BROKER_PAYABLES, CUSTOMER_GENERATE)
def list_brokers_route():
    """Brokers with commission / paid / remaining / status."""
    brokers = broker_service.list_brokers(request.args.get("search"))
    return jsonify({"items": [broker_service.broker_summary_dict(b) for b in brokers], "count": len(brokers)})


@brokers_bp.post("")
@require_auth
@require_capability(BROKERS_LIST)
def create_broker_route():
    """Request body: {"broker_name": "...", "phone": "...", "city": "...", "due_date": "YYYY-MM-DD"}"""
    broker = broker_service.create_broker(json_body(), user=g.current_user)
    return jsonify(broker_service.broker_summary_dict(broker)), 201


@brokers_bp.get("/<int:broker_id>")
@require_auth
@require_capability(BROKERS_LIST, BROKER_PAYABLES)
def get_broker_route(broker_id: int):
    return jsonify(broker_service.broker_summary(broker_id))


@brokers_bp.put("/<int:broker_id>")
@require_auth
@require_capability(BROKERS_LIST)
def update_broker_route(broker_id: int):
    broker = broker_service.update_broker(broker_id, json_body(), user=g.current_user)
    return jsonify(broker_service.broker_summary_dict(broker))


@brokers_bp.delete("/<int:broker_id>")
@require_auth
@require_capability(BROKERS_LIST)
def delete_broker_route(broker_id: int):
    broker_service.delete_broker(broker_id, user=g.current_user)
    return jsonify({"message": "Broker deleted successfully"})


@brokers_bp.put("/<int:broker_id>/due-date")
@require_auth
@require_capability(BROKER_PAYABLES)
def update_broker_due_date_route(broker_id: int):
    broker = broker_service.update_broker_due_date(broker_id, json_body().get("due_date"), user=g.current_user)
    return jsonify(broker_service.broker_summary_dict(broker))


@brokers_bp.get("/<int:broker_id>/invoices")
@require_auth
@require_capability(BROKERS_LIST, BROKER_PAYABLES)
def broker_invoices_route(broker_id: int):
    invoices = broker_service.broker_invoices(broker_id)
    return jsonify({"items": [inv.to_dict(include_lines=False) for inv in invoices]})


@brokers_bp.get("/<int:broker_id>/payments")
@require_auth
@require_capability(BROKER_PAYABLES)
def broker_payments_route(broker_id: int):
    broker = broker_service.get_broker(broker_id)
    return jsonify({
        "items": [p.to_dict() for p in broker.payments],
        "summary": broker_service.broker_summary_dict(broker),
    })


@brokers_bp.post("/<int:broker_id>/payments")
@require_auth
@require_capability(BROKER_PAYABLES)
def add_broker_payment_route(broker_id: int):
    """
    Request body:
    {
        "amount": 2000,               // 0 < amount <= remaining commission
        "payment_date": "2024-05-03",
        "payment_method": "cash",     // cash | online | cheque
        "notes": "...",
        "due_date": "2024-06-01"
    }
    """
    data = json_body()
    payment = broker_service.add_broker_payment(
        broker_id,
        amount=data.get("amount"),
        payment_date=data.get("payment_date"),
        payment_method=data.get("payment_method"),
        notes=data.get("notes"),
        due_date=data.get("due_date"),
        user=g.current_user,
    )
    return jsonify({
        "payment": payment.to_dict(),
        "summary": broker_service.broker_summary(broker_id),
    }), 201
