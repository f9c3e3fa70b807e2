# Overview: Flask API routes for vendors, customers and commissioners; parses input and returns JSON responses.

from functools import wraps

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..exceptions import NotFound, PermissionDeniedError
from ..permissions import has_capability
from ..permissions.definitions import (
    COMMISSIONER_ADD_SHEET,
    COMMISSIONER_SHEETS,
    COMMISSIONERS_LIST,
    CUSTOMER_GENERATE,
    CUSTOMER_INVOICES,
    CUSTOMERS_LIST,
    VENDOR_GENERATE,
    VENDOR_INVOICES,
    VENDORS_LIST,
)
from ..services import party_service
from ..validation import json_body


parties_bp = Blueprint("parties", __name__, url_prefix="/api")

# URL collection -> party kind
COLLECTIONS = {
    "vendors": party_service.PARTY_VENDOR,
    "customers": party_service.PARTY_CUSTOMER,
    "commissioners": party_service.PARTY_COMMISSIONER,
}

# Picking a party on the generate screens also needs the list
VIEW_CAPABILITIES = {
    "vendors": (VENDORS_LIST, VENDOR_GENERATE, VENDOR_INVOICES),
    "customers": (CUSTOMERS_LIST, CUSTOMER_GENERATE, CUSTOMER_INVOICES),
    "commissioners": (COMMISSIONERS_LIST, COMMISSIONER_ADD_SHEET, COMMISSIONER_SHEETS),
}
MANAGE_CAPABILITIES = {
    "vendors": (VENDORS_LIST,),
    "customers": (CUSTOMERS_LIST,),
    "commissioners": (COMMISSIONERS_LIST,),
}


def require_party_capability(manage: bool):
    def decorator(f):
        @wraps(f)
        def decorated_function(collection, *args, **kwargs):
            if collection not in COLLECTIONS:
                raise NotFound("collection", collection)
            table = MANAGE_CAPABILITIES if manage else VIEW_CAPABILITIES
            capabilities = table[collection]
            if not any(has_capability(g.current_user, cap) for cap in capabilities):
                raise PermissionDeniedError(capabilities[0].key)
            return f(COLLECTIONS[collection], *args, **kwargs)

        return decorated_function
    return decorator


@parties_bp.get("/<any(vendors, customers, commissioners):collection>")
@require_auth
@require_party_capability(manage=False)
def list_parties_route(kind: str):
    parties = party_service.list_parties(kind, request.args.get("search"))
    return jsonify({"items": [p.to_dict() for p in parties], "count": len(parties)})


@parties_bp.post("/<any(vendors, customers, commissioners):collection>")
@require_auth
@require_party_capability(manage=True)
def create_party_route(kind: str):
    """Request body: {"name": "...", "phone": "...", "city": "..."}"""
    party = party_service.create_party(kind, json_body(), user=g.current_user)
    return jsonify(party.to_dict()), 201


@parties_bp.get("/<any(vendors, customers, commissioners):collection>/<int:party_id>")
@require_auth
@require_party_capability(manage=False)
def get_party_route(kind: str, party_id: int):
    return jsonify(party_service.get_party(kind, party_id).to_dict())


@parties_bp.put("/<any(vendors, customers, commissioners):collection>/<int:party_id>")
@require_auth
@require_party_capability(manage=True)
def update_party_route(kind: str, party_id: int):
    party = party_service.update_party(kind, party_id, json_body(), user=g.current_user)
    return jsonify(party.to_dict())


@parties_bp.delete("/<any(vendors, customers, commissioners):collection>/<int:party_id>")
@require_auth
@require_party_capability(manage=True)
def delete_party_route(kind: str, party_id: int):
    party_service.delete_party(kind, party_id, user=g.current_user)
    return jsonify({"message": "Deleted successfully"})


@parties_bp.get("/<any(vendors, customers, commissioners):collection>/<int:party_id>/invoices")
@require_auth
@require_party_capability(manage=False)
def party_invoices_route(kind: str, party_id: int):
    invoices = party_service.party_invoices(kind, party_id)
    return jsonify({"items": [inv.to_dict(include_lines=False) for inv in invoices]})
