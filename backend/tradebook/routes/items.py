# Overview: Flask API routes for items and stock; parses input and returns JSON responses.

"""
Item / Inventory Routes

- Viewing items: inventory section, or any invoice-generation capability
  (the generate screens pick items from this list)
- Creating, editing, deleting, adjusting and transferring: inventory.manage
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_capability
from ..exceptions import ValidationError
from ..permissions.definitions import (
    COMMISSIONER_ADD_SHEET,
    CUSTOMER_GENERATE,
    INVENTORY,
    INVENTORY_MANAGE,
    VENDOR_GENERATE,
)
from ..services import inventory_service
from ..stock import StockDelta
from ..validation import json_body, signed_delta


items_bp = Blueprint("items", __name__, url_prefix="/api/items")

ITEM_VIEWERS = (INVENTORY, INVENTORY_MANAGE, CUSTOMER_GENERATE, VENDOR_GENERATE, COMMISSIONER_ADD_SHEET)


def _optional_item_id(data: dict):
    value = data.get("item_id")
    if value in (None, ""):
        return None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return value


@items_bp.get("")
@require_auth
@require_capability(*ITEM_VIEWERS)
def list_items_route():
    items = inventory_service.list_items(request.args.get("search"))
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)})


@items_bp.get("/summary")
@require_auth
@require_capability(*ITEM_VIEWERS)
def inventory_summary_route():
    return jsonify(inventory_service.get_inventory_summary())


@items_bp.get("/<int:item_id>")
@require_auth
@require_capability(*ITEM_VIEWERS)
def get_item_route(item_id: int):
    return jsonify(inventory_service.get_item(item_id).to_dict())


@items_bp.post("")
@require_auth
@require_capability(INVENTORY_MANAGE)
def create_item_route():
    """
    Request body:
    {
        "item_name": "Tomatoes",   // required, unique
        "item_id": 10001,          // optional 5-digit number
        "shop_quantity": 10, "cold_net_weight": 250.5, ...  // optional opening stock
    }
    """
    data = json_body()
    item = inventory_service.create_item(
        item_name=data.get("item_name"),
        item_id=_optional_item_id(data),
        counters=data,
        user=g.current_user,
    )
    return jsonify(item.to_dict()), 201


@items_bp.put("/<int:item_id>")
@require_auth
@require_capability(INVENTORY_MANAGE)
def update_item_route(item_id: int):
    data = json_body()
    item = inventory_service.update_item(
        item_id,
        item_name=data.get("item_name"),
        counters=data,
        user=g.current_user,
    )
    return jsonify(item.to_dict())


@items_bp.delete("/<int:item_id>")
@require_auth
@require_capability(INVENTORY_MANAGE)
def delete_item_route(item_id: int):
    inventory_service.delete_item(item_id, user=g.current_user)
    return jsonify({"message": "Item deleted successfully"})


@items_bp.post("/<int:item_id>/adjust")
@require_auth
@require_capability(INVENTORY_MANAGE)
def adjust_stock_route(item_id: int):
    """
    Signed correction of one bucket.

    Request body: {"bucket": "shop", "quantity": -2, "net_weight": -40.5}
    """
    data = json_body()
    if not data.get("bucket"):
        raise ValidationError("bucket", "is required")
    item = inventory_service.apply_delta(item_id, data["bucket"], signed_delta(data), user=g.current_user)
    return jsonify(item.to_dict())


@items_bp.post("/<int:item_id>/transfer-to-cold")
@require_auth
@require_capability(INVENTORY_MANAGE)
def transfer_to_cold_route(item_id: int):
    amounts = StockDelta.from_payload(json_body())
    item = inventory_service.transfer_to_cold(item_id, amounts, user=g.current_user)
    return jsonify(item.to_dict())


@items_bp.post("/<int:item_id>/transfer-to-shop")
@require_auth
@require_capability(INVENTORY_MANAGE)
def transfer_to_shop_route(item_id: int):
    amounts = StockDelta.from_payload(json_body())
    item = inventory_service.transfer_to_shop(item_id, amounts, user=g.current_user)
    return jsonify(item.to_dict())
