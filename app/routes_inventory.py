"""Inventory routes under /api/inventory."""
from __future__ import annotations

from flask import Blueprint, jsonify, request

from .auth import login_required, roles_required
from .schemas import InventoryItemCreate, InventoryItemUpdate, StockAdjustment, parse_body
from .services import inventory_service

bp_inventory = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@bp_inventory.get("")
@login_required
def list_items() -> tuple[dict[str, object], int]:
    result = inventory_service.list_items(
        search=request.args.get("search") or None,
        low_stock=request.args.get("low_stock") in {"1", "true", "True"},
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 10, type=int),
    )
    return jsonify(result), 200


@bp_inventory.post("")
@roles_required("admin", "manager")
def create_item() -> tuple[dict[str, object], int]:
    payload = parse_body(InventoryItemCreate)
    item = inventory_service.create_item(**payload.model_dump())
    return jsonify({"message": "Inventory item created successfully", "item": item.to_dict()}), 201


@bp_inventory.get("/<int:item_id>")
@login_required
def get_item(item_id: int) -> tuple[dict[str, object], int]:
    return jsonify({"item": inventory_service.get_item(item_id)}), 200


@bp_inventory.put("/<int:item_id>")
@roles_required("admin", "manager")
def update_item(item_id: int) -> tuple[dict[str, object], int]:
    payload = parse_body(InventoryItemUpdate)
    item = inventory_service.update_item(item_id, **payload.model_dump(exclude_unset=True))
    return jsonify({"message": "Inventory item updated successfully", "item": item.to_dict()}), 200


@bp_inventory.delete("/<int:item_id>")
@roles_required("admin", "manager")
def deactivate_item(item_id: int) -> tuple[dict[str, object], int]:
    item = inventory_service.deactivate_item(item_id)
    return jsonify({"message": "Inventory item deactivated", "item": item.to_dict()}), 200


@bp_inventory.post("/<int:item_id>/add-stock")
@roles_required("admin", "manager")
def add_stock(item_id: int) -> tuple[dict[str, object], int]:
    """Receive stock into an item.
    ---
    tags:
      - Inventory
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            quantity:
              type: integer
              minimum: 1
            reference_type:
              type: string
              enum: [purchase, return, adjustment]
            notes:
              type: string
    responses:
      200:
        description: Stock added and ledger entry written
      400:
        description: Invalid quantity or reference type
      404:
        description: Item not found
    """
    payload = parse_body(StockAdjustment)
    item = inventory_service.add_stock(
        item_id,
        payload.quantity,
        payload.reference_type,
        reference_id=payload.reference_id,
        notes=payload.notes,
    )
    return jsonify({"message": "Stock added successfully", "item": item.to_dict()}), 200


@bp_inventory.post("/<int:item_id>/remove-stock")
@roles_required("admin", "manager")
def remove_stock(item_id: int) -> tuple[dict[str, object], int]:
    """Consume stock from an item.
    ---
    tags:
      - Inventory
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            quantity:
              type: integer
              minimum: 1
            reference_type:
              type: string
              enum: [usage, adjustment]
            reference_id:
              type: integer
            notes:
              type: string
    responses:
      200:
        description: Stock removed and ledger entry written
      400:
        description: Insufficient stock, stock left unchanged
      404:
        description: Item not found
    """
    payload = parse_body(StockAdjustment)
    item = inventory_service.remove_stock(
        item_id,
        payload.quantity,
        payload.reference_type,
        reference_id=payload.reference_id,
        notes=payload.notes,
    )
    return jsonify({"message": "Stock removed successfully", "item": item.to_dict()}), 200


@bp_inventory.get("/<int:item_id>/transactions")
@login_required
def list_transactions(item_id: int) -> tuple[dict[str, object], int]:
    transactions = inventory_service.list_transactions(item_id, request.args.get("limit", type=int))
    return jsonify({"transactions": [txn.to_dict() for txn in transactions]}), 200


@bp_inventory.get("/alerts/low-stock")
@login_required
def low_stock_alerts() -> tuple[dict[str, object], int]:
    items = inventory_service.list_low_stock()
    return jsonify({"low_stock_items": [item.to_dict() for item in items]}), 200


@bp_inventory.get("/stats/overview")
@login_required
def inventory_stats() -> tuple[dict[str, object], int]:
    return jsonify({"stats": inventory_service.stats()}), 200
