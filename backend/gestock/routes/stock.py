# backend/gestock/routes/stock.py
"""
Stock catalog and movement API routes.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import (
    ROLE_ACCOUNTANT,
    ROLE_ADMIN,
    ROLE_EMPLOYEE,
    ROLE_SALES,
    ROLE_STOCK_MANAGER,
    require_role,
    require_tenant,
)
from ..services import catalog_service, inventory_service
from ..validation import coerce_int

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_STOCK_MANAGER, ROLE_SALES, ROLE_EMPLOYEE, ROLE_ACCOUNTANT)
def list_items():
    """List the tenant's active stock items, by name."""
    items = catalog_service.list_items(g.scope)
    return jsonify([item.to_dict() for item in items]), 200


@stock_bp.post("")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_STOCK_MANAGER)
def create_item():
    """
    Create a stock item (SKU is generated).

    Request body:
    {
        "name": str,
        "quantity": int (optional, opening stock),
        "unit_price_cents": int (optional),
        "min_threshold": int (optional, default 5),
        "category": str (optional),
        "location": str (optional)
    }

    Returns:
        201: Item created
        400: Invalid request
        423: Inventory campaign in progress
    """
    item = catalog_service.create_item(g.scope, request.get_json(silent=True))
    return jsonify(item.to_dict()), 201


@stock_bp.put("/<item_id>")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_STOCK_MANAGER)
def update_item(item_id: str):
    """
    Update catalog fields. "sku" in the body is ignored.

    Returns:
        200: Item updated
        403: Item referenced by a sale (UpdateLocked)
        404: Item not found
        423: Inventory campaign in progress
    """
    item = catalog_service.update_item(g.scope, item_id, request.get_json(silent=True))
    return jsonify(item.to_dict()), 200


@stock_bp.delete("/<item_id>")
@require_tenant
@require_role(ROLE_ADMIN)
def delete_item(item_id: str):
    """
    Soft-delete an item.

    Returns:
        200: Item marked deleted
        403: Item referenced by a sale (DeleteLocked)
        404: Item not found
    """
    item = catalog_service.delete_item(g.scope, item_id)
    return jsonify({"message": "Item marked as deleted", "item": item.to_dict()}), 200


@stock_bp.get("/movements")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_STOCK_MANAGER)
def list_movements():
    """Latest movements first (at most 500). Optional ?stock_item_id= filter."""
    movements = inventory_service.list_movements(g.scope, request.args.get("stock_item_id"))
    return jsonify([m.to_dict() for m in movements]), 200


@stock_bp.post("/movements")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_STOCK_MANAGER)
def create_movement():
    """
    Apply one stock movement.

    Request body:
    {
        "stock_item_id": str,
        "type": "IN" | "OUT" | "ADJUSTMENT",
        "quantity": int,
        "adjustment": "INCREASE" | "DECREASE" (optional, ADJUSTMENT only),
        "reason": str (optional),
        "reference_id": str (optional)
    }

    Returns:
        201: Movement recorded
        400: Invalid request
        404: Item not found
        409: Insufficient stock
        423: Inventory campaign in progress
    """
    data = request.get_json(silent=True) or {}
    movement = inventory_service.apply_movement(
        g.scope,
        data.get("stock_item_id"),
        data.get("type"),
        data.get("quantity"),
        reason=data.get("reason"),
        reference_id=data.get("reference_id"),
        adjustment=data.get("adjustment"),
    )
    return jsonify({"movement": movement.to_dict(), "message": "Movement recorded"}), 201


@stock_bp.post("/movements/bulk-in")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_STOCK_MANAGER)
def bulk_in():
    """
    Receive several items at once.

    Request body:
    {
        "items": [{"stock_item_id": str, "quantity": int}, ...],
        "reason": str (optional),
        "reference": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    movements = inventory_service.receive_bulk(
        g.scope,
        data.get("items"),
        reason=data.get("reason"),
        reference=data.get("reference"),
    )
    return jsonify([m.to_dict() for m in movements]), 201


@stock_bp.get("/movements/stats")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_STOCK_MANAGER)
def movement_stats():
    """Daily IN/OUT totals, last 30 days by default (?days=)."""
    days = coerce_int(request.args.get("days", "30"), "days", minimum=1, maximum=366)
    return jsonify(inventory_service.movement_stats(g.scope, days)), 200
