# backend/gestock/routes/sales.py
"""
Sales API routes: creation, edits, payments, delivery, cancellation.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import (
    ROLE_ACCOUNTANT,
    ROLE_ADMIN,
    ROLE_SALES,
    ROLE_STOCK_MANAGER,
    require_role,
    require_tenant,
)
from ..services import payment_service, sales_service

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_SALES, ROLE_ACCOUNTANT, ROLE_STOCK_MANAGER)
def list_sales():
    """List sales, newest first. Optional ?status= filter."""
    sales = sales_service.list_sales(g.scope, status=request.args.get("status"))
    return jsonify([s.to_dict() for s in sales]), 200


@sales_bp.post("")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_SALES, ROLE_ACCOUNTANT)
def create_sale():
    """
    Create a sale and its invoice.

    Request body:
    {
        "customer_id": str (optional, walk-in if omitted),
        "items": [
            {
                "type": "PRODUCT" | "SERVICE",
                "product_id": str,
                "quantity": int,
                "unit_price_cents": int (optional, catalog price),
                "name": str (optional)
            }
        ],
        "amount_paid_cents": int (optional deposit),
        "payment_method": str (optional, default CASH)
    }

    Returns:
        201: Sale created
        400: Invalid request
        404: Unknown customer or catalog item
        423: Inventory campaign in progress
    """
    data = request.get_json(silent=True) or {}
    sale = sales_service.create_sale(
        g.scope,
        data.get("customer_id"),
        data.get("items"),
        initial_payment_cents=data.get("amount_paid_cents"),
        payment_method=data.get("payment_method"),
    )
    return jsonify({"sale": sale.to_dict(), "invoice": sale.invoice.to_dict()}), 201


@sales_bp.get("/<sale_id>")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_SALES, ROLE_ACCOUNTANT, ROLE_STOCK_MANAGER)
def get_sale(sale_id: str):
    sale = sales_service.get_sale(g.scope, sale_id)
    data = sale.to_dict()
    data["invoice"] = sale.invoice.to_dict() if sale.invoice else None
    return jsonify(data), 200


@sales_bp.put("/<sale_id>")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_SALES, ROLE_ACCOUNTANT)
def update_sale(sale_id: str):
    """
    Replace customer and lines (same body as creation, without deposit).

    Returns:
        200: Sale updated
        403: Payments or deliveries recorded (UpdateLocked)
    """
    data = request.get_json(silent=True) or {}
    sale = sales_service.update_sale(g.scope, sale_id, data.get("customer_id"), data.get("items"))
    return jsonify(sale.to_dict()), 200


@sales_bp.post("/<sale_id>/payments")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_SALES, ROLE_ACCOUNTANT)
def add_payment(sale_id: str):
    """
    Request body:
    {
        "amount_cents": int,
        "method": "CASH" | "ORANGE_MONEY" | "WAVE" | "MTN_MOMO" | "STRIPE" | "TRANSFER",
        "reference": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    payment = payment_service.add_payment(
        g.scope,
        sale_id,
        data.get("amount_cents"),
        data.get("method"),
        data.get("reference"),
    )
    return jsonify({"payment": payment.to_dict(), "sale": payment.sale.to_dict(include_items=False)}), 201


@sales_bp.post("/<sale_id>/delivery")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_STOCK_MANAGER, ROLE_SALES, ROLE_ACCOUNTANT)
def record_delivery(sale_id: str):
    """
    Request body:
    {
        "items": [{"item_id": str, "qty_to_deliver": int}, ...]
    }

    Returns:
        200: Delivered, stock decremented
        400: Over-delivery or service line
        409: Insufficient stock
        423: Inventory campaign in progress
    """
    data = request.get_json(silent=True) or {}
    sale = sales_service.record_delivery(g.scope, sale_id, data.get("items"))
    return jsonify({"message": "Delivery recorded", "sale": sale.to_dict()}), 200


@sales_bp.post("/<sale_id>/cancel")
@require_tenant
@require_role(ROLE_ADMIN)
def cancel_sale(sale_id: str):
    """
    Request body:
    {
        "reason": str (optional),
        "return_to_stock": {"<sale_item_id>": int, ...} (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    sale = sales_service.cancel_sale(
        g.scope,
        sale_id,
        reason=data.get("reason"),
        return_to_stock=data.get("return_to_stock"),
    )
    return jsonify({"message": "Sale cancelled", "sale": sale.to_dict()}), 200
