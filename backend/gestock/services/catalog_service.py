# Overview: Stock catalog maintenance (create, edit, soft-delete) behind the campaign lock.

from __future__ import annotations

import random
import re
import string
import time

from ..errors import DeleteLockedError, NotFoundError, UpdateLockedError, ValidationError
from ..extensions import db
from ..models import SaleItem, Service, StockItem
from ..models.inventory import MOVEMENT_IN, STOCK_STATUS_ACTIVE, STOCK_STATUS_DELETED
from ..models.security import SEVERITY_WARNING
from ..time_utils import utcnow
from ..validation import coerce_int, coerce_price_cents, coerce_text, require_fields
from . import audit_service, campaign_service, inventory_service
from .concurrency import run_atomic
from .tenant_service import TenantScope


SKU_ATTEMPTS = 6
INITIAL_STOCK_REASON = "Initial stock"
LEVEL_CORRECTION_REASON = "Manual level correction"


def _base36(value: int) -> str:
    digits = string.digits + string.ascii_uppercase
    out = ""
    while value:
        value, rem = divmod(value, 36)
        out = digits[rem] + out
    return out or "0"


def _random_part(length: int) -> str:
    return "".join(random.choices(string.ascii_uppercase + string.digits, k=length))


def generate_sku(scope: TenantScope, name: str | None) -> str:
    """
    SKU like "LAP-K3ZQ1X7B": 3-char name prefix, time part, random part.

    Retries a few candidates against the tenant's active items before
    falling back to a longer, prefix-less code.
    """
    prefix = re.sub(r"[^A-Za-z0-9]", "", name or "")[:3].upper() or "PRD"
    for _ in range(SKU_ATTEMPTS):
        time_part = _base36(int(time.time() * 1000))[-5:]
        candidate = f"{prefix}-{time_part}{_random_part(3)}"
        exists = (
            scope.query(StockItem)
            .filter(StockItem.sku == candidate, StockItem.status == STOCK_STATUS_ACTIVE)
            .first()
        )
        if exists is None:
            return candidate
    return f"SKU-{_base36(int(time.time() * 1000))}{_random_part(4)}"


def _is_linked_to_sales(stock_item_id: str) -> bool:
    return db.session.query(SaleItem.id).filter(SaleItem.stock_item_id == stock_item_id).first() is not None


def list_items(scope: TenantScope, *, include_deleted: bool = False) -> list[StockItem]:
    query = scope.query(StockItem)
    if not include_deleted:
        query = query.filter(StockItem.status == STOCK_STATUS_ACTIVE)
    return query.order_by(StockItem.name).all()


def get_item(scope: TenantScope, stock_item_id: str) -> StockItem:
    item = scope.get(StockItem, stock_item_id, label="Stock item")
    if not item.is_active:
        raise NotFoundError("Stock item not found", {"id": stock_item_id})
    return item


def create_item(scope: TenantScope, data: dict) -> StockItem:
    """
    Create a stock item with a generated SKU.

    An opening quantity is booked as an IN movement so the ledger explains
    the item's whole history.
    """
    require_fields(data, "name")
    name = coerce_text(data.get("name"), "name")
    quantity = coerce_int(data.get("quantity", 0), "quantity", minimum=0)
    unit_price_cents = coerce_price_cents(data.get("unit_price_cents", 0), "unit_price_cents")
    min_threshold = coerce_int(data.get("min_threshold", 5), "min_threshold", minimum=0)
    category = coerce_text(data.get("category"), "category", max_length=100, required=False)
    location = coerce_text(data.get("location"), "location", max_length=100, required=False)

    def _op():
        campaign_service.assert_no_active_campaign(scope)

        item = StockItem(
            tenant_id=scope.tenant_id,
            sku=generate_sku(scope, name),
            name=name,
            category=category,
            location=location,
            current_level=0,
            min_threshold=min_threshold,
            unit_price_cents=unit_price_cents,
            status=STOCK_STATUS_ACTIVE,
        )
        db.session.add(item)
        db.session.flush()

        if quantity > 0:
            inventory_service.post_movement(
                scope, item, MOVEMENT_IN, quantity, reason=INITIAL_STOCK_REASON, reference_id=item.sku,
            )
        return item

    return run_atomic(_op)


def update_item(scope: TenantScope, stock_item_id: str, data: dict) -> StockItem:
    """
    Edit catalog fields of an item that no sale references yet.

    A new current_level is booked through the ledger as an ADJUSTMENT.

    Raises:
        UpdateLockedError: the item appears on at least one sale line
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    changes = {}
    if "name" in data:
        changes["name"] = coerce_text(data["name"], "name")
    if "category" in data:
        changes["category"] = coerce_text(data["category"], "category", max_length=100, required=False)
    if "location" in data:
        changes["location"] = coerce_text(data["location"], "location", max_length=100, required=False)
    if "min_threshold" in data:
        changes["min_threshold"] = coerce_int(data["min_threshold"], "min_threshold", minimum=0)
    if "unit_price_cents" in data:
        changes["unit_price_cents"] = coerce_price_cents(data["unit_price_cents"], "unit_price_cents")
    new_level = None
    if "current_level" in data:
        new_level = coerce_int(data["current_level"], "current_level", minimum=0)

    def _op():
        campaign_service.assert_no_active_campaign(scope)

        item = inventory_service.load_stock_item(scope, stock_item_id)
        if _is_linked_to_sales(item.id):
            raise UpdateLockedError(
                "This item is referenced by one or more sales and can no longer be edited",
                {"id": stock_item_id},
            )

        for field, value in changes.items():
            setattr(item, field, value)

        if new_level is not None:
            inventory_service.set_level(
                scope, item, new_level, reason=LEVEL_CORRECTION_REASON, reference_id=item.sku,
            )
        return item

    return run_atomic(_op)


def delete_item(scope: TenantScope, stock_item_id: str) -> StockItem:
    """
    Soft-delete an item that no sale references.

    Raises:
        DeleteLockedError: the item appears on at least one sale line
    """
    def _op():
        campaign_service.assert_no_active_campaign(scope)

        item = inventory_service.load_stock_item(scope, stock_item_id)
        if _is_linked_to_sales(item.id):
            raise DeleteLockedError(
                "This item appears in sales transactions and cannot be deleted",
                {"id": stock_item_id},
            )

        item.status = STOCK_STATUS_DELETED
        item.deleted_at = utcnow()
        return item

    item = run_atomic(_op)
    audit_service.emit_audit(
        scope,
        "STOCK_ITEM_DELETED",
        resource=f"stock_item:{item.sku}",
        severity=SEVERITY_WARNING,
        details={"id": item.id, "name": item.name},
    )
    return item


def create_service(scope: TenantScope, data: dict) -> Service:
    require_fields(data, "name")
    name = coerce_text(data.get("name"), "name")
    description = coerce_text(data.get("description"), "description", max_length=2000, required=False)
    price_cents = coerce_price_cents(data.get("price_cents", 0), "price_cents")

    def _op():
        service = Service(
            tenant_id=scope.tenant_id,
            name=name,
            description=description,
            price_cents=price_cents,
            status=STOCK_STATUS_ACTIVE,
        )
        db.session.add(service)
        return service

    return run_atomic(_op)


def list_services(scope: TenantScope) -> list[Service]:
    return (
        scope.query(Service)
        .filter(Service.status == STOCK_STATUS_ACTIVE)
        .order_by(Service.name)
        .all()
    )
