# backend/gestock/services/inventory_service.py
"""
Stock ledger: the only code that writes StockItem.current_level.

Every level change writes exactly one immutable ProductMovement carrying
the level before and after, in the same transaction as the level update.

WRITE PROTOCOL (conditional atomic update):
1. The stock row is read under SELECT ... FOR UPDATE
2. The new level is computed and checked (never below zero, never clamped)
3. UPDATE ... WHERE current_level = <level read in step 1>
4. Zero rows updated means someone else moved the level first; the
   transaction is retried from scratch by run_with_retry

MOVEMENT TYPES:
- IN: new = previous + quantity
- OUT: new = previous - quantity (InsufficientStock if previous < quantity)
- ADJUSTMENT: new = previous +/- quantity, direction given explicitly
  (DECREASE by default, matching manual write-offs)
"""
from __future__ import annotations

from collections import OrderedDict
from datetime import timedelta

from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import ProductMovement, StockItem
from ..models.inventory import MOVEMENT_ADJUSTMENT, MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_TYPES
from ..time_utils import utcnow
from ..validation import coerce_choice, coerce_positive_int, coerce_text
from . import campaign_service, notification_service
from .concurrency import run_atomic
from .tenant_service import TenantScope


ADJUST_INCREASE = "INCREASE"
ADJUST_DECREASE = "DECREASE"
ADJUST_DIRECTIONS = (ADJUST_INCREASE, ADJUST_DECREASE)

DEFAULT_MOVEMENT_REASON = "Manual adjustment"
DEFAULT_MOVEMENT_REFERENCE = "MANUAL"
DEFAULT_BULK_REASON = "Replenishment"
DEFAULT_BULK_REFERENCE = "BATCH_IN"

MOVEMENT_LIST_LIMIT = 500


def load_stock_item(scope: TenantScope, stock_item_id: str) -> StockItem:
    """Lock and return an active stock item of this tenant."""
    item = scope.get(StockItem, stock_item_id, lock=True, label="Stock item")
    if not item.is_active:
        raise NotFoundError("Stock item not found", {"id": stock_item_id})
    return item


def _write_level(
    scope: TenantScope,
    item: StockItem,
    *,
    movement_type: str,
    quantity: int,
    new_level: int,
    reason: str,
    reference_id: str | None,
) -> ProductMovement:
    previous_level = item.current_level

    stmt = (
        update(StockItem)
        .where(
            StockItem.id == item.id,
            StockItem.tenant_id == scope.tenant_id,
            StockItem.current_level == previous_level,
        )
        .values(current_level=new_level)
        .execution_options(synchronize_session="evaluate")
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise StaleDataError(f"Stock level of {item.id} changed concurrently")

    movement = ProductMovement(
        tenant_id=scope.tenant_id,
        stock_item_id=item.id,
        type=movement_type,
        quantity=quantity,
        previous_level=previous_level,
        new_level=new_level,
        reason=reason,
        reference_id=reference_id,
        actor_name=scope.actor_name,
    )
    db.session.add(movement)
    return movement


def post_movement(
    scope: TenantScope,
    item: StockItem,
    movement_type: str,
    quantity: int,
    *,
    reason: str,
    reference_id: str | None = None,
    adjustment: str = ADJUST_DECREASE,
) -> ProductMovement:
    """
    Apply one movement to an already locked item, inside the caller's transaction.

    Callers own the transaction and the campaign gate.
    """
    if quantity <= 0:
        raise ValidationError("quantity must be a positive integer", {"quantity": quantity})

    previous_level = item.current_level
    if movement_type == MOVEMENT_IN:
        new_level = previous_level + quantity
    elif movement_type == MOVEMENT_OUT:
        new_level = previous_level - quantity
    elif movement_type == MOVEMENT_ADJUSTMENT:
        if adjustment == ADJUST_INCREASE:
            new_level = previous_level + quantity
        else:
            new_level = previous_level - quantity
    else:
        raise ValidationError(f"Invalid movement type: {movement_type}")

    if new_level < 0:
        raise InsufficientStockError(item.name, previous_level, quantity)

    return _write_level(
        scope,
        item,
        movement_type=movement_type,
        quantity=quantity,
        new_level=new_level,
        reason=reason,
        reference_id=reference_id,
    )


def set_level(
    scope: TenantScope,
    item: StockItem,
    new_level: int,
    *,
    reason: str,
    reference_id: str | None = None,
) -> ProductMovement | None:
    """
    Force an explicit level (count reconciliation, admin correction).

    Records an ADJUSTMENT of |new - previous|. Returns None when the level
    is already right. Does not check the campaign gate: campaign validation
    calls it while its own campaign is still DRAFT.
    """
    if new_level < 0:
        raise ValidationError("Stock level cannot be negative", {"level": new_level})
    delta = new_level - item.current_level
    if delta == 0:
        return None
    return _write_level(
        scope,
        item,
        movement_type=MOVEMENT_ADJUSTMENT,
        quantity=abs(delta),
        new_level=new_level,
        reason=reason,
        reference_id=reference_id,
    )


def apply_movement(
    scope: TenantScope,
    stock_item_id: str,
    movement_type,
    quantity,
    *,
    reason: str | None = None,
    reference_id: str | None = None,
    adjustment: str | None = None,
) -> ProductMovement:
    """
    Apply an IN / OUT / ADJUSTMENT movement as one transaction.

    Raises:
        ValidationError: bad type, direction or quantity
        NotFoundError: item missing, deleted, or another tenant's
        InventoryLockedError: a DRAFT campaign is open
        InsufficientStockError: decrement larger than the current level
    """
    movement_type = coerce_choice(movement_type, "type", MOVEMENT_TYPES)
    quantity = coerce_positive_int(quantity, "quantity")
    adjustment = coerce_choice(adjustment or ADJUST_DECREASE, "adjustment", ADJUST_DIRECTIONS)
    reason = coerce_text(reason, "reason", required=False) or DEFAULT_MOVEMENT_REASON
    reference_id = coerce_text(reference_id, "reference_id", max_length=100, required=False) or DEFAULT_MOVEMENT_REFERENCE

    def _op():
        campaign_service.assert_no_active_campaign(scope)
        item = load_stock_item(scope, stock_item_id)
        return post_movement(
            scope,
            item,
            movement_type,
            quantity,
            reason=reason,
            reference_id=reference_id,
            adjustment=adjustment,
        )

    movement = run_atomic(_op)
    if movement.new_level < movement.previous_level:
        notification_service.emit_low_stock_alerts([movement.stock_item])
    return movement


def receive_bulk(
    scope: TenantScope,
    lines,
    *,
    reason: str | None = None,
    reference: str | None = None,
) -> list[ProductMovement]:
    """
    Receive several items in one transaction (one IN movement per line).

    Any failing line rolls back the whole batch.
    """
    if not isinstance(lines, list) or not lines:
        raise ValidationError("items must be a non-empty list")

    parsed = []
    for index, line in enumerate(lines):
        if not isinstance(line, dict) or not line.get("stock_item_id"):
            raise ValidationError(f"items[{index}].stock_item_id is required", {"index": index})
        parsed.append((line["stock_item_id"], coerce_positive_int(line.get("quantity"), f"items[{index}].quantity")))

    reason = coerce_text(reason, "reason", required=False) or DEFAULT_BULK_REASON
    reference = coerce_text(reference, "reference", max_length=100, required=False) or DEFAULT_BULK_REFERENCE

    def _op():
        campaign_service.assert_no_active_campaign(scope)
        movements = []
        for stock_item_id, quantity in parsed:
            item = load_stock_item(scope, stock_item_id)
            movements.append(post_movement(
                scope, item, MOVEMENT_IN, quantity, reason=reason, reference_id=reference,
            ))
        return movements

    return run_atomic(_op)


def list_movements(scope: TenantScope, stock_item_id: str | None = None, limit: int = MOVEMENT_LIST_LIMIT) -> list[ProductMovement]:
    query = scope.query(ProductMovement)
    if stock_item_id:
        query = query.filter(ProductMovement.stock_item_id == stock_item_id)
    return (
        query.order_by(ProductMovement.occurred_at.desc(), ProductMovement.id)
        .limit(limit)
        .all()
    )


def movement_stats(scope: TenantScope, days: int = 30) -> list[dict]:
    """
    Daily IN/OUT totals over the last `days` days, oldest first.

    Adjustments are excluded; they are corrections, not flow.
    """
    since = utcnow() - timedelta(days=days)
    rows = (
        scope.query(ProductMovement)
        .filter(
            ProductMovement.occurred_at >= since,
            ProductMovement.type.in_([MOVEMENT_IN, MOVEMENT_OUT]),
        )
        .order_by(ProductMovement.occurred_at)
        .all()
    )

    totals: OrderedDict[str, dict] = OrderedDict()
    for movement in rows:
        day = movement.occurred_at.date().isoformat()
        bucket = totals.setdefault(day, {"day": day, "total_in": 0, "total_out": 0})
        if movement.type == MOVEMENT_IN:
            bucket["total_in"] += movement.quantity
        else:
            bucket["total_out"] += movement.quantity
    return list(totals.values())
