# backend/gestock/services/campaign_service.py
"""
Physical inventory campaigns and the stock lock they impose.

WHY: While shelves are being counted, any stock movement would make the
count meaningless. A DRAFT campaign therefore blocks every stock-mutating
operation of its tenant (assert_no_active_campaign), and on validation the
counted quantities are reconciled into ledger ADJUSTMENT movements.

LIFECYCLE:
1. DRAFT: Lines snapshot current levels; operators enter counted_qty
2. SUSPENDED: Lock released; may be resumed (back to DRAFT) or cancelled
3. VALIDATED: Closed, stock optionally synced to counts (terminal)
4. CANCELLED: Abandoned, stock untouched (terminal)

CONCURRENCY: stock mutations hold a shared lock on the tenant row while
they check the gate; campaign creation holds an exclusive one while it
snapshots levels. The partial unique index on DRAFT campaigns is the
backstop for the one-DRAFT-per-tenant rule.
"""
from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..errors import (
    CampaignConflictError,
    InvalidTransitionError,
    InventoryLockedError,
    NotFoundError,
)
from ..extensions import db
from ..models import InventoryCampaign, InventoryCampaignItem, StockItem
from ..models.campaigns import (
    CAMPAIGN_STATUS_CANCELLED,
    CAMPAIGN_STATUS_DRAFT,
    CAMPAIGN_STATUS_SUSPENDED,
    CAMPAIGN_STATUS_VALIDATED,
)
from ..models.inventory import STOCK_STATUS_ACTIVE
from ..models.security import SEVERITY_HIGH, SEVERITY_WARNING
from ..time_utils import utcnow
from ..validation import coerce_bool, coerce_int, coerce_text
from . import audit_service, inventory_service
from .concurrency import run_atomic
from .tenant_service import TenantScope

logger = logging.getLogger(__name__)


def find_active_campaign(scope: TenantScope) -> InventoryCampaign | None:
    return (
        scope.query(InventoryCampaign)
        .filter(InventoryCampaign.status == CAMPAIGN_STATUS_DRAFT)
        .first()
    )


def assert_no_active_campaign(scope: TenantScope) -> None:
    """
    Gate for every stock-mutating operation.

    Must be called inside the mutating transaction. Takes a shared lock on
    the tenant row so a campaign cannot be opened between this check and
    the mutation that follows it.

    Raises:
        InventoryLockedError: naming the DRAFT campaign that holds the lock
    """
    scope.get_tenant(lock=True)
    active = find_active_campaign(scope)
    if active is not None:
        raise InventoryLockedError(active.name)


def create_campaign(scope: TenantScope, name) -> InventoryCampaign:
    """
    Open a DRAFT campaign with one line per active stock item.

    Each line starts with counted_qty = system_qty = current level.

    Raises:
        CampaignConflictError: if the tenant already has a DRAFT campaign
    """
    name = coerce_text(name, "name")

    def _op():
        scope.get_tenant(exclusive=True)

        existing = find_active_campaign(scope)
        if existing is not None:
            raise CampaignConflictError(
                f"An inventory campaign is already in progress: {existing.name}",
                {"campaign": existing.name, "campaign_id": existing.id},
            )

        campaign = InventoryCampaign(
            tenant_id=scope.tenant_id,
            name=name,
            status=CAMPAIGN_STATUS_DRAFT,
            created_by=scope.actor_name,
        )
        db.session.add(campaign)
        try:
            db.session.flush()
        except IntegrityError:
            # Lost the race against a concurrent creation
            raise CampaignConflictError("An inventory campaign is already in progress")

        items = (
            scope.query(StockItem)
            .filter(StockItem.status == STOCK_STATUS_ACTIVE)
            .order_by(StockItem.name)
            .all()
        )
        for item in items:
            campaign.items.append(InventoryCampaignItem(
                stock_item_id=item.id,
                system_qty=item.current_level,
                counted_qty=item.current_level,
            ))
        return campaign

    campaign = run_atomic(_op)
    audit_service.emit_audit(
        scope,
        "CAMPAIGN_CREATED",
        resource=f"campaign:{campaign.id}",
        details={"name": campaign.name, "lines": len(campaign.items)},
    )
    return campaign


def get_campaign(scope: TenantScope, campaign_id: str, *, lock: bool = False) -> InventoryCampaign:
    return scope.get(InventoryCampaign, campaign_id, lock=lock, label="Campaign")


def list_campaigns(scope: TenantScope) -> list[InventoryCampaign]:
    return (
        scope.query(InventoryCampaign)
        .order_by(InventoryCampaign.created_at.desc(), InventoryCampaign.id)
        .all()
    )


def update_count(scope: TenantScope, campaign_id: str, item_id: str, counted_qty) -> InventoryCampaignItem:
    """
    Overwrite one line's counted quantity.

    Only DRAFT campaigns accept counts; suspended, validated and cancelled
    campaigns are read-only.
    """
    counted_qty = coerce_int(counted_qty, "counted_qty", minimum=0)

    def _op():
        campaign = get_campaign(scope, campaign_id, lock=True)
        if campaign.status != CAMPAIGN_STATUS_DRAFT:
            raise InvalidTransitionError(
                f"Cannot record counts on a {campaign.status} campaign",
                {"status": campaign.status},
            )

        line = (
            db.session.query(InventoryCampaignItem)
            .filter_by(id=item_id, campaign_id=campaign.id)
            .first()
        )
        if line is None:
            raise NotFoundError("Campaign line not found", {"id": item_id})

        line.counted_qty = counted_qty
        line.counted_by = scope.actor_name
        return line

    return run_atomic(_op)


def validate_campaign(scope: TenantScope, campaign_id: str, sync_stock: bool) -> InventoryCampaign:
    """
    Close a DRAFT campaign.

    With sync_stock, every line whose count differs from its snapshot sets
    the live level to the counted quantity, recording an ADJUSTMENT of
    |counted - current|. All of it commits together with the status change.
    """
    sync_stock = coerce_bool(sync_stock, "sync_stock")

    def _op():
        campaign = get_campaign(scope, campaign_id, lock=True)
        if campaign.status != CAMPAIGN_STATUS_DRAFT:
            if campaign.status == CAMPAIGN_STATUS_VALIDATED:
                message = "This campaign is already closed"
            else:
                message = f"Cannot validate a {campaign.status} campaign"
            raise InvalidTransitionError(message, {"status": campaign.status})

        adjustments = 0
        if sync_stock:
            for line in campaign.items:
                if line.counted_qty == line.system_qty:
                    continue
                item = scope.get(StockItem, line.stock_item_id, lock=True, label="Stock item")
                if not item.is_active:
                    # Deleted while the campaign was suspended; its ledger is closed
                    logger.info("Skipping reconciliation of deleted stock item %s", item.id)
                    continue
                delta = line.counted_qty - item.current_level
                movement = inventory_service.set_level(
                    scope,
                    item,
                    line.counted_qty,
                    reason=f"Inventory reconciliation: {campaign.name} ({delta:+d})",
                    reference_id=campaign.id[:8],
                )
                if movement is not None:
                    adjustments += 1

        campaign.status = CAMPAIGN_STATUS_VALIDATED
        campaign.stock_synced = sync_stock
        campaign.validated_at = utcnow()
        campaign.validated_by = scope.actor_name
        return campaign, adjustments

    campaign, adjustments = run_atomic(_op)
    audit_service.emit_audit(
        scope,
        "CAMPAIGN_VALIDATED",
        resource=f"campaign:{campaign.id}",
        severity=SEVERITY_HIGH,
        details={"sync_stock": sync_stock, "adjustments": adjustments},
    )
    return campaign


def _transition(scope: TenantScope, campaign_id: str, target: str, allowed_from: tuple, action: str) -> InventoryCampaign:
    def _op():
        campaign = get_campaign(scope, campaign_id, lock=True)
        if campaign.status not in allowed_from:
            raise InvalidTransitionError(
                f"Cannot move a {campaign.status} campaign to {target}",
                {"status": campaign.status, "target": target},
            )

        if target == CAMPAIGN_STATUS_DRAFT:
            scope.get_tenant(exclusive=True)
            other = find_active_campaign(scope)
            if other is not None:
                raise CampaignConflictError(
                    f"An inventory campaign is already in progress: {other.name}",
                    {"campaign": other.name, "campaign_id": other.id},
                )

        campaign.status = target
        return campaign

    campaign = run_atomic(_op)
    audit_service.emit_audit(
        scope,
        action,
        resource=f"campaign:{campaign.id}",
        severity=SEVERITY_WARNING,
    )
    return campaign


def suspend_campaign(scope: TenantScope, campaign_id: str) -> InventoryCampaign:
    return _transition(
        scope, campaign_id, CAMPAIGN_STATUS_SUSPENDED, (CAMPAIGN_STATUS_DRAFT,), "CAMPAIGN_SUSPENDED",
    )


def cancel_campaign(scope: TenantScope, campaign_id: str) -> InventoryCampaign:
    return _transition(
        scope,
        campaign_id,
        CAMPAIGN_STATUS_CANCELLED,
        (CAMPAIGN_STATUS_DRAFT, CAMPAIGN_STATUS_SUSPENDED),
        "CAMPAIGN_CANCELLED",
    )


def resume_campaign(scope: TenantScope, campaign_id: str) -> InventoryCampaign:
    return _transition(
        scope, campaign_id, CAMPAIGN_STATUS_DRAFT, (CAMPAIGN_STATUS_SUSPENDED,), "CAMPAIGN_RESUMED",
    )
