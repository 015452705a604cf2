from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .tenancy import new_id


CAMPAIGN_STATUS_DRAFT = "DRAFT"
CAMPAIGN_STATUS_VALIDATED = "VALIDATED"
CAMPAIGN_STATUS_SUSPENDED = "SUSPENDED"
CAMPAIGN_STATUS_CANCELLED = "CANCELLED"


class InventoryCampaign(db.Model):
    """
    Physical inventory count.

    LIFECYCLE:
    1. DRAFT: Counting in progress. Locks every stock mutation for the tenant.
    2. SUSPENDED: Counting paused, lock released. Can be resumed or cancelled.
    3. VALIDATED: Closed; counted quantities optionally synced to stock. Terminal.
    4. CANCELLED: Abandoned without touching stock. Terminal.

    At most one DRAFT campaign per tenant (partial unique index below).
    """
    __tablename__ = "inventory_campaigns"
    __table_args__ = (
        db.Index(
            "uq_inventory_campaigns_one_draft",
            "tenant_id",
            unique=True,
            sqlite_where=db.text("status = 'DRAFT'"),
            postgresql_where=db.text("status = 'DRAFT'"),
        ),
        db.Index("ix_inventory_campaigns_tenant_created", "tenant_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=CAMPAIGN_STATUS_DRAFT, index=True)

    created_by = db.Column(db.String(255), nullable=True)
    validated_by = db.Column(db.String(255), nullable=True)
    validated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    stock_synced = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "InventoryCampaignItem",
        backref="campaign",
        lazy=True,
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "status": self.status,
            "created_by": self.created_by,
            "validated_by": self.validated_by,
            "validated_at": to_utc_z(self.validated_at),
            "stock_synced": self.stock_synced,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class InventoryCampaignItem(db.Model):
    __tablename__ = "inventory_campaign_items"
    __table_args__ = (
        db.UniqueConstraint("campaign_id", "stock_item_id", name="uq_campaign_items_campaign_item"),
        db.CheckConstraint("counted_qty >= 0", name="ck_campaign_items_counted_non_negative"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    campaign_id = db.Column(db.String(36), db.ForeignKey("inventory_campaigns.id"), nullable=False, index=True)
    stock_item_id = db.Column(db.String(36), db.ForeignKey("stock_items.id"), nullable=False, index=True)

    # Snapshot of current_level when the campaign was opened
    system_qty = db.Column(db.Integer, nullable=False)
    counted_qty = db.Column(db.Integer, nullable=False)
    counted_by = db.Column(db.String(255), nullable=True)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    stock_item = db.relationship("StockItem")

    @property
    def variance(self) -> int:
        return self.counted_qty - self.system_qty

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "campaign_id": self.campaign_id,
            "stock_item_id": self.stock_item_id,
            "sku": self.stock_item.sku if self.stock_item else None,
            "name": self.stock_item.name if self.stock_item else None,
            "system_qty": self.system_qty,
            "counted_qty": self.counted_qty,
            "variance": self.variance,
            "counted_by": self.counted_by,
        }
