from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .tenancy import new_id


STOCK_STATUS_ACTIVE = "active"
STOCK_STATUS_DELETED = "deleted"

MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUSTMENT)


class StockItem(db.Model):
    """
    Tenant-scoped product with an authoritative on-hand level.

    current_level is only ever written by inventory_service (which records a
    ProductMovement for every change). Items are soft-deleted: status flips
    to 'deleted' so historical movements and sale lines keep their target.

    SKU: unique per tenant among active items (partial unique index), so a
    deleted item's SKU may be reused.
    """
    __tablename__ = "stock_items"
    __table_args__ = (
        db.CheckConstraint("current_level >= 0", name="ck_stock_items_level_non_negative"),
        db.CheckConstraint("min_threshold >= 0", name="ck_stock_items_threshold_non_negative"),
        db.Index(
            "uq_stock_items_tenant_sku_active",
            "tenant_id",
            "sku",
            unique=True,
            sqlite_where=db.text("status = 'active'"),
            postgresql_where=db.text("status = 'active'"),
        ),
        db.Index("ix_stock_items_tenant_name", "tenant_id", "name"),
        db.Index("ix_stock_items_tenant_status", "tenant_id", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)

    sku = db.Column(db.String(100), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(100), nullable=True)
    location = db.Column(db.String(100), nullable=True)

    current_level = db.Column(db.Integer, nullable=False, default=0)
    min_threshold = db.Column(db.Integer, nullable=False, default=5)

    # Authoritative storage in cents
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=STOCK_STATUS_ACTIVE)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("stock_items", lazy=True))

    @property
    def is_active(self) -> bool:
        return self.status == STOCK_STATUS_ACTIVE

    @property
    def is_low(self) -> bool:
        return self.current_level <= self.min_threshold

    def __repr__(self) -> str:
        return f"<StockItem id={self.id} sku={self.sku!r} level={self.current_level}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "location": self.location,
            "current_level": self.current_level,
            "min_threshold": self.min_threshold,
            "unit_price_cents": self.unit_price_cents,
            "status": self.status,
            "deleted_at": to_utc_z(self.deleted_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Service(db.Model):
    """Non-stock sellable item (labour, delivery fee). Never touches stock."""
    __tablename__ = "services"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=STOCK_STATUS_ACTIVE)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def is_active(self) -> bool:
        return self.status == STOCK_STATUS_ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "status": self.status,
        }


class ProductMovement(db.Model):
    """
    Immutable record of one stock level change.

    quantity is always positive; the direction is given by type (and, for
    ADJUSTMENT, by the sign of new_level - previous_level).

    IMMUTABLE: Never update or delete. Enforced by the mapper listeners below.
    """
    __tablename__ = "product_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_product_movements_quantity_positive"),
        db.CheckConstraint("new_level >= 0", name="ck_product_movements_new_level_non_negative"),
        db.Index("ix_product_movements_tenant_occurred", "tenant_id", "occurred_at"),
        db.Index("ix_product_movements_item_occurred", "stock_item_id", "occurred_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)
    stock_item_id = db.Column(db.String(36), db.ForeignKey("stock_items.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)  # IN, OUT, ADJUSTMENT
    quantity = db.Column(db.Integer, nullable=False)
    previous_level = db.Column(db.Integer, nullable=False)
    new_level = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=False)
    reference_id = db.Column(db.String(100), nullable=True, index=True)  # Sale reference, campaign id, ...
    actor_name = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    stock_item = db.relationship("StockItem", backref=db.backref("movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "stock_item_id": self.stock_item_id,
            "type": self.type,
            "quantity": self.quantity,
            "previous_level": self.previous_level,
            "new_level": self.new_level,
            "reason": self.reason,
            "reference_id": self.reference_id,
            "actor_name": self.actor_name,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class ImmutableRecordError(RuntimeError):
    """Raised when code attempts to modify an append-only record."""


@event.listens_for(ProductMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise ImmutableRecordError(f"ProductMovement {target.id} is immutable")


@event.listens_for(ProductMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise ImmutableRecordError(f"ProductMovement {target.id} cannot be deleted")
