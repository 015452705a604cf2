from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .tenancy import new_id


SALE_STATUS_EN_COURS = "EN_COURS"  # open: awaiting full payment
SALE_STATUS_TERMINE = "TERMINE"  # fully paid
SALE_STATUS_ANNULE = "ANNULE"  # cancelled
SALE_STATUS_REMBOURSE = "REMBOURSE"  # refunded (reserved, no transition produces it)

INVOICE_STATUS_PENDING = "PENDING"
INVOICE_STATUS_PAID = "PAID"
INVOICE_STATUS_CANCELLED = "CANCELLED"

PAYMENT_METHODS = ("CASH", "ORANGE_MONEY", "WAVE", "MTN_MOMO", "STRIPE", "TRANSFER")
PAYMENT_STATUS_COMPLETED = "COMPLETED"


class Sale(db.Model):
    """
    Sale document with its paired invoice.

    LIFECYCLE:
    1. EN_COURS: Created; editable until the first payment or delivery
    2. TERMINE: amount_paid reached total_ttc
    3. ANNULE: Cancelled; delivered goods optionally restocked, payments reversed

    Amounts are integer cents. Stock is never touched at creation: goods
    leave the shelf through record_delivery.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_tenant_status", "tenant_id", "status"),
        db.Index("ix_sales_tenant_created", "tenant_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)
    customer_id = db.Column(db.String(36), db.ForeignKey("customers.id"), nullable=True, index=True)

    # Human-readable reference (e.g., "V-ACME-000012")
    reference = db.Column(db.String(64), nullable=False, unique=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_EN_COURS)

    total_ht_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_ttc_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_by = db.Column(db.String(255), nullable=True)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.String(255), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleItem.line_number",
    )
    invoice = db.relationship("Invoice", backref="sale", uselist=False)
    payments = db.relationship("Payment", backref="sale", lazy=True, order_by="Payment.payment_date")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def has_deliveries(self) -> bool:
        return any(item.quantity_delivered > 0 for item in self.items)

    def __repr__(self) -> str:
        return f"<Sale id={self.id} reference={self.reference!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "customer_id": self.customer_id,
            "reference": self.reference,
            "status": self.status,
            "total_ht_cents": self.total_ht_cents,
            "tax_cents": self.tax_cents,
            "total_ttc_cents": self.total_ttc_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "sale_date": to_utc_z(self.sale_date),
            "created_by": self.created_by,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "invoice_id": self.invoice.id if self.invoice else None,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class SaleItem(db.Model):
    """
    One sale line: either a stock product or a service, never both.

    line_type is the discriminator; the check constraints keep the reference
    columns consistent with it and bound quantity_delivered by quantity.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint(
            "(line_type = 'PRODUCT' AND stock_item_id IS NOT NULL AND service_id IS NULL)"
            " OR (line_type = 'SERVICE' AND service_id IS NOT NULL AND stock_item_id IS NULL)",
            name="ck_sale_items_line_reference",
        ),
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        db.CheckConstraint(
            "quantity_delivered >= 0 AND quantity_delivered <= quantity",
            name="ck_sale_items_delivered_bounds",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    sale_id = db.Column(db.String(36), db.ForeignKey("sales.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False, default=1)

    line_type = db.Column(db.String(16), nullable=False)  # PRODUCT or SERVICE
    stock_item_id = db.Column(db.String(36), db.ForeignKey("stock_items.id"), nullable=True, index=True)
    service_id = db.Column(db.String(36), db.ForeignKey("services.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    quantity_delivered = db.Column(db.Integer, nullable=False, default=0)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False)
    total_ttc_cents = db.Column(db.Integer, nullable=False)

    stock_item = db.relationship("StockItem")
    service = db.relationship("Service")

    @property
    def quantity_outstanding(self) -> int:
        return self.quantity - self.quantity_delivered

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "line_number": self.line_number,
            "line_type": self.line_type,
            "stock_item_id": self.stock_item_id,
            "service_id": self.service_id,
            "name": self.name,
            "quantity": self.quantity,
            "quantity_delivered": self.quantity_delivered,
            "unit_price_cents": self.unit_price_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "total_ttc_cents": self.total_ttc_cents,
        }


class Invoice(db.Model):
    """Invoice paired 1:1 with a sale. id is the human-readable invoice number."""
    __tablename__ = "invoices"

    id = db.Column(db.String(64), primary_key=True)  # e.g., "INV-ACME-000012"
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)
    sale_id = db.Column(db.String(36), db.ForeignKey("sales.id"), nullable=False, unique=True)
    customer_id = db.Column(db.String(36), db.ForeignKey("customers.id"), nullable=True, index=True)

    invoice_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    due_date = db.Column(db.DateTime(timezone=True), nullable=False)

    amount_cents = db.Column(db.Integer, nullable=False)  # HT
    tax_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=INVOICE_STATUS_PENDING, index=True)

    items = db.relationship(
        "InvoiceItem",
        backref="invoice",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sale_id": self.sale_id,
            "customer_id": self.customer_id,
            "invoice_date": to_utc_z(self.invoice_date),
            "due_date": to_utc_z(self.due_date),
            "amount_cents": self.amount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.amount_cents + self.tax_cents,
            "currency": self.currency,
            "status": self.status,
            "items": [item.to_dict() for item in self.items],
        }


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    invoice_id = db.Column(db.String(64), db.ForeignKey("invoices.id"), nullable=False, index=True)
    stock_item_id = db.Column(db.String(36), db.ForeignKey("stock_items.id"), nullable=True)

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_item_id": self.stock_item_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "tax_rate_bps": self.tax_rate_bps,
        }


class Payment(db.Model):
    """
    Money received against a sale (append-only).

    amount_cents is signed: a cancellation records one negative entry
    equal to everything paid so far.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_tenant_date", "tenant_id", "payment_date"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)
    sale_id = db.Column(db.String(36), db.ForeignKey("sales.id"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False)  # CASH, ORANGE_MONEY, WAVE, MTN_MOMO, STRIPE, TRANSFER
    reference = db.Column(db.String(100), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_COMPLETED)

    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    recorded_by = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sale_id": self.sale_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "reference": self.reference,
            "status": self.status,
            "payment_date": to_utc_z(self.payment_date),
            "recorded_by": self.recorded_by,
        }
