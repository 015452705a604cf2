# backend/gestock/services/sales_service.py
"""
Sale lifecycle: creation with invoice, edits, delivery, cancellation.

WHY: A sale, its invoice and (on delivery/cancellation) the stock ledger
must always agree. Each operation below is one transaction; a failure on
any line rolls back every line.

LIFECYCLE:
1. EN_COURS: created; editable while nothing is paid or delivered
2. TERMINE: fully paid (see payment_service)
3. ANNULE: cancelled; delivered goods optionally restocked, money reversed

TOTALS (integer cents):
- total_ht  = sum(unit_price * quantity)
- tax       = round_half_up(total_ht * rate)  (rate is DEFAULT_TAX_RATE_BPS, 18%)
- total_ttc = total_ht + tax

Creating or editing a sale never touches stock: goods leave the shelf only
through record_delivery.
"""
from __future__ import annotations

from flask import current_app

from ..errors import InvalidTransitionError, NotFoundError, UpdateLockedError, ValidationError
from ..extensions import db
from ..models import Customer, Invoice, InvoiceItem, Payment, Sale, SaleItem, Service, StockItem
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT
from ..models.sales import (
    INVOICE_STATUS_CANCELLED,
    INVOICE_STATUS_PENDING,
    PAYMENT_METHODS,
    SALE_STATUS_ANNULE,
    SALE_STATUS_EN_COURS,
    SALE_STATUS_TERMINE,
)
from ..models.security import SEVERITY_HIGH
from ..time_utils import days_from_now, utcnow
from ..validation import (
    LINE_TYPE_PRODUCT,
    LINE_TYPE_SERVICE,
    MAX_PRICE_CENTS,
    SaleLineInput,
    coerce_choice,
    coerce_int,
    coerce_text,
    parse_delivery_lines,
    parse_return_map,
    parse_sale_lines,
)
from . import audit_service, campaign_service, inventory_service, notification_service, payment_service
from .concurrency import run_atomic
from .document_service import DOCUMENT_TYPE_INVOICE, DOCUMENT_TYPE_SALE, next_document_number
from .tenant_service import TenantScope


INITIAL_PAYMENT_REFERENCE = "INITIAL_DEPOSIT"
OPEN_SALE_STATUSES = (SALE_STATUS_EN_COURS, SALE_STATUS_TERMINE)


def tax_for(amount_ht_cents: int, rate_bps: int) -> int:
    """Tax on an HT amount, rounded half-up to the cent."""
    return (amount_ht_cents * rate_bps + 5_000) // 10_000


def compute_totals(lines: list[SaleLineInput], rate_bps: int) -> tuple[int, int, int]:
    """Return (total_ht, tax, total_ttc) in cents for priced lines."""
    total_ht = sum(line.unit_price_cents * line.quantity for line in lines)
    tax = tax_for(total_ht, rate_bps)
    return total_ht, tax, total_ht + tax


def _tax_rate_bps() -> int:
    return current_app.config.get("DEFAULT_TAX_RATE_BPS", 1800)


def _coerce_lines(items) -> list[SaleLineInput]:
    if isinstance(items, list) and items and all(isinstance(i, SaleLineInput) for i in items):
        return items
    return parse_sale_lines(items)


def _resolve_customer(scope: TenantScope, customer_id) -> Customer | None:
    if customer_id in (None, ""):
        return None
    return scope.get(Customer, customer_id, label="Customer")


def _price_lines(scope: TenantScope, lines: list[SaleLineInput]) -> list[SaleLineInput]:
    """
    Resolve every line against the tenant's catalog.

    Lines without an explicit price or name take the catalog's.
    """
    priced = []
    for line in lines:
        if line.is_product:
            target = scope.get(StockItem, line.ref_id, label="Stock item")
            if not target.is_active:
                raise NotFoundError("Stock item not found", {"id": line.ref_id})
            default_price = target.unit_price_cents
        else:
            target = scope.get(Service, line.ref_id, label="Service")
            if not target.is_active:
                raise NotFoundError("Service not found", {"id": line.ref_id})
            default_price = target.price_cents

        priced.append(SaleLineInput(
            kind=line.kind,
            ref_id=target.id,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents if line.unit_price_cents is not None else default_price,
            name=line.name or target.name,
        ))
    return priced


def _build_lines(sale: Sale, invoice: Invoice, lines: list[SaleLineInput], rate_bps: int) -> None:
    for number, line in enumerate(lines, start=1):
        line_ht = line.unit_price_cents * line.quantity
        sale.items.append(SaleItem(
            line_number=number,
            line_type=line.kind,
            stock_item_id=line.ref_id if line.kind == LINE_TYPE_PRODUCT else None,
            service_id=line.ref_id if line.kind == LINE_TYPE_SERVICE else None,
            name=line.name,
            quantity=line.quantity,
            quantity_delivered=0,
            unit_price_cents=line.unit_price_cents,
            tax_rate_bps=rate_bps,
            total_ttc_cents=line_ht + tax_for(line_ht, rate_bps),
        ))
        invoice.items.append(InvoiceItem(
            stock_item_id=line.ref_id if line.kind == LINE_TYPE_PRODUCT else None,
            name=line.name,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            tax_rate_bps=rate_bps,
        ))


def _require_open(sale: Sale, action: str) -> None:
    if sale.status not in OPEN_SALE_STATUSES:
        raise InvalidTransitionError(
            f"Cannot {action} a {sale.status} sale",
            {"status": sale.status},
        )


def create_sale(
    scope: TenantScope,
    customer_id,
    items,
    *,
    initial_payment_cents=0,
    payment_method=None,
) -> Sale:
    """
    Create a sale (EN_COURS) with its invoice (PENDING, due in 30 days).

    An optional initial deposit is recorded as a payment in the same
    transaction and drives the status exactly like add_payment.

    Raises:
        ValidationError: malformed lines or deposit
        NotFoundError: unknown customer / stock item / service
        InventoryLockedError: a DRAFT campaign is open
    """
    lines = _coerce_lines(items)
    deposit = coerce_int(initial_payment_cents or 0, "amount_paid_cents", minimum=0, maximum=MAX_PRICE_CENTS)
    method = coerce_choice(payment_method or "CASH", "payment_method", PAYMENT_METHODS)
    rate_bps = _tax_rate_bps()

    def _op():
        campaign_service.assert_no_active_campaign(scope)

        customer = _resolve_customer(scope, customer_id)
        priced = _price_lines(scope, lines)
        total_ht, tax, total_ttc = compute_totals(priced, rate_bps)

        sale = Sale(
            tenant_id=scope.tenant_id,
            customer_id=customer.id if customer else None,
            reference=next_document_number(scope, DOCUMENT_TYPE_SALE),
            status=SALE_STATUS_EN_COURS,
            total_ht_cents=total_ht,
            tax_cents=tax,
            total_ttc_cents=total_ttc,
            amount_paid_cents=0,
            created_by=scope.actor_name,
        )
        invoice = Invoice(
            id=next_document_number(scope, DOCUMENT_TYPE_INVOICE),
            tenant_id=scope.tenant_id,
            customer_id=sale.customer_id,
            due_date=days_from_now(current_app.config.get("INVOICE_DUE_DAYS", 30)),
            amount_cents=total_ht,
            tax_cents=tax,
            currency=current_app.config.get("CURRENCY", "F CFA"),
            status=INVOICE_STATUS_PENDING,
        )
        sale.invoice = invoice
        _build_lines(sale, invoice, priced, rate_bps)
        db.session.add(sale)

        if deposit > 0:
            payment_service.apply_payment(scope, sale, deposit, method, INITIAL_PAYMENT_REFERENCE)
        return sale

    sale = run_atomic(_op)
    audit_service.emit_audit(
        scope,
        "SALE_CREATED",
        resource=f"sale:{sale.reference}",
        details={"total_ttc_cents": sale.total_ttc_cents, "lines": len(sale.items)},
    )
    return sale


def update_sale(scope: TenantScope, sale_id: str, customer_id, items) -> Sale:
    """
    Replace a sale's customer and lines, recomputing totals and the invoice.

    Raises:
        UpdateLockedError: a payment was recorded or goods were delivered
        InvalidTransitionError: sale cancelled or refunded
    """
    lines = _coerce_lines(items)
    rate_bps = _tax_rate_bps()

    def _op():
        campaign_service.assert_no_active_campaign(scope)

        sale = scope.get(Sale, sale_id, lock=True, label="Sale")
        _require_open(sale, "edit")
        if sale.amount_paid_cents > 0:
            raise UpdateLockedError(
                "Edit refused: payments are already recorded on this sale",
                {"amount_paid_cents": sale.amount_paid_cents},
            )
        if sale.has_deliveries:
            raise UpdateLockedError("Edit refused: some items have already been delivered")

        customer = _resolve_customer(scope, customer_id)
        priced = _price_lines(scope, lines)
        total_ht, tax, total_ttc = compute_totals(priced, rate_bps)

        invoice = sale.invoice
        sale.items.clear()
        invoice.items.clear()
        db.session.flush()
        _build_lines(sale, invoice, priced, rate_bps)

        sale.customer_id = customer.id if customer else None
        sale.total_ht_cents = total_ht
        sale.tax_cents = tax
        sale.total_ttc_cents = total_ttc

        invoice.customer_id = sale.customer_id
        invoice.amount_cents = total_ht
        invoice.tax_cents = tax
        return sale

    sale = run_atomic(_op)
    audit_service.emit_audit(
        scope,
        "SALE_UPDATED",
        resource=f"sale:{sale.reference}",
        details={"total_ttc_cents": sale.total_ttc_cents, "lines": len(sale.items)},
    )
    return sale


def record_delivery(scope: TenantScope, sale_id: str, lines) -> Sale:
    """
    Deliver product lines: decrement stock and bump quantity_delivered.

    All lines or none. Service lines have nothing to deliver and are
    rejected, as is delivering more than was sold.

    Raises:
        ValidationError: over-delivery, service line
        NotFoundError: sale item not on this sale
        InsufficientStockError: stock below the quantity to deliver
        InventoryLockedError: a DRAFT campaign is open
    """
    deliveries = parse_delivery_lines(lines)

    def _op():
        campaign_service.assert_no_active_campaign(scope)

        sale = scope.get(Sale, sale_id, lock=True, label="Sale")
        _require_open(sale, "deliver")
        items_by_id = {item.id: item for item in sale.items}

        touched = {}
        for delivery in deliveries:
            sale_item = items_by_id.get(delivery.item_id)
            if sale_item is None:
                raise NotFoundError("Sale item not found on this sale", {"item_id": delivery.item_id})
            if sale_item.line_type != LINE_TYPE_PRODUCT:
                raise ValidationError(
                    f"'{sale_item.name}' is a service and cannot be delivered",
                    {"item_id": sale_item.id},
                )
            if sale_item.quantity_delivered + delivery.quantity > sale_item.quantity:
                raise ValidationError(
                    f"Cannot deliver {delivery.quantity} of '{sale_item.name}': "
                    f"{sale_item.quantity_outstanding} left to deliver",
                    {
                        "item_id": sale_item.id,
                        "quantity": sale_item.quantity,
                        "delivered": sale_item.quantity_delivered,
                        "requested": delivery.quantity,
                    },
                )

            stock_item = scope.get(StockItem, sale_item.stock_item_id, lock=True, label="Stock item")
            inventory_service.post_movement(
                scope,
                stock_item,
                MOVEMENT_OUT,
                delivery.quantity,
                reason=f"Sale delivery {sale.reference}",
                reference_id=sale.reference,
            )
            sale_item.quantity_delivered = sale_item.quantity_delivered + delivery.quantity
            touched[stock_item.id] = stock_item
        return sale, list(touched.values())

    sale, stock_items = run_atomic(_op)
    notification_service.emit_low_stock_alerts(stock_items)
    audit_service.emit_audit(
        scope,
        "SALE_DELIVERED",
        resource=f"sale:{sale.reference}",
        details={"lines": [{"item_id": d.item_id, "quantity": d.quantity} for d in deliveries]},
    )
    return sale


def cancel_sale(scope: TenantScope, sale_id: str, reason=None, return_to_stock=None) -> Sale:
    """
    Cancel a sale.

    For each product line, min(delivered, requested) units go back on the
    shelf as IN movements. Everything paid so far is reversed by a single
    negative payment, and the invoice is cancelled.
    """
    reason = coerce_text(reason, "reason", max_length=2000, required=False)
    returns = parse_return_map(return_to_stock)

    def _op():
        campaign_service.assert_no_active_campaign(scope)

        sale = scope.get(Sale, sale_id, lock=True, label="Sale")
        _require_open(sale, "cancel")

        restocked = {}
        for sale_item in sale.items:
            if sale_item.line_type != LINE_TYPE_PRODUCT:
                continue
            qty_to_return = min(sale_item.quantity_delivered, returns.get(sale_item.id, 0))
            if qty_to_return <= 0:
                continue
            stock_item = scope.get(StockItem, sale_item.stock_item_id, lock=True, label="Stock item")
            inventory_service.post_movement(
                scope,
                stock_item,
                MOVEMENT_IN,
                qty_to_return,
                reason=f"Sale delivery cancelled {sale.reference}",
                reference_id=sale.reference,
            )
            restocked[sale_item.id] = qty_to_return

        refunded = sale.amount_paid_cents
        if refunded > 0:
            db.session.add(Payment(
                tenant_id=scope.tenant_id,
                sale=sale,
                amount_cents=-refunded,
                method="CASH",
                reference=f"CANCELLATION_{sale.reference}",
                recorded_by=scope.actor_name,
            ))

        sale.status = SALE_STATUS_ANNULE
        sale.amount_paid_cents = 0
        sale.cancelled_at = utcnow()
        sale.cancelled_by = scope.actor_name
        sale.cancellation_reason = reason
        if sale.invoice is not None:
            sale.invoice.status = INVOICE_STATUS_CANCELLED
        return sale, restocked, refunded

    sale, restocked, refunded = run_atomic(_op)
    audit_service.emit_audit(
        scope,
        "SALE_CANCELLED",
        resource=f"sale:{sale.reference}",
        severity=SEVERITY_HIGH,
        details={"reason": reason, "restocked": restocked, "refunded_cents": refunded},
    )
    return sale


def get_sale(scope: TenantScope, sale_id: str) -> Sale:
    return scope.get(Sale, sale_id, label="Sale")


def list_sales(scope: TenantScope, *, status: str | None = None) -> list[Sale]:
    query = scope.query(Sale)
    if status:
        query = query.filter(Sale.status == status)
    return query.order_by(Sale.created_at.desc(), Sale.reference.desc()).all()
