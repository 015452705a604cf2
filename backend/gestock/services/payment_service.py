# backend/gestock/services/payment_service.py
"""
Payments against sales.

A payment insert and the sale's amount/status update always commit
together: there is no window in which a payment exists but the sale does
not reflect it.

STATUS RULE:
- amount_paid >= total_ttc -> TERMINE (invoice PAID)
- otherwise                -> EN_COURS (invoice PENDING)

Overpayment is accepted and recorded as-is.
"""
from __future__ import annotations

from ..errors import InvalidTransitionError
from ..extensions import db
from ..models import Payment, Sale
from ..models.sales import (
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_PENDING,
    PAYMENT_METHODS,
    SALE_STATUS_ANNULE,
    SALE_STATUS_EN_COURS,
    SALE_STATUS_REMBOURSE,
    SALE_STATUS_TERMINE,
)
from ..validation import MAX_PRICE_CENTS, coerce_choice, coerce_int, coerce_text
from . import audit_service
from .concurrency import run_atomic
from .tenant_service import TenantScope


CLOSED_SALE_STATUSES = (SALE_STATUS_ANNULE, SALE_STATUS_REMBOURSE)


def status_for_amount(sale: Sale, amount_paid_cents: int) -> str:
    if amount_paid_cents >= sale.total_ttc_cents:
        return SALE_STATUS_TERMINE
    return SALE_STATUS_EN_COURS


def apply_payment(
    scope: TenantScope,
    sale: Sale,
    amount_cents: int,
    method: str,
    reference: str | None,
) -> Payment:
    """
    Record a payment on a locked sale inside the caller's transaction.
    """
    if sale.status in CLOSED_SALE_STATUSES:
        raise InvalidTransitionError(
            f"Cannot record a payment on a {sale.status} sale",
            {"status": sale.status},
        )

    payment = Payment(
        tenant_id=scope.tenant_id,
        sale=sale,
        amount_cents=amount_cents,
        method=method,
        reference=reference,
        recorded_by=scope.actor_name,
    )
    db.session.add(payment)

    sale.amount_paid_cents = sale.amount_paid_cents + amount_cents
    sale.status = status_for_amount(sale, sale.amount_paid_cents)
    if sale.invoice is not None:
        if sale.status == SALE_STATUS_TERMINE:
            sale.invoice.status = INVOICE_STATUS_PAID
        else:
            sale.invoice.status = INVOICE_STATUS_PENDING
    return payment


def add_payment(
    scope: TenantScope,
    sale_id: str,
    amount_cents,
    method=None,
    reference=None,
) -> Payment:
    """
    Record a payment and move the sale to TERMINE once fully paid.

    Raises:
        ValidationError: amount not a positive integer, unknown method
        NotFoundError: sale missing or another tenant's
        InvalidTransitionError: sale cancelled or refunded
    """
    amount_cents = coerce_int(amount_cents, "amount_cents", minimum=1, maximum=MAX_PRICE_CENTS)
    method = coerce_choice(method or "CASH", "method", PAYMENT_METHODS)
    reference = coerce_text(reference, "reference", max_length=100, required=False)

    def _op():
        sale = scope.get(Sale, sale_id, lock=True, label="Sale")
        return apply_payment(scope, sale, amount_cents, method, reference)

    payment = run_atomic(_op)
    audit_service.emit_audit(
        scope,
        "PAYMENT_RECORDED",
        resource=f"sale:{payment.sale.reference}",
        details={"amount_cents": amount_cents, "method": method, "status": payment.sale.status},
    )
    return payment


def list_payments(scope: TenantScope, sale_id: str) -> list[Payment]:
    sale = scope.get(Sale, sale_id, label="Sale")
    return (
        scope.query(Payment)
        .filter(Payment.sale_id == sale.id)
        .order_by(Payment.payment_date)
        .all()
    )
