# Overview: Per-tenant document numbering for sale references and invoices.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from .tenant_service import TenantScope

DOCUMENT_TYPE_SALE = "SALE"
DOCUMENT_TYPE_INVOICE = "INVOICE"

PREFIXES = {
    DOCUMENT_TYPE_SALE: "V",
    DOCUMENT_TYPE_INVOICE: "INV",
}


def _current_number(tenant_id: str, document_type: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(tenant_id=tenant_id, document_type=document_type)
        .scalar()
    )


def next_document_number(scope: TenantScope, document_type: str, *, pad: int = 6) -> str:
    """
    Allocate the next document number for a tenant/type, e.g. "V-ACME-000012".

    Must run inside the caller's transaction: the counter increment commits
    or rolls back together with the document that uses it.
    """
    tenant = scope.get_tenant()
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.tenant_id == scope.tenant_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_number(scope.tenant_id, document_type) - 1
    else:
        try:
            # Savepoint so a lost creation race doesn't discard the caller's work
            with db.session.begin_nested():
                db.session.add(DocumentSequence(
                    tenant_id=scope.tenant_id,
                    document_type=document_type,
                    next_number=2,
                ))
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _current_number(scope.tenant_id, document_type) - 1

    return f"{PREFIXES[document_type]}-{tenant.code}-{next_num:0{pad}d}"
