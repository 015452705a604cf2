"""
Multi-Tenant Service: Tenant Validation and Scoped Repository

WHY: Every read and write must be bound to exactly one tenant. Instead of
trusting each service to remember a tenant_id filter, services receive a
TenantScope and go through scope.query() / scope.get(), which always apply
the tenant predicate.

SECURITY INVARIANTS:
1. Every request handled by @require_tenant has g.scope set
2. Tenant ids from request bodies are ignored; only the gateway header counts
3. A row owned by another tenant is reported as NotFound, never as forbidden,
   so its existence is not revealed

USAGE:
    from gestock.services.tenant_service import scope_for_tenant

    scope = scope_for_tenant(tenant_id)
    item = scope.get(StockItem, item_id, lock=True)
"""
from __future__ import annotations

import logging

from ..errors import NotFoundError
from ..extensions import db
from ..models import Tenant
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)


class TenantScope:
    """Repository bound to one tenant. All tenant-owned lookups go through it."""

    def __init__(self, tenant_id: str, actor_name: str | None = None):
        if not tenant_id:
            raise NotFoundError("Tenant not found")
        self.tenant_id = tenant_id
        self.actor_name = actor_name

    def __repr__(self) -> str:
        return f"<TenantScope tenant_id={self.tenant_id}>"

    def query(self, model):
        return db.session.query(model).filter(model.tenant_id == self.tenant_id)

    def get(self, model, entity_id, *, lock: bool = False, label: str | None = None):
        """
        Fetch one tenant-owned row by primary key.

        Raises NotFoundError if it doesn't exist or belongs to another tenant.
        """
        label = label or model.__name__
        if not entity_id:
            raise NotFoundError(f"{label} not found", {"id": entity_id})

        query = self.query(model).filter(model.id == entity_id)
        if lock:
            query = lock_for_update(query).populate_existing()
        entity = query.first()

        if entity is None:
            logger.info("%s %s not found for tenant %s", label, entity_id, self.tenant_id)
            raise NotFoundError(f"{label} not found", {"id": entity_id})
        return entity

    def get_tenant(self, *, lock: bool = False, exclusive: bool = False) -> Tenant:
        """
        Load the tenant row.

        lock=True takes a shared row lock (stock mutations); exclusive=True
        takes an exclusive one (campaign creation), so the two serialize.
        """
        query = db.session.query(Tenant).filter(Tenant.id == self.tenant_id)
        if lock or exclusive:
            query = lock_for_update(query, read=not exclusive)
        tenant = query.first()
        if tenant is None:
            raise NotFoundError("Tenant not found")
        return tenant


def scope_for_tenant(tenant_id: str, actor_name: str | None = None) -> TenantScope:
    """
    Validate that a tenant exists and is active, and return its scope.

    Raises NotFoundError if the tenant is unknown or inactive.
    """
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first() if tenant_id else None
    if tenant is None or not tenant.is_active:
        logger.warning("Rejected request for unknown or inactive tenant %s", tenant_id)
        raise NotFoundError("Tenant not found")
    return TenantScope(tenant.id, actor_name)
