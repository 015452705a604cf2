# Overview: Business audit trail for critical ledger mutations.

from __future__ import annotations

import json

from ..extensions import db
from ..models import AuditLog
from ..models.security import SEVERITY_INFO
from . import events


def record_audit(
    tenant_id: str,
    action: str,
    *,
    actor_name: str | None = None,
    resource: str | None = None,
    severity: str = SEVERITY_INFO,
    status: str = "SUCCESS",
    details: dict | None = None,
) -> AuditLog:
    """Write one audit row in its own transaction."""
    entry = AuditLog(
        tenant_id=tenant_id,
        actor_name=actor_name,
        action=action,
        resource=resource,
        severity=severity,
        status=status,
        details=json.dumps(details, sort_keys=True) if details else None,
    )
    db.session.add(entry)
    db.session.commit()
    return entry


def emit_audit(scope, action: str, *, resource: str | None = None, severity: str = SEVERITY_INFO, details: dict | None = None) -> None:
    """Queue an audit record for a committed operation."""
    events.dispatch(
        record_audit,
        scope.tenant_id,
        action,
        actor_name=scope.actor_name,
        resource=resource,
        severity=severity,
        details=details,
    )


def list_audit_logs(scope, *, action: str | None = None, limit: int = 200) -> list[AuditLog]:
    """Newest first; optionally only one action."""
    query = scope.query(AuditLog)
    if action:
        query = query.filter(AuditLog.action == action)
    return query.order_by(AuditLog.created_at.desc()).limit(limit).all()
