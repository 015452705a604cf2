from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .tenancy import new_id


SEVERITY_INFO = "INFO"
SEVERITY_WARNING = "WARNING"
SEVERITY_HIGH = "HIGH"
SEVERITY_CRITICAL = "CRITICAL"


class AuditLog(db.Model):
    """
    Business audit trail with tenant context.

    Written after the audited operation commits, by the side-effect
    dispatcher, so a failing audit write never undoes the operation.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_tenant_created", "tenant_id", "created_at"),
        db.Index("ix_audit_logs_tenant_action", "tenant_id", "action"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)

    actor_name = db.Column(db.String(255), nullable=True)
    action = db.Column(db.String(100), nullable=False)  # SALE_CANCELLED, CAMPAIGN_VALIDATED, ...
    resource = db.Column(db.String(255), nullable=True)  # e.g., "sale:V-ACME-000012"
    status = db.Column(db.String(20), nullable=False, default="SUCCESS")
    severity = db.Column(db.String(20), nullable=False, default=SEVERITY_INFO)
    details = db.Column(db.Text, nullable=True)  # JSON

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "actor_name": self.actor_name,
            "action": self.action,
            "resource": self.resource,
            "status": self.status,
            "severity": self.severity,
            "details": json.loads(self.details) if self.details else None,
            "created_at": to_utc_z(self.created_at),
        }
