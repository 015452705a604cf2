# backend/gestock/routes/audit.py
"""
Audit trail API routes (read-only).
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import ROLE_ADMIN, require_role, require_tenant
from ..services import audit_service
from ..validation import coerce_int

audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("")
@require_tenant
@require_role(ROLE_ADMIN)
def list_audit_logs():
    """
    Newest audit entries of the tenant.

    Query params:
        action: only entries with this action (e.g. CAMPAIGN_VALIDATED)
        limit: at most this many entries (1-500, default 200)
    """
    limit = coerce_int(request.args.get("limit", 200), "limit", minimum=1, maximum=500)
    entries = audit_service.list_audit_logs(g.scope, action=request.args.get("action"), limit=limit)
    return jsonify([entry.to_dict() for entry in entries]), 200
