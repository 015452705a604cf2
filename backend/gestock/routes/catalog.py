# backend/gestock/routes/catalog.py
"""
Service catalog routes (non-stock items sold on sale lines).
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import ROLE_ACCOUNTANT, ROLE_ADMIN, ROLE_SALES, require_role, require_tenant
from ..services import catalog_service

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/services")


@catalog_bp.get("")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_SALES, ROLE_ACCOUNTANT)
def list_services():
    services = catalog_service.list_services(g.scope)
    return jsonify([s.to_dict() for s in services]), 200


@catalog_bp.post("")
@require_tenant
@require_role(ROLE_ADMIN)
def create_service():
    """
    Request body:
    {
        "name": str,
        "price_cents": int (optional),
        "description": str (optional)
    }
    """
    service = catalog_service.create_service(g.scope, request.get_json(silent=True))
    return jsonify(service.to_dict()), 201
