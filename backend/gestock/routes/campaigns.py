# backend/gestock/routes/campaigns.py
"""
Physical inventory campaign API routes.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import ROLE_ADMIN, ROLE_SALES, ROLE_STOCK_MANAGER, require_role, require_tenant
from ..services import campaign_service

campaigns_bp = Blueprint("campaigns", __name__, url_prefix="/api/stock/campaigns")


@campaigns_bp.get("")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_STOCK_MANAGER, ROLE_SALES)
def list_campaigns():
    campaigns = campaign_service.list_campaigns(g.scope)
    return jsonify([c.to_dict() for c in campaigns]), 200


@campaigns_bp.post("")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_STOCK_MANAGER)
def create_campaign():
    """
    Open a campaign; snapshots every active item's level.

    Request body:
    {
        "name": str
    }

    Returns:
        201: Campaign created (DRAFT)
        400: Invalid request
        409: Another campaign is already in progress
    """
    data = request.get_json(silent=True) or {}
    campaign = campaign_service.create_campaign(g.scope, data.get("name"))
    return jsonify(campaign.to_dict()), 201


@campaigns_bp.get("/<campaign_id>")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_STOCK_MANAGER, ROLE_SALES)
def get_campaign(campaign_id: str):
    campaign = campaign_service.get_campaign(g.scope, campaign_id)
    return jsonify(campaign.to_dict(include_items=True)), 200


@campaigns_bp.put("/<campaign_id>/items/<item_id>")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_STOCK_MANAGER)
def update_count(campaign_id: str, item_id: str):
    """
    Record a counted quantity.

    Request body:
    {
        "counted_qty": int
    }
    """
    data = request.get_json(silent=True) or {}
    line = campaign_service.update_count(g.scope, campaign_id, item_id, data.get("counted_qty"))
    return jsonify(line.to_dict()), 200


@campaigns_bp.post("/<campaign_id>/validate")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_STOCK_MANAGER)
def validate_campaign(campaign_id: str):
    """
    Close the campaign.

    Request body:
    {
        "sync_stock": bool  // set live levels to the counted quantities
    }
    """
    data = request.get_json(silent=True) or {}
    campaign = campaign_service.validate_campaign(g.scope, campaign_id, data.get("sync_stock", False))
    return jsonify({"message": "Campaign closed", "campaign": campaign.to_dict()}), 200


@campaigns_bp.post("/<campaign_id>/suspend")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_STOCK_MANAGER)
def suspend_campaign(campaign_id: str):
    campaign = campaign_service.suspend_campaign(g.scope, campaign_id)
    return jsonify({"message": "Campaign suspended", "campaign": campaign.to_dict()}), 200


@campaigns_bp.post("/<campaign_id>/cancel")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_STOCK_MANAGER)
def cancel_campaign(campaign_id: str):
    campaign = campaign_service.cancel_campaign(g.scope, campaign_id)
    return jsonify({"message": "Campaign cancelled", "campaign": campaign.to_dict()}), 200


@campaigns_bp.post("/<campaign_id>/resume")
@require_tenant
@require_role(ROLE_ADMIN, ROLE_STOCK_MANAGER)
def resume_campaign(campaign_id: str):
    campaign = campaign_service.resume_campaign(g.scope, campaign_id)
    return jsonify({"message": "Campaign resumed", "campaign": campaign.to_dict()}), 200
