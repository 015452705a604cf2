# Overview: Outbound notifications (low-stock alerts) posted to the automation webhook.

from __future__ import annotations

import logging

import httpx
from flask import current_app

from ..time_utils import to_utc_z, utcnow
from . import events

logger = logging.getLogger(__name__)

SYSTEM_NAME = "gestock-ledger"


def send_notification(channel: str, payload: dict, *, priority: str = "NORMAL") -> bool:
    """
    POST one notification to NOTIFICATION_WEBHOOK_URL.

    No retry: a failed delivery is logged and dropped.

    Returns:
        True if the webhook accepted the notification
    """
    url = current_app.config.get("NOTIFICATION_WEBHOOK_URL")
    if not url:
        logger.warning("Notification webhook not configured, dropping %s notification", channel)
        return False

    body = {
        "channel": channel,
        "payload": {**payload, "system": SYSTEM_NAME, "priority": priority},
        "timestamp": to_utc_z(utcnow()),
    }
    try:
        response = httpx.post(
            url,
            json=body,
            timeout=current_app.config.get("NOTIFICATION_TIMEOUT_SECONDS", 5.0),
        )
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.error("Notification webhook call failed: %s", exc)
        return False

    logger.info("Notification sent on %s channel", channel)
    return True


def alert_low_stock(tenant_id: str, stock_item_id: str, name: str, sku: str, current_level: int, min_threshold: int) -> bool:
    return send_notification(
        "STOCK_ALERT",
        {
            "tenant_id": tenant_id,
            "stock_item_id": stock_item_id,
            "sku": sku,
            "subject": f"Low stock: {name}",
            "message": (
                f"'{name}' dropped to {current_level} units "
                f"(threshold {min_threshold}). Plan a replenishment."
            ),
            "current_level": current_level,
            "min_threshold": min_threshold,
        },
        priority="HIGH",
    )


def emit_low_stock_alerts(items) -> None:
    """Queue an alert for each committed item now at or below its threshold."""
    for item in items:
        if item.is_active and item.is_low:
            events.dispatch(
                alert_low_stock,
                item.tenant_id,
                item.id,
                item.name,
                item.sku,
                item.current_level,
                item.min_threshold,
            )
