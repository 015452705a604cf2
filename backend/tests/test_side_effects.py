# Overview: Pytest coverage for post-commit side effects (audit trail, low-stock alerts).

import json
import logging

import httpx
import pytest

from gestock.models import AuditLog, InventoryCampaign
from gestock.services import audit_service, campaign_service, events, inventory_service, notification_service
from gestock.services import sales_service


@pytest.fixture
def webhook(app, monkeypatch):
    """Point notifications at a fake webhook and capture what is posted."""
    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append({"url": url, "json": json, "timeout": timeout})
        return httpx.Response(200, request=httpx.Request("POST", url))

    monkeypatch.setitem(app.config, "NOTIFICATION_WEBHOOK_URL", "https://hooks.example.test/notify")
    monkeypatch.setattr(notification_service.httpx, "post", fake_post)
    return calls


class TestAuditTrail:
    """Audit rows for critical operations."""

    def test_campaign_creation_is_audited(self, db_session, scope_a):
        campaign = campaign_service.create_campaign(scope_a, "Q1")

        entries = audit_service.list_audit_logs(scope_a, action="CAMPAIGN_CREATED")
        assert len(entries) == 1
        assert entries[0].actor_name == "alice"
        assert entries[0].resource == f"campaign:{campaign.id}"
        assert json.loads(entries[0].details) == {"name": "Q1", "lines": 0}

    def test_cancellation_is_high_severity(self, db_session, scope_a, item_a):
        sale = sales_service.create_sale(scope_a, None, [{"product_id": item_a.id, "quantity": 1}])
        sales_service.cancel_sale(scope_a, sale.id, reason="Duplicate")

        entry = db_session.query(AuditLog).filter_by(action="SALE_CANCELLED").one()
        assert entry.severity == "HIGH"
        assert entry.resource == f"sale:{sale.reference}"

    def test_failing_audit_does_not_fail_operation(self, db_session, scope_a, monkeypatch, caplog):
        def broken_audit(*args, **kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(audit_service, "record_audit", broken_audit)

        with caplog.at_level(logging.ERROR, logger="gestock.services.events"):
            campaign = campaign_service.create_campaign(scope_a, "Q1")

        assert db_session.get(InventoryCampaign, campaign.id).status == "DRAFT"
        assert db_session.query(AuditLog).count() == 0
        assert "broken_audit failed" in caplog.text


class TestLowStockAlerts:
    """Alerts when a decrement reaches the threshold."""

    def test_alert_sent_when_threshold_reached(self, db_session, scope_a, make_item, webhook):
        item = make_item(scope_a, name="Toner", quantity=10, min_threshold=5)

        inventory_service.apply_movement(scope_a, item.id, "OUT", 6)

        assert len(webhook) == 1
        body = webhook[0]["json"]
        assert webhook[0]["url"] == "https://hooks.example.test/notify"
        assert body["channel"] == "STOCK_ALERT"
        assert body["payload"]["current_level"] == 4
        assert body["payload"]["min_threshold"] == 5
        assert body["payload"]["priority"] == "HIGH"
        assert body["payload"]["sku"] == item.sku

    def test_no_alert_above_threshold(self, db_session, scope_a, make_item, webhook):
        item = make_item(scope_a, name="Toner", quantity=10, min_threshold=5)

        inventory_service.apply_movement(scope_a, item.id, "OUT", 4)
        inventory_service.apply_movement(scope_a, item.id, "IN", 1)

        assert webhook == []

    def test_delivery_triggers_alert(self, db_session, scope_a, make_item, webhook):
        item = make_item(scope_a, name="Toner", quantity=3, min_threshold=2)
        sale = sales_service.create_sale(scope_a, None, [{"product_id": item.id, "quantity": 2}])

        sales_service.record_delivery(scope_a, sale.id, [{"item_id": sale.items[0].id, "qty_to_deliver": 2}])

        assert [call["json"]["payload"]["current_level"] for call in webhook] == [1]

    def test_unconfigured_webhook_is_logged(self, app, db_session, caplog):
        with caplog.at_level(logging.WARNING, logger="gestock.services.notification_service"):
            sent = notification_service.send_notification("STOCK_ALERT", {"subject": "x"})

        assert sent is False
        assert "not configured" in caplog.text

    def test_webhook_failure_is_logged(self, app, db_session, monkeypatch, caplog):
        def failing_post(url, json=None, timeout=None):
            raise httpx.ConnectError("connection refused")

        monkeypatch.setitem(app.config, "NOTIFICATION_WEBHOOK_URL", "https://hooks.example.test/notify")
        monkeypatch.setattr(notification_service.httpx, "post", failing_post)

        with caplog.at_level(logging.ERROR, logger="gestock.services.notification_service"):
            sent = notification_service.send_notification("STOCK_ALERT", {"subject": "x"})

        assert sent is False
        assert "connection refused" in caplog.text


class TestDispatch:
    """Background execution of side effects."""

    def test_background_dispatch(self, app, db_session, monkeypatch):
        seen = []
        monkeypatch.setitem(app.config, "SIDE_EFFECTS_SYNC", False)

        events.dispatch(seen.append, "done")
        events.shutdown(wait=True)

        assert seen == ["done"]

    def test_pool_drained_at_exit(self, app, db_session, monkeypatch):
        events.shutdown(wait=True)
        registered = []
        monkeypatch.setattr(events.atexit, "register", registered.append)
        monkeypatch.setattr(events.atexit, "unregister", registered.remove)
        monkeypatch.setitem(app.config, "SIDE_EFFECTS_SYNC", False)

        events.dispatch(lambda: None)
        assert registered == [events.shutdown]

        events.shutdown(wait=True)
        assert registered == []
