"""
HTTP API tests.

Verifies:
- Requests without tenant context return 401, unknown tenants 404
- Role checks return 403 (SUPER_ADMIN passes every check)
- Business errors are rendered as {"error", "message", "details"} with
  their status code
- The sale and campaign flows work end to end over HTTP
"""

import pytest


# =============================================================================
# CONTEXT AND ROLES
# =============================================================================


class TestRequestContext:
    """Tenant header handling."""

    def test_health_needs_no_tenant(self, client, db_session, tenant_a):
        response = client.get("/api/health")

        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["tenants"] == 1

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/stock"),
            ("POST", "/api/stock/movements"),
            ("GET", "/api/stock/campaigns"),
            ("GET", "/api/sales"),
            ("POST", "/api/sales"),
            ("GET", "/api/services"),
        ],
    )
    def test_missing_tenant_returns_401(self, client, db_session, method, path):
        response = client.open(path, method=method, json={})

        assert response.status_code == 401
        assert response.get_json()["error"] == "Unauthorized"

    def test_unknown_tenant_returns_404(self, client, db_session):
        response = client.get("/api/stock", headers={"X-Tenant-Id": "ghost", "X-Actor-Role": "ADMIN"})

        assert response.status_code == 404
        assert response.get_json()["error"] == "NotFound"

    def test_unknown_route_is_json(self, client, db_session):
        response = client.get("/api/nope")

        assert response.status_code == 404
        assert response.get_json()["error"] == "Not Found"


class TestRoles:
    """Role checks."""

    def test_sales_role_cannot_create_items(self, client, tenant_a, auth_headers):
        response = client.post("/api/stock", json={"name": "Desk"}, headers=auth_headers(tenant_a, "SALES"))

        assert response.status_code == 403
        body = response.get_json()
        assert body["error"] == "AccessDenied"
        assert "STOCK_MANAGER" in body["required_roles"]

    def test_no_role_denied(self, client, tenant_a, auth_headers):
        response = client.get("/api/stock", headers=auth_headers(tenant_a, ""))

        assert response.status_code == 403

    def test_any_listed_role_passes(self, client, tenant_a, auth_headers):
        response = client.post(
            "/api/stock", json={"name": "Desk"}, headers=auth_headers(tenant_a, "employee, stock_manager"),
        )

        assert response.status_code == 201

    def test_super_admin_passes(self, client, tenant_a, auth_headers):
        response = client.post("/api/services", json={"name": "Repair"}, headers=auth_headers(tenant_a, "SUPER_ADMIN"))

        assert response.status_code == 201

    def test_only_admin_cancels_sales(self, client, scope_a, tenant_a, item_a, auth_headers):
        created = client.post(
            "/api/sales",
            json={"items": [{"product_id": item_a.id, "quantity": 1}]},
            headers=auth_headers(tenant_a, "SALES"),
        )
        sale_id = created.get_json()["sale"]["id"]

        denied = client.post(f"/api/sales/{sale_id}/cancel", json={}, headers=auth_headers(tenant_a, "SALES"))
        allowed = client.post(f"/api/sales/{sale_id}/cancel", json={}, headers=auth_headers(tenant_a, "ADMIN"))

        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert allowed.get_json()["sale"]["status"] == "ANNULE"


# =============================================================================
# STOCK
# =============================================================================


class TestStockRoutes:
    """Catalog and movement endpoints."""

    def test_create_and_list_items(self, client, tenant_a, auth_headers):
        headers = auth_headers(tenant_a)
        created = client.post("/api/stock", json={"name": "Desk", "quantity": 4, "unit_price_cents": 15000}, headers=headers)

        assert created.status_code == 201
        item = created.get_json()
        assert item["current_level"] == 4
        assert item["sku"].startswith("DES-")

        listed = client.get("/api/stock", headers=headers).get_json()
        assert [i["id"] for i in listed] == [item["id"]]

    def test_insufficient_stock_error_shape(self, client, tenant_a, item_a, auth_headers):
        response = client.post(
            "/api/stock/movements",
            json={"stock_item_id": item_a.id, "type": "OUT", "quantity": 15},
            headers=auth_headers(tenant_a),
        )

        assert response.status_code == 409
        assert response.get_json() == {
            "error": "InsufficientStock",
            "message": "Insufficient stock for Laptop: 10 available, 15 requested",
            "details": {"item": "Laptop", "available": 10, "requested": 15},
        }

    def test_movement_created(self, client, tenant_a, item_a, auth_headers):
        response = client.post(
            "/api/stock/movements",
            json={"stock_item_id": item_a.id, "type": "IN", "quantity": 5, "reason": "Restock"},
            headers=auth_headers(tenant_a, "STOCK_MANAGER", actor="Moussa"),
        )

        assert response.status_code == 201
        movement = response.get_json()["movement"]
        assert movement["new_level"] == 15
        assert movement["actor_name"] == "Moussa"

    def test_validation_error(self, client, tenant_a, item_a, auth_headers):
        response = client.post(
            "/api/stock/movements",
            json={"stock_item_id": item_a.id, "type": "IN", "quantity": "2.5"},
            headers=auth_headers(tenant_a),
        )

        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "ValidationError"
        assert body["details"]["field"] == "quantity"

    def test_non_json_body_rejected(self, client, tenant_a, auth_headers):
        response = client.post("/api/stock", data="not json", headers=auth_headers(tenant_a))

        assert response.status_code == 400

    def test_bulk_in_and_stats(self, client, tenant_a, item_a, item_a2, auth_headers):
        headers = auth_headers(tenant_a)
        response = client.post(
            "/api/stock/movements/bulk-in",
            json={"items": [
                {"stock_item_id": item_a.id, "quantity": 1},
                {"stock_item_id": item_a2.id, "quantity": 2},
            ]},
            headers=headers,
        )
        assert response.status_code == 201
        assert len(response.get_json()) == 2

        stats = client.get("/api/stock/movements/stats?days=7", headers=headers).get_json()
        assert stats[0]["total_in"] == 10 + 50 + 1 + 2

    def test_delete_locked_is_403(self, client, scope_a, tenant_a, item_a, auth_headers):
        client.post("/api/sales", json={"items": [{"product_id": item_a.id, "quantity": 1}]}, headers=auth_headers(tenant_a))

        response = client.delete(f"/api/stock/{item_a.id}", headers=auth_headers(tenant_a))

        assert response.status_code == 403
        assert response.get_json()["error"] == "DeleteLocked"

    def test_foreign_item_is_404(self, client, tenant_a, item_b, auth_headers):
        response = client.put(f"/api/stock/{item_b.id}", json={"name": "x"}, headers=auth_headers(tenant_a))

        assert response.status_code == 404


# =============================================================================
# CAMPAIGNS
# =============================================================================


class TestCampaignRoutes:
    """Campaign endpoints."""

    def test_campaign_flow(self, client, db_session, tenant_a, item_a, auth_headers):
        headers = auth_headers(tenant_a, "STOCK_MANAGER")

        created = client.post("/api/stock/campaigns", json={"name": "Q4"}, headers=headers)
        assert created.status_code == 201
        campaign_id = created.get_json()["id"]

        locked = client.post(
            "/api/stock/movements",
            json={"stock_item_id": item_a.id, "type": "IN", "quantity": 1},
            headers=headers,
        )
        assert locked.status_code == 423
        assert locked.get_json()["error"] == "InventoryLocked"
        assert locked.get_json()["details"]["campaign"] == "Q4"

        conflict = client.post("/api/stock/campaigns", json={"name": "Q4 bis"}, headers=headers)
        assert conflict.status_code == 409
        assert conflict.get_json()["error"] == "CampaignConflict"

        detail = client.get(f"/api/stock/campaigns/{campaign_id}", headers=headers).get_json()
        line = detail["items"][0]
        assert line["system_qty"] == 10

        counted = client.put(
            f"/api/stock/campaigns/{campaign_id}/items/{line['id']}",
            json={"counted_qty": 7},
            headers=headers,
        )
        assert counted.get_json()["variance"] == -3

        validated = client.post(f"/api/stock/campaigns/{campaign_id}/validate", json={"sync_stock": True}, headers=headers)
        assert validated.status_code == 200
        assert validated.get_json()["campaign"]["status"] == "VALIDATED"

        again = client.post(f"/api/stock/campaigns/{campaign_id}/validate", json={"sync_stock": True}, headers=headers)
        assert again.status_code == 409
        assert again.get_json()["error"] == "InvalidTransition"

        items = client.get("/api/stock", headers=headers).get_json()
        assert items[0]["current_level"] == 7

    @pytest.mark.parametrize("flag", ["false", "true", 0])
    def test_sync_flag_must_be_boolean(self, client, tenant_a, item_a, auth_headers, flag):
        """A string such as "false" must not be read as a request to sync."""
        headers = auth_headers(tenant_a, "STOCK_MANAGER")
        created = client.post("/api/stock/campaigns", json={"name": "Q4"}, headers=headers).get_json()
        campaign = client.get(f"/api/stock/campaigns/{created['id']}", headers=headers).get_json()
        line = campaign["items"][0]
        client.put(
            f"/api/stock/campaigns/{campaign['id']}/items/{line['id']}",
            json={"counted_qty": 4},
            headers=headers,
        )

        response = client.post(
            f"/api/stock/campaigns/{campaign['id']}/validate",
            json={"sync_stock": flag},
            headers=headers,
        )

        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "ValidationError"
        assert body["details"]["field"] == "sync_stock"

        detail = client.get(f"/api/stock/campaigns/{campaign['id']}", headers=headers).get_json()
        assert detail["status"] == "DRAFT"
        client.post(f"/api/stock/campaigns/{campaign['id']}/cancel", headers=headers)
        items = client.get("/api/stock", headers=headers).get_json()
        assert items[0]["current_level"] == 10

    def test_sync_flag_defaults_to_false(self, client, tenant_a, item_a, auth_headers):
        headers = auth_headers(tenant_a, "STOCK_MANAGER")
        created = client.post("/api/stock/campaigns", json={"name": "Q4"}, headers=headers).get_json()
        campaign = client.get(f"/api/stock/campaigns/{created['id']}", headers=headers).get_json()
        line = campaign["items"][0]
        client.put(
            f"/api/stock/campaigns/{campaign['id']}/items/{line['id']}",
            json={"counted_qty": 4},
            headers=headers,
        )

        response = client.post(f"/api/stock/campaigns/{campaign['id']}/validate", headers=headers)

        assert response.status_code == 200
        assert response.get_json()["campaign"]["stock_synced"] is False
        items = client.get("/api/stock", headers=headers).get_json()
        assert items[0]["current_level"] == 10


# =============================================================================
# AUDIT
# =============================================================================


class TestAuditRoutes:
    """Audit trail endpoint."""

    def test_admin_lists_own_tenant_entries(self, client, scope_b, tenant_a, item_a, item_b, auth_headers):
        from gestock.services import campaign_service

        campaign_service.create_campaign(scope_b, "Beta Q1")
        headers = auth_headers(tenant_a)
        created = client.post("/api/stock/campaigns", json={"name": "Q4"}, headers=headers).get_json()
        client.post(f"/api/stock/campaigns/{created['id']}/cancel", headers=headers)

        response = client.get("/api/audit", headers=headers)

        assert response.status_code == 200
        entries = response.get_json()
        assert sorted(e["action"] for e in entries) == ["CAMPAIGN_CANCELLED", "CAMPAIGN_CREATED"]
        assert {e["tenant_id"] for e in entries} == {tenant_a.id}

        filtered = client.get("/api/audit?action=CAMPAIGN_CREATED", headers=headers).get_json()
        assert len(filtered) == 1
        assert filtered[0]["resource"] == f"campaign:{created['id']}"
        assert filtered[0]["details"] == {"name": "Q4", "lines": 1}

    def test_admin_only(self, client, tenant_a, auth_headers):
        response = client.get("/api/audit", headers=auth_headers(tenant_a, "STOCK_MANAGER"))

        assert response.status_code == 403
        assert response.get_json()["required_roles"] == ["ADMIN"]

    def test_limit_is_validated(self, client, tenant_a, auth_headers):
        response = client.get("/api/audit?limit=0", headers=auth_headers(tenant_a))

        assert response.status_code == 400
        assert response.get_json()["details"]["field"] == "limit"


# =============================================================================
# SALES
# =============================================================================


class TestSaleRoutes:
    """Sale endpoints."""

    def test_sale_flow(self, client, tenant_a, item_a, item_a2, auth_headers):
        headers = auth_headers(tenant_a)

        created = client.post("/api/sales", json={"items": [
            {"type": "PRODUCT", "product_id": item_a.id, "quantity": 2},
            {"type": "PRODUCT", "product_id": item_a2.id, "quantity": 1},
        ]}, headers=headers)
        assert created.status_code == 201
        body = created.get_json()
        sale = body["sale"]
        assert (sale["total_ht_cents"], sale["tax_cents"], sale["total_ttc_cents"]) == (25000, 4500, 29500)
        assert body["invoice"]["total_cents"] == 29500
        assert body["invoice"]["id"] == sale["invoice_id"]

        paid = client.post(f"/api/sales/{sale['id']}/payments", json={"amount_cents": 20000}, headers=headers)
        assert paid.status_code == 201
        assert paid.get_json()["sale"]["status"] == "EN_COURS"

        locked = client.put(f"/api/sales/{sale['id']}", json={"items": [
            {"product_id": item_a.id, "quantity": 1},
        ]}, headers=headers)
        assert locked.status_code == 403
        assert locked.get_json()["error"] == "UpdateLocked"

        line_id = sale["items"][0]["id"]
        delivered = client.post(
            f"/api/sales/{sale['id']}/delivery",
            json={"items": [{"item_id": line_id, "qty_to_deliver": 2}]},
            headers=headers,
        )
        assert delivered.status_code == 200
        assert delivered.get_json()["sale"]["items"][0]["quantity_delivered"] == 2

        over = client.post(
            f"/api/sales/{sale['id']}/delivery",
            json={"items": [{"item_id": line_id, "qty_to_deliver": 1}]},
            headers=headers,
        )
        assert over.status_code == 400

        done = client.post(f"/api/sales/{sale['id']}/payments", json={"amount_cents": 9500}, headers=headers)
        assert done.get_json()["sale"]["status"] == "TERMINE"

        fetched = client.get(f"/api/sales/{sale['id']}", headers=headers).get_json()
        assert fetched["invoice"]["status"] == "PAID"
        assert len(fetched["payments"]) == 2

    def test_cancel_with_restock(self, client, tenant_a, item_a, auth_headers):
        headers = auth_headers(tenant_a)
        sale = client.post(
            "/api/sales",
            json={"items": [{"product_id": item_a.id, "quantity": 3}], "amount_paid_cents": 1000},
            headers=headers,
        ).get_json()["sale"]
        line_id = sale["items"][0]["id"]
        client.post(
            f"/api/sales/{sale['id']}/delivery",
            json={"items": [{"item_id": line_id, "qty_to_deliver": 3}]},
            headers=headers,
        )

        response = client.post(
            f"/api/sales/{sale['id']}/cancel",
            json={"reason": "Damaged", "return_to_stock": {line_id: 2}},
            headers=headers,
        )

        assert response.status_code == 200
        cancelled = response.get_json()["sale"]
        assert cancelled["status"] == "ANNULE"
        assert cancelled["amount_paid_cents"] == 0
        assert sorted(p["amount_cents"] for p in cancelled["payments"]) == [-1000, 1000]

        items = client.get("/api/stock", headers=headers).get_json()
        assert items[0]["current_level"] == 9

    def test_payment_on_cancelled_sale_is_409(self, client, tenant_a, item_a, auth_headers):
        headers = auth_headers(tenant_a)
        sale_id = client.post(
            "/api/sales", json={"items": [{"product_id": item_a.id, "quantity": 1}]}, headers=headers,
        ).get_json()["sale"]["id"]
        client.post(f"/api/sales/{sale_id}/cancel", json={}, headers=headers)

        response = client.post(f"/api/sales/{sale_id}/payments", json={"amount_cents": 100}, headers=headers)

        assert response.status_code == 409
        assert response.get_json()["error"] == "InvalidTransition"
