# Overview: Pytest coverage for the tenant management CLI.

from gestock.models import Tenant


class TestTenantCommands:

    def test_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["tenants", "create", "--name", "Gamma Ltd", "--code", "gam"])
        assert result.exit_code == 0
        assert "Created tenant GAM" in result.output

        tenant = db_session.query(Tenant).filter_by(code="GAM").one()
        assert tenant.is_active is True

        listed = runner.invoke(args=["tenants", "list"])
        assert "GAM" in listed.output
        assert "(active)" in listed.output

    def test_duplicate_code_rejected(self, app, db_session, tenant_a):
        result = app.test_cli_runner().invoke(args=["tenants", "create", "--name", "Other", "--code", "ACME"])

        assert result.exit_code != 0
        assert "already exists" in result.output

    def test_deactivate(self, app, db_session, tenant_a, client):
        result = app.test_cli_runner().invoke(args=["tenants", "deactivate", "--code", "acme"])

        assert result.exit_code == 0
        response = client.get("/api/stock", headers={"X-Tenant-Id": tenant_a.id, "X-Actor-Role": "ADMIN"})
        assert response.status_code == 404

    def test_reset_requires_confirmation(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["system", "reset-db"])

        assert result.exit_code != 0
        assert "--yes" in result.output
