"""
Pytest fixtures for the gestock ledger tests.

Provides the test database, two isolated tenants (ACME and BETA), catalog
factories and request headers for the API client.
"""

import pytest

from gestock import create_app
from gestock.config import TestConfig
from gestock.extensions import db
from gestock.models import Customer, Tenant
from gestock.services import catalog_service
from gestock.services.tenant_service import TenantScope


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Create Tenant A (first tenant)."""
    tenant = Tenant(name="Acme Corp", code="ACME", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Create Tenant B (second tenant)."""
    tenant = Tenant(name="Beta Inc", code="BETA", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def scope_a(tenant_a):
    return TenantScope(tenant_a.id, actor_name="alice")


@pytest.fixture(scope='function')
def scope_b(tenant_b):
    return TenantScope(tenant_b.id, actor_name="bob")


@pytest.fixture(scope='function')
def make_item(db_session):
    """Factory: create a stock item through the catalog (opening stock is an IN movement)."""
    def _make(scope, name="Widget", quantity=0, unit_price_cents=0, min_threshold=0):
        return catalog_service.create_item(scope, {
            "name": name,
            "quantity": quantity,
            "unit_price_cents": unit_price_cents,
            "min_threshold": min_threshold,
        })
    return _make


@pytest.fixture(scope='function')
def item_a(make_item, scope_a):
    """Stock item in Tenant A: level 10, 100.00 each."""
    return make_item(scope_a, name="Laptop", quantity=10, unit_price_cents=10000)


@pytest.fixture(scope='function')
def item_a2(make_item, scope_a):
    """Second stock item in Tenant A: level 50, 50.00 each."""
    return make_item(scope_a, name="Mouse", quantity=50, unit_price_cents=5000)


@pytest.fixture(scope='function')
def item_b(make_item, scope_b):
    """Stock item in Tenant B: level 10."""
    return make_item(scope_b, name="Beta Laptop", quantity=10, unit_price_cents=10000)


@pytest.fixture(scope='function')
def service_a(scope_a):
    """Service (non-stock line) in Tenant A: 25.00."""
    return catalog_service.create_service(scope_a, {"name": "Installation", "price_cents": 2500})


@pytest.fixture(scope='function')
def customer_a(db_session, tenant_a):
    customer = Customer(tenant_id=tenant_a.id, company_name="Client A SARL", email="contact@client-a.test")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_b(db_session, tenant_b):
    customer = Customer(tenant_id=tenant_b.id, company_name="Client B SA")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def auth_headers():
    """Factory: gateway headers for a tenant, with comma-separated roles."""
    def _headers(tenant, roles: str = "ADMIN", actor: str = "alice") -> dict:
        return {
            "X-Tenant-Id": tenant.id,
            "X-Actor-Name": actor,
            "X-Actor-Role": roles,
        }
    return _headers
