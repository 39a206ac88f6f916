"""
Pytest fixtures for parts_erp backend tests.

Provides test database setup, two tenants (company A / company B), catalogue
and customer factories, and a test client.
"""

from decimal import Decimal

import pytest

from parts_erp import create_app
from parts_erp.extensions import db
from parts_erp.models import Company, Customer, Product, Supplier
from parts_erp.services.tenant_service import TenantContext


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'STOCK_TRANSACTIONS': 'auto',
}

USER_A = 11
USER_B = 22


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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
def best_effort_app():
    """Separate app (own in-memory DB) running stock workflows without transactions."""
    app = create_app({**TEST_CONFIG, 'STOCK_TRANSACTIONS': 'off'})
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def company_a(db_session):
    """Create Company A (first tenant)."""
    company = Company(name="Company A - Garage Auto", code="GA", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def company_b(db_session):
    """Create Company B (second tenant)."""
    company = Company(name="Company B - Pieces Plus", code="PP", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def tenant_a(company_a):
    return TenantContext(company_id=company_a.id, user_id=USER_A)


@pytest.fixture(scope='function')
def tenant_b(company_b):
    return TenantContext(company_id=company_b.id, user_id=USER_B)


@pytest.fixture(scope='function')
def headers_a(tenant_a):
    return tenant_headers(tenant_a)


@pytest.fixture(scope='function')
def headers_b(tenant_b):
    return tenant_headers(tenant_b)


@pytest.fixture(scope='function')
def supplier_a(db_session, company_a):
    supplier = Supplier(company_id=company_a.id, name="Bosch Distribution")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def supplier_b(db_session, company_b):
    supplier = Supplier(company_id=company_b.id, name="Valeo Service")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def make_product(db_session):
    """
    Factory for products seeded directly (no initial movement).

    Defaults: average and last cost 50, margin 20, min margin 10, tax 19,
    sale price 100.00, 10 units on hand, min stock 2.
    """
    counter = {"n": 0}

    def _make(company, **overrides):
        counter["n"] += 1
        fields = {
            "company_id": company.id,
            "sku": f"SKU-{company.id}-{counter['n']:03d}",
            "name": f"Brake pad set {counter['n']}",
            "purchase_price": Decimal("50"),
            "last_purchase_price": Decimal("50"),
            "sale_price": Decimal("100.00"),
            "margin_rate": Decimal("20"),
            "min_margin_on_last_purchase": Decimal("10"),
            "tax_rate": Decimal("19"),
            "stock_qty": 10,
            "min_stock": 2,
        }
        fields.update(overrides)
        product = Product(**fields)
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def product_a(make_product, company_a):
    """Create a product in Company A with 10 units on hand."""
    return make_product(company_a, sku="PAD-A-001", name="Front brake pads")


@pytest.fixture(scope='function')
def product_b(make_product, company_b):
    """Create a product in Company B with 10 units on hand."""
    return make_product(company_b, sku="PAD-B-001", name="Rear brake pads")


@pytest.fixture(scope='function')
def make_customer(db_session):
    def _make(company, **overrides):
        fields = {
            "company_id": company.id,
            "name": "Atelier Ben Salah",
            "classification": "GREEN",
            "credit_limit": Decimal("0"),
            "monthly_average_purchase": Decimal("0"),
        }
        fields.update(overrides)
        customer = Customer(**fields)
        db_session.add(customer)
        db_session.commit()
        return customer

    return _make


@pytest.fixture(scope='function')
def customer_a(make_customer, company_a):
    return make_customer(company_a)


def tenant_headers(tenant: TenantContext) -> dict:
    """Headers the auth gateway forwards for an authenticated request."""
    return {
        'X-Company-Id': str(tenant.company_id),
        'X-User-Id': str(tenant.user_id),
    }
