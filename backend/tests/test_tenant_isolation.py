# Overview: Pytest coverage for tenant resolution and cross-company isolation.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that a company can never read or mutate another
company's products, orders, sales or stock movements, and that foreign rows
are reported as "not found" rather than "forbidden".
"""

import pytest

from parts_erp.errors import NotFoundError, TenantAccessError, ValidationError
from parts_erp.models import Company, Product, StockMovement
from parts_erp.services.product_service import get_product
from parts_erp.services.sales_service import create_sale, get_sale
from parts_erp.services.stock_ledger_service import apply_movement, verify_product_ledger
from parts_erp.services.tenant_service import TenantContext, resolve_tenant, scoped_query
from parts_erp.services.unit_of_work import get_unit_of_work


class TestResolveTenant:

    def test_normalises_string_ids(self, db_session, company_a):
        tenant = resolve_tenant(str(company_a.id), "7")
        assert tenant == TenantContext(company_id=company_a.id, user_id=7)

    @pytest.mark.parametrize("company_id,user_id", [
        ("1.0", "7"),
        ("abc", "7"),
        (True, 7),
        (1, "1e3"),
        (1, 0),
        (1, None),
    ])
    def test_malformed_ids(self, db_session, company_a, company_id, user_id):
        with pytest.raises(ValidationError):
            resolve_tenant(company_id, user_id)

    def test_missing_company(self, db_session):
        with pytest.raises(TenantAccessError):
            resolve_tenant(None, 7)

    def test_unknown_company(self, db_session):
        with pytest.raises(TenantAccessError):
            resolve_tenant(99999, 7)

    def test_inactive_company(self, db_session, company_a):
        company_a.is_active = False
        db_session.commit()
        with pytest.raises(TenantAccessError):
            resolve_tenant(company_a.id, 7)

    def test_tenant_access_error_reads_as_not_found(self):
        assert issubclass(TenantAccessError, NotFoundError)
        assert TenantAccessError("x").status_code == 404


class TestCrossTenantAccess:

    def test_scoped_query_only_returns_own_rows(self, db_session, tenant_a, product_a, product_b):
        assert [p.id for p in scoped_query(Product, tenant_a).all()] == [product_a.id]

    def test_product_lookup(self, db_session, tenant_a, product_b):
        with pytest.raises(NotFoundError):
            get_product(tenant_a, product_b.id)

    def test_sale_lookup(self, db_session, tenant_a, tenant_b, product_b):
        sale = create_sale(tenant_b, payload={"items": [{"productId": product_b.id, "qty": 1}]}).sale
        with pytest.raises(NotFoundError):
            get_sale(tenant_a, sale.id)

    def test_ledger_rejects_foreign_product_instance(self, db_session, tenant_a, product_b):
        product = db_session.get(Product, product_b.id)
        with pytest.raises(NotFoundError):
            get_unit_of_work().run(
                lambda uow: apply_movement(uow, tenant_a, movement_type="IN", quantity=1, product=product)
            )
        assert db_session.get(Product, product_b.id).stock_qty == 10
        assert db_session.query(StockMovement).count() == 0

    def test_ledger_check(self, db_session, tenant_a, product_b):
        with pytest.raises(NotFoundError):
            verify_product_ledger(tenant_a, product_b.id)

    def test_companies_are_independent(self, db_session, company_a, company_b):
        assert db_session.query(Company).count() == 2
