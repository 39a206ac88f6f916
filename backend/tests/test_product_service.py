# Overview: Pytest coverage for catalogue pricing rules.

from decimal import Decimal

import pytest

from parts_erp.errors import ConflictError, NotFoundError, ValidationError
from parts_erp.models import StockMovement
from parts_erp.services.pricing_service import decompose_product_pricing
from parts_erp.services.product_service import create_product, list_low_stock_products, update_product


class TestCreateProduct:

    def test_sale_price_derived_from_purchase_price(self, db_session, tenant_a):
        product = create_product(tenant_a, payload={"sku": "OIL-5W30", "name": "Engine oil 5W30", "purchasePrice": "50"})

        assert product.purchase_price == Decimal("50")
        assert product.last_purchase_price == Decimal("50")
        # max(50 * 1.20, 50 * 1.10) * 1.19
        assert product.sale_price == Decimal("71.40")
        assert product.stock_qty == 0

    def test_manual_sale_price_without_cost(self, db_session, tenant_a):
        product = create_product(tenant_a, payload={"sku": "WIPER", "name": "Wiper blade", "salePrice": 12.5})
        assert product.sale_price == Decimal("12.50")
        assert product.purchase_price == Decimal("0")

    def test_custom_rates(self, db_session, tenant_a):
        product = create_product(tenant_a, payload={
            "sku": "FILTER",
            "name": "Air filter",
            "purchasePrice": "10",
            "marginRate": 50,
            "taxRate": 0,
        })
        assert product.sale_price == Decimal("15.00")

    def test_initial_stock_is_booked_as_movement(self, db_session, tenant_a):
        product = create_product(tenant_a, payload={"sku": "BULB", "name": "H7 bulb", "salePrice": "4", "stockQty": 12})

        assert product.stock_qty == 12
        movement = db_session.query(StockMovement).filter_by(product_id=product.id).one()
        assert (movement.type, movement.before_qty, movement.after_qty, movement.source) == ("IN", 0, 12, "initial")

    def test_duplicate_sku_in_same_company(self, db_session, tenant_a, product_a):
        with pytest.raises(ConflictError):
            create_product(tenant_a, payload={"sku": product_a.sku, "name": "Other", "salePrice": "1"})

    def test_same_sku_in_other_company_is_allowed(self, db_session, tenant_b, product_a):
        product = create_product(tenant_b, payload={"sku": product_a.sku, "name": "Other", "salePrice": "1"})
        assert product.company_id == tenant_b.company_id

    @pytest.mark.parametrize("payload", [
        {"name": "No sku", "salePrice": "1"},
        {"sku": "X", "salePrice": "1"},
        {"sku": "X", "name": "No price"},
        {"sku": "X", "name": "Negative", "purchasePrice": "-1"},
        {"sku": "X", "name": "Bad stock", "salePrice": "1", "stockQty": -2},
        {"sku": "X", "name": "Float stock", "salePrice": "1", "stockQty": 1.5},
    ])
    def test_invalid_payload(self, db_session, tenant_a, payload):
        with pytest.raises(ValidationError):
            create_product(tenant_a, payload=payload)


class TestUpdateProduct:

    def test_purchase_price_change_rederives_sale_price(self, db_session, tenant_a, product_a):
        product = update_product(tenant_a, product_a.id, payload={"purchasePrice": "100"})
        # target 120 vs floor 55 (last cost stays 50)
        assert product.sale_price == Decimal("142.80")

    def test_margin_change_rederives_sale_price(self, db_session, tenant_a, product_a):
        product = update_product(tenant_a, product_a.id, payload={"marginRate": 40})
        assert product.sale_price == Decimal("83.30")

    def test_manual_sale_price_rejected_once_cost_exists(self, db_session, tenant_a, product_a):
        with pytest.raises(ValidationError):
            update_product(tenant_a, product_a.id, payload={"salePrice": "1.00"})

    def test_manual_sale_price_allowed_without_cost(self, db_session, tenant_a, make_product, company_a):
        product = make_product(company_a, purchase_price=Decimal("0"), last_purchase_price=Decimal("0"))
        product = update_product(tenant_a, product.id, payload={"salePrice": "9.99"})
        assert product.sale_price == Decimal("9.99")

    def test_stock_cannot_be_patched(self, db_session, tenant_a, product_a):
        with pytest.raises(ValidationError):
            update_product(tenant_a, product_a.id, payload={"stockQty": 100})

    def test_foreign_product(self, db_session, tenant_a, product_b):
        with pytest.raises(NotFoundError):
            update_product(tenant_a, product_b.id, payload={"name": "Hijack"})


class TestCatalogueQueries:

    def test_low_stock(self, db_session, tenant_a, make_product, company_a, company_b):
        low = make_product(company_a, stock_qty=2, min_stock=2)
        make_product(company_a, stock_qty=3, min_stock=2)
        make_product(company_a, stock_qty=0, min_stock=5, is_active=False)
        make_product(company_b, stock_qty=0, min_stock=5)

        assert [p.id for p in list_low_stock_products(tenant_a)] == [low.id]

    def test_decompose_pricing(self, db_session, product_a):
        product_a.sale_price = Decimal("71.40")
        db_session.commit()

        pricing = decompose_product_pricing(product_a)

        assert pricing["priceExclTax"] == "60.00"
        assert pricing["taxAmount"] == "11.40"
        assert pricing["marginAmount"] == "10.00"
        assert pricing["marginPercent"] == "20.00"
        assert pricing["averageCost"] == "50.0000"
        assert pricing["recommendedPrice"] == "71.40"
