# Overview: Pytest coverage for purchase orders and reception into stock.

import re
from decimal import Decimal

import pytest

from parts_erp.errors import (
    AlreadyReceivedError,
    ConflictError,
    InvalidOrderStateError,
    NotFoundError,
    OverReceiptError,
    ValidationError,
)
from parts_erp.models import Product, PurchaseOrder, StockMovement, Supplier
from parts_erp.services.purchase_service import (
    cancel_purchase_order,
    create_purchase_order,
    receive_purchase_order,
)
from parts_erp.services.supplier_service import create_supplier, get_supplier


def order_for(tenant, supplier, *items, **extra):
    payload = {
        "supplierId": supplier.id,
        "status": "PENDING",
        "items": [
            {"productId": product.id, "quantity": qty, "unitPrice": price}
            for product, qty, price in items
        ],
    }
    payload.update(extra)
    return create_purchase_order(tenant, payload=payload)


def movement_count(db_session):
    return db_session.query(StockMovement).count()


class TestCreatePurchaseOrder:

    def test_totals_and_number(self, db_session, tenant_a, supplier_a, product_a):
        order = order_for(tenant_a, supplier_a, (product_a, 20, "60"))

        assert re.fullmatch(r"PO-\d{8}-001", order.order_number)
        assert order.status == "PENDING"
        assert order.total_amount == Decimal("1200.00")
        assert order.total_amount_vat_included == Decimal("1428.00")
        assert order.lines[0].tax_rate == Decimal("19")
        assert order.lines[0].received_quantity == 0

        second = order_for(tenant_a, supplier_a, (product_a, 1, "1"))
        assert second.order_number.endswith("-002")

    def test_defaults_to_draft(self, db_session, tenant_a, supplier_a, product_a):
        order = create_purchase_order(tenant_a, payload={
            "supplierId": supplier_a.id,
            "items": [{"productId": product_a.id, "quantity": 1, "unitPrice": 5}],
        })
        assert order.status == "DRAFT"

    def test_duplicate_order_number(self, db_session, tenant_a, supplier_a, product_a):
        order_for(tenant_a, supplier_a, (product_a, 1, "1"), orderNumber="PO-MANUAL-1")
        with pytest.raises(ConflictError):
            order_for(tenant_a, supplier_a, (product_a, 1, "1"), orderNumber="PO-MANUAL-1")

    def test_foreign_supplier_or_product(self, db_session, tenant_a, supplier_a, supplier_b, product_a, product_b):
        with pytest.raises(NotFoundError):
            order_for(tenant_a, supplier_b, (product_a, 1, "1"))
        with pytest.raises(NotFoundError):
            order_for(tenant_a, supplier_a, (product_b, 1, "1"))
        assert db_session.query(PurchaseOrder).count() == 0

    def test_requires_items(self, db_session, tenant_a, supplier_a):
        with pytest.raises(ValidationError):
            create_purchase_order(tenant_a, payload={"supplierId": supplier_a.id, "items": []})

    def test_created_as_received_books_stock(self, db_session, tenant_a, supplier_a, product_a):
        order = order_for(tenant_a, supplier_a, (product_a, 4, "50"), status="RECEIVED")

        assert order.status == "RECEIVED"
        assert order.received_by == tenant_a.user_id
        assert db_session.get(Product, product_a.id).stock_qty == 14
        movement = db_session.query(StockMovement).one()
        assert movement.reason == f"Purchase order receipt: {order.order_number} - Auto-received on creation"


class TestReceivePurchaseOrder:

    def test_full_reception_recomputes_cost_and_price(self, db_session, tenant_a, supplier_a, product_a):
        order = order_for(tenant_a, supplier_a, (product_a, 20, "60"))

        result = receive_purchase_order(tenant_a, order.id)

        product = db_session.get(Product, product_a.id)
        assert product.stock_qty == 30
        assert product.purchase_price == Decimal("56.6667")
        assert product.last_purchase_price == Decimal("60")
        assert product.sale_price == Decimal("80.92")

        assert result.order.status == "RECEIVED"
        assert result.order.received_at is not None
        assert result.received == {product_a.id: 20}

        movement = db_session.query(StockMovement).one()
        assert (movement.type, movement.quantity, movement.before_qty, movement.after_qty) == ("IN", 20, 10, 30)
        assert movement.source == "purchase"
        assert movement.reference == order.order_number
        assert movement.reason == f"Purchase order receipt: {order.order_number}"

    def test_partial_reception(self, db_session, tenant_a, supplier_a, product_a):
        order = order_for(tenant_a, supplier_a, (product_a, 50, "50"))

        result = receive_purchase_order(
            tenant_a, order.id,
            lines=[{"productId": product_a.id, "qtyToReceive": 25}],
            reference="BL-7781",
            note="first truck",
        )

        assert result.order.status == "PARTIAL"
        assert result.order.lines[0].received_quantity == 25
        assert db_session.get(Product, product_a.id).stock_qty == 35
        movement = db_session.query(StockMovement).one()
        assert (movement.before_qty, movement.after_qty) == (10, 35)
        assert movement.reference == "BL-7781"
        assert movement.reason.endswith(" - first truck")

    def test_over_receipt_is_rejected(self, db_session, tenant_a, supplier_a, product_a):
        order = order_for(tenant_a, supplier_a, (product_a, 20, "60"))

        with pytest.raises(OverReceiptError):
            receive_purchase_order(tenant_a, order.id, lines=[{"productId": product_a.id, "qtyToReceive": 25}])

        assert db_session.get(Product, product_a.id).stock_qty == 10
        assert db_session.get(PurchaseOrder, order.id).lines[0].received_quantity == 0
        assert movement_count(db_session) == 0

    def test_second_full_reception_is_a_no_op(self, db_session, tenant_a, supplier_a, product_a):
        order = order_for(tenant_a, supplier_a, (product_a, 20, "60"))
        receive_purchase_order(tenant_a, order.id)
        before = movement_count(db_session)

        with pytest.raises(AlreadyReceivedError):
            receive_purchase_order(tenant_a, order.id)

        assert movement_count(db_session) == before
        assert db_session.get(Product, product_a.id).stock_qty == 30

    def test_rest_after_partial(self, db_session, tenant_a, supplier_a, product_a):
        order = order_for(tenant_a, supplier_a, (product_a, 50, "50"))
        receive_purchase_order(tenant_a, order.id, lines=[{"productId": product_a.id, "qtyToReceive": 25}])

        result = receive_purchase_order(tenant_a, order.id)

        assert result.received == {product_a.id: 25}
        assert result.order.status == "RECEIVED"
        assert db_session.get(Product, product_a.id).stock_qty == 60

    def test_product_on_several_lines(self, db_session, tenant_a, supplier_a, product_a):
        order = order_for(tenant_a, supplier_a, (product_a, 5, "40"), (product_a, 5, "60"))

        result = receive_purchase_order(tenant_a, order.id, lines=[
            {"productId": product_a.id, "qtyToReceive": 3},
            {"productId": product_a.id, "qtyToReceive": 4},
        ])

        lines = result.order.lines
        assert [line.received_quantity for line in lines] == [5, 2]
        assert result.order.status == "PARTIAL"

        product = db_session.get(Product, product_a.id)
        assert product.stock_qty == 17
        # allocation-weighted price (5*40 + 2*60) / 7 = 45.7143
        assert product.purchase_price == Decimal("48.2353")
        assert product.last_purchase_price == Decimal("60")
        assert movement_count(db_session) == 1

    def test_supplier_history_upsert(self, db_session, tenant_a, supplier_a, product_a):
        order = order_for(tenant_a, supplier_a, (product_a, 10, "40"))
        receive_purchase_order(tenant_a, order.id, lines=[{"productId": product_a.id, "qtyToReceive": 4}])

        info = db_session.get(Product, product_a.id).supplier_infos[0]
        assert info.supplier_id == supplier_a.id
        assert info.supplier_name == "Bosch Distribution"
        assert info.total_qty_purchased == 4
        assert info.is_preferred is True

        other = order_for(tenant_a, supplier_a, (product_a, 6, "50"))
        receive_purchase_order(tenant_a, other.id)

        infos = db_session.get(Product, product_a.id).supplier_infos
        assert len(infos) == 1
        assert infos[0].total_qty_purchased == 10
        assert infos[0].average_purchase_price == Decimal("46.0000")
        assert infos[0].last_purchase_price == Decimal("50")

    def test_product_not_on_order(self, db_session, tenant_a, supplier_a, product_a, make_product, company_a):
        other = make_product(company_a)
        order = order_for(tenant_a, supplier_a, (product_a, 5, "40"))
        with pytest.raises(ValidationError):
            receive_purchase_order(tenant_a, order.id, lines=[{"productId": other.id, "qtyToReceive": 1}])

    @pytest.mark.parametrize("qty", [0, -3, "2.5"])
    def test_non_positive_quantity(self, db_session, tenant_a, supplier_a, product_a, qty):
        order = order_for(tenant_a, supplier_a, (product_a, 5, "40"))
        with pytest.raises(ValidationError):
            receive_purchase_order(tenant_a, order.id, lines=[{"productId": product_a.id, "qtyToReceive": qty}])

    def test_empty_line_list_receives_everything(self, db_session, tenant_a, supplier_a, product_a):
        order = order_for(tenant_a, supplier_a, (product_a, 5, "40"))

        result = receive_purchase_order(tenant_a, order.id, lines=[])

        assert result.order.status == "RECEIVED"
        assert result.received == {product_a.id: 5}
        assert db_session.get(Product, product_a.id).stock_qty == 15

    def test_deleted_product_is_not_received(self, db_session, tenant_a, supplier_a, product_a):
        order = order_for(tenant_a, supplier_a, (product_a, 5, "40"))
        db_session.get(Product, product_a.id).is_deleted = True
        db_session.commit()

        with pytest.raises(NotFoundError):
            receive_purchase_order(tenant_a, order.id)

        assert db_session.get(Product, product_a.id).stock_qty == 10
        assert db_session.get(PurchaseOrder, order.id).lines[0].received_quantity == 0
        assert db_session.query(StockMovement).count() == 0

    def test_complete_lines_with_stale_status_are_finalized(self, db_session, tenant_a, supplier_a, product_a):
        order = order_for(tenant_a, supplier_a, (product_a, 5, "40"))
        order.lines[0].received_quantity = 5
        db_session.commit()

        result = receive_purchase_order(tenant_a, order.id)

        assert result.order.status == "RECEIVED"
        assert result.movements == []
        assert movement_count(db_session) == 0

    def test_foreign_order(self, db_session, tenant_a, tenant_b, supplier_a, product_a):
        order = order_for(tenant_a, supplier_a, (product_a, 5, "40"))
        with pytest.raises(NotFoundError):
            receive_purchase_order(tenant_b, order.id)


class TestCancelPurchaseOrder:

    def test_cancel_then_receive_is_rejected(self, db_session, tenant_a, supplier_a, product_a):
        order = order_for(tenant_a, supplier_a, (product_a, 5, "40"))

        cancelled = cancel_purchase_order(tenant_a, order.id)
        assert cancelled.status == "CANCELLED"
        assert cancelled.cancelled_by == tenant_a.user_id

        with pytest.raises(InvalidOrderStateError):
            receive_purchase_order(tenant_a, order.id)
        assert movement_count(db_session) == 0

    def test_cannot_cancel_after_reception(self, db_session, tenant_a, supplier_a, product_a):
        order = order_for(tenant_a, supplier_a, (product_a, 5, "40"))
        receive_purchase_order(tenant_a, order.id, lines=[{"productId": product_a.id, "qtyToReceive": 1}])

        with pytest.raises(InvalidOrderStateError):
            cancel_purchase_order(tenant_a, order.id)


class TestSuppliers:

    def test_create_and_lookup(self, db_session, tenant_a, tenant_b):
        supplier = create_supplier(tenant_a, payload={"name": "Mann Filter", "phone": " 71 000 000 "})

        assert supplier.company_id == tenant_a.company_id
        assert supplier.phone == "71 000 000"
        assert get_supplier(tenant_a, supplier.id).name == "Mann Filter"
        with pytest.raises(NotFoundError):
            get_supplier(tenant_b, supplier.id)

    def test_name_required(self, db_session, tenant_a):
        with pytest.raises(ValidationError):
            create_supplier(tenant_a, payload={"contactName": "Nobody"})
        assert db_session.query(Supplier).count() == 0
