# Overview: Pytest coverage for loyalty tiers, credit summary and invoicing.

from datetime import timedelta
from decimal import Decimal

import pytest

from parts_erp.errors import NotFoundError, ValidationError
from parts_erp.models import Invoice, Sale
from parts_erp.services.customer_service import (
    create_invoice_from_sale,
    credit_limit_summary,
    is_eligible_for_loyalty,
    loyalty_discount_rate,
    recalculate_financial_stats,
)
from parts_erp.time_utils import utcnow


def add_sale(db_session, tenant, customer, total, *, is_return=False, days_ago=0, payment_method="CREDIT"):
    total = Decimal(total)
    sale = Sale(
        company_id=tenant.company_id,
        created_by=tenant.user_id,
        sale_date=utcnow() - timedelta(days=days_ago),
        customer_id=customer.id,
        payment_method=payment_method,
        total_excl_tax=total,
        total_tax=Decimal("0"),
        total_incl_tax=total,
        is_return=is_return,
    )
    db_session.add(sale)
    db_session.commit()
    return sale


class TestLoyalty:

    @pytest.mark.parametrize("monthly,rate", [
        ("0", "0"),
        ("499.99", "0"),
        ("500", "1"),
        ("999.99", "1"),
        ("1000", "3"),
        ("2000", "5"),
        ("5000", "7"),
        ("9999.99", "7"),
        ("10000", "10"),
        ("250000", "10"),
    ])
    def test_discount_tiers(self, monthly, rate):
        assert loyalty_discount_rate(Decimal(monthly)) == Decimal(rate)

    def test_eligibility(self, db_session, make_customer, company_a):
        assert is_eligible_for_loyalty(make_customer(company_a, monthly_average_purchase=Decimal("500")))
        assert not is_eligible_for_loyalty(make_customer(company_a, monthly_average_purchase=Decimal("499")))
        assert not is_eligible_for_loyalty(
            make_customer(company_a, monthly_average_purchase=Decimal("900"), classification="RED")
        )
        assert not is_eligible_for_loyalty(
            make_customer(company_a, monthly_average_purchase=Decimal("900"), is_deleted=True)
        )


class TestFinancialStats:

    def test_trailing_year_average_ignores_returns(self, db_session, tenant_a, make_customer, company_a):
        customer = make_customer(company_a)
        add_sale(db_session, tenant_a, customer, "9000")
        add_sale(db_session, tenant_a, customer, "3000", days_ago=100)
        add_sale(db_session, tenant_a, customer, "1200", days_ago=400)
        add_sale(db_session, tenant_a, customer, "5000", is_return=True)

        customer = recalculate_financial_stats(tenant_a, customer.id)

        assert customer.total_purchases == Decimal("13200.00")
        assert customer.monthly_average_purchase == Decimal("1000.00")
        assert customer.is_loyal_client is True
        assert customer.loyalty_discount == Decimal("3")

    def test_loyalty_dropped_when_average_falls(self, db_session, tenant_a, make_customer, company_a):
        customer = make_customer(
            company_a,
            monthly_average_purchase=Decimal("5000"),
            is_loyal_client=True,
            loyalty_discount=Decimal("7"),
        )
        customer = recalculate_financial_stats(tenant_a, customer.id)

        assert customer.monthly_average_purchase == Decimal("0")
        assert customer.is_loyal_client is False
        assert customer.loyalty_discount == Decimal("0")

    def test_foreign_customer(self, db_session, tenant_b, customer_a):
        with pytest.raises(NotFoundError):
            recalculate_financial_stats(tenant_b, customer_a.id)


class TestInvoicing:

    def test_invoice_is_idempotent_per_sale(self, db_session, tenant_a, customer_a):
        sale = add_sale(db_session, tenant_a, customer_a, "250")

        first = create_invoice_from_sale(tenant_a, sale.id)
        second = create_invoice_from_sale(tenant_a, sale.id)

        assert first.id == second.id
        assert db_session.query(Invoice).count() == 1
        assert first.invoice_number.endswith("-0001")
        assert first.due_date - first.invoice_date == timedelta(days=30)

    def test_numbers_increase(self, db_session, tenant_a, customer_a):
        first = create_invoice_from_sale(tenant_a, add_sale(db_session, tenant_a, customer_a, "1").id)
        second = create_invoice_from_sale(tenant_a, add_sale(db_session, tenant_a, customer_a, "1").id)
        assert first.invoice_number.endswith("-0001")
        assert second.invoice_number.endswith("-0002")

    def test_payment_terms_from_config(self, app, db_session, tenant_a, customer_a, monkeypatch):
        monkeypatch.setitem(app.config, "INVOICE_PAYMENT_TERMS_DAYS", 45)
        invoice = create_invoice_from_sale(tenant_a, add_sale(db_session, tenant_a, customer_a, "1").id)
        assert invoice.payment_terms == 45
        assert invoice.due_date - invoice.invoice_date == timedelta(days=45)

    def test_sale_without_customer(self, db_session, tenant_a):
        sale = Sale(
            company_id=tenant_a.company_id,
            created_by=tenant_a.user_id,
            payment_method="CHECK",
        )
        db_session.add(sale)
        db_session.commit()
        with pytest.raises(ValidationError):
            create_invoice_from_sale(tenant_a, sale.id)

    def test_credit_summary_sums_open_invoices(self, db_session, tenant_a, make_customer, company_a):
        customer = make_customer(company_a, credit_limit=Decimal("1000"))
        paid = create_invoice_from_sale(tenant_a, add_sale(db_session, tenant_a, customer, "300").id)
        partial = create_invoice_from_sale(tenant_a, add_sale(db_session, tenant_a, customer, "200").id)
        create_invoice_from_sale(tenant_a, add_sale(db_session, tenant_a, customer, "50").id)

        paid.paid_amount = Decimal("300")
        paid.status = "paid"
        partial.paid_amount = Decimal("120")
        partial.status = "partial"
        db_session.commit()

        summary = credit_limit_summary(tenant_a, customer.id)
        assert summary.balance == Decimal("130.00")
        assert summary.credit_limit == Decimal("1000")
        assert summary.unlimited is False
