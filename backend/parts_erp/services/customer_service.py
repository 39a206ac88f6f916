# Overview: Customer loyalty, credit headroom and invoicing collaborators of the sale workflow.

"""
Customer Service

LOYALTY:
A customer is loyal when active, not deleted, not manually blocked,
classified GREEN and buying at least LOYALTY_MIN_MONTHLY_PURCHASE per month
on average. The discount rate is tiered on the monthly average.

CREDIT:
balance = sum of the remaining amount of every unpaid invoice.
A credit limit of 0 means unlimited.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Customer, Invoice, Sale
from ..time_utils import due_date, utcnow, window_start
from .document_service import next_document_number
from .pricing_service import round_currency
from .tenant_service import TenantContext, scoped_query


BEST_CLASSIFICATION = "GREEN"

# (minimum monthly average, discount %), highest first
LOYALTY_TIERS = (
    (Decimal("10000"), Decimal("10")),
    (Decimal("5000"), Decimal("7")),
    (Decimal("2000"), Decimal("5")),
    (Decimal("1000"), Decimal("3")),
    (Decimal("500"), Decimal("1")),
)

OPEN_INVOICE_STATUSES = ("pending", "partial")


@dataclass(frozen=True)
class CreditSummary:
    balance: Decimal
    credit_limit: Decimal

    @property
    def unlimited(self) -> bool:
        return self.credit_limit <= 0

    def to_dict(self) -> dict:
        return {
            "balance": format(self.balance, "f"),
            "creditLimit": format(self.credit_limit, "f"),
            "unlimited": self.unlimited,
        }


def get_customer(tenant: TenantContext, customer_id: int) -> Customer:
    customer = (
        scoped_query(Customer, tenant)
        .filter(Customer.id == customer_id, Customer.is_deleted.is_(False))
        .first()
    )
    if customer is None:
        raise NotFoundError(
            "Customer not found or does not belong to your company",
            details={"customer_id": customer_id},
        )
    return customer


def loyalty_discount_rate(monthly_average) -> Decimal:
    monthly_average = Decimal(monthly_average or 0)
    for threshold, rate in LOYALTY_TIERS:
        if monthly_average >= threshold:
            return rate
    return Decimal("0")


def is_eligible_for_loyalty(customer: Customer) -> bool:
    if not customer.is_active or customer.is_deleted:
        return False
    if customer.blocked_manually:
        return False
    if customer.classification != BEST_CLASSIFICATION:
        return False
    threshold = current_app.config["LOYALTY_MIN_MONTHLY_PURCHASE"]
    return Decimal(customer.monthly_average_purchase or 0) >= threshold


def refresh_loyalty_status(customer: Customer) -> None:
    """Recompute is_loyal_client and loyalty_discount from current aggregates."""
    if is_eligible_for_loyalty(customer):
        customer.is_loyal_client = True
        customer.loyalty_discount = loyalty_discount_rate(customer.monthly_average_purchase)
    else:
        customer.is_loyal_client = False
        customer.loyalty_discount = Decimal("0")


def _open_invoice_balance(tenant: TenantContext, customer_id: int) -> Decimal:
    remaining = (
        db.session.query(func.coalesce(func.sum(Invoice.total - Invoice.paid_amount), 0))
        .filter(
            Invoice.company_id == tenant.company_id,
            Invoice.customer_id == customer_id,
            Invoice.status.in_(OPEN_INVOICE_STATUSES),
        )
        .scalar()
    )
    return round_currency(remaining or 0)


def credit_limit_summary(tenant: TenantContext, customer_id: int) -> CreditSummary:
    customer = get_customer(tenant, customer_id)
    return CreditSummary(
        balance=_open_invoice_balance(tenant, customer.id),
        credit_limit=Decimal(customer.credit_limit or 0),
    )


def recalculate_financial_stats(tenant: TenantContext, customer_id: int) -> Customer:
    """
    Refresh totals, balance, trailing 12-month monthly average and loyalty.

    Return sales are excluded from purchase totals.
    """
    customer = get_customer(tenant, customer_id)

    base = db.session.query(func.coalesce(func.sum(Sale.total_incl_tax), 0)).filter(
        Sale.company_id == tenant.company_id,
        Sale.customer_id == customer.id,
        Sale.is_return.is_(False),
    )
    total = base.scalar() or 0
    last_year = base.filter(Sale.sale_date >= window_start(365)).scalar() or 0

    customer.total_purchases = round_currency(total)
    customer.monthly_average_purchase = round_currency(Decimal(last_year) / 12)
    customer.balance = _open_invoice_balance(tenant, customer.id)
    refresh_loyalty_status(customer)

    db.session.commit()
    return customer


def create_invoice_from_sale(tenant: TenantContext, sale_id: int) -> Invoice:
    """
    Raise the invoice for a customer sale; returns the existing one if any.

    Raises:
        NotFoundError: sale outside the company
        ValidationError: sale without customer
    """
    sale = scoped_query(Sale, tenant).filter(Sale.id == sale_id).first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    if sale.customer_id is None:
        raise ValidationError("Cannot invoice a sale without customer")

    existing = scoped_query(Invoice, tenant).filter(Invoice.sale_id == sale.id).first()
    if existing is not None:
        return existing

    terms = int(current_app.config["INVOICE_PAYMENT_TERMS_DAYS"])
    invoice_date = sale.sale_date or utcnow()
    invoice = Invoice(
        company_id=tenant.company_id,
        customer_id=sale.customer_id,
        sale_id=sale.id,
        invoice_number=next_document_number(
            company_id=tenant.company_id,
            column=Invoice.invoice_number,
            prefix="INV",
            pad=4,
            when=invoice_date,
        ),
        invoice_date=invoice_date,
        due_date=due_date(invoice_date, terms),
        subtotal=sale.total_excl_tax,
        tax=sale.total_tax,
        total=sale.total_incl_tax,
        paid_amount=Decimal("0"),
        status="pending",
        payment_terms=terms,
    )
    db.session.add(invoice)
    db.session.flush()

    customer = get_customer(tenant, sale.customer_id)
    customer.balance = _open_invoice_balance(tenant, customer.id)

    db.session.commit()
    return invoice
