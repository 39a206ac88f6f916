from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z
from ._serialize import money


# Best tier first
CLASSIFICATIONS = ("GREEN", "YELLOW", "RED", "BLACK")


class Customer(db.Model):
    """
    Counter/credit customer.

    Classification and the financial aggregates are maintained by the
    customer subsystem; the sale workflow only reads them to decide loyalty
    eligibility and credit headroom.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_company_name", "company_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)

    classification = db.Column(db.String(16), nullable=False, default="GREEN")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    blocked_manually = db.Column(db.Boolean, nullable=False, default=False)

    # 0 means unlimited
    credit_limit = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))

    # Denormalized aggregates (refreshed after each committed sale)
    monthly_average_purchase = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_purchases = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))
    balance = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))
    is_loyal_client = db.Column(db.Boolean, nullable=False, default=False)
    loyalty_discount = db.Column(db.Numeric(7, 3), nullable=False, default=Decimal("0"))

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "companyId": self.company_id,
            "name": self.name,
            "phone": self.phone,
            "classification": self.classification,
            "isActive": self.is_active,
            "isDeleted": self.is_deleted,
            "blockedManually": self.blocked_manually,
            "creditLimit": money(self.credit_limit),
            "monthlyAveragePurchase": money(self.monthly_average_purchase),
            "totalPurchases": money(self.total_purchases),
            "balance": money(self.balance),
            "isLoyalClient": self.is_loyal_client,
            "loyaltyDiscount": money(self.loyalty_discount),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class Invoice(db.Model):
    """Customer invoice raised from a non-cash sale (one per sale)."""
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("company_id", "invoice_number", name="uq_invoices_company_number"),
        db.UniqueConstraint("sale_id", name="uq_invoices_sale"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)

    invoice_number = db.Column(db.String(64), nullable=False)
    invoice_date = db.Column(db.DateTime(timezone=True), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=False)

    subtotal = db.Column(db.Numeric(14, 2), nullable=False)
    tax = db.Column(db.Numeric(14, 2), nullable=False)
    total = db.Column(db.Numeric(14, 2), nullable=False)
    paid_amount = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))

    # pending, partial, paid
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_terms = db.Column(db.Integer, nullable=False, default=30)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))

    @property
    def remaining_amount(self) -> Decimal:
        return Decimal(self.total) - Decimal(self.paid_amount or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "companyId": self.company_id,
            "customerId": self.customer_id,
            "saleId": self.sale_id,
            "invoiceNumber": self.invoice_number,
            "invoiceDate": to_utc_z(self.invoice_date),
            "dueDate": to_utc_z(self.due_date),
            "subtotal": money(self.subtotal),
            "tax": money(self.tax),
            "total": money(self.total),
            "paidAmount": money(self.paid_amount),
            "remainingAmount": money(self.remaining_amount),
            "status": self.status,
            "paymentTerms": self.payment_terms,
        }
