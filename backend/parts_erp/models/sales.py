from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z
from ._serialize import money


PAYMENT_METHODS = ("CASH", "CHECK", "CREDIT")


class Sale(db.Model):
    """
    Counter sale.

    Created atomically with its OUT stock movements and never updated
    afterwards (no update endpoint). Returns and replacements are recorded
    as new sales linked through return_sale_id.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_company_date", "company_id", "sale_date"),
        db.Index("ix_sales_company_customer", "company_id", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    created_by = db.Column(db.Integer, nullable=False)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    reference = db.Column(db.String(128), nullable=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    vehicle_id = db.Column(db.Integer, nullable=True)

    payment_method = db.Column(db.String(16), nullable=False, default="CASH")

    total_excl_tax = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_tax = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_incl_tax = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))

    loyalty_discount = db.Column(db.Numeric(7, 3), nullable=True)
    loyalty_discount_amount = db.Column(db.Numeric(14, 2), nullable=True)

    is_return = db.Column(db.Boolean, nullable=False, default=False)
    is_replacement = db.Column(db.Boolean, nullable=False, default=False)
    return_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer")
    lines = db.relationship(
        "SaleLine",
        back_populates="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleLine.position",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "companyId": self.company_id,
            "createdBy": self.created_by,
            "saleDate": to_utc_z(self.sale_date),
            "reference": self.reference,
            "customerId": self.customer_id,
            "customerName": self.customer_name,
            "vehicleId": self.vehicle_id,
            "paymentMethod": self.payment_method,
            "items": [line.to_dict() for line in self.lines],
            "totalExclTax": money(self.total_excl_tax),
            "totalTax": money(self.total_tax),
            "totalInclTax": money(self.total_incl_tax),
            "loyaltyDiscount": money(self.loyalty_discount),
            "loyaltyDiscountAmount": money(self.loyalty_discount_amount),
            "isReturn": self.is_return,
            "isReplacement": self.is_replacement,
            "returnSaleId": self.return_sale_id,
            "createdAt": to_utc_z(self.created_at),
        }


class SaleLine(db.Model):
    """Sale line item with resolved price, discount and tax."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("qty > 0", name="ck_sale_lines_qty"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=True)

    qty = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(14, 4), nullable=False)
    base_unit_price = db.Column(db.Numeric(14, 4), nullable=True)
    discount_rate = db.Column(db.Numeric(7, 3), nullable=True)
    tax_rate = db.Column(db.Numeric(7, 3), nullable=False, default=Decimal("0"))
    total_excl_tax = db.Column(db.Numeric(14, 2), nullable=False)
    total_incl_tax = db.Column(db.Numeric(14, 2), nullable=False)

    sale = db.relationship("Sale", back_populates="lines")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "qty": self.qty,
            "unitPrice": money(self.unit_price),
            "baseUnitPrice": money(self.base_unit_price),
            "discountRate": money(self.discount_rate),
            "taxRate": money(self.tax_rate),
            "totalExclTax": money(self.total_excl_tax),
            "totalInclTax": money(self.total_incl_tax),
        }
