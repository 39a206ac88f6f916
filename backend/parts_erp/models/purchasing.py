from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z
from ._serialize import money


class Supplier(db.Model):
    """
    Parts supplier.

    MULTI-TENANT: Suppliers are scoped to companies via company_id.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_company_name", "company_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    contact_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship("Company", backref=db.backref("suppliers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "companyId": self.company_id,
            "name": self.name,
            "contactName": self.contact_name,
            "email": self.email,
            "phone": self.phone,
            "isDeleted": self.is_deleted,
            "createdAt": to_utc_z(self.created_at),
        }


class PurchaseOrder(db.Model):
    """
    Purchase order sent to a supplier.

    LIFECYCLE:
    DRAFT / PENDING -> (receive) -> PARTIAL -> (receive more) -> RECEIVED
    CANCELLED is terminal and only reachable while nothing was received.

    Line received_quantity only ever increases toward quantity; the order
    status is derived from aggregate line completion.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("company_id", "order_number", name="uq_purchase_orders_company_number"),
        db.Index("ix_purchase_orders_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    order_number = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expected_date = db.Column(db.DateTime(timezone=True), nullable=True)

    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_amount_vat_included = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, nullable=False)
    received_by = db.Column(db.Integer, nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.Integer, nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier")
    lines = db.relationship(
        "PurchaseOrderLine",
        back_populates="purchase_order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.position",
    )

    def is_fully_received(self) -> bool:
        return all(line.is_complete for line in self.lines)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "companyId": self.company_id,
            "supplierId": self.supplier_id,
            "orderNumber": self.order_number,
            "status": self.status,
            "orderDate": to_utc_z(self.order_date),
            "expectedDate": to_utc_z(self.expected_date),
            "items": [line.to_dict() for line in self.lines],
            "totalAmount": money(self.total_amount),
            "totalAmountVatIncluded": money(self.total_amount_vat_included),
            "notes": self.notes,
            "createdBy": self.created_by,
            "receivedBy": self.received_by,
            "receivedAt": to_utc_z(self.received_at),
            "cancelledBy": self.cancelled_by,
            "cancelledAt": to_utc_z(self.cancelled_at),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class PurchaseOrderLine(db.Model):
    """Ordered product line; subtotal is stored excluding VAT."""
    __tablename__ = "purchase_order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_po_lines_quantity"),
        db.CheckConstraint("received_quantity >= 0", name="ck_po_lines_received"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    quantity = db.Column(db.Integer, nullable=False)
    received_quantity = db.Column(db.Integer, nullable=False, default=0)
    unit_price = db.Column(db.Numeric(14, 4), nullable=False)
    tax_rate = db.Column(db.Numeric(7, 3), nullable=False, default=Decimal("0"))
    subtotal = db.Column(db.Numeric(14, 2), nullable=False)

    purchase_order = db.relationship("PurchaseOrder", back_populates="lines")
    product = db.relationship("Product")

    @property
    def remaining_quantity(self) -> int:
        return max(0, (self.quantity or 0) - (self.received_quantity or 0))

    @property
    def is_complete(self) -> bool:
        return (self.received_quantity or 0) >= (self.quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "quantity": self.quantity,
            "receivedQuantity": self.received_quantity,
            "unitPrice": money(self.unit_price),
            "taxRate": money(self.tax_rate),
            "subtotal": money(self.subtotal),
        }
