from __future__ import annotations

from decimal import Decimal

from sqlalchemy import event

from ..extensions import db
from ..errors import ImmutableRecordError
from ..time_utils import to_utc_z
from ._serialize import money


class Product(db.Model):
    """
    Spare-part catalogue entry.

    MULTI-TENANT: Products are scoped to companies via company_id.
    SKUs are unique within a company (among non-deleted rows, enforced in
    product_service; the DB constraint covers all rows).

    COST FIELDS:
    - purchase_price: weighted-average purchase cost (excl. tax)
    - last_purchase_price: unit cost of the latest reception (excl. tax)
    - sale_price: tax-inclusive price derived by the pricing engine once a
      cost exists; hand-set only while no cost is known.

    stock_qty is a denormalized quantity-on-hand. It only changes through the
    stock ledger, which appends a StockMovement for every change.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("company_id", "sku", name="uq_products_company_sku"),
        db.Index("ix_products_company_name", "company_id", "name"),
        db.Index("ix_products_company_deleted", "company_id", "is_deleted"),
        db.CheckConstraint("stock_qty >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    manufacturer_ref = db.Column(db.String(128), nullable=True)
    brand = db.Column(db.String(128), nullable=True)
    category = db.Column(db.String(128), nullable=True)

    purchase_price = db.Column(db.Numeric(14, 4), nullable=False, default=Decimal("0"))
    last_purchase_price = db.Column(db.Numeric(14, 4), nullable=False, default=Decimal("0"))
    sale_price = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0"))

    pricing_mode = db.Column(db.String(16), nullable=False, default="HYBRID")
    margin_rate = db.Column(db.Numeric(7, 3), nullable=False, default=Decimal("20"))
    min_margin_on_last_purchase = db.Column(db.Numeric(7, 3), nullable=False, default=Decimal("10"))
    tax_rate = db.Column(db.Numeric(7, 3), nullable=False, default=Decimal("19"))

    stock_qty = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)
    max_stock = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    company = db.relationship("Company", backref=db.backref("products", lazy=True))
    supplier_infos = db.relationship(
        "ProductSupplierInfo",
        back_populates="product",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ProductSupplierInfo.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} company_id={self.company_id} stock={self.stock_qty}>"

    @property
    def label(self) -> str:
        return self.name or self.sku

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "companyId": self.company_id,
            "sku": self.sku,
            "name": self.name,
            "manufacturerRef": self.manufacturer_ref,
            "brand": self.brand,
            "category": self.category,
            "purchasePrice": money(self.purchase_price),
            "lastPurchasePrice": money(self.last_purchase_price),
            "salePrice": money(self.sale_price),
            "pricingMode": self.pricing_mode,
            "marginRate": money(self.margin_rate),
            "minMarginOnLastPurchase": money(self.min_margin_on_last_purchase),
            "taxRate": money(self.tax_rate),
            "stockQty": self.stock_qty,
            "minStock": self.min_stock,
            "maxStock": self.max_stock,
            "isActive": self.is_active,
            "isDeleted": self.is_deleted,
            "supplierInfos": [info.to_dict() for info in self.supplier_infos],
            "versionId": self.version_id,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class ProductSupplierInfo(db.Model):
    """
    Per-supplier purchase history for one product.

    Upserted on every purchase-order reception: running average price,
    cumulative quantity, last price and date.
    """
    __tablename__ = "product_supplier_infos"
    __table_args__ = (
        db.UniqueConstraint("product_id", "supplier_id", name="uq_product_supplier"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    # Denormalized display name (refreshed on each reception)
    supplier_name = db.Column(db.String(255), nullable=True)

    last_purchase_price = db.Column(db.Numeric(14, 4), nullable=False, default=Decimal("0"))
    average_purchase_price = db.Column(db.Numeric(14, 4), nullable=False, default=Decimal("0"))
    total_qty_purchased = db.Column(db.Integer, nullable=False, default=0)
    last_purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)
    is_preferred = db.Column(db.Boolean, nullable=False, default=False)

    product = db.relationship("Product", back_populates="supplier_infos")

    def to_dict(self) -> dict:
        return {
            "supplierId": self.supplier_id,
            "supplierName": self.supplier_name,
            "lastPurchasePrice": money(self.last_purchase_price),
            "averagePurchasePrice": money(self.average_purchase_price),
            "totalQtyPurchased": self.total_qty_purchased,
            "lastPurchaseDate": to_utc_z(self.last_purchase_date),
            "isPreferred": self.is_preferred,
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger entry.

    TYPES:
    - IN: quantity added (after = before + quantity)
    - OUT: quantity removed (after = before - quantity)
    - ADJUST: stock set to an absolute level; quantity = |after - before|

    IMMUTABLE: rows are created once and never updated or deleted
    (enforced by ORM hooks below).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_company_product_created", "company_id", "product_id", "created_at"),
        db.Index("ix_stock_movements_company_type", "company_id", "type"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_movements_quantity"),
        db.CheckConstraint("before_qty >= 0", name="ck_stock_movements_before"),
        db.CheckConstraint("after_qty >= 0", name="ck_stock_movements_after"),
        db.CheckConstraint("type IN ('IN', 'OUT', 'ADJUST')", name="ck_stock_movements_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    before_qty = db.Column(db.Integer, nullable=False)
    after_qty = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    # sale, purchase, manual, ...
    source = db.Column(db.String(32), nullable=True, index=True)
    reference = db.Column(db.String(128), nullable=True)

    created_by = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} product_id={self.product_id} type={self.type} "
            f"{self.before_qty}->{self.after_qty}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "companyId": self.company_id,
            "productId": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "beforeQty": self.before_qty,
            "afterQty": self.after_qty,
            "reason": self.reason,
            "source": self.source,
            "reference": self.reference,
            "createdBy": self.created_by,
            "createdAt": to_utc_z(self.created_at),
        }


@event.listens_for(StockMovement, "before_update")
def _block_movement_update(mapper, connection, target):
    raise ImmutableRecordError("Stock movements are append-only and cannot be modified")


@event.listens_for(StockMovement, "before_delete")
def _block_movement_delete(mapper, connection, target):
    raise ImmutableRecordError("Stock movements are append-only and cannot be deleted")
