# Overview: Catalogue operations; sale price stays derived from cost once a cost exists.

"""
Product Service

MULTI-TENANT: All product operations are scoped to tenant.company_id.

PRICING RULE:
salePrice is derived by the pricing engine whenever the product has a cost
(average or last purchase price > 0). A hand-set salePrice is accepted only
while no cost exists yet.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Product
from ..validation import clean_text, parse_decimal, parse_int, parse_optional_decimal
from .pricing_service import has_cost, recommended_price_for_product, round_cost, round_currency
from .stock_ledger_service import apply_movement
from .tenant_service import TenantContext, scoped_query
from .unit_of_work import UnitOfWork, get_unit_of_work


TEXT_FIELDS = {
    "name": ("name", 255),
    "manufacturerRef": ("manufacturer_ref", 128),
    "brand": ("brand", 128),
    "category": ("category", 128),
}
RATE_FIELDS = {
    "marginRate": "margin_rate",
    "minMarginOnLastPurchase": "min_margin_on_last_purchase",
    "taxRate": "tax_rate",
}


def get_product(tenant: TenantContext, product_id: int, *, include_deleted: bool = False) -> Product:
    q = scoped_query(Product, tenant).filter(Product.id == product_id)
    if not include_deleted:
        q = q.filter(Product.is_deleted.is_(False))
    product = q.first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def _ensure_sku_free(tenant: TenantContext, sku: str, *, exclude_id: int | None = None) -> None:
    q = scoped_query(Product, tenant).filter(Product.sku == sku, Product.is_deleted.is_(False))
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise ConflictError(f"A product with SKU {sku} already exists", details={"sku": sku})


def refresh_sale_price(product: Product) -> None:
    """Re-derive sale_price from costs; no-op while the product has no cost."""
    if has_cost(product):
        product.sale_price = recommended_price_for_product(product)


def create_product(tenant: TenantContext, *, payload: dict) -> Product:
    """
    Create a catalogue product.

    Required: sku, name, and salePrice or purchasePrice.
    An initial stockQty > 0 is booked as an IN movement so the ledger
    replays from zero.

    Raises:
        ValidationError: missing/invalid fields
        ConflictError: SKU already used in the company
    """
    sku = clean_text(payload.get("sku"), max_length=64, field="sku")
    name = clean_text(payload.get("name"), max_length=255, field="name")
    if not sku:
        raise ValidationError("sku is required")
    if not name:
        raise ValidationError("name is required")

    purchase_price = parse_optional_decimal(payload.get("purchasePrice"), "purchasePrice")
    sale_price = parse_optional_decimal(payload.get("salePrice"), "salePrice")
    if purchase_price is None and sale_price is None:
        raise ValidationError("salePrice or purchasePrice is required")

    cfg = current_app.config
    rates = {
        "margin_rate": cfg["DEFAULT_MARGIN_RATE"],
        "min_margin_on_last_purchase": cfg["DEFAULT_MIN_MARGIN_ON_LAST_PURCHASE"],
        "tax_rate": cfg["DEFAULT_TAX_RATE"],
    }
    for key, attr in RATE_FIELDS.items():
        if payload.get(key) is not None:
            rates[attr] = parse_decimal(payload[key], key)

    stock_qty = parse_int(payload.get("stockQty", 0), "stockQty")
    if stock_qty < 0:
        raise ValidationError("stockQty must be greater than or equal to 0")
    min_stock = parse_int(payload.get("minStock", 0), "minStock")
    max_stock = payload.get("maxStock")
    max_stock = parse_int(max_stock, "maxStock") if max_stock is not None else None
    if min_stock < 0 or (max_stock is not None and max_stock < min_stock):
        raise ValidationError("minStock/maxStock out of range")

    def _op(uow: UnitOfWork) -> Product:
        _ensure_sku_free(tenant, sku)

        product = Product(
            company_id=tenant.company_id,
            sku=sku,
            name=name,
            manufacturer_ref=clean_text(payload.get("manufacturerRef"), max_length=128, field="manufacturerRef"),
            brand=clean_text(payload.get("brand"), max_length=128, field="brand"),
            category=clean_text(payload.get("category"), max_length=128, field="category"),
            purchase_price=Decimal("0"),
            last_purchase_price=Decimal("0"),
            sale_price=round_currency(sale_price or 0),
            stock_qty=0,
            min_stock=min_stock,
            max_stock=max_stock,
            **rates,
        )
        if purchase_price is not None and purchase_price > 0:
            product.purchase_price = round_cost(purchase_price)
            product.last_purchase_price = round_cost(purchase_price)
            refresh_sale_price(product)

        db.session.add(product)
        uow.checkpoint()

        if stock_qty > 0:
            apply_movement(
                uow,
                tenant,
                movement_type="IN",
                quantity=stock_qty,
                product=product,
                reason="Initial stock",
                source="initial",
                reference=sku,
            )
        return product

    product = get_unit_of_work().run(_op)
    current_app.logger.info("Product %s created (id=%s, company=%s)", product.sku, product.id, tenant.company_id)
    return product


def update_product(tenant: TenantContext, product_id: int, *, payload: dict) -> Product:
    """
    Patch catalogue fields and re-derive the sale price.

    Stock quantity cannot be patched here; use a stock movement.

    Raises:
        ValidationError: invalid field, stockQty in patch, or manual
            salePrice on a product that has a cost
        ConflictError: new SKU already used
        NotFoundError: product not in company
    """
    if "stockQty" in payload:
        raise ValidationError("stockQty can only change through stock movements")

    def _op(uow: UnitOfWork) -> Product:
        product = get_product(tenant, product_id)

        if "sku" in payload:
            sku = clean_text(payload.get("sku"), max_length=64, field="sku")
            if not sku:
                raise ValidationError("sku cannot be empty")
            if sku != product.sku:
                _ensure_sku_free(tenant, sku, exclude_id=product.id)
            product.sku = sku

        for key, (attr, max_length) in TEXT_FIELDS.items():
            if key in payload:
                value = clean_text(payload.get(key), max_length=max_length, field=key)
                if attr == "name" and not value:
                    raise ValidationError("name cannot be empty")
                setattr(product, attr, value)

        for key, attr in RATE_FIELDS.items():
            if key in payload:
                setattr(product, attr, parse_decimal(payload[key], key))

        if "minStock" in payload:
            product.min_stock = parse_int(payload["minStock"], "minStock")
        if "maxStock" in payload:
            product.max_stock = parse_int(payload["maxStock"], "maxStock") if payload["maxStock"] is not None else None
        if product.min_stock < 0 or (product.max_stock is not None and product.max_stock < product.min_stock):
            raise ValidationError("minStock/maxStock out of range")

        if "isActive" in payload:
            if not isinstance(payload["isActive"], bool):
                raise ValidationError("isActive must be a boolean")
            product.is_active = payload["isActive"]

        if "purchasePrice" in payload:
            purchase_price = parse_decimal(payload["purchasePrice"], "purchasePrice")
            product.purchase_price = round_cost(purchase_price)
            if purchase_price > 0 and not product.last_purchase_price:
                product.last_purchase_price = round_cost(purchase_price)

        if "salePrice" in payload:
            if has_cost(product):
                raise ValidationError(
                    "salePrice is derived from the purchase cost and cannot be set manually"
                )
            product.sale_price = round_currency(parse_decimal(payload["salePrice"], "salePrice"))

        refresh_sale_price(product)
        uow.checkpoint()
        return product

    return get_unit_of_work().run(_op)


def list_low_stock_products(tenant: TenantContext) -> list[Product]:
    """Active, non-deleted products at or below their minimum stock."""
    return (
        scoped_query(Product, tenant)
        .filter(
            Product.is_active.is_(True),
            Product.is_deleted.is_(False),
            Product.stock_qty <= Product.min_stock,
        )
        .order_by(Product.stock_qty.asc(), Product.name.asc())
        .all()
    )
