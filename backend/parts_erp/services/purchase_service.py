# Overview: Purchase orders; creation, reception into stock, cancellation.

"""
Purchase Order Service

LIFECYCLE:
DRAFT / PENDING -> (receive) -> PARTIAL -> (receive more) -> RECEIVED
CANCELLED: only while nothing has been received; never receivable.

RECEPTION (one unit of work per call):
1. Load the order (company-scoped); reject CANCELLED, reject when every
   line is already complete (AlreadyReceived).
2. Effective lines: the caller's {productId, qtyToReceive} list, or every
   incomplete line's remaining quantity when omitted.
3. Validate everything before any mutation: product on the order,
   qtyToReceive > 0, aggregate per product <= remaining (OverReceipt).
4. Per product, in order: allocate the quantity to that product's lines,
   reload the product, recompute weighted-average cost, last purchase price
   and sale price, book one IN movement, upsert supplier price history.
5. Derive order status from line completion.

A product listed on several lines receives one movement per call; the cost
used for the average is the allocation-weighted unit price and
lastPurchasePrice is the price of the last line touched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..errors import (
    AlreadyReceivedError,
    ConflictError,
    InvalidOrderStateError,
    NoChangeError,
    NotFoundError,
    OverReceiptError,
    ValidationError,
)
from ..models import Product, ProductSupplierInfo, PurchaseOrder, PurchaseOrderLine, StockMovement
from ..time_utils import utcnow
from ..validation import clean_text, parse_choice, parse_datetime, parse_decimal, parse_id, parse_int, parse_optional_decimal
from .concurrency import lock_for_update
from .document_service import next_document_number
from .pricing_service import calculate_weighted_average_cost, round_cost, round_currency
from .product_service import refresh_sale_price
from .stock_ledger_service import apply_movement, load_product_fresh
from .supplier_service import get_supplier, supplier_display_name
from .tenant_service import TenantContext, scoped_query
from .unit_of_work import UnitOfWork, get_unit_of_work


STATUS_DRAFT = "DRAFT"
STATUS_PENDING = "PENDING"
STATUS_PARTIAL = "PARTIAL"
STATUS_RECEIVED = "RECEIVED"
STATUS_CANCELLED = "CANCELLED"

# Statuses a new order may be created with
CREATION_STATUSES = (STATUS_DRAFT, STATUS_PENDING, STATUS_RECEIVED)

AUTO_RECEIVE_NOTE = "Auto-received on creation"


@dataclass
class ReceptionResult:
    order: PurchaseOrder
    movements: list[StockMovement] = field(default_factory=list)
    received: dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(),
            "status": self.order.status,
            "received": [{"productId": pid, "quantity": qty} for pid, qty in self.received.items()],
            "movements": [m.to_dict() for m in self.movements],
        }


def _load_order(tenant: TenantContext, order_id: int, *, lock: bool = False) -> PurchaseOrder:
    q = scoped_query(PurchaseOrder, tenant).filter(
        PurchaseOrder.id == order_id,
        PurchaseOrder.is_deleted.is_(False),
    )
    if lock:
        q = lock_for_update(q)
    order = q.first()
    if order is None:
        raise NotFoundError(f"Purchase order {order_id} not found", details={"order_id": order_id})
    return order


def get_purchase_order(tenant: TenantContext, order_id: int) -> PurchaseOrder:
    return _load_order(tenant, order_id)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

def _parse_order_items(tenant: TenantContext, items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")

    product_ids = set()
    parsed = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = parse_id(item.get("productId"), f"items[{index}].productId")
        quantity = parse_int(item.get("quantity"), f"items[{index}].quantity")
        if quantity < 1:
            raise ValidationError(f"items[{index}].quantity must be at least 1")
        unit_price = parse_decimal(item.get("unitPrice"), f"items[{index}].unitPrice")
        tax_rate = parse_optional_decimal(item.get("taxRate"), f"items[{index}].taxRate")
        product_ids.add(product_id)
        parsed.append({
            "product_id": product_id,
            "quantity": quantity,
            "unit_price": round_cost(unit_price),
            "tax_rate": tax_rate,
        })

    products = {
        p.id: p
        for p in scoped_query(Product, tenant)
        .filter(Product.id.in_(product_ids), Product.is_deleted.is_(False))
        .all()
    }
    missing = sorted(product_ids - set(products))
    if missing:
        raise NotFoundError("Product not found", details={"product_ids": missing})

    for item in parsed:
        if item["tax_rate"] is None:
            item["tax_rate"] = products[item["product_id"]].tax_rate
    return parsed


def create_purchase_order(tenant: TenantContext, *, payload: dict) -> PurchaseOrder:
    """
    Create a purchase order.

    status defaults to DRAFT. status=RECEIVED stores the order and receives
    every line in the same unit of work.

    Raises:
        ValidationError: bad payload
        NotFoundError: supplier or product outside the company
        ConflictError: duplicate order number
    """
    supplier_id = parse_id(payload.get("supplierId"), "supplierId")
    status = parse_choice(payload.get("status") or STATUS_DRAFT, "status", CREATION_STATUSES)
    order_number = clean_text(payload.get("orderNumber"), max_length=64, field="orderNumber")
    expected_date = parse_datetime(payload.get("expectedDate"), "expectedDate")
    notes = clean_text(payload.get("notes"), max_length=2000, field="notes")

    def _op(uow: UnitOfWork) -> PurchaseOrder:
        get_supplier(tenant, supplier_id)
        items = _parse_order_items(tenant, payload.get("items"))

        number = order_number
        if number:
            exists = scoped_query(PurchaseOrder, tenant).filter(PurchaseOrder.order_number == number).first()
            if exists is not None:
                raise ConflictError(f"Order number {number} already exists", details={"orderNumber": number})
        else:
            number = next_document_number(
                company_id=tenant.company_id,
                column=PurchaseOrder.order_number,
                prefix="PO",
                pad=3,
            )

        order = PurchaseOrder(
            company_id=tenant.company_id,
            supplier_id=supplier_id,
            order_number=number,
            status=STATUS_PENDING if status == STATUS_RECEIVED else status,
            order_date=utcnow(),
            expected_date=expected_date,
            notes=notes,
            created_by=tenant.user_id,
        )

        total = Decimal("0")
        total_vat = Decimal("0")
        for position, item in enumerate(items):
            subtotal = round_currency(item["unit_price"] * item["quantity"])
            total += subtotal
            total_vat += round_currency(subtotal * Decimal(item["tax_rate"]) / 100)
            order.lines.append(PurchaseOrderLine(
                product_id=item["product_id"],
                position=position,
                quantity=item["quantity"],
                received_quantity=0,
                unit_price=item["unit_price"],
                tax_rate=item["tax_rate"],
                subtotal=subtotal,
            ))
        order.total_amount = total
        order.total_amount_vat_included = total + total_vat

        db.session.add(order)
        uow.checkpoint()

        if status == STATUS_RECEIVED:
            _receive(uow, tenant, order, lines=None, reference=None, note=AUTO_RECEIVE_NOTE)
        return order

    order = get_unit_of_work().run(_op)
    current_app.logger.info(
        "Purchase order %s created (id=%s, status=%s, company=%s)",
        order.order_number, order.id, order.status, tenant.company_id,
    )
    return order


def cancel_purchase_order(tenant: TenantContext, order_id: int) -> PurchaseOrder:
    """
    Cancel an order on which nothing has been received.

    Raises:
        InvalidOrderStateError: already cancelled or (partly) received
    """
    def _op(uow: UnitOfWork) -> PurchaseOrder:
        order = _load_order(tenant, order_id, lock=True)
        if order.status == STATUS_CANCELLED:
            raise InvalidOrderStateError("Purchase order is already cancelled")
        if order.status in (STATUS_PARTIAL, STATUS_RECEIVED) or any(line.received_quantity for line in order.lines):
            raise InvalidOrderStateError(
                "Cannot cancel a purchase order that has received lines",
                details={"status": order.status},
            )
        order.status = STATUS_CANCELLED
        order.cancelled_by = tenant.user_id
        order.cancelled_at = utcnow()
        uow.checkpoint()
        return order

    return get_unit_of_work().run(_op)


# ---------------------------------------------------------------------------
# Reception
# ---------------------------------------------------------------------------

def _requested_quantities(order: PurchaseOrder, lines) -> dict[int, int]:
    """
    Aggregate receipt quantities per product (insertion order kept).

    lines=None or an empty list means "everything still open".
    """
    requested: dict[int, int] = {}

    if lines is not None and not isinstance(lines, list):
        raise ValidationError("lines must be a list")

    if not lines:
        for line in order.lines:
            if line.remaining_quantity > 0:
                requested[line.product_id] = requested.get(line.product_id, 0) + line.remaining_quantity
        return requested

    on_order = {line.product_id for line in order.lines}
    for index, entry in enumerate(lines):
        if not isinstance(entry, dict):
            raise ValidationError(f"lines[{index}] must be an object")
        product_id = parse_id(entry.get("productId"), f"lines[{index}].productId")
        if product_id not in on_order:
            raise ValidationError(
                f"Product {product_id} is not on purchase order {order.order_number}",
                details={"product_id": product_id},
            )
        qty = parse_int(entry.get("qtyToReceive"), f"lines[{index}].qtyToReceive")
        if qty <= 0:
            raise ValidationError(f"lines[{index}].qtyToReceive must be greater than 0")
        requested[product_id] = requested.get(product_id, 0) + qty

    for product_id, qty in requested.items():
        remaining = sum(l.remaining_quantity for l in order.lines if l.product_id == product_id)
        if qty > remaining:
            raise OverReceiptError(
                f"Cannot receive {qty} of product {product_id}; only {remaining} remaining",
                details={"product_id": product_id, "requested": qty, "remaining": remaining},
            )
    return requested


def _allocate(order: PurchaseOrder, product_id: int, qty: int) -> tuple[Decimal, Decimal]:
    """
    Spread qty over the product's open lines in position order.

    Returns (weighted unit price, unit price of the last line touched).
    """
    left = qty
    value = Decimal("0")
    last_price = Decimal("0")
    for line in order.lines:
        if left <= 0:
            break
        if line.product_id != product_id or line.remaining_quantity <= 0:
            continue
        take = min(left, line.remaining_quantity)
        line.received_quantity = (line.received_quantity or 0) + take
        value += Decimal(line.unit_price) * take
        last_price = Decimal(line.unit_price)
        left -= take
    return round_cost(value / qty), last_price


def _upsert_supplier_info(
    tenant: TenantContext,
    product: Product,
    order: PurchaseOrder,
    *,
    qty: int,
    unit_price: Decimal,
    received_at,
) -> None:
    name = supplier_display_name(tenant, order.supplier_id)
    info = next((i for i in product.supplier_infos if i.supplier_id == order.supplier_id), None)

    if info is None:
        product.supplier_infos.append(ProductSupplierInfo(
            supplier_id=order.supplier_id,
            supplier_name=name,
            last_purchase_price=unit_price,
            average_purchase_price=unit_price,
            total_qty_purchased=qty,
            last_purchase_date=received_at,
            is_preferred=not product.supplier_infos,
        ))
        return

    info.average_purchase_price = calculate_weighted_average_cost(
        info.total_qty_purchased, info.average_purchase_price, qty, unit_price
    )
    info.total_qty_purchased = (info.total_qty_purchased or 0) + qty
    info.last_purchase_price = unit_price
    info.last_purchase_date = received_at
    if name:
        info.supplier_name = name


def _finalize_status(order: PurchaseOrder, tenant: TenantContext, now) -> None:
    if order.is_fully_received():
        order.status = STATUS_RECEIVED
        order.received_by = tenant.user_id
        order.received_at = now
    elif any(line.received_quantity for line in order.lines):
        order.status = STATUS_PARTIAL


def _receive(
    uow: UnitOfWork,
    tenant: TenantContext,
    order: PurchaseOrder,
    *,
    lines,
    reference: str | None,
    note: str | None,
) -> ReceptionResult:
    if order.status == STATUS_CANCELLED:
        raise InvalidOrderStateError("Cannot receive a cancelled purchase order")

    now = utcnow()
    result = ReceptionResult(order=order)

    if order.is_fully_received():
        if order.status == STATUS_RECEIVED:
            raise AlreadyReceivedError(
                f"Purchase order {order.order_number} is already fully received",
                details={"order_id": order.id},
            )
        # Lines complete but status lagging behind: finalize only.
        _finalize_status(order, tenant, now)
        uow.checkpoint()
        return result

    requested = _requested_quantities(order, lines)
    if not requested:
        raise NoChangeError(
            "No quantities to receive",
            details={"order_id": order.id},
        )

    reason = f"Purchase order receipt: {order.order_number}"
    if note:
        reason = f"{reason} - {note}"
    movement_reference = reference or order.order_number

    for product_id, qty in requested.items():
        unit_price, last_price = _allocate(order, product_id, qty)

        product = load_product_fresh(tenant, product_id)
        product.purchase_price = calculate_weighted_average_cost(
            product.stock_qty, product.purchase_price, qty, unit_price
        )
        product.last_purchase_price = round_cost(last_price)
        refresh_sale_price(product)

        movement = apply_movement(
            uow,
            tenant,
            movement_type="IN",
            quantity=qty,
            product=product,
            reason=reason,
            source="purchase",
            reference=movement_reference,
        ).movement

        _upsert_supplier_info(tenant, product, order, qty=qty, unit_price=unit_price, received_at=now)

        result.movements.append(movement)
        result.received[product_id] = qty

    _finalize_status(order, tenant, now)
    uow.checkpoint()
    return result


def receive_purchase_order(
    tenant: TenantContext,
    order_id: int,
    *,
    lines=None,
    reference: str | None = None,
    note: str | None = None,
) -> ReceptionResult:
    """
    Receive some or all open quantities of a purchase order.

    Raises:
        NotFoundError: order (or product) outside the company
        InvalidOrderStateError: order cancelled
        AlreadyReceivedError: every line already complete
        NoChangeError: nothing to receive in this call
        OverReceiptError: quantity above a product's remaining quantity
        ValidationError: malformed lines
    """
    reference = clean_text(reference, max_length=128, field="reference")
    note = clean_text(note, max_length=255, field="note")

    def _op(uow: UnitOfWork) -> ReceptionResult:
        order = _load_order(tenant, order_id, lock=True)
        return _receive(uow, tenant, order, lines=lines, reference=reference, note=note)

    result = get_unit_of_work().run(_op)
    current_app.logger.info(
        "Purchase order %s received (status=%s, products=%s, company=%s)",
        result.order.order_number, result.order.status, len(result.received), tenant.company_id,
    )
    return result
