# Overview: Sale fulfillment; validates, prices, decrements stock and queues post-commit work.

"""
Sales Service

FLOW (one unit of work):
Validating -> StockChecking -> PriceComputing -> Persisting -> Committed

1. Validate the payload (lines, payment method, return linkage).
2. Load every referenced product (company-scoped, active, not deleted).
3. Aggregate quantity per product and check it against stock up front.
4. Price each line (override or product price, discount, tax).
5. Loyalty discount (customer sales) and credit-limit check (CREDIT).
6. Persist the sale, then one OUT movement per distinct product through the
   stock ledger, which re-reads the product and re-checks stock.
7. Queue a "sale.committed" outbox event for customer sales.

After commit the event is dispatched (financial stats, invoice for non-cash
sales). Its failures are recorded on the event and never undo the sale.

Nothing is written before steps 1-5 pass, so a rejected sale leaves no sale
row and no stock movement behind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..extensions import db
from ..errors import CoreError, CreditLimitExceededError, InsufficientStockError, NotFoundError, ValidationError
from ..models import Invoice, Product, Sale, SaleLine, StockMovement
from ..models.sales import PAYMENT_METHODS
from ..time_utils import utcnow
from ..validation import (
    clean_text,
    parse_choice,
    parse_datetime,
    parse_id,
    parse_int,
    parse_optional_decimal,
    parse_optional_id,
)
from .customer_service import credit_limit_summary, get_customer, is_eligible_for_loyalty, refresh_loyalty_status
from .outbox_service import SALE_COMMITTED, dispatch_events, enqueue_event
from .pricing_service import HUNDRED, ZERO, round_currency
from .stock_ledger_service import apply_movement
from .tenant_service import TenantContext, scoped_query
from .unit_of_work import UnitOfWork, get_unit_of_work


RATE_QUANTUM = Decimal("0.001")


@dataclass
class SaleResult:
    sale: Sale
    movements: list[StockMovement] = field(default_factory=list)
    invoice: Invoice | None = None

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict(),
            "invoice": self.invoice.to_dict() if self.invoice else None,
            "stockMovements": [
                {
                    "id": m.id,
                    "productId": m.product_id,
                    "quantity": m.quantity,
                    "beforeQty": m.before_qty,
                    "afterQty": m.after_qty,
                }
                for m in self.movements
            ],
        }


def _parse_bool(value, field_name: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a boolean")
    return value


def _parse_lines(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Sale must contain at least one item")

    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        if item.get("productId") is None:
            raise ValidationError(f"items[{index}].productId is required")
        qty = parse_int(item.get("qty"), f"items[{index}].qty")
        if qty <= 0:
            raise ValidationError(f"items[{index}].qty must be greater than 0")

        discount_rate = parse_optional_decimal(item.get("discountRate"), f"items[{index}].discountRate")
        if discount_rate is not None and discount_rate > HUNDRED:
            raise ValidationError(f"items[{index}].discountRate must be between 0 and 100")

        lines.append({
            "product_id": parse_id(item.get("productId"), f"items[{index}].productId"),
            "qty": qty,
            "unit_price": parse_optional_decimal(item.get("unitPrice"), f"items[{index}].unitPrice"),
            "base_unit_price": parse_optional_decimal(item.get("baseUnitPrice"), f"items[{index}].baseUnitPrice"),
            "discount_rate": discount_rate,
            "tax_rate": parse_optional_decimal(item.get("taxRate"), f"items[{index}].taxRate"),
        })
    return lines


def _price_line(line: dict, product: Product, position: int) -> SaleLine:
    unit_price = line["unit_price"] if line["unit_price"] is not None else Decimal(product.sale_price or 0)
    base_price = line["base_unit_price"] if line["base_unit_price"] is not None else unit_price

    discount_rate = line["discount_rate"] if line["discount_rate"] is not None else ZERO
    if discount_rate == 0 and base_price > 0 and base_price != unit_price:
        discount_rate = (base_price - unit_price) / base_price * HUNDRED
    discount_rate = discount_rate.quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)

    tax_rate = line["tax_rate"] if line["tax_rate"] is not None else Decimal(product.tax_rate or 0)

    total_excl = round_currency(unit_price * line["qty"])
    tax = round_currency(total_excl * tax_rate / HUNDRED)

    return SaleLine(
        product_id=product.id,
        position=position,
        sku=product.sku,
        name=product.name,
        qty=line["qty"],
        unit_price=unit_price,
        base_unit_price=base_price if base_price > 0 else None,
        discount_rate=discount_rate if discount_rate > 0 else None,
        tax_rate=tax_rate,
        total_excl_tax=total_excl,
        total_incl_tax=total_excl + tax,
    )


def _loyalty_discount(customer, subtotal_incl: Decimal, requested_rate, requested_amount) -> tuple[Decimal, Decimal]:
    """
    Returns (rate, amount) to apply to the tax-inclusive subtotal.

    Eligible customers get their tier rate automatically. Otherwise a
    caller-supplied (rate, amount) pair is accepted only when the amount
    matches subtotal * rate / 100 within the configured tolerance.
    """
    if customer is not None and is_eligible_for_loyalty(customer) and customer.is_loyal_client:
        rate = Decimal(customer.loyalty_discount or 0)
        if rate > 0:
            return rate, round_currency(subtotal_incl * rate / HUNDRED)
        return ZERO, ZERO

    if requested_rate and requested_rate > 0 and requested_amount and requested_amount > 0:
        expected = subtotal_incl * requested_rate / HUNDRED
        tolerance = current_app.config["LOYALTY_DISCOUNT_TOLERANCE"]
        if abs(requested_amount - expected) >= tolerance:
            raise ValidationError(
                "loyaltyDiscountAmount does not match loyaltyDiscount",
                details={
                    "expected": format(round_currency(expected), "f"),
                    "received": format(requested_amount, "f"),
                },
            )
        return requested_rate, round_currency(requested_amount)

    return ZERO, ZERO


def create_sale(tenant: TenantContext, *, payload: dict) -> SaleResult:
    """
    Record a counter sale and decrement stock.

    Raises:
        ValidationError: malformed payload or loyalty mismatch
        NotFoundError: product, customer or returned sale outside the company
        InsufficientStockError: aggregate quantity above stock on hand
        CreditLimitExceededError: CREDIT sale above the customer's limit
    """
    lines = _parse_lines(payload.get("items"))
    payment_method = parse_choice(payload.get("paymentMethod") or "CASH", "paymentMethod", PAYMENT_METHODS)
    customer_id = parse_optional_id(payload.get("customerId"), "customerId")
    vehicle_id = parse_optional_id(payload.get("vehicleId"), "vehicleId")
    customer_name = clean_text(payload.get("customerName"), max_length=255, field="customerName")
    reference = clean_text(payload.get("reference"), max_length=128, field="reference")
    sale_date = parse_datetime(payload.get("saleDate"), "saleDate") or utcnow()

    is_return = _parse_bool(payload.get("isReturn"), "isReturn")
    is_replacement = _parse_bool(payload.get("isReplacement"), "isReplacement")
    return_sale_id = parse_optional_id(payload.get("returnSaleId"), "returnSaleId")
    if is_return and return_sale_id is None:
        raise ValidationError("returnSaleId is required when isReturn is true")

    requested_rate = parse_optional_decimal(payload.get("loyaltyDiscount"), "loyaltyDiscount")
    requested_amount = parse_optional_decimal(payload.get("loyaltyDiscountAmount"), "loyaltyDiscountAmount")

    def _op(uow: UnitOfWork) -> tuple[Sale, list[StockMovement], int | None]:
        product_ids = {line["product_id"] for line in lines}
        products = {
            p.id: p
            for p in scoped_query(Product, tenant)
            .filter(
                Product.id.in_(product_ids),
                Product.is_active.is_(True),
                Product.is_deleted.is_(False),
            )
            .all()
        }
        for line in lines:
            if line["product_id"] not in products:
                raise NotFoundError(
                    f"Product {line['product_id']} not found",
                    details={"product_id": line["product_id"]},
                )

        needed: dict[int, int] = {}
        for line in lines:
            needed[line["product_id"]] = needed.get(line["product_id"], 0) + line["qty"]
        for product_id, qty in needed.items():
            product = products[product_id]
            if (product.stock_qty or 0) < qty:
                raise InsufficientStockError(
                    product_id=product_id,
                    label=product.label,
                    available=product.stock_qty or 0,
                    requested=qty,
                )

        sale_lines = [
            _price_line(line, products[line["product_id"]], position)
            for position, line in enumerate(lines)
        ]
        total_excl = sum((sl.total_excl_tax for sl in sale_lines), ZERO)
        total_tax = sum((sl.total_incl_tax - sl.total_excl_tax for sl in sale_lines), ZERO)
        subtotal_incl = total_excl + total_tax

        customer = None
        if customer_id is not None:
            customer = get_customer(tenant, customer_id)
            refresh_loyalty_status(customer)

        rate, discount_amount = _loyalty_discount(customer, subtotal_incl, requested_rate, requested_amount)
        total_incl = subtotal_incl - discount_amount

        if return_sale_id is not None:
            original = scoped_query(Sale, tenant).filter(Sale.id == return_sale_id).first()
            if original is None:
                raise NotFoundError(
                    f"Sale {return_sale_id} not found",
                    details={"return_sale_id": return_sale_id},
                )

        if payment_method == "CREDIT" and customer is not None:
            summary = credit_limit_summary(tenant, customer.id)
            new_balance = summary.balance + total_incl
            if not summary.unlimited and new_balance > summary.credit_limit:
                raise CreditLimitExceededError(
                    f"Credit limit exceeded. Limit: {summary.credit_limit:.2f}, "
                    f"Current balance: {summary.balance:.2f}, New balance: {new_balance:.2f}",
                    details={
                        "credit_limit": format(summary.credit_limit, "f"),
                        "balance": format(summary.balance, "f"),
                        "new_balance": format(new_balance, "f"),
                    },
                )

        sale = Sale(
            company_id=tenant.company_id,
            created_by=tenant.user_id,
            sale_date=sale_date,
            reference=reference,
            customer_id=customer.id if customer else None,
            customer_name=customer_name or (customer.name if customer else None),
            vehicle_id=vehicle_id,
            payment_method=payment_method,
            total_excl_tax=total_excl,
            total_tax=total_tax,
            total_incl_tax=total_incl,
            loyalty_discount=rate if rate > 0 else None,
            loyalty_discount_amount=discount_amount if discount_amount > 0 else None,
            is_return=is_return,
            is_replacement=is_replacement,
            return_sale_id=return_sale_id,
        )
        sale.lines.extend(sale_lines)
        db.session.add(sale)
        uow.checkpoint()

        movements = []
        try:
            for product_id, qty in needed.items():
                result = apply_movement(
                    uow,
                    tenant,
                    movement_type="OUT",
                    quantity=qty,
                    product_id=product_id,
                    reason=f"Counter sale - {products[product_id].label}",
                    source="sale",
                    reference=reference or str(sale.id),
                )
                movements.append(result.movement)
        except CoreError:
            if not uow.transactional:
                # Sale row and earlier movements are already committed
                current_app.logger.error(
                    "Sale %s committed with %s of %s stock movements (company=%s)",
                    sale.id, len(movements), len(needed), tenant.company_id,
                )
            raise

        event_id = None
        if customer is not None:
            event = enqueue_event(
                company_id=tenant.company_id,
                user_id=tenant.user_id,
                event_type=SALE_COMMITTED,
                aggregate_type="sale",
                aggregate_id=sale.id,
                payload={"customerId": customer.id, "paymentMethod": payment_method},
            )
            uow.checkpoint()
            event_id = event.id
        return sale, movements, event_id

    sale, movements, event_id = get_unit_of_work().run(_op)
    current_app.logger.info(
        "Sale %s committed (lines=%s, total=%s, company=%s)",
        sale.id, len(sale.lines), sale.total_incl_tax, tenant.company_id,
    )

    result = SaleResult(sale=sale, movements=movements)
    if event_id is not None:
        dispatch_events([event_id])
        result.invoice = scoped_query(Invoice, tenant).filter(Invoice.sale_id == sale.id).first()
    return result


def get_sale(tenant: TenantContext, sale_id: int) -> Sale:
    sale = scoped_query(Sale, tenant).filter(Sale.id == sale_id).first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale
