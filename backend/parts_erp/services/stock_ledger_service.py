# Overview: Stock ledger; the only writer of Product.stock_qty.

"""
Stock Ledger

Invariants (authoritative):
- quantity on hand = initial quantity + signed sum of all movements
- quantity on hand never goes negative; a negative result is rejected,
  never clamped
- every change of Product.stock_qty appends exactly one immutable
  StockMovement in the same unit of work

Movement types:
- IN:     after = before + quantity   (quantity > 0)
- OUT:    after = before - quantity   (quantity > 0, before >= quantity)
- ADJUST: after = quantity            (absolute target, quantity >= 0);
          the recorded movement quantity is |after - before|

Fresh reads:
The product row is re-read (populate_existing + FOR UPDATE where supported)
immediately before `before` is computed. Two concurrent sales may both pass
an early availability check on stale data; this reload-and-check is the
actual enforcement point.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..errors import InsufficientStockError, InvalidStockStateError, NotFoundError, ValidationError
from ..models import Product, StockMovement
from .concurrency import lock_for_update
from .tenant_service import TenantContext, scoped_query
from .unit_of_work import UnitOfWork, get_unit_of_work


MOVEMENT_TYPES = ("IN", "OUT", "ADJUST")


@dataclass(frozen=True)
class MovementResult:
    movement: StockMovement
    new_quantity: int


def compute_after_quantity(movement_type: str, before: int, quantity: int) -> tuple[int, int]:
    """
    Returns (after, recorded_quantity) for one movement.

    Raises:
        ValidationError: unknown type or quantity out of range for the type
        InvalidStockStateError: the resulting quantity would be negative
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(
            "type must be one of " + ", ".join(f'"{t}"' for t in MOVEMENT_TYPES)
        )
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")

    if movement_type == "IN":
        if quantity <= 0:
            raise ValidationError("quantity must be greater than 0 for IN movements")
        after = before + quantity
        recorded = quantity
    elif movement_type == "OUT":
        if quantity <= 0:
            raise ValidationError("quantity must be greater than 0 for OUT movements")
        after = before - quantity
        recorded = quantity
    else:
        if quantity < 0:
            raise ValidationError("quantity must be greater than or equal to 0 for ADJUST movements")
        after = quantity
        recorded = abs(after - before)

    if after < 0:
        raise InvalidStockStateError(
            f"Stock would become negative ({after})",
            details={"before": before, "after": after, "type": movement_type},
        )
    return after, recorded


def load_product_fresh(tenant: TenantContext, product_id: int) -> Product:
    """Re-read a product row, bypassing the identity map."""
    product = lock_for_update(
        scoped_query(Product, tenant).filter(Product.id == product_id, Product.is_deleted.is_(False))
    ).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def apply_movement(
    uow: UnitOfWork,
    tenant: TenantContext,
    *,
    movement_type: str,
    quantity: int,
    product_id: int | None = None,
    product: Product | None = None,
    reason: str | None = None,
    source: str | None = None,
    reference: str | None = None,
) -> MovementResult:
    """
    Apply one movement and append its ledger entry.

    Pass `product` only when the caller has just loaded it fresh within the
    same unit of work (reception updates costs on that instance first);
    otherwise pass `product_id` and the row is re-read here.

    Raises:
        NotFoundError: product not in the tenant's company
        InsufficientStockError: OUT larger than the quantity on hand
        InvalidStockStateError: resulting quantity negative
        ValidationError: bad type/quantity
    """
    if product is None:
        if product_id is None:
            raise ValidationError("product_id is required")
        product = load_product_fresh(tenant, product_id)
    elif product.company_id != tenant.company_id:
        raise NotFoundError(f"Product {product.id} not found", details={"product_id": product.id})

    before = int(product.stock_qty or 0)

    if movement_type == "OUT" and isinstance(quantity, int) and before < quantity:
        raise InsufficientStockError(
            product_id=product.id,
            label=product.label,
            available=before,
            requested=quantity,
        )

    after, recorded = compute_after_quantity(movement_type, before, quantity)

    product.stock_qty = after
    movement = StockMovement(
        company_id=tenant.company_id,
        product_id=product.id,
        type=movement_type,
        quantity=recorded,
        before_qty=before,
        after_qty=after,
        reason=reason,
        source=source,
        reference=reference,
        created_by=tenant.user_id,
    )
    db.session.add(movement)
    uow.checkpoint()

    return MovementResult(movement=movement, new_quantity=after)


def record_stock_movement(
    tenant: TenantContext,
    *,
    product_id: int,
    movement_type: str,
    quantity: int,
    reason: str | None = None,
    reference: str | None = None,
) -> MovementResult:
    """Manual IN / OUT / ADJUST entry (one unit of work)."""
    def _op(uow: UnitOfWork) -> MovementResult:
        return apply_movement(
            uow,
            tenant,
            movement_type=movement_type,
            quantity=quantity,
            product_id=product_id,
            reason=reason or "Manual stock movement",
            source="manual",
            reference=reference,
        )

    result = get_unit_of_work().run(_op)
    current_app.logger.info(
        "Stock movement %s product=%s %s->%s company=%s",
        movement_type,
        product_id,
        result.movement.before_qty,
        result.movement.after_qty,
        tenant.company_id,
    )
    return result


def list_stock_movements(
    tenant: TenantContext,
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    limit: int = 100,
) -> list[StockMovement]:
    """Newest first."""
    q = scoped_query(StockMovement, tenant)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if movement_type is not None:
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(
                "type must be one of " + ", ".join(f'"{t}"' for t in MOVEMENT_TYPES)
            )
        q = q.filter(StockMovement.type == movement_type)

    limit = max(1, min(int(limit), 500))
    return (
        q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def signed_delta(movement: StockMovement) -> int:
    if movement.type == "IN":
        return movement.quantity
    if movement.type == "OUT":
        return -movement.quantity
    return movement.after_qty - movement.before_qty


def verify_product_ledger(tenant: TenantContext, product_id: int) -> dict:
    """
    Replay one product's movements and compare against stock_qty.

    The initial quantity is the first movement's before_qty (products may be
    seeded with stock before any movement exists). Reports:
    - arithmetic: after_qty does not follow from before_qty/type/quantity
    - chain: before_qty differs from the previous movement's after_qty
    - negative: a before/after snapshot below zero
    - final: replayed quantity differs from Product.stock_qty
    """
    product = scoped_query(Product, tenant).filter(Product.id == product_id).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})

    movements = (
        scoped_query(StockMovement, tenant)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )

    issues = []
    initial = movements[0].before_qty if movements else int(product.stock_qty or 0)
    running = initial
    previous_after = None

    for m in movements:
        if m.type == "IN":
            expected_after = m.before_qty + m.quantity
        elif m.type == "OUT":
            expected_after = m.before_qty - m.quantity
        else:
            expected_after = m.after_qty if abs(m.after_qty - m.before_qty) == m.quantity else None

        if expected_after != m.after_qty:
            issues.append({"movementId": m.id, "kind": "arithmetic"})
        if previous_after is not None and m.before_qty != previous_after:
            issues.append({"movementId": m.id, "kind": "chain", "expectedBefore": previous_after})
        if m.before_qty < 0 or m.after_qty < 0:
            issues.append({"movementId": m.id, "kind": "negative"})

        running += signed_delta(m)
        previous_after = m.after_qty

    stock_qty = int(product.stock_qty or 0)
    if running != stock_qty:
        issues.append({"kind": "final", "expectedQty": running, "stockQty": stock_qty})

    return {
        "productId": product.id,
        "sku": product.sku,
        "initialQty": initial,
        "movementCount": len(movements),
        "replayedQty": running,
        "stockQty": stock_qty,
        "ok": not issues,
        "issues": issues,
    }
