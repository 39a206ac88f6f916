# backend/parts_erp/routes/inventory.py
"""
Inventory routes.

Every stock change goes through the stock ledger: POST /movements books one
IN / OUT / ADJUST movement and updates the product's quantity on hand in the
same unit of work.
"""
from flask import Blueprint, g, request

from ..decorators import require_tenant
from ..errors import ValidationError
from ..services import product_service, stock_ledger_service
from ..validation import clean_text, parse_choice, parse_id, parse_int, parse_optional_id, require_payload
from .errors import register_error_handlers


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")
register_error_handlers(inventory_bp)


@inventory_bp.post("/movements")
@require_tenant
def create_movement_route():
    """
    Manual stock movement.

    Body: {"productId", "type": "IN"|"OUT"|"ADJUST", "quantity", "reason"?, "reference"?}
    ADJUST sets the quantity on hand to `quantity`.
    """
    payload = require_payload(request.get_json(silent=True))
    product_id = parse_id(payload.get("productId"), "productId")
    movement_type = parse_choice(payload.get("type"), "type", stock_ledger_service.MOVEMENT_TYPES)
    if payload.get("quantity") is None:
        raise ValidationError("quantity is required")
    quantity = parse_int(payload.get("quantity"), "quantity")

    result = stock_ledger_service.record_stock_movement(
        g.tenant,
        product_id=product_id,
        movement_type=movement_type,
        quantity=quantity,
        reason=clean_text(payload.get("reason"), max_length=255, field="reason"),
        reference=clean_text(payload.get("reference"), max_length=128, field="reference"),
    )
    return {"movement": result.movement.to_dict(), "stockQty": result.new_quantity}, 201


@inventory_bp.get("/movements")
@require_tenant
def list_movements_route():
    product_id = parse_optional_id(request.args.get("productId"), "productId")
    movement_type = request.args.get("type") or None
    limit = parse_int(request.args.get("limit", "100"), "limit")

    movements = stock_ledger_service.list_stock_movements(
        g.tenant,
        product_id=product_id,
        movement_type=movement_type,
        limit=limit,
    )
    return {"items": [m.to_dict() for m in movements], "count": len(movements)}


@inventory_bp.get("/low-stock")
@require_tenant
def low_stock_route():
    products = product_service.list_low_stock_products(g.tenant)
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@inventory_bp.get("/products/<int:product_id>/ledger-check")
@require_tenant
def ledger_check_route(product_id: int):
    return {"ledger": stock_ledger_service.verify_product_ledger(g.tenant, product_id)}
