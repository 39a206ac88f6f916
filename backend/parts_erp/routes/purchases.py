# backend/parts_erp/routes/purchases.py
"""
Purchase order routes.

LIFECYCLE: DRAFT / PENDING -> PARTIAL -> RECEIVED, or CANCELLED while
nothing has been received.
"""
from flask import Blueprint, g, request

from ..decorators import require_tenant
from ..services import purchase_service, supplier_service
from ..validation import require_payload
from .errors import register_error_handlers


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")
register_error_handlers(purchases_bp)


@purchases_bp.post("/suppliers")
@require_tenant
def create_supplier_route():
    payload = require_payload(request.get_json(silent=True))
    supplier = supplier_service.create_supplier(g.tenant, payload=payload)
    return {"supplier": supplier.to_dict()}, 201


@purchases_bp.post("/orders")
@require_tenant
def create_order_route():
    payload = require_payload(request.get_json(silent=True))
    order = purchase_service.create_purchase_order(g.tenant, payload=payload)
    return {"order": order.to_dict()}, 201


@purchases_bp.get("/orders/<int:order_id>")
@require_tenant
def get_order_route(order_id: int):
    return {"order": purchase_service.get_purchase_order(g.tenant, order_id).to_dict()}


@purchases_bp.post("/orders/<int:order_id>/receive")
@require_tenant
def receive_order_route(order_id: int):
    """
    Receive open quantities.

    Body (all optional):
    - lines: [{"productId", "qtyToReceive"}]; omitted => receive everything open
    - reference: stored on the stock movements (defaults to the order number)
    - note: appended to the movement reason
    """
    payload = require_payload(request.get_json(silent=True))
    result = purchase_service.receive_purchase_order(
        g.tenant,
        order_id,
        lines=payload.get("lines"),
        reference=payload.get("reference"),
        note=payload.get("note"),
    )
    return result.to_dict()


@purchases_bp.post("/orders/<int:order_id>/cancel")
@require_tenant
def cancel_order_route(order_id: int):
    order = purchase_service.cancel_purchase_order(g.tenant, order_id)
    return {"order": order.to_dict()}
