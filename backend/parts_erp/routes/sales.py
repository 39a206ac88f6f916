# backend/parts_erp/routes/sales.py
"""
Point-of-sale routes.

Sales are immutable once created; there is no update endpoint.
"""
from flask import Blueprint, g, request

from ..decorators import require_tenant
from ..services import sales_service
from ..validation import require_payload
from .errors import register_error_handlers


sales_bp = Blueprint("sales", __name__, url_prefix="/api/pos")
register_error_handlers(sales_bp)


@sales_bp.post("/sales")
@require_tenant
def create_sale_route():
    payload = require_payload(request.get_json(silent=True))
    result = sales_service.create_sale(g.tenant, payload=payload)
    return result.to_dict(), 201


@sales_bp.get("/sales/<int:sale_id>")
@require_tenant
def get_sale_route(sale_id: int):
    return {"sale": sales_service.get_sale(g.tenant, sale_id).to_dict()}
