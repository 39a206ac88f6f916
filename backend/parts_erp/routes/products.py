# backend/parts_erp/routes/products.py
"""
Catalogue routes.

MULTI-TENANT: every route runs under require_tenant; products are always
looked up within g.tenant.company_id.
"""
from flask import Blueprint, g, request

from ..decorators import require_tenant
from ..services import product_service
from ..services.pricing_service import decompose_product_pricing
from ..validation import require_payload
from .errors import register_error_handlers


products_bp = Blueprint("products", __name__, url_prefix="/api/products")
register_error_handlers(products_bp)


@products_bp.post("")
@require_tenant
def create_product_route():
    payload = require_payload(request.get_json(silent=True))
    product = product_service.create_product(g.tenant, payload=payload)
    return {"product": product.to_dict()}, 201


@products_bp.get("/<int:product_id>")
@require_tenant
def get_product_route(product_id: int):
    product = product_service.get_product(g.tenant, product_id)
    return {"product": product.to_dict()}


@products_bp.patch("/<int:product_id>")
@require_tenant
def update_product_route(product_id: int):
    """
    Patch catalogue fields.

    salePrice is accepted only while the product has no purchase cost;
    afterwards it is always re-derived from cost, margin and tax.
    """
    payload = require_payload(request.get_json(silent=True))
    product = product_service.update_product(g.tenant, product_id, payload=payload)
    return {"product": product.to_dict()}


@products_bp.get("/<int:product_id>/pricing")
@require_tenant
def product_pricing_route(product_id: int):
    product = product_service.get_product(g.tenant, product_id)
    return {"pricing": decompose_product_pricing(product)}
