# Overview: Supplier creation and lookups used by purchasing.

"""
Supplier Service

MULTI-TENANT: Suppliers are scoped to companies via company_id.
Reception only reads them (display name for price history).
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Supplier
from ..validation import clean_text
from .tenant_service import TenantContext, scoped_query


def create_supplier(tenant: TenantContext, *, payload: dict) -> Supplier:
    name = clean_text(payload.get("name"), max_length=255, field="name")
    if not name:
        raise ValidationError("Supplier name is required")

    supplier = Supplier(
        company_id=tenant.company_id,
        name=name,
        contact_name=clean_text(payload.get("contactName"), max_length=255, field="contactName"),
        email=clean_text(payload.get("email"), max_length=255, field="email"),
        phone=clean_text(payload.get("phone"), max_length=64, field="phone"),
    )
    db.session.add(supplier)
    db.session.commit()
    current_app.logger.info("Supplier %s created (company=%s)", supplier.id, tenant.company_id)
    return supplier


def get_supplier(tenant: TenantContext, supplier_id: int) -> Supplier:
    supplier = (
        scoped_query(Supplier, tenant)
        .filter(Supplier.id == supplier_id, Supplier.is_deleted.is_(False))
        .first()
    )
    if supplier is None:
        raise NotFoundError(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})
    return supplier


def supplier_display_name(tenant: TenantContext, supplier_id: int) -> str | None:
    """Name for denormalized storage; None when the supplier is gone."""
    supplier = scoped_query(Supplier, tenant).filter(Supplier.id == supplier_id).first()
    return supplier.name if supplier else None
