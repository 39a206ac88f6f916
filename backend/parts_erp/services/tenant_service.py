"""
Multi-Tenant Service: tenant context and scoping helpers

Every core operation receives a TenantContext built at the boundary.
Identifiers are normalized to ints there; business logic never re-parses
them and never infers the company on its own.

SECURITY INVARIANTS:
1. Every read/write filters by tenant.company_id
2. Rows from another company are reported as "not found", never as
   "forbidden", so their existence is not revealed
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..errors import TenantAccessError, ValidationError
from ..models import Company
from ..validation import parse_id


@dataclass(frozen=True)
class TenantContext:
    company_id: int
    user_id: int


def resolve_tenant(company_id, user_id) -> TenantContext:
    """
    Build a TenantContext from loosely-typed identifiers.

    Raises:
        ValidationError: identifier missing or malformed
        TenantAccessError: company unknown or inactive
    """
    if company_id is None:
        raise TenantAccessError("User must be associated with a company")
    if user_id is None:
        raise ValidationError("Acting user is required")

    cid = parse_id(company_id, "companyId")
    uid = parse_id(user_id, "userId")

    company = db.session.query(Company).filter_by(id=cid).first()
    if company is None or not company.is_active:
        raise TenantAccessError("Company not found or inactive")

    return TenantContext(company_id=cid, user_id=uid)


def scoped_query(model, tenant: TenantContext):
    """Query for a tenant-owned model, filtered to the tenant's company."""
    return db.session.query(model).filter(model.company_id == tenant.company_id)
