# Overview: Request decorators for API routes.

from functools import wraps

from flask import g, request

from .services.tenant_service import resolve_tenant


def require_tenant(f):
    """
    Establish the tenant context for the request.

    The auth gateway in front of the API forwards the authenticated company
    and user as X-Company-Id / X-User-Id. They are validated here, once;
    services receive the resulting TenantContext and never re-parse ids.

    Sets:
    - g.tenant: TenantContext(company_id, user_id)

    Errors (rendered by the blueprint error handler):
    - 400 when a header is malformed or the user header is missing
    - 404 when the company is missing, unknown or inactive
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.tenant = resolve_tenant(
            request.headers.get("X-Company-Id"),
            request.headers.get("X-User-Id"),
        )
        return f(*args, **kwargs)

    return decorated_function
