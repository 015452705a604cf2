# Overview: Request context and role decorators for API routes.

import logging
from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import NotFoundError
from .services.tenant_service import scope_for_tenant

logger = logging.getLogger(__name__)

ROLE_SUPER_ADMIN = "SUPER_ADMIN"
ROLE_ADMIN = "ADMIN"
ROLE_STOCK_MANAGER = "STOCK_MANAGER"
ROLE_ACCOUNTANT = "ACCOUNTANT"
ROLE_SALES = "SALES"
ROLE_EMPLOYEE = "EMPLOYEE"


def _header_roles() -> set[str]:
    raw = request.headers.get(current_app.config["ROLE_HEADER"], "")
    return {role.strip().upper() for role in raw.split(",") if role.strip()}


def require_tenant(f):
    """
    Establish tenant context from the gateway headers.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.scope: TenantScope bound to the request's tenant - REQUIRED
    - g.actor_name: display name of the authenticated user (may be None)
    - g.roles: set of role codes of the authenticated user

    Returns 401 if the tenant header is missing and 404 if the tenant is
    unknown or inactive. Tenant ids in request bodies are never consulted.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        tenant_id = request.headers.get(current_app.config["TENANT_HEADER"])
        if not tenant_id:
            return jsonify({"error": "Unauthorized", "message": "Tenant context missing"}), 401

        actor_name = request.headers.get(current_app.config["ACTOR_HEADER"]) or None
        try:
            g.scope = scope_for_tenant(tenant_id, actor_name)
        except NotFoundError as e:
            return jsonify(e.to_dict()), e.status_code

        g.actor_name = actor_name
        g.roles = _header_roles()
        return f(*args, **kwargs)

    return decorated_function


def require_role(*allowed_roles: str):
    """
    Require at least one of allowed_roles. SUPER_ADMIN passes every check.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_tenant was called first
            if getattr(g, "scope", None) is None:
                return jsonify({"error": "Unauthorized", "message": "Tenant context missing"}), 401

            roles = getattr(g, "roles", set())
            if ROLE_SUPER_ADMIN in roles or roles.intersection(allowed_roles):
                return f(*args, **kwargs)

            logger.warning(
                "Role check failed on %s %s: has %s, needs one of %s",
                request.method,
                request.path,
                sorted(roles),
                list(allowed_roles),
            )
            return jsonify({
                "error": "AccessDenied",
                "message": f"Insufficient rights (requires one of: {', '.join(allowed_roles)})",
                "required_roles": list(allowed_roles),
            }), 403

        return decorated_function
    return decorator
