"""
Custom route decorators for access control.

- tenant_required: the request must resolve to a tenant (signed-in user
  or demo session). g.tenant is set by the tenant middleware.
"""

from functools import wraps

from flask import abort, g


def tenant_required(f):
    """Require a resolved tenant (remote, offline or demo)."""

    @wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "tenant", None) is None:
            abort(401)
        return f(*args, **kwargs)

    return decorated
