from functools import wraps

from flask import g

from cognicare.extensions import db
from cognicare.services.feature_gate import ensure_addon_active
from cognicare.utils.permissions import ensure_permitted


def permission_required(action, resource):
    """
    Decorator checking the caller's role against the permission table.
    Must be placed below @caller_required() on the route.
    Usage: @permission_required(Action.CREATE, Resource.CLINIC)
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            ensure_permitted(g.caller, action, resource)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def addon_required(addon_name):
    """
    Decorator gating a route on an active add-on for the caller's organization.
    Usage: @addon_required('AI Scribe')
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            ensure_addon_active(db.session, g.caller.organization_id, addon_name)
            return f(*args, **kwargs)
        return decorated_function
    return decorator
