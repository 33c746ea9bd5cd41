from functools import wraps
from flask import g
from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity
from stallsync import get_store
from stallsync.services.principal import Principal, principal_from_profile


def current_principal() -> Principal:
    """Principal for this request, resolved from the stored profile once and cached on g."""
    principal = g.get('principal')
    if principal is None:
        uid = get_jwt_identity()
        principal = principal_from_profile(uid, get_store().load_profile(uid) if uid else None)
        g.principal = principal
    return principal


def require_principal(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        current_principal()
        return fn(*args, **kwargs)
    return wrapper
