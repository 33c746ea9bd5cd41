"""Audit decorator for route-level events that do not pass through DocumentStore.commit.

Document writes and stock movements are audited inside their own transaction by the
store; this covers the rest (sign-in and the like).

@audit_log('AUTH.LOGIN', entity='users', entity_id_key='uid', actor_key='uid')
def login(): ... return {'access_token': token, 'uid': uid}

Parameters:
  action: required audit action code (e.g. AUTH.LOGIN)
  entity: optional entity label (a collection name)
  entity_id_key: key in the returned JSON object whose value becomes entity_id.
  entity_id_arg: name of the path parameter to use for entity_id (fallback if entity_id_key absent).
  actor_key: key in the returned JSON object naming the actor when no principal is bound yet.
  meta_keys: list of keys to project from returned JSON into meta dict.

Only successful responses (status < 400) are recorded. Errors raised by the view propagate untouched.
"""
from __future__ import annotations
import logging
from functools import wraps
from typing import Any, Iterable, Optional

from flask import g
from sqlalchemy.exc import SQLAlchemyError

from stallsync import get_db
from stallsync.services.audit import add_audit

log = logging.getLogger(__name__)


def _extract_payload(rv: Any):
    """Return (data, status) where data is the JSON-able dict for inspection."""
    if isinstance(rv, tuple) and rv:
        status = rv[1] if len(rv) > 1 and isinstance(rv[1], int) else 200
        return rv[0], status
    return rv, 200


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    actor_key: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            rv = fn(*args, **kwargs)
            data, status = _extract_payload(rv)
            if status >= 400:
                return rv
            if not isinstance(data, dict):
                data = {}
            entity_id = None
            if entity_id_key and entity_id_key in data:
                entity_id = data.get(entity_id_key)
            elif entity_id_arg and entity_id_arg in kwargs:
                entity_id = kwargs.get(entity_id_arg)
            principal = g.get('principal')
            actor = principal.uid if principal is not None else (data.get(actor_key) if actor_key else None)
            meta = {k: data.get(k) for k in (meta_keys or []) if k in data}
            session = get_db()
            try:
                add_audit(session, actor, action, entity, entity_id, meta)
                session.commit()
            except SQLAlchemyError:
                # the response already succeeded
                session.rollback()
                log.exception('audit %s for %s could not be stored', action, entity_id)
            return rv
        return wrapper
    return outer
