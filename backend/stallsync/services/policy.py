from __future__ import annotations
"""Rule evaluator: decides whether a principal may perform an operation on a document.

authorize() dispatches through a per-collection rule table. Each cell is a small function
receiving the request and a (per-call, caching) resource loader and returning a Decision.
Cells return the coarse reason only; which sub-check failed is not exposed to the caller.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Optional

from stallsync.constants.collections import (
    OP_READ, OP_CREATE, OP_UPDATE, OP_DELETE,
    USERS, SITES, STALLS, STOCK_ITEMS, SALES_TRANSACTIONS,
)
from stallsync.services.errors import Decision, ErrorKind, ALLOW
from stallsync.services.field_diff import diff, disallowed, is_allowed
from stallsync.services.integrity import check_master_delete
from stallsync.services.principal import Principal
from stallsync.services.resource_loader import CachingResourceLoader

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthzRequest:
    operation: str
    collection: str
    principal: Optional[Principal]
    existing: Optional[Dict[str, Any]] = None
    proposed: Optional[Dict[str, Any]] = None
    doc_id: Optional[str] = None
    # keys the write names explicitly, whether or not their value changes
    written: Optional[FrozenSet[str]] = None

    def target_id(self) -> Optional[str]:
        """Id of the addressed document. Only a create may name it through the proposed data."""
        if self.doc_id is not None:
            return str(self.doc_id)
        return _named_id(self.proposed if self.operation == OP_CREATE else self.existing)

    def retargeted(self) -> bool:
        """True when the proposed data names a different document than the one addressed."""
        if self.operation == OP_CREATE or not self.proposed:
            return False
        target = self.target_id()
        return any(self.proposed.get(k) is not None and str(self.proposed[k]) != target for k in _ID_KEYS)


_ID_KEYS = ('id', 'uid')


def _named_id(doc: Optional[Dict[str, Any]]) -> Optional[str]:
    for key in _ID_KEYS:
        if doc and doc.get(key) is not None:
            return str(doc[key])
    return None


Rule = Callable[[AuthzRequest, Any], Decision]

DENY_ROLE = Decision.deny(ErrorKind.ROLE_INSUFFICIENT)
DENY_SCOPE = Decision.deny(ErrorKind.SITE_OUT_OF_SCOPE)
DENY_FIELD = Decision.deny(ErrorKind.FIELD_NOT_ALLOWED)
DENY_OWNERSHIP = Decision.deny(ErrorKind.SELF_OWNERSHIP_VIOLATION)


# --- shared cells ---

def any_principal(req: AuthzRequest, loader) -> Decision:
    return ALLOW


def admin_only(req: AuthzRequest, loader) -> Decision:
    return ALLOW if req.principal.is_admin else DENY_ROLE


def nobody(req: AuthzRequest, loader) -> Decision:
    return DENY_ROLE


# --- users ---

def _is_self(req: AuthzRequest) -> bool:
    target = req.target_id()
    return target is not None and target == req.principal.uid


def _field_check(p: Principal, collection: str, changed) -> Decision:
    if is_allowed(p.role, collection, changed):
        return ALLOW
    log.info('%s may not change %s on %s', p.role, ', '.join(sorted(disallowed(p.role, collection, changed))), collection)
    return DENY_FIELD


def user_read(req: AuthzRequest, loader) -> Decision:
    if req.principal.is_admin or _is_self(req):
        return ALLOW
    return DENY_ROLE


def user_update(req: AuthzRequest, loader) -> Decision:
    p = req.principal
    if p.is_admin:
        return ALLOW
    if not _is_self(req):
        return DENY_ROLE
    changed = diff(req.existing, req.proposed)
    # naming role in the write is refused even when the value is unchanged
    if 'role' in changed or 'role' in (req.written or ()):
        return DENY_OWNERSHIP
    return _field_check(p, USERS, changed)


# --- stock items ---

def stock_create(req: AuthzRequest, loader) -> Decision:
    p = req.principal
    if p.is_admin:
        return ALLOW
    if p.is_manager:
        return ALLOW if p.manages_site((req.proposed or {}).get('siteId')) else DENY_SCOPE
    return DENY_ROLE


def stock_update(req: AuthzRequest, loader) -> Decision:
    p = req.principal
    existing = req.existing or {}
    if p.is_admin:
        return ALLOW
    if p.is_manager:
        if not p.manages_site(existing.get('siteId')):
            return DENY_SCOPE
        # the item may not be moved to a site outside the manager's scope either
        if not p.manages_site((req.proposed or {}).get('siteId')):
            return DENY_SCOPE
        return ALLOW
    if p.is_staff:
        stall_id = existing.get('stallId')
        # master items (stallId null) never match, even for a staff member without a stall
        if stall_id is None or p.default_stall_id is None or stall_id != p.default_stall_id:
            return DENY_SCOPE
        return _field_check(p, STOCK_ITEMS, diff(req.existing, req.proposed))
    return DENY_ROLE


def stock_delete(req: AuthzRequest, loader) -> Decision:
    p = req.principal
    if p.is_admin:
        return ALLOW
    if p.is_manager:
        if not p.manages_site((req.existing or {}).get('siteId')):
            return DENY_SCOPE
        return check_master_delete(p, req.target_id(), req.existing, loader)
    return DENY_ROLE


# --- sales transactions ---

def sale_create(req: AuthzRequest, loader) -> Decision:
    p = req.principal
    if p.is_admin:
        return ALLOW
    if not (p.is_manager or p.is_staff):
        return DENY_ROLE
    staff_id = (req.proposed or {}).get('staffId')
    if staff_id is None or str(staff_id) != p.uid:
        return DENY_OWNERSHIP
    return ALLOW


def sale_update(req: AuthzRequest, loader) -> Decision:
    p = req.principal
    if not p.is_admin:
        return DENY_ROLE
    return _field_check(p, SALES_TRANSACTIONS, diff(req.existing, req.proposed))


RULES: Dict[str, Dict[str, Rule]] = {
    USERS: {
        OP_READ: user_read,
        OP_CREATE: admin_only,
        OP_UPDATE: user_update,
        OP_DELETE: nobody,
    },
    SITES: {
        OP_READ: any_principal,
        OP_CREATE: admin_only,
        OP_UPDATE: admin_only,
        OP_DELETE: admin_only,
    },
    STALLS: {
        OP_READ: any_principal,
        OP_CREATE: admin_only,
        OP_UPDATE: admin_only,
        OP_DELETE: admin_only,
    },
    STOCK_ITEMS: {
        OP_READ: any_principal,
        OP_CREATE: stock_create,
        OP_UPDATE: stock_update,
        OP_DELETE: stock_delete,
    },
    SALES_TRANSACTIONS: {
        OP_READ: any_principal,
        OP_CREATE: sale_create,
        OP_UPDATE: sale_update,
        OP_DELETE: nobody,
    },
}


def authorize(request: AuthzRequest, loader=None, rules: Optional[Dict[str, Dict[str, Rule]]] = None) -> Decision:
    """Evaluate one request against the rule table.

    loader: optional ResourceLoader for cross-document predicates; wrapped in a
    CachingResourceLoader unless it already is one.
    """
    if request.principal is None:
        return Decision.deny(ErrorKind.UNAUTHENTICATED)
    if request.operation in (OP_UPDATE, OP_DELETE) and request.existing is None:
        return Decision.deny(ErrorKind.NOT_FOUND)
    table = RULES if rules is None else rules
    rule = table.get(request.collection, {}).get(request.operation)
    if rule is None:
        log.error('no rule for %s on %s; denying', request.operation, request.collection)
        return DENY_ROLE
    if loader is not None and not isinstance(loader, CachingResourceLoader):
        loader = CachingResourceLoader(loader)
    if request.retargeted():
        # the proposed data may not name a document other than the one addressed
        decision = DENY_OWNERSHIP
    else:
        decision = rule(request, loader)
    if not decision.allow:
        log.info(
            'denied %s %s/%s for %s: %s',
            request.operation, request.collection, request.target_id(),
            request.principal.uid, decision.reason.value,
        )
    return decision


__all__ = ['AuthzRequest', 'RULES', 'authorize']
