from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from stallsync.constants.collections import STOCK_ITEMS, REL_MIRRORS
from stallsync.services.errors import Decision, ErrorKind, ALLOW
from stallsync.services.principal import Principal

log = logging.getLogger(__name__)


def is_master(item: Optional[Dict[str, Any]]) -> bool:
    return item is not None and item.get('stallId') is None


def _holds_stock(value) -> bool:
    """A missing quantity is empty; anything that is not a plain number counts as stock."""
    if value is None:
        return False
    if isinstance(value, bool):
        return True
    try:
        return float(value) != 0
    except (TypeError, ValueError):
        return True


def check_master_delete(principal: Principal, doc_id: Optional[str], existing: Dict[str, Any], loader) -> Decision:
    """Relational precondition for deleting a stock item.

    A master (stallId is null) may only be removed once every mirror linked to it through
    originalMasterItemId holds zero quantity. Admins bypass the check; mirrors carry no precondition.
    """
    if principal.is_admin or not is_master(existing):
        return ALLOW
    if doc_id is None:
        # without an id the linked mirrors cannot be told apart from other masters
        log.error('master delete by %s names no document id', principal.uid)
        return Decision.deny(ErrorKind.NOT_FOUND)
    if loader is None:
        log.error('master delete %s evaluated without a resource loader', doc_id)
        return Decision.deny(ErrorKind.RELATIONAL_INTEGRITY_VIOLATION)
    dependents = loader.load_related(STOCK_ITEMS, doc_id, REL_MIRRORS)
    if any(_holds_stock(d.get('quantity')) for d in dependents):
        return Decision.deny(ErrorKind.RELATIONAL_INTEGRITY_VIOLATION)
    return ALLOW


__all__ = ['is_master', 'check_master_delete']
