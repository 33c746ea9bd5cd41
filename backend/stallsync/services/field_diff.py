from __future__ import annotations
"""Field-level diffing of a proposed write against its pre-image.

A field counts as changed when its value differs, when it is added, or when it is
removed. Fields present in the proposal with an unchanged value are not changed.
Allow-list checks are on changed-key membership only, never on the new value.
"""
from typing import Any, Dict, FrozenSet, Iterable, Optional, Set

from stallsync.constants.collections import (
    ROLE_ADMIN, ROLE_MANAGER, ROLE_STAFF, USERS, STOCK_ITEMS, SALES_TRANSACTIONS,
    PRIVILEGED_USER_FIELDS, STAFF_STOCK_FIELDS, SALE_SOFT_DELETE_FIELDS,
)

ANY_FIELD = None  # allow-list sentinel: every field may change


class AllFieldsExcept:
    """Allow-list expressed as a complement (e.g. 'everything but the privileged profile fields')."""

    def __init__(self, excluded: Iterable[str]):
        self.excluded = frozenset(excluded)

    def __contains__(self, name: str) -> bool:
        return name not in self.excluded

    def __repr__(self):
        return f'AllFieldsExcept({sorted(self.excluded)})'


# role -> collection -> allowed changed fields (ANY_FIELD for unrestricted)
# A missing entry means the role has no field-level update grant on that collection.
ALLOW_LIST: Dict[str, Dict[str, Any]] = {
    ROLE_ADMIN: {
        USERS: ANY_FIELD,
        STOCK_ITEMS: ANY_FIELD,
        SALES_TRANSACTIONS: SALE_SOFT_DELETE_FIELDS,
    },
    ROLE_MANAGER: {
        USERS: AllFieldsExcept(PRIVILEGED_USER_FIELDS),
        STOCK_ITEMS: ANY_FIELD,
    },
    ROLE_STAFF: {
        USERS: AllFieldsExcept(PRIVILEGED_USER_FIELDS),
        STOCK_ITEMS: STAFF_STOCK_FIELDS,
    },
}

_MISSING = object()


def diff(existing: Optional[Dict[str, Any]], proposed: Optional[Dict[str, Any]]) -> Set[str]:
    """Return the set of top-level field names whose value differs between the two documents."""
    before = existing or {}
    after = proposed or {}
    changed = set()
    for key in set(before) | set(after):
        if before.get(key, _MISSING) != after.get(key, _MISSING):
            changed.add(key)
    return changed


def allowed_fields(role: str, collection: str):
    """Return the allow-list for (role, collection); raises KeyError when none is configured."""
    return ALLOW_LIST[role][collection]


def is_allowed(role: str, collection: str, changed_fields: Iterable[str]) -> bool:
    """True when every changed field is inside the role's allow-list. Unknown pairs fail closed."""
    try:
        allowed = allowed_fields(role, collection)
    except KeyError:
        return False
    if allowed is ANY_FIELD:
        return True
    return all(f in allowed for f in changed_fields)


def disallowed(role: str, collection: str, changed_fields: Iterable[str]) -> FrozenSet[str]:
    """Changed fields outside the allow-list (all of them when no allow-list exists)."""
    changed = frozenset(changed_fields)
    try:
        allowed = allowed_fields(role, collection)
    except KeyError:
        return changed
    if allowed is ANY_FIELD:
        return frozenset()
    return frozenset(f for f in changed if f not in allowed)


__all__ = ['ALLOW_LIST', 'ANY_FIELD', 'AllFieldsExcept', 'diff', 'allowed_fields', 'is_allowed', 'disallowed']
