from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional

from stallsync.constants.collections import ROLES, ROLE_ADMIN, ROLE_MANAGER, ROLE_STAFF
from stallsync.services.errors import Unauthenticated


@dataclass(frozen=True)
class Principal:
    """Authenticated caller with role and scope. Built once per request, never mutated."""
    uid: str
    role: str
    managed_site_ids: FrozenSet[str] = field(default_factory=frozenset)
    default_site_id: Optional[str] = None
    default_stall_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role == ROLE_MANAGER

    @property
    def is_staff(self) -> bool:
        return self.role == ROLE_STAFF

    def manages_site(self, site_id: Optional[str]) -> bool:
        return site_id is not None and site_id in self.managed_site_ids

    def to_dict(self) -> Dict[str, Any]:
        return {
            'uid': self.uid,
            'role': self.role,
            'managedSiteIds': sorted(self.managed_site_ids),
            'defaultSiteId': self.default_site_id,
            'defaultStallId': self.default_stall_id,
        }


def principal_from_profile(uid: Optional[str], profile: Optional[Dict[str, Any]]) -> Principal:
    """Resolve a stored users/{uid} profile into a Principal.

    Raises Unauthenticated when there is no uid, no profile, or the stored role is not one we know.
    """
    if not uid:
        raise Unauthenticated('No authenticated principal')
    if not profile:
        raise Unauthenticated('No profile for principal')
    role = profile.get('role')
    if role not in ROLES:
        raise Unauthenticated('Profile has no valid role')
    managed = profile.get('managedSiteIds') or []
    if isinstance(managed, str):
        managed = [managed]
    return Principal(
        uid=str(uid),
        role=role,
        managed_site_ids=frozenset(str(s) for s in managed if s is not None),
        default_site_id=profile.get('defaultSiteId') or None,
        default_stall_id=profile.get('defaultStallId') or None,
    )


__all__ = ['Principal', 'principal_from_profile']
