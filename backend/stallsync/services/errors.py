from __future__ import annotations
"""Decision values and error taxonomy shared by the policy engine and the storage layer.

Every denial is terminal: the caller must change the request before retrying.
The storage layer surfaces these verbatim; only contention (WriteConflict) is
ever retried, and only by the storage layer itself.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any


class ErrorKind(str, Enum):
    UNAUTHENTICATED = 'UNAUTHENTICATED'
    ROLE_INSUFFICIENT = 'ROLE_INSUFFICIENT'
    SITE_OUT_OF_SCOPE = 'SITE_OUT_OF_SCOPE'
    FIELD_NOT_ALLOWED = 'FIELD_NOT_ALLOWED'
    SELF_OWNERSHIP_VIOLATION = 'SELF_OWNERSHIP_VIOLATION'
    RELATIONAL_INTEGRITY_VIOLATION = 'RELATIONAL_INTEGRITY_VIOLATION'
    NOT_FOUND = 'NOT_FOUND'


@dataclass(frozen=True)
class Decision:
    allow: bool
    reason: Optional[ErrorKind] = None

    @classmethod
    def allowed(cls) -> 'Decision':
        return cls(True, None)

    @classmethod
    def deny(cls, reason: ErrorKind) -> 'Decision':
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.allow

    def to_dict(self) -> Dict[str, Any]:
        if self.allow:
            return {'allow': True}
        return {'allow': False, 'reason': self.reason.value if self.reason else None}


ALLOW = Decision.allowed()


class PolicyError(Exception):
    """Base for every error the engine or the commit layer raises."""
    kind: Optional[ErrorKind] = None
    status = 400
    title = 'Bad Request'

    def __init__(self, detail: str = '', kind: Optional[ErrorKind] = None):
        super().__init__(detail or self.title)
        self.detail = detail or self.title
        if kind is not None:
            self.kind = kind


class Unauthenticated(PolicyError):
    kind = ErrorKind.UNAUTHENTICATED
    status = 401
    title = 'Unauthorized'


class AccessDenied(PolicyError):
    status = 403
    title = 'Forbidden'

    def __init__(self, reason: ErrorKind, detail: str = ''):
        super().__init__(detail or 'Access denied', kind=reason)
        self.reason = reason


class NotFound(PolicyError):
    kind = ErrorKind.NOT_FOUND
    status = 404
    title = 'Not Found'


class AlreadyExists(PolicyError):
    status = 409
    title = 'Conflict'


class WriteConflict(PolicyError):
    status = 409
    title = 'Conflict'


class PreconditionFailed(PolicyError):
    status = 412
    title = 'Precondition Failed'


class InvalidRequest(PolicyError):
    status = 400
    title = 'Bad Request'


__all__ = [
    'ErrorKind', 'Decision', 'ALLOW', 'PolicyError', 'Unauthenticated', 'AccessDenied', 'NotFound',
    'AlreadyExists', 'WriteConflict', 'PreconditionFailed', 'InvalidRequest',
]
