"""Storage/commit layer: the only path through which documents are read or written.

Every write is authorized inside the same database transaction that applies it, against
the pre-image read in that transaction. Documents the decision depended on but that are
not themselves written (e.g. a master's mirrors during a delete) are re-validated at
commit with a conditional version touch. Contention of any kind rolls the attempt back
and re-runs the whole evaluate-then-commit sequence.
"""
from __future__ import annotations
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from stallsync.constants.collections import (
    COLLECTIONS, USERS, OP_READ, OP_CREATE, OP_UPDATE, OP_DELETE, WRITE_OPERATIONS,
)
from stallsync.models.documents import DocumentRecord
from stallsync.services.audit import add_audit
from stallsync.services.errors import (
    AccessDenied, AlreadyExists, ErrorKind, InvalidRequest, NotFound, PreconditionFailed,
    Unauthenticated, WriteConflict,
)
from stallsync.services.field_diff import diff
from stallsync.services.policy import AuthzRequest, authorize
from stallsync.services.principal import Principal
from stallsync.services.resource_loader import CachingResourceLoader, Document, SessionResourceLoader

log = logging.getLogger(__name__)

AUDIT_ACTIONS = {OP_CREATE: 'DOC.CREATE', OP_UPDATE: 'DOC.UPDATE', OP_DELETE: 'DOC.DELETE'}


class ReadSetChanged(Exception):
    """A document the decision depended on changed before commit."""


def new_doc_id() -> str:
    return uuid.uuid4().hex[:20]


@dataclass
class Write:
    op: str
    collection: str
    doc_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    merge: bool = True
    expected_version: Optional[int] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'Write':
        if not isinstance(raw, dict):
            raise InvalidRequest('write must be an object')
        op = raw.get('op')
        collection = raw.get('collection')
        if op not in WRITE_OPERATIONS:
            raise InvalidRequest(f'op must be one of {list(WRITE_OPERATIONS)}')
        if not isinstance(collection, str) or not collection:
            raise InvalidRequest('collection required')
        doc_id = raw.get('id')
        if op != OP_CREATE and not doc_id:
            raise InvalidRequest(f'id required for {op}')
        expected = raw.get('expectedVersion')
        if expected is not None:
            try:
                expected = int(expected)
            except (TypeError, ValueError):
                raise InvalidRequest('expectedVersion must be int')
        return cls(
            op=op,
            collection=collection,
            doc_id=str(doc_id) if doc_id else None,
            data=raw.get('data'),
            merge=bool(raw.get('merge', True)),
            expected_version=expected,
        )

    def validate(self):
        if self.op not in WRITE_OPERATIONS:
            raise InvalidRequest(f'unknown op {self.op}')
        if self.op != OP_CREATE and not self.doc_id:
            raise InvalidRequest(f'id required for {self.op}')
        if self.op in (OP_CREATE, OP_UPDATE) and not isinstance(self.data, dict):
            raise InvalidRequest('data must be an object')


def _clean(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    # the document id is addressed, not stored
    return {k: v for k, v in (data or {}).items() if k != 'id'}


def _matches(data: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    return all(data.get(k) == v for k, v in (filters or {}).items())


class DocumentStore:
    def __init__(self, session_factory: Callable, max_attempts: int = 3, backoff_base: float = 0.05,
                 sleep: Callable[[float], None] = time.sleep):
        self.session_factory = session_factory
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_base = backoff_base
        self.sleep = sleep

    # ---------- reads ---------- #

    def _record(self, session, collection: str, doc_id: str, lock: bool = False) -> Optional[DocumentRecord]:
        stmt = select(DocumentRecord).where(DocumentRecord.collection == collection, DocumentRecord.doc_id == doc_id)
        if lock:
            stmt = stmt.with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    def get(self, principal: Optional[Principal], collection: str, doc_id: str) -> Optional[Document]:
        """Read one document; None when it does not exist and the read rule allows looking."""
        if principal is None:
            raise Unauthenticated('No authenticated principal')
        session = self.session_factory()
        rec = self._record(session, collection, doc_id)
        doc = rec.to_document() if rec is not None else None
        decision = authorize(
            AuthzRequest(OP_READ, collection, principal, doc.data if doc else None, None, doc_id),
            SessionResourceLoader(session),
        )
        if not decision:
            raise AccessDenied(decision.reason)
        return doc

    def list(self, principal: Optional[Principal], collection: str,
             filters: Optional[Dict[str, Any]] = None) -> List[Document]:
        """Documents of a collection matching equality filters, minus those the read rule denies."""
        if principal is None:
            raise Unauthenticated('No authenticated principal')
        if collection not in COLLECTIONS:
            log.error('list on unknown collection %s; denying', collection)
            raise AccessDenied(ErrorKind.ROLE_INSUFFICIENT)
        session = self.session_factory()
        rows = session.execute(
            select(DocumentRecord).where(DocumentRecord.collection == collection).order_by(DocumentRecord.doc_id.asc())
        ).scalars().all()
        loader = CachingResourceLoader(SessionResourceLoader(session))
        out = []
        for rec in rows:
            doc = rec.to_document()
            if not _matches(doc.data, filters):
                continue
            if authorize(AuthzRequest(OP_READ, collection, principal, doc.data, None, doc.id), loader):
                out.append(doc)
        return out

    def load_profile(self, uid: str) -> Optional[Dict[str, Any]]:
        """Unguarded profile read for the principal context provider."""
        rec = self._record(self.session_factory(), USERS, uid)
        return dict(rec.data or {}) if rec is not None else None

    # ---------- writes ---------- #

    def commit(self, principal: Optional[Principal], writes: Iterable, on_commit: Optional[Callable] = None) -> List[Optional[Document]]:
        """Authorize and apply a batch of writes atomically.

        Returns one entry per write: the stored Document, or None for deletes.
        Raises the first AccessDenied / NotFound / AlreadyExists / PreconditionFailed
        encountered (nothing is applied), or WriteConflict when contention outlasts the retries.
        """
        if principal is None:
            raise Unauthenticated('No authenticated principal')
        batch = [w if isinstance(w, Write) else Write.from_dict(w) for w in writes]
        if not batch:
            raise InvalidRequest('no writes')
        for w in batch:
            w.validate()
        attempt = 0
        while True:
            attempt += 1
            session = self.session_factory()
            try:
                results = self._apply(session, principal, batch, on_commit)
                session.commit()
                return results
            except (StaleDataError, OperationalError, IntegrityError, ReadSetChanged) as exc:
                session.rollback()
                if attempt >= self.max_attempts:
                    log.warning('commit for %s gave up after %d attempts: %s', principal.uid, attempt, exc)
                    raise WriteConflict('Concurrent modification; retry later') from exc
                log.warning('commit attempt %d/%d for %s hit contention: %s', attempt, self.max_attempts, principal.uid, exc)
                self.sleep(self.backoff_base * (2 ** (attempt - 1)))
            except Exception:
                session.rollback()
                raise

    def _check(self, principal, op, collection, doc_id, existing, proposed, loader, written=None):
        decision = authorize(AuthzRequest(op, collection, principal, existing, proposed, doc_id, written), loader)
        if not decision:
            raise AccessDenied(decision.reason)

    def _apply(self, session, principal: Principal, batch: List[Write], on_commit) -> List[Optional[Document]]:
        loader = CachingResourceLoader(SessionResourceLoader(session, lock=True))
        results: List[Optional[Document]] = []
        for w in batch:
            rec = self._record(session, w.collection, w.doc_id, lock=True) if w.doc_id else None
            if w.op == OP_CREATE:
                if rec is not None:
                    raise AlreadyExists(f'{w.collection}/{w.doc_id} already exists')
                doc_id = w.doc_id or new_doc_id()
                proposed = _clean(w.data)
                self._check(principal, OP_CREATE, w.collection, doc_id, None, proposed, loader)
                rec = DocumentRecord(collection=w.collection, doc_id=doc_id, data=proposed)
                session.add(rec)
                changed = sorted(proposed)
            else:
                doc_id = w.doc_id
                if rec is None:
                    raise NotFound(f'{w.collection}/{doc_id} not found')
                if w.expected_version is not None and rec.version != w.expected_version:
                    raise PreconditionFailed(f'{w.collection}/{doc_id} is at version {rec.version}')
                existing = dict(rec.data or {})
                if w.op == OP_UPDATE:
                    proposed = {**existing, **_clean(w.data)} if w.merge else _clean(w.data)
                    self._check(principal, OP_UPDATE, w.collection, doc_id, existing, proposed, loader,
                                frozenset(_clean(w.data)))
                    changed = sorted(diff(existing, proposed))
                    rec.data = proposed
                else:
                    self._check(principal, OP_DELETE, w.collection, doc_id, existing, None, loader)
                    changed = []
                    session.delete(rec)
            # flush so later writes in the batch (and their rule lookups) see this one
            session.flush()
            loader.forget(w.collection, doc_id)
            add_audit(session, principal.uid, AUDIT_ACTIONS[w.op], w.collection, doc_id, {'changed': changed})
            results.append(rec.to_document() if w.op != OP_DELETE else None)
        self._validate_read_set(session, loader.read_set)
        if on_commit is not None:
            on_commit(session)
        session.flush()
        return results

    def _validate_read_set(self, session, read_set: Dict):
        table = DocumentRecord.__table__
        for (collection, doc_id), version in read_set.items():
            res = session.execute(
                update(table)
                .where(table.c.collection == collection, table.c.doc_id == doc_id, table.c.version == version)
                .values(version=version)
            )
            if res.rowcount != 1:
                raise ReadSetChanged(f'{collection}/{doc_id} changed during evaluation')

    # ---------- provisioning ---------- #

    def seed(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Document:
        """Write without authorization. Provisioning scripts and test fixtures only."""
        session = self.session_factory()
        rec = self._record(session, collection, doc_id)
        if rec is None:
            rec = DocumentRecord(collection=collection, doc_id=doc_id, data=_clean(data))
            session.add(rec)
        else:
            rec.data = _clean(data)
        session.commit()
        return rec.to_document()


__all__ = ['Write', 'DocumentStore', 'ReadSetChanged', 'new_doc_id']
