"""Resource loading for rule evaluation.

Rules that look past the addressed document (a master's mirrors before a delete, a
mirror's master) go through a ResourceLoader instead of reaching into storage directly.
A CachingResourceLoader is created per authorize call / commit attempt so repeated
lookups inside one decision hit storage once, and so the commit layer knows which
documents the decision depended on (the read set).
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

from sqlalchemy import select

from stallsync.constants.collections import (
    STOCK_ITEMS, SITES, STALLS, REL_MIRRORS, REL_MASTER, REL_STALLS, REL_STOCK,
)


@dataclass
class Document:
    collection: str
    id: str
    data: Dict[str, Any] = field(default_factory=dict)
    version: int = 0

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        return {**self.data, 'id': self.id}


class ResourceLoader(Protocol):
    def load(self, collection: str, doc_id: str) -> Optional[Document]: ...

    def load_related(self, collection: str, doc_id: str, relation: str) -> List[Document]: ...


# (collection, relation) -> (target collection, field on target holding doc_id)
_FIELD_RELATIONS: Dict[Tuple[str, str], Tuple[str, str]] = {
    (STOCK_ITEMS, REL_MIRRORS): (STOCK_ITEMS, 'originalMasterItemId'),
    (SITES, REL_STALLS): (STALLS, 'siteId'),
    (SITES, REL_STOCK): (STOCK_ITEMS, 'siteId'),
    (STALLS, REL_STOCK): (STOCK_ITEMS, 'stallId'),
}


class BaseResourceLoader:
    """Relation resolution on top of two primitives: load one document, find by field equality."""

    def load(self, collection: str, doc_id: str) -> Optional[Document]:
        raise NotImplementedError

    def find(self, collection: str, field_name: str, value: Any) -> List[Document]:
        raise NotImplementedError

    def load_related(self, collection: str, doc_id: str, relation: str) -> List[Document]:
        if doc_id is None:
            # a None id would match every document whose link field is unset
            raise ValueError(f'{collection}/{relation} lookup needs a document id')
        if (collection, relation) == (STOCK_ITEMS, REL_MASTER):
            item = self.load(collection, doc_id)
            master_id = item.get('originalMasterItemId') if item else None
            if not master_id:
                return []
            master = self.load(STOCK_ITEMS, master_id)
            return [master] if master is not None else []
        target = _FIELD_RELATIONS.get((collection, relation))
        if target is None:
            raise ValueError(f'Unknown relation {collection}/{relation}')
        target_collection, field_name = target
        return self.find(target_collection, field_name, doc_id)


class MemoryResourceLoader(BaseResourceLoader):
    """Loader over a plain {collection: {doc_id: data}} mapping (fixtures, offline evaluation)."""

    def __init__(self, documents: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None):
        self.documents = documents or {}

    def load(self, collection: str, doc_id: str) -> Optional[Document]:
        data = self.documents.get(collection, {}).get(doc_id)
        if data is None:
            return None
        return Document(collection, doc_id, dict(data), 1)

    def find(self, collection: str, field_name: str, value: Any) -> List[Document]:
        rows = self.documents.get(collection, {})
        return [Document(collection, k, dict(v), 1) for k, v in sorted(rows.items()) if v.get(field_name) == value]


class SessionResourceLoader(BaseResourceLoader):
    """Reads through an open SQLAlchemy session, i.e. inside the caller's transaction."""

    def __init__(self, session, lock: bool = False):
        self.session = session
        self.lock = lock

    def _select(self, *criteria):
        from stallsync.models.documents import DocumentRecord  # lazy import to avoid model import cycles
        stmt = select(DocumentRecord).where(*criteria)
        if self.lock:
            # SQLite ignores FOR UPDATE; other backends hold the rows until commit
            stmt = stmt.with_for_update()
        return stmt

    def load(self, collection: str, doc_id: str) -> Optional[Document]:
        from stallsync.models.documents import DocumentRecord
        rec = self.session.execute(
            self._select(DocumentRecord.collection == collection, DocumentRecord.doc_id == doc_id)
        ).scalar_one_or_none()
        return rec.to_document() if rec is not None else None

    def find(self, collection: str, field_name: str, value: Any) -> List[Document]:
        from stallsync.models.documents import DocumentRecord
        rows = self.session.execute(
            self._select(DocumentRecord.collection == collection).order_by(DocumentRecord.doc_id.asc())
        ).scalars().all()
        # JSON path comparisons differ across backends (null handling); filter in Python
        return [r.to_document() for r in rows if (r.data or {}).get(field_name) == value]


class CachingResourceLoader:
    """Per-decision memoising wrapper that also records the read set (collection, id) -> version."""

    def __init__(self, inner: ResourceLoader):
        self.inner = inner
        self._docs: Dict[Tuple[str, str], Optional[Document]] = {}
        self._related: Dict[Tuple[str, str, str], List[Document]] = {}
        self.read_set: Dict[Tuple[str, str], int] = {}
        self.calls = 0

    def _remember(self, doc: Optional[Document]):
        if doc is not None:
            self.read_set[(doc.collection, doc.id)] = doc.version
            self._docs.setdefault((doc.collection, doc.id), doc)

    def load(self, collection: str, doc_id: str) -> Optional[Document]:
        key = (collection, doc_id)
        if key not in self._docs:
            self.calls += 1
            doc = self.inner.load(collection, doc_id)
            self._docs[key] = doc
            self._remember(doc)
        return self._docs[key]

    def load_related(self, collection: str, doc_id: str, relation: str) -> List[Document]:
        key = (collection, doc_id, relation)
        if key not in self._related:
            self.calls += 1
            docs = self.inner.load_related(collection, doc_id, relation)
            self._related[key] = docs
            for d in docs:
                self._remember(d)
        return self._related[key]

    def forget(self, collection: str, doc_id: str):
        """Drop cached state touched by a write the commit layer just applied.

        Relation lists are cleared wholesale: a created mirror belongs to lists never loaded for it.
        """
        self._docs.pop((collection, doc_id), None)
        self.read_set.pop((collection, doc_id), None)
        self._related.clear()


__all__ = [
    'Document', 'ResourceLoader', 'BaseResourceLoader', 'MemoryResourceLoader',
    'SessionResourceLoader', 'CachingResourceLoader',
]
