from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, JSON, DateTime, UniqueConstraint, func
from typing import Dict, Any

from .authz import Base


class DocumentRecord(Base):
    """One document of one collection. `version` is the optimistic concurrency token."""
    __tablename__ = 'documents'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    collection: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    doc_id: Mapped[str] = mapped_column(String(64), nullable=False)
    data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (UniqueConstraint('collection', 'doc_id', name='uq_collection_doc'),)
    # UPDATE/DELETE carry "WHERE version = :old"; a concurrent writer makes the flush raise StaleDataError
    __mapper_args__ = {'version_id_col': version}

    def to_document(self):
        from stallsync.services.resource_loader import Document
        return Document(self.collection, self.doc_id, dict(self.data or {}), self.version)
