from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Index, Integer, String, JSON, DateTime, func

from .authz import Base


class AuditLog(Base):
    """One row per committed write, login or stock movement.

    ``entity`` is a collection name and ``entity_id`` a document id, so the
    history of a single document is one indexed lookup.
    """
    __tablename__ = 'audit_logs'
    __table_args__ = (Index('ix_audit_logs_entity_doc', 'entity', 'entity_id'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    actor_uid: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity: Mapped[str | None] = mapped_column(String(64), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    meta: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
