from __future__ import annotations
from typing import Any, Dict, Optional
from stallsync.models.audit import AuditLog


def add_audit(session, actor_uid: Optional[str], action: str, entity: Optional[str] = None,
              entity_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None):
    """Persist an audit log entry within the given DB session.

    Parameters:
      actor_uid: uid of the principal the write was authorized for ('' when provisioning)
      action: short action code e.g. DOC.CREATE, DOC.UPDATE, STOCK.ALLOCATE
      entity: optional collection name (stockItems, users, ...)
      entity_id: optional document id
      meta: additional JSON-safe dictionary (will be shallow copied)
    """
    log = AuditLog(
        actor_uid=actor_uid or '',
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log


def audit_json(row: AuditLog) -> Dict[str, Any]:
    return {
        'id': row.id,
        'actor_uid': row.actor_uid,
        'action': row.action,
        'entity': row.entity,
        'entity_id': row.entity_id,
        'meta': row.meta or {},
        'created_at': row.created_at.isoformat() if row.created_at else None,
    }
