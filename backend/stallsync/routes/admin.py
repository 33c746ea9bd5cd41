from flask import Blueprint, request
from stallsync import get_db
from stallsync.decorators.auth import require_principal, current_principal
from stallsync.models.audit import AuditLog
from stallsync.services.audit import audit_json
from stallsync.services.errors import AccessDenied, ErrorKind, InvalidRequest
from stallsync.config.pagination import normalize_pagination
from stallsync.utils.listing import compute_etag, build_list_payload, handle_conditional

admin_bp = Blueprint('admin', __name__)


# --- Audit Log Listing ---
@admin_bp.get('/audit/logs')
@require_principal
def list_audit_logs():
    if not current_principal().is_admin:
        raise AccessDenied(ErrorKind.ROLE_INSUFFICIENT)
    session = get_db()
    q = session.query(AuditLog)
    # Filters
    for name, column in (('actor_uid', AuditLog.actor_uid), ('action', AuditLog.action),
                         ('entity', AuditLog.entity), ('entity_id', AuditLog.entity_id)):
        value = request.args.get(name)
        if value:
            q = q.filter(column == value)
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        raise InvalidRequest(str(e))
    total = q.count()
    rows = q.order_by(AuditLog.id.desc()).offset(offset).limit(limit).all()
    data = [audit_json(r) for r in rows]
    # newest id first, so a new log row changes the ETag
    etag = compute_etag([r.id for r in rows], total, limit, offset)
    cond = handle_conditional(etag)
    if cond:
        return cond
    return build_list_payload(data, total, limit, offset), 200, {'ETag': etag}
