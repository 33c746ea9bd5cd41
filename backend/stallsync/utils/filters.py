from __future__ import annotations
from typing import Any, Dict
from stallsync.services.errors import InvalidRequest


def _as_bool(raw: str) -> bool:
    lowered = str(raw).lower()
    if lowered in ('true', '1', 'yes'):
        return True
    if lowered in ('false', '0', 'no'):
        return False
    raise ValueError(raw)


# query parameter -> {'coerce': callable}; names match top-level document fields
DOCUMENT_FILTERS: Dict[str, Dict[str, Any]] = {
    'siteId': {},
    'stallId': {},
    'staffId': {},
    'originalMasterItemId': {},
    'isDeleted': {'coerce': _as_bool},
}


def build_filters(specs: Dict[str, Dict[str, Any]], params) -> Dict[str, Any]:
    """Translate query parameters into equality filters on document fields.

    specs: { param_name: { 'coerce': type/func (optional), 'validate': callable (optional) } }
    """
    out: Dict[str, Any] = {}
    for name, meta in specs.items():
        if name not in params or params[name] is None:
            continue
        val = params[name]
        if 'coerce' in meta:
            try:
                val = meta['coerce'](val)
            except (TypeError, ValueError):
                raise InvalidRequest(f'{name} invalid')
        if 'validate' in meta and not meta['validate'](val):
            raise InvalidRequest(f'{name} invalid')
        out[name] = val
    return out
