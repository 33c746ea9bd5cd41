from __future__ import annotations
from typing import Iterable, List, Optional, Tuple
from flask import request, make_response, jsonify
from stallsync.config.pagination import normalize_pagination
from stallsync.services.errors import InvalidRequest, PreconditionFailed
from stallsync.services.resource_loader import Document
import hashlib


def paginate(rows: list) -> Tuple[list, int, int, int]:
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        raise InvalidRequest(str(e))
    return rows[offset:offset + limit], len(rows), limit, offset


def compute_etag(keys: Iterable, total: int, limit: int, offset: int) -> str:
    seed = f"{list(keys)}|{total}|{limit}|{offset}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows)
        }
    }


def make_cached_list_response(docs: List[Document], total: int, limit: int, offset: int):
    # id + version pairs change whenever a listed document is written
    etag = compute_etag([(d.id, d.version) for d in docs], total, limit, offset)
    resp = make_response(build_list_payload([d.to_dict() for d in docs], total, limit, offset))
    resp.headers['ETag'] = etag
    return resp, etag


def document_response(doc: Document, status: int = 200):
    resp = make_response(jsonify(doc.to_dict()), status)
    resp.headers['ETag'] = document_etag(doc)
    return resp


def document_etag(doc: Document) -> str:
    return str(doc.version)


def handle_conditional(etag_value: str):
    """Return a 304 response when If-None-Match names the current ETag, else None."""
    inm = request.headers.get('If-None-Match')
    if inm and etag_value in [v.strip().removeprefix('W/').strip('"') for v in inm.split(',')]:
        resp = make_response('', 304)
        resp.headers['ETag'] = etag_value
        return resp
    return None


def expected_version() -> Optional[int]:
    """Version named by If-Match, None when absent or '*'.

    A value that cannot be a document version can never match, so it fails the precondition.
    """
    raw = request.headers.get('If-Match')
    if raw is None:
        return None
    value = raw.strip().removeprefix('W/').strip('"')
    if value == '*':
        return None
    try:
        return int(value)
    except ValueError:
        raise PreconditionFailed(f'If-Match {raw!r} does not name a document version')
