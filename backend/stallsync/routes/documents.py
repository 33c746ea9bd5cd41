from __future__ import annotations
from flask import Blueprint, request, make_response
from stallsync import get_store
from stallsync.constants.collections import OP_CREATE, OP_UPDATE, OP_DELETE
from stallsync.decorators.auth import require_principal, current_principal
from stallsync.services.errors import InvalidRequest, NotFound
from stallsync.services.store import Write
from stallsync.utils.filters import DOCUMENT_FILTERS, build_filters
from stallsync.utils.listing import (
    paginate, make_cached_list_response, handle_conditional, document_response, document_etag, expected_version,
)

docs_bp = Blueprint('documents', __name__)


def _body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidRequest('JSON object body required')
    return data


@docs_bp.post('/batch')
@require_principal
def commit_batch():
    writes = _body().get('writes')
    if not isinstance(writes, list) or not writes:
        raise InvalidRequest('writes must be a non-empty list')
    results = get_store().commit(current_principal(), writes)
    return {'results': [d.to_dict() if d is not None else None for d in results]}


@docs_bp.get('/<collection>')
@require_principal
def list_documents(collection: str):
    filters = build_filters(DOCUMENT_FILTERS, request.args)
    docs = get_store().list(current_principal(), collection, filters)
    page, total, limit, offset = paginate(docs)
    resp, etag = make_cached_list_response(page, total, limit, offset)
    cond = handle_conditional(etag)
    if cond:
        return cond
    return resp


@docs_bp.post('/<collection>')
@require_principal
def create_document(collection: str):
    data = _body()
    doc, = get_store().commit(
        current_principal(),
        [Write(op=OP_CREATE, collection=collection, doc_id=data.get('id'), data=data)],
    )
    return document_response(doc, 201)


@docs_bp.get('/<collection>/<doc_id>')
@require_principal
def get_document(collection: str, doc_id: str):
    doc = get_store().get(current_principal(), collection, doc_id)
    if doc is None:
        raise NotFound(f'{collection}/{doc_id} not found')
    cond = handle_conditional(document_etag(doc))
    if cond:
        return cond
    return document_response(doc)


@docs_bp.put('/<collection>/<doc_id>')
@require_principal
def put_document(collection: str, doc_id: str):
    """Create with the addressed id, or replace the whole document when it exists."""
    store = get_store()
    principal = current_principal()
    data = _body()
    expected = expected_version()
    exists = store.get(principal, collection, doc_id) is not None
    if exists or expected is not None:
        write = Write(op=OP_UPDATE, collection=collection, doc_id=doc_id, data=data, merge=False, expected_version=expected)
    else:
        write = Write(op=OP_CREATE, collection=collection, doc_id=doc_id, data=data)
    doc, = store.commit(principal, [write])
    return document_response(doc, 200 if write.op == OP_UPDATE else 201)


@docs_bp.patch('/<collection>/<doc_id>')
@require_principal
def patch_document(collection: str, doc_id: str):
    doc, = get_store().commit(
        current_principal(),
        [Write(op=OP_UPDATE, collection=collection, doc_id=doc_id, data=_body(), expected_version=expected_version())],
    )
    return document_response(doc)


@docs_bp.delete('/<collection>/<doc_id>')
@require_principal
def delete_document(collection: str, doc_id: str):
    get_store().commit(
        current_principal(),
        [Write(op=OP_DELETE, collection=collection, doc_id=doc_id, expected_version=expected_version())],
    )
    return make_response('', 204)
